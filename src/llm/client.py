"""Async Claude API client for single-shot chat replies."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from src.config import settings

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm having trouble generating a response right now. Please try again."

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def to_anthropic(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Split a role/content list into a system prompt and Messages API turns.

    System turns are joined into the ``system`` parameter. Consecutive turns
    with the same role are merged, and the list is made to start with a
    user turn as the API requires.
    """
    system_parts: list[str] = []
    turns: list[dict[str, str]] = []
    for msg in messages:
        role, content = msg["role"], msg["content"]
        if role == "system":
            system_parts.append(content)
            continue
        if not turns and role == "assistant":
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1] = {"role": role, "content": f"{turns[-1]['content']}\n\n{content}"}
        else:
            turns.append({"role": role, "content": content})
    system = "\n\n".join(system_parts) if system_parts else None
    return system, turns


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> str:
    """Single Claude call, no tools and no streaming. Raises on API errors."""
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.claude_model,
        "max_tokens": max_tokens or settings.llm_max_tokens,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    response = await client.messages.create(**kwargs)
    return "".join(b.text for b in response.content if b.type == "text")


async def chat(messages: list[dict[str, str]]) -> str:
    """Generate a reply for role/content turns. Never raises for API trouble.

    Returns :data:`FALLBACK_REPLY` when the call fails or yields no text.
    """
    system, turns = to_anthropic(messages)
    if not turns:
        logger.warning("No user turn to send to the model")
        return FALLBACK_REPLY

    try:
        text = await complete_text(turns, system=system)
    except anthropic.APIError as exc:
        logger.warning("Claude API call failed: %s", exc)
        return FALLBACK_REPLY

    logger.info("Claude replied with %d chars", len(text))
    return text.strip() or FALLBACK_REPLY
