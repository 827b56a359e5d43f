"""Tests for the Claude chat client."""

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx

from src.config import settings
from src.llm.client import FALLBACK_REPLY, chat, complete_text, to_anthropic


def _mock_client(*texts: str) -> MagicMock:
    mock_response = MagicMock()
    mock_response.content = [MagicMock(type="text", text=t) for t in texts]
    mock_client = MagicMock()
    mock_client.messages.create = AsyncMock(return_value=mock_response)
    return mock_client


# -- Role conversion ---------------------------------------------------------


def test_to_anthropic_moves_system_turns() -> None:
    system, turns = to_anthropic([
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
    ])
    assert system == "Be brief."
    assert turns == [{"role": "user", "content": "hi"}]


def test_to_anthropic_merges_and_trims() -> None:
    system, turns = to_anthropic([
        {"role": "assistant", "content": "Welcome!"},
        {"role": "user", "content": "a"},
        {"role": "user", "content": "b"},
        {"role": "assistant", "content": "c"},
    ])
    assert system is None
    assert turns == [
        {"role": "user", "content": "a\n\nb"},
        {"role": "assistant", "content": "c"},
    ]


# -- complete_text -----------------------------------------------------------


async def test_complete_text_basic() -> None:
    mock_client = _mock_client("hello ", "world")
    with patch("src.llm.client._get_client", return_value=mock_client):
        result = await complete_text([{"role": "user", "content": "hi"}])

    assert result == "hello world"
    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["messages"] == [{"role": "user", "content": "hi"}]
    assert call_kwargs["model"] == settings.claude_model
    assert call_kwargs["max_tokens"] == settings.llm_max_tokens
    assert call_kwargs["temperature"] == settings.llm_temperature
    assert "system" not in call_kwargs


async def test_complete_text_with_system_and_model() -> None:
    mock_client = _mock_client("response")
    with patch("src.llm.client._get_client", return_value=mock_client):
        await complete_text(
            [{"role": "user", "content": "hi"}],
            system="You are helpful.",
            model="claude-test-model",
        )

    call_kwargs = mock_client.messages.create.call_args.kwargs
    assert call_kwargs["system"] == "You are helpful."
    assert call_kwargs["model"] == "claude-test-model"


# -- chat --------------------------------------------------------------------


async def test_chat_returns_text() -> None:
    mock_client = _mock_client("  TL;DR: Go.  ")
    with patch("src.llm.client._get_client", return_value=mock_client):
        reply = await chat([
            {"role": "system", "content": "prompt"},
            {"role": "user", "content": "hi"},
        ])

    assert reply == "TL;DR: Go."
    assert mock_client.messages.create.call_args.kwargs["system"] == "prompt"


async def test_chat_api_error_returns_fallback() -> None:
    error = anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )
    with patch("src.llm.client.complete_text", new_callable=AsyncMock, side_effect=error):
        reply = await chat([{"role": "user", "content": "hi"}])
    assert reply == FALLBACK_REPLY


async def test_chat_empty_reply_returns_fallback() -> None:
    with patch("src.llm.client._get_client", return_value=_mock_client("")):
        assert await chat([{"role": "user", "content": "hi"}]) == FALLBACK_REPLY


async def test_chat_without_user_turn() -> None:
    with patch("src.llm.client.complete_text", new_callable=AsyncMock) as mock_complete:
        reply = await chat([{"role": "system", "content": "prompt"}])
    assert reply == FALLBACK_REPLY
    mock_complete.assert_not_called()
