"""System prompt and message-list assembly for a chat turn."""

from __future__ import annotations

import json
import logging
import zoneinfo
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from src.config import settings
from src.context.memory import Message
from src.weather.models import ExternalContext

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

DEFAULT_SYSTEM_PROMPT = """\
You are TravelGenie, a concise, helpful travel planning assistant.

Never make up specific weather data, prices, or times. If there is no ExternalContext \
data, say "I don't know - want me to check?" Keep responses under 250 words.

Start with a one-sentence "TL;DR:" line, follow with 2-3 plain-text bullets (•) of \
practical advice, and end with a "Sources:" line citing "ExternalContext weather \
forecast" or "LLM knowledge". Use plain text, no ** or markdown.

If ExternalContext contains forecast data, use it, name the exact day asked about, and \
mention any "note" it carries. For dates beyond 5 days, say you can only provide \
forecasts up to 5 days ahead."""

STRICT_ADDENDUM = """\
STRICT MODE: Your previous answer contained claims that could not be verified. \
Do not state temperatures, weather conditions, exact prices, or exact times unless \
they appear in ExternalContext. Hedge anything else ("typically", "around") and say \
what you do not know."""

COMPLEX_GUIDANCE = """\
This is a planning request. After the TL;DR line, give a "Plan:" section with \
numbered steps on their own lines, then a blank line, then a "Recommendation:" \
section with bullets. Keep the reasoning brief."""


def _read_config(filename: str) -> str:
    """Read a config markdown file, returning empty string if missing."""
    path = CONFIG_DIR / filename
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    return ""


def system_prompt() -> str:
    return _read_config("SYSTEM_PROMPT.md") or DEFAULT_SYSTEM_PROMPT


def _time_text() -> str:
    now = datetime.now(zoneinfo.ZoneInfo(settings.timezone))
    return f"Current date: {now.strftime('%A, %B %d, %Y')} ({settings.timezone})"


def _external_text(external: ExternalContext) -> str:
    payload = external.to_dict()
    text = f"ExternalContext: {json.dumps(payload, indent=2, ensure_ascii=False)}"
    if external.kind == "weather" and external.days_ahead == 0 and external.query_day == "today":
        text += "\nThe user did not name a day, so the forecast is for today."
    return text


def build_messages(
    history: Sequence[Message],
    *,
    memory_context: str = "",
    external: ExternalContext | None = None,
    complex_query: bool = False,
    strict: bool = False,
    window: int | None = None,
) -> list[dict[str, str]]:
    """Assemble the role/content list for the LLM.

    One system turn (prompt, date, profile, guidance, external context)
    followed by the last ``window`` history messages.

    Args:
        history: Conversation so far, including the current user message.
        memory_context: Rendered user profile, empty if nothing is known.
        external: Grounding data fetched for this turn.
        complex_query: Add the Plan/Recommendation structure guidance.
        strict: Append the stricter instructions used when regenerating.
        window: Number of history messages to include.
    """
    window = settings.history_window if window is None else window

    sections = [system_prompt(), _time_text()]
    if memory_context:
        sections.append(memory_context)
    if complex_query:
        sections.append(COMPLEX_GUIDANCE)
    if external is not None:
        sections.append(_external_text(external))
    if strict:
        sections.append(STRICT_ADDENDUM)

    messages = [{"role": "system", "content": "\n\n".join(sections)}]
    recent = list(history)[-window:] if window > 0 else []
    for msg in recent:
        if msg.role == "system":
            continue
        messages.append({"role": msg.role, "content": msg.text})
    return messages
