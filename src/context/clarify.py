"""Decides whether a turn needs more input from the user before answering."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.context.extractor import (
    ContextExtractor,
    day_followup,
    has_weather_intent,
    is_contextual,
    mentions_day,
)
from src.context.memory import Message

logger = logging.getLogger(__name__)

ASK_CITY_FOR_DAY = (
    "Which city would you like the forecast for {day}? "
    "For example: 'weather in Paris {day}'."
)
ASK_CITY_CONTEXTUAL = (
    "Which city do you mean? I couldn't tell from our conversation which place "
    "you're asking about the weather for."
)
ASK_LOCATION_CONTEXTUAL = (
    "Which location are you referring to? Let me know the city or place and I'll take it "
    "from there."
)
ASK_CITY_WEATHER = (
    "I'd be happy to help with weather information! Could you please specify which city "
    "you're asking about? For example: 'weather in Paris tomorrow' or 'forecast for "
    "New York on Friday'."
)
ASK_MORE_DETAIL = (
    "Could you tell me a bit more about what you're looking for? For example, a "
    "destination, the dates you're considering, or what kind of trip you have in mind."
)


def _day_phrase(day: str) -> str:
    day = "tomorrow" if day == "tommorow" else day
    if day in ("today", "tonight", "tomorrow", "day after tomorrow"):
        return day
    return f"on {day.capitalize()}"


def asked_for_city(history: Sequence[Message]) -> bool:
    """True if the latest assistant turn ended by asking which city."""
    for message in reversed(history):
        if message.role == "assistant":
            tail = message.text.strip().lower()[-200:]
            return "which city" in tail
        if message.role == "user":
            return False
    return False


class ClarificationGate:
    """First matching rule wins; None means the turn can proceed."""

    def __init__(self, extractor: ContextExtractor) -> None:
        self.extractor = extractor

    def needs_clarification(self, message: str, history: Sequence[Message]) -> str | None:
        text = (message or "").strip()

        day = day_followup(text)
        if day and not self.extractor.extract_city(text, history):
            logger.info("Clarifying: day follow-up without a city")
            return ASK_CITY_FOR_DAY.format(day=_day_phrase(day))

        contextual = is_contextual(text)
        weather = has_weather_intent(text)
        if contextual and not self.extractor.extract_city(text, history):
            logger.info("Clarifying: pronoun reference without a resolvable city")
            return ASK_CITY_CONTEXTUAL if weather else ASK_LOCATION_CONTEXTUAL

        if weather and not contextual and not self.extractor.extract_city(text):
            logger.info("Clarifying: weather question without a city")
            return ASK_CITY_WEATHER

        words = text.split()
        if len(words) <= 2 and "?" not in text and not mentions_day(text) and not weather:
            if asked_for_city(history):
                return None
            logger.info("Clarifying: message too short (%r)", text)
            return ASK_MORE_DETAIL

        return None
