"""Keyword classification of user queries.

Deterministic lists only. The orchestrator asks two questions of every
message: does it need external data, and is it a complex planning request.
"""

from __future__ import annotations

import re
from enum import StrEnum


class QueryType(StrEnum):
    WEATHER = "weather"
    ITINERARY = "itinerary"
    PACKING = "packing"
    VISA = "visa"
    EVENTS = "events"
    COMPARISON = "comparison"
    GENERAL = "general"


EXTERNAL_KEYWORDS: tuple[str, ...] = (
    "weather", "temperature", "forecast", "climate", "rain", "sunny", "cloudy",
    "today", "now", "current", "tomorrow", "tommorow", "next week",
    "monday", "tuesday", "wednesday", "wedensday", "wednessday", "thursday", "friday",
    "saturday", "sunday", "this week", "weekend", "hot", "cold", "warm", "cool",
)

QUERY_TYPE_KEYWORDS: dict[QueryType, tuple[str, ...]] = {
    QueryType.WEATHER: ("weather", "forecast", "temperature", "rain", "sunny", "snow"),
    QueryType.ITINERARY: ("itinerary", "plan", "schedule", "days in", "day trip", "route"),
    QueryType.PACKING: ("pack", "packing", "bring", "wear", "luggage", "suitcase"),
    QueryType.VISA: ("visa", "passport", "entry requirement", "border"),
    QueryType.EVENTS: ("event", "festival", "concert", "happening", "things to do"),
    QueryType.COMPARISON: ("compare", "comparison", " vs ", "versus", "better", "or should"),
}

COMPLEX_KEYWORDS: tuple[str, ...] = (
    "itinerary", "plan", "planning", "compare", "versus", " vs ", "budget", "week",
    "multi", "route", "best way", "should i", "recommend",
)


def _words(text: str) -> str:
    return f" {' '.join((text or '').lower().split())} "


def _contains(haystack: str, keyword: str) -> bool:
    if keyword.startswith(" ") or keyword.endswith(" "):
        return keyword in haystack
    return re.search(rf"\b{re.escape(keyword)}\b", haystack) is not None


class QueryClassifier:
    """Swappable keyword lists and thresholds for query classification."""

    def __init__(
        self,
        external_keywords: tuple[str, ...] = EXTERNAL_KEYWORDS,
        complex_keywords: tuple[str, ...] = COMPLEX_KEYWORDS,
        type_keywords: dict[QueryType, tuple[str, ...]] | None = None,
        complex_word_count: int = 25,
    ) -> None:
        self.external_keywords = external_keywords
        self.complex_keywords = complex_keywords
        self.type_keywords = type_keywords or QUERY_TYPE_KEYWORDS
        self.complex_word_count = complex_word_count

    def needs_external(self, text: str) -> bool:
        """True if answering needs a weather lookup."""
        haystack = _words(text)
        return any(_contains(haystack, k) for k in self.external_keywords)

    def query_types(self, text: str) -> list[QueryType]:
        haystack = _words(text)
        found = [
            qtype
            for qtype, keywords in self.type_keywords.items()
            if any(_contains(haystack, k) for k in keywords)
        ]
        return found or [QueryType.GENERAL]

    def query_type(self, text: str) -> QueryType:
        return self.query_types(text)[0]

    def is_complex(self, text: str) -> bool:
        """Planning/comparison requests, multi-topic or long messages."""
        haystack = _words(text)
        if any(_contains(haystack, k) for k in self.complex_keywords):
            return True
        if len([t for t in self.query_types(text) if t is not QueryType.GENERAL]) > 1:
            return True
        return len(haystack.split()) >= self.complex_word_count
