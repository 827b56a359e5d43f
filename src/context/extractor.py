"""Rule-based recovery of city, target day and preferences from chat text.

The extractor also owns conversation memory: every message goes through
:meth:`ContextExtractor.update_memory`, which mines user turns for
preferences, place names and trip drafts.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from src.config import settings
from src.context.memory import (
    ConversationMemory,
    MemoryStore,
    Message,
    TripPlan,
    UserPreferences,
)

logger = logging.getLogger(__name__)

# -- Vocabulary --------------------------------------------------------------

KNOWN_CITIES: tuple[str, ...] = (
    "Abu Dhabi", "Amsterdam", "Athens", "Austin", "Bangkok", "Barcelona", "Beijing",
    "Berlin", "Bogota", "Boston", "Brussels", "Budapest", "Buenos Aires", "Cairo",
    "Cape Town", "Chicago", "Copenhagen", "Delhi", "Denver", "Dubai", "Dublin",
    "Edinburgh", "Florence", "Geneva", "Hanoi", "Havana", "Helsinki", "Hong Kong",
    "Honolulu", "Istanbul", "Kyoto", "Kuala Lumpur", "Las Vegas", "Lima", "Lisbon",
    "London", "Los Angeles", "Lyon", "Madrid", "Marrakech", "Melbourne", "Mexico City",
    "Miami", "Milan", "Montreal", "Moscow", "Mumbai", "Munich", "Nairobi", "Naples",
    "New Delhi", "New Orleans", "New York", "Osaka", "Oslo", "Paris", "Porto", "Prague",
    "Reykjavik", "Rio de Janeiro", "Rome", "San Diego", "San Francisco", "Seattle",
    "Seoul", "Seville", "Shanghai", "Singapore", "Stockholm", "Sydney", "Taipei",
    "Tel Aviv", "Tokyo", "Toronto", "Valencia", "Vancouver", "Venice", "Vienna",
    "Warsaw", "Washington", "Zurich",
)

WEEKDAYS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}
WEEKDAY_MISSPELLINGS: dict[str, str] = {
    "wedensday": "wednesday",
    "wednessday": "wednesday",
}

DAY_WORDS = (
    "day after tomorrow|tomorrow|tommorow|today|tonight|"
    + "|".join(list(WEEKDAYS) + list(WEEKDAY_MISSPELLINGS))
)
DAY_WORD_RE = re.compile(rf"\b(?:{DAY_WORDS})\b", re.I)

WEATHER_TERMS_RE = re.compile(
    r"\b(?:weather|forecast|temperature|climate|rain(?:y|ing)?|sunny|cloudy|snow(?:ing)?|"
    r"storm(?:y)?|humid(?:ity)?|umbrella)\b",
    re.I,
)

_TEMPORAL = rf"{DAY_WORDS}|this|next|on|weekend|now"
_CITY = r"[A-Za-z][A-Za-z .'-]*?"
_END = rf"(?=\s+(?:in\s+|on\s+|for\s+)?(?:{_TEMPORAL})\b|\s*[?.!,]|\s*$)"

_WEATHER_NOUN = r"(?:weather|forecast|climate|temperature)"
_WEATHER_WORDS = {"weather", "forecast", "climate", "temperature"}

_CITY_PATTERNS: list[tuple[re.Pattern[str], bool]] = [
    # (pattern, needs weather intent in the message)
    (re.compile(rf"\b{_WEATHER_NOUN}\s+(?:in|for|at)\s+({_CITY}){_END}", re.I), False),
    (re.compile(rf"^\s*({_CITY})\s+{_WEATHER_NOUN}\b", re.I), False),
    (re.compile(rf"\bin\s+({_CITY}){_END}", re.I), True),
    (re.compile(r"\b(?:in|at|for)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"), False),
    (re.compile(rf"^\s*{_WEATHER_NOUN}\s+({_CITY})\s*[?.!]?\s*$", re.I), False),
]

_MONTHS = (
    "january february march april may june july august september october november december"
).split()

_STOPWORDS = {
    "a", "an", "the", "what", "whats", "what's", "how", "when", "where", "which", "will",
    "would", "be", "is", "it", "its", "it's", "there", "here", "this", "that", "my", "your",
    "our", "me", "us", "you", "i", "we", "weather", "forecast", "temperature", "climate",
    "general", "advance", "mind", "time", "case", "fact", "order", "particular", "like",
    "morning", "afternoon", "evening", "night", "week", "weekend", "summer", "winter",
    "spring", "fall", "autumn", "now", "next", "please", "thanks", "about", "detail",
    *WEEKDAYS, *WEEKDAY_MISSPELLINGS, *_MONTHS,
}

# Existential "there" ("is there", "there are") does not point at a place.
_PLACE_THERE = (
    r"(?<!\bis )(?<!\bare )(?<!\bwas )(?<!\bwere )(?<!\bwill )(?<!\bbe )"
    r"\bthere\b(?!'s)(?!\s+(?:is|are|was|were|will|be)\b)"
)

_PRONOUN_RE = re.compile(
    _PLACE_THERE
    + r"|\b(?:that place|this place|that city|this city|the same place|same city)\b"
    r"|\b(?:in|at|for|about|visit|visiting|to) it\b"
    r"|\bwhat(?:'s| is) it like\b",
    re.I,
)

_FOLLOWUP_RE = re.compile(
    rf"^\s*(?:(?:what|how)\s+about|and)\s+(?:on\s+|for\s+)?({DAY_WORDS})\b",
    re.I,
)

# Phrases that only appear in text this service produced itself.
_SYSTEM_MARKERS = (
    "tl;dr",
    "sources:",
    "externalcontext",
    "external context",
    "could you please specify which city",
    "which city would you like",
    "which city are you asking",
    "which city do you mean",
    "which location are you",
    "for example: 'weather in",
    "i can only provide weather forecasts",
    "i'm having trouble getting current weather",
    "detected weather query",
    "extracted city",
    "weather api",
)

_LOCATION_PATTERNS = [
    re.compile(
        r"\b(?:visit|visiting|go to|going to|travel to|traveling to|travelling to|fly to|"
        r"flying to|in|at)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"
    ),
    re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+(?:trip|vacation|holiday)\b"),
]
_LOCATION_FALSE_POSITIVES = {
    "I", "The", "This", "That", "When", "Where", "What", "How", "My", "Our",
    *(d.capitalize() for d in WEEKDAYS),
    *(m.capitalize() for m in _MONTHS),
}


def _keywords(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b", re.I)


_BUDGET_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("budget", _keywords("budget", "cheap", "affordable", r"backpack(?:ing|er)?", "inexpensive")),
    (
        "luxury",
        _keywords("luxury", "luxurious", "high-end", "premium", "first class", r"(?:five|5)-star"),
    ),
    ("moderate", _keywords("moderate", "mid-range", "midrange", "comfortable")),
]

_INTEREST_PATTERNS: dict[str, re.Pattern[str]] = {
    "culture": _keywords(
        r"museums?", "art", "history", "culture", "cultural", r"temples?", r"monuments?"
    ),
    "nature": _keywords(
        r"beach(?:es)?", r"hik(?:e|es|ing)", r"outdoors?", "nature", r"mountains?", r"parks?"
    ),
    "food": _keywords(
        "food", "foodie", r"restaurants?", "cuisine", "eat", "eating", "culinary", "street food"
    ),
    "shopping": _keywords("shopping", r"malls?", r"markets?", r"souvenirs?"),
    "nightlife": _keywords(
        "nightlife", r"clubs?", "clubbing", r"bars?", r"part(?:y|ies)", r"pubs?"
    ),
    "adventure": _keywords("adventure", "extreme", "adrenaline", "diving", "climbing", "rafting"),
}

_DIETARY_PATTERNS: dict[str, re.Pattern[str]] = {
    "vegetarian": _keywords("vegetarian"),
    "vegan": _keywords("vegan"),
    "halal": _keywords("halal"),
    "kosher": _keywords("kosher"),
    "gluten-free": _keywords(r"gluten(?:[- ]free)?", "celiac", "coeliac"),
}

_TRIP_INTENT_RE = re.compile(
    r"\b(?:trip|vacation|holiday|getaway|honeymoon|visit(?:ing)?|travel(?:l?ing)?|fly(?:ing)?)\b",
    re.I,
)
_TRIP_DEST_RE = re.compile(r"\bto\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
_TRIP_PURPOSE_RE = re.compile(
    r"\b(honeymoon|business|family|anniversary|birthday|conference|wedding|holiday)\b", re.I
)
_TRIP_BUDGET_RE = re.compile(r"\$\s?(\d[\d,]*)|\b(\d[\d,]*)\s*(?:dollars|usd)\b", re.I)

_KNOWN_CITY_RE = re.compile(
    r"\b(?:"
    + "|".join(re.escape(c) for c in sorted(KNOWN_CITIES, key=len, reverse=True))
    + r")\b",
    re.I,
)
_CANONICAL_CITY = {c.lower(): c for c in KNOWN_CITIES}


# -- Text predicates ---------------------------------------------------------


def is_system_output(text: str) -> bool:
    """True if ``text`` looks like something this service wrote itself."""
    low = (text or "").lower()
    return any(marker in low for marker in _SYSTEM_MARKERS)


def is_contextual(text: str) -> bool:
    """True if the message refers to a place only by pronoun."""
    return bool(_PRONOUN_RE.search(text or ""))


def day_followup(text: str) -> str | None:
    """Return the day word of a "what about <day>?" follow-up, if any."""
    m = _FOLLOWUP_RE.match(text or "")
    return m.group(1).lower() if m else None


def has_weather_intent(text: str) -> bool:
    return bool(WEATHER_TERMS_RE.search(text or ""))


def mentions_day(text: str) -> bool:
    return bool(DAY_WORD_RE.search(text or ""))


def match_known_city(text: str) -> str | None:
    """Earliest curated city name in ``text`` (longest at a tie), canonical casing."""
    m = _KNOWN_CITY_RE.search(text or "")
    if not m:
        return None
    return _CANONICAL_CITY[" ".join(m.group(0).lower().split())]


def _clean_candidate(raw: str) -> str | None:
    candidate = raw.strip().strip(".,'-").strip()
    words = candidate.split()
    while words and (words[-1].lower() in _STOPWORDS or DAY_WORD_RE.fullmatch(words[-1])):
        words.pop()
    if not words or len(words) > 4:
        return None
    lowered = [w.lower() for w in words]
    if lowered[0] in _STOPWORDS or any(w in _WEATHER_WORDS for w in lowered):
        return None
    candidate = " ".join(words)
    if len(candidate) < 2:
        return None
    if candidate.islower():
        candidate = candidate.title()
    return candidate


@dataclass(frozen=True)
class DayInfo:
    target_day: str
    days_ahead: int


# -- Extractor ---------------------------------------------------------------


class ContextExtractor:
    """Recovers structured context from conversation text and maintains memory."""

    def __init__(self, store: MemoryStore, lookback: int | None = None) -> None:
        self.store = store
        self.lookback = lookback if lookback is not None else settings.context_lookback_messages

    # -- City ----------------------------------------------------------------

    def _match_patterns(self, text: str) -> str | None:
        weather = has_weather_intent(text)
        for pattern, needs_weather in _CITY_PATTERNS:
            if needs_weather and not weather:
                continue
            m = pattern.search(text)
            if not m:
                continue
            city = _clean_candidate(m.group(1))
            if city:
                return city
        return None

    def _match_city(self, text: str) -> str | None:
        if not text or is_system_output(text):
            return None
        city = match_known_city(text)
        if city:
            return city
        if is_contextual(text):
            return None
        return self._match_patterns(text)

    def city_from_history(self, history: Sequence[Message]) -> str | None:
        """Most recent resolvable city in the last ``lookback`` messages."""
        window = list(history)[-self.lookback :] if self.lookback > 0 else []
        for message in reversed(window):
            if message.role == "system":
                continue
            city = self._match_city(message.text)
            if city:
                return city
        return None

    def extract_city(self, text: str, history: Sequence[Message] | None = None) -> str | None:
        """Find the city a message is about.

        Pronoun references ("there", "that city") and "what about <day>?"
        follow-ups fall back to recent history when the message names no
        well-known city itself.
        """
        if not text or is_system_output(text):
            return None
        city = self._match_city(text)
        if city:
            logger.debug("Extracted city %r from %r", city, text)
            return city
        if history and (is_contextual(text) or day_followup(text)):
            city = self.city_from_history(history)
            if city:
                logger.debug("Resolved city %r from history", city)
            return city
        return None

    # -- Day -----------------------------------------------------------------

    @staticmethod
    def _today() -> date:
        return datetime.now(ZoneInfo(settings.timezone)).date()

    def extract_day(self, text: str, today: date | None = None) -> DayInfo:
        """Resolve the day a message is asking about, defaulting to today."""
        low = (text or "").lower()
        if re.search(r"\bday after (?:tomorrow|tommorow)\b", low):
            return DayInfo("day after tomorrow", 2)
        if re.search(r"\b(?:tomorrow|tommorow)\b", low):
            return DayInfo("tomorrow", 1)
        if re.search(r"\b(?:today|tonight)\b", low):
            return DayInfo("today", 0)

        for name in list(WEEKDAYS) + list(WEEKDAY_MISSPELLINGS):
            if re.search(rf"\b{name}\b", low):
                weekday = WEEKDAY_MISSPELLINGS.get(name, name)
                current = (today or self._today()).weekday()
                days_ahead = (WEEKDAYS[weekday] - current) % 7
                if days_ahead <= 0:
                    days_ahead = 7
                logger.debug("Detected %s -> %d days ahead", weekday, days_ahead)
                return DayInfo(weekday, days_ahead)

        return DayInfo("today", 0)

    # -- Preferences & locations ---------------------------------------------

    def extract_preferences(self, text: str, existing: UserPreferences) -> UserPreferences:
        """Merge preferences found in ``text`` into a copy of ``existing``."""
        updated = UserPreferences(
            budget=existing.budget,
            interests=set(existing.interests),
            dietary=set(existing.dietary),
        )
        for tier, pattern in _BUDGET_PATTERNS:
            if pattern.search(text):
                updated.budget = tier
                break
        updated.interests |= {tag for tag, p in _INTEREST_PATTERNS.items() if p.search(text)}
        updated.dietary |= {tag for tag, p in _DIETARY_PATTERNS.items() if p.search(text)}
        return updated

    def extract_locations(self, text: str) -> list[str]:
        """All place names mentioned in a message, in order of appearance."""
        if not text or is_system_output(text):
            return []
        found: dict[str, int] = {}
        for m in _KNOWN_CITY_RE.finditer(text):
            found.setdefault(_CANONICAL_CITY[" ".join(m.group(0).lower().split())], m.start())
        for pattern in _LOCATION_PATTERNS:
            for m in pattern.finditer(text):
                words = m.group(1).split()
                while words and (
                    words[-1] in _LOCATION_FALSE_POSITIVES or DAY_WORD_RE.fullmatch(words[-1])
                ):
                    words.pop()
                location = " ".join(words)
                if len(location) <= 2 or location in _LOCATION_FALSE_POSITIVES:
                    continue
                if match_known_city(location) == location or location in found:
                    continue
                found[location] = m.start(1)
        return sorted(found, key=found.__getitem__)

    def _capture_trip(self, memory: ConversationMemory, text: str) -> None:
        if not _TRIP_INTENT_RE.search(text):
            return
        dest = _TRIP_DEST_RE.search(text)
        destination = match_known_city(text) or (dest.group(1) if dest else None)
        if not destination or destination in _LOCATION_FALSE_POSITIVES:
            return

        purpose = _TRIP_PURPOSE_RE.search(text)
        amount = _TRIP_BUDGET_RE.search(text)
        days_ahead = self.extract_day(text).days_ahead if mentions_day(text) else None

        trip = next((t for t in memory.planned_trips if t.destination == destination), None)
        if trip is None:
            trip = TripPlan(destination=destination)
            memory.planned_trips.append(trip)
            logger.info("Captured trip draft to %s", destination)
        if purpose:
            trip.purpose = purpose.group(1).lower()
        if amount:
            trip.budget_amount = int((amount.group(1) or amount.group(2)).replace(",", ""))
        if days_ahead is not None:
            trip.days_ahead = days_ahead

    # -- Memory --------------------------------------------------------------

    def update_memory(self, conversation_id: str, message: Message) -> ConversationMemory:
        """Append a message; mine user turns for preferences and places."""
        memory = self.store.get_or_create(conversation_id)
        memory.messages.append(message)
        if message.role != "user":
            return memory

        memory.preferences = self.extract_preferences(message.text, memory.preferences)
        for location in self.extract_locations(message.text):
            if memory.add_location(location):
                logger.debug("Conversation %s mentioned %s", conversation_id, location)
        self._capture_trip(memory, message.text)
        return memory

    def context_string(self, conversation_id: str) -> str:
        """User profile block for the system prompt, empty if nothing known."""
        memory = self.store.get(conversation_id)
        if memory is None:
            return ""

        prefs = memory.preferences
        parts = []
        if prefs.budget:
            parts.append(f"User Budget Level: {prefs.budget}")
        if prefs.interests:
            parts.append(f"User Interests: {', '.join(sorted(prefs.interests))}")
        if prefs.dietary:
            parts.append(f"Dietary Restrictions: {', '.join(sorted(prefs.dietary))}")
        if memory.mentioned_locations:
            parts.append(f"Previously Discussed Locations: {', '.join(memory.locations[-5:])}")
        if memory.planned_trips:
            trip = memory.planned_trips[-1]
            detail = f"Current Trip Draft: {trip.destination}"
            if trip.purpose:
                detail += f" ({trip.purpose})"
            if trip.budget_amount:
                detail += f", budget about ${trip.budget_amount}"
            parts.append(detail)

        if not parts:
            return ""
        return "User Profile & Context:\n" + "\n".join(parts)

    def stats(self, conversation_id: str) -> dict | None:
        memory = self.store.get(conversation_id)
        if memory is None:
            return None
        return {
            "message_count": len(memory.messages),
            "locations_discussed": len(memory.mentioned_locations),
            "has_preferences": memory.preferences.captured,
            "preferences": memory.preferences.to_dict(),
            "planned_trips": [t.destination for t in memory.planned_trips],
        }
