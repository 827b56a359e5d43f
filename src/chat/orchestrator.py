"""One chat turn, from the user's message to the stored reply.

The turn moves through the states in :class:`TurnState`. Clarification,
out-of-range days, and failed weather lookups end it early with a fixed
reply; everything else goes through the LLM, validation, and normalization.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from src.config import settings
from src.context.clarify import ASK_CITY_WEATHER, ClarificationGate, asked_for_city
from src.context.classify import QueryClassifier
from src.context.extractor import ContextExtractor, DayInfo, match_known_city
from src.context.memory import MemoryStore, Message
from src.llm import client as llm_client
from src.llm.prompt import build_messages
from src.text.normalizer import TextNormalizer
from src.validation.facts import FactValidator
from src.weather.client import WeatherClient
from src.weather.models import ExternalContext

logger = logging.getLogger(__name__)

LLMCall = Callable[[list[dict[str, str]]], Awaitable[str]]

BEYOND_RANGE_REPLY = (
    "I can only provide weather forecasts up to {max_days} days ahead. {day} is "
    "{days_ahead} days away, which is beyond my forecast range. For longer-term planning, "
    "I'd recommend checking reliable weather services closer to your travel date."
)
WEATHER_UNAVAILABLE_REPLY = (
    "I'm having trouble getting current weather data for {city}. This could be due to the "
    "city name or a temporary API issue. Could you try rephrasing the city name, or would "
    "you like me to help with other travel planning for {city}?"
)

# A reply this short after "which city?" is taken as the answer.
_CITY_ANSWER_MAX_WORDS = 3


class TurnState(StrEnum):
    RECEIVED = "received"
    CLARIFY = "clarify"
    CONTEXT_RESOLVED = "context_resolved"
    EXTERNAL_LOOKUP = "external_lookup"
    GENERATE = "generate"
    VALIDATE = "validate"
    REGENERATE = "regenerate"
    NORMALIZE = "normalize"
    STORE = "store"
    RESPOND = "respond"


@dataclass
class TurnResult:
    """What a turn produced, plus the states it passed through."""

    reply: str
    conversation_id: str
    external_context: ExternalContext | None = None
    city_detected: str | None = None
    days_ahead: int | None = None
    is_complex: bool = False
    path: list[TurnState] = field(default_factory=list)

    @property
    def debug(self) -> dict:
        return {
            "city_detected": self.city_detected,
            "days_ahead": self.days_ahead,
            "is_complex": self.is_complex,
        }

    @property
    def clarified(self) -> bool:
        return TurnState.CLARIFY in self.path


@dataclass
class _Turn:
    conversation_id: str
    message: str
    query: str
    city: str | None = None
    day: DayInfo | None = None
    is_complex: bool = False
    external: ExternalContext | None = None
    path: list[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])


# An unlisted city is only taken as typed, in capitals: "Tulsa", "Santa Fe".
_CITY_ANSWER_RE = re.compile(r"^[A-Z][A-Za-z'-]*(?:\s+[A-Za-z][A-Za-z'-]*)*$")
_NOT_A_CITY = {
    "no", "nope", "yes", "yeah", "ok", "okay", "sure", "thanks", "thank", "never", "mind",
    "cancel", "stop", "hi", "hello", "maybe", "anywhere",
}


def _city_answer(answer: str) -> str | None:
    answer = answer.strip(" .!?,")
    if not _CITY_ANSWER_RE.match(answer):
        return None
    if any(word.lower() in _NOT_A_CITY for word in answer.split()):
        return None
    return answer


class TurnOrchestrator:
    """Runs chat turns. Turns for the same conversation id never overlap."""

    def __init__(
        self,
        store: MemoryStore,
        *,
        extractor: ContextExtractor | None = None,
        gate: ClarificationGate | None = None,
        classifier: QueryClassifier | None = None,
        validator: FactValidator | None = None,
        normalizer: TextNormalizer | None = None,
        weather: WeatherClient | None = None,
        llm: LLMCall | None = None,
        max_forecast_days: int | None = None,
        regenerate_threshold: int | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor or ContextExtractor(store)
        self.gate = gate or ClarificationGate(self.extractor)
        self.classifier = classifier or QueryClassifier()
        self.validator = validator or FactValidator()
        self.normalizer = normalizer or TextNormalizer()
        self.weather = weather or WeatherClient()
        self.llm = llm or llm_client.chat
        self.max_forecast_days = (
            max_forecast_days if max_forecast_days is not None else settings.max_forecast_days
        )
        self.regenerate_threshold = (
            regenerate_threshold
            if regenerate_threshold is not None
            else settings.regenerate_confidence_threshold
        )

    async def handle(self, message: str, conversation_id: str | None = None) -> TurnResult:
        """Run one turn and return the reply with debug metadata."""
        conversation_id = conversation_id or uuid.uuid4().hex
        async with self.store.lock(conversation_id):
            return await self._run(conversation_id, message)

    async def _run(self, conversation_id: str, message: str) -> TurnResult:
        memory = self.store.get_or_create(conversation_id)
        history = list(memory.messages)
        turn = _Turn(conversation_id=conversation_id, message=message, query=message)

        # An out-of-range day is answered even when no city was given.
        clarification = None
        out_of_range = None
        if self.classifier.needs_external(message):
            out_of_range = self._beyond_range(turn)
        if out_of_range is None:
            clarification = self.gate.needs_clarification(message, history)

        self.extractor.update_memory(conversation_id, Message("user", message))
        if out_of_range:
            turn.path.append(TurnState.CONTEXT_RESOLVED)
            return self._finish(turn, out_of_range)
        if clarification:
            turn.path.append(TurnState.CLARIFY)
            return self._finish(turn, clarification)

        self._apply_city_answer(turn, history)
        turn.is_complex = self.classifier.is_complex(turn.query)

        if self.classifier.needs_external(turn.query):
            early = await self._resolve_external(turn, history)
            if early is not None:
                return self._finish(turn, early)
        else:
            turn.path.append(TurnState.CONTEXT_RESOLVED)

        text = await self._generate(turn)
        return self._finish(turn, text)

    def _apply_city_answer(self, turn: _Turn, history: Sequence[Message]) -> None:
        """Treat a short reply to "which city?" as answering the earlier question."""
        if not asked_for_city(history):
            return
        if len(turn.message.split()) > _CITY_ANSWER_MAX_WORDS:
            return
        previous = next((m for m in reversed(history) if m.role == "user"), None)
        if previous is None:
            return
        city = (
            match_known_city(turn.message)
            or self.extractor.extract_city(turn.message)
            or _city_answer(turn.message)
        )
        if city is None:
            return
        turn.query = previous.text
        turn.city = city
        logger.info("Took %r as the city for %r", turn.city, previous.text)

    def _beyond_range(self, turn: _Turn) -> str | None:
        """Set the turn's day; return the fixed reply if it is past the forecast range."""
        turn.day = self.extractor.extract_day(turn.query)
        if turn.day.days_ahead <= self.max_forecast_days:
            return None
        logger.info(
            "%s is %d days ahead, beyond the forecast range",
            turn.day.target_day,
            turn.day.days_ahead,
        )
        return BEYOND_RANGE_REPLY.format(
            max_days=self.max_forecast_days,
            day=turn.day.target_day[:1].upper() + turn.day.target_day[1:],
            days_ahead=turn.day.days_ahead,
        )

    async def _resolve_external(self, turn: _Turn, history: Sequence[Message]) -> str | None:
        """Resolve day and city, then fetch the forecast. Returns an early reply or None."""
        out_of_range = self._beyond_range(turn)
        if out_of_range:
            turn.path.append(TurnState.CONTEXT_RESOLVED)
            return out_of_range

        turn.city = turn.city or self.extractor.extract_city(turn.query, history)
        if not turn.city:
            turn.path.append(TurnState.CLARIFY)
            return ASK_CITY_WEATHER

        turn.path.append(TurnState.CONTEXT_RESOLVED)
        logger.info(
            "Weather query for %r (%d days ahead: %s)",
            turn.city,
            turn.day.days_ahead,
            turn.day.target_day,
        )
        turn.path.append(TurnState.EXTERNAL_LOOKUP)
        turn.external = await self.weather.fetch_forecast(
            turn.city, turn.day.days_ahead, query_day=turn.day.target_day
        )
        if turn.external is None:
            return WEATHER_UNAVAILABLE_REPLY.format(city=turn.city)
        return None

    async def _generate(self, turn: _Turn, strict: bool = False) -> str:
        memory = self.store.get_or_create(turn.conversation_id)
        messages = build_messages(
            memory.messages,
            memory_context=self.extractor.context_string(turn.conversation_id),
            external=turn.external,
            complex_query=turn.is_complex,
            strict=strict,
        )

        turn.path.append(TurnState.GENERATE)
        start = time.monotonic()
        text = await self.llm(messages)
        logger.info("LLM reply in %.0fms", (time.monotonic() - start) * 1000)

        turn.path.append(TurnState.VALIDATE)
        result = self.validator.validate(text, turn.external)
        if not strict and result.confidence > self.regenerate_threshold:
            logger.warning(
                "Confidence %d above %d, regenerating with strict prompt",
                result.confidence,
                self.regenerate_threshold,
            )
            turn.path.append(TurnState.REGENERATE)
            return await self._generate(turn, strict=True)

        turn.path.append(TurnState.NORMALIZE)
        return self.normalizer.clean(result.text) or llm_client.FALLBACK_REPLY

    def _finish(self, turn: _Turn, reply: str) -> TurnResult:
        turn.path.append(TurnState.STORE)
        self.extractor.update_memory(turn.conversation_id, Message("assistant", reply))
        turn.path.append(TurnState.RESPOND)
        return TurnResult(
            reply=reply,
            conversation_id=turn.conversation_id,
            external_context=turn.external,
            city_detected=turn.city,
            days_ahead=turn.day.days_ahead if turn.day else None,
            is_complex=turn.is_complex,
            path=turn.path,
        )
