"""Tests for the clarification gate."""

import pytest

from src.context.clarify import (
    ASK_CITY_CONTEXTUAL,
    ASK_CITY_WEATHER,
    ASK_LOCATION_CONTEXTUAL,
    ASK_MORE_DETAIL,
    ClarificationGate,
    asked_for_city,
)
from src.context.extractor import ContextExtractor
from src.context.memory import Message


@pytest.fixture
def gate(extractor: ContextExtractor) -> ClarificationGate:
    return ClarificationGate(extractor)


# -- Day follow-ups ----------------------------------------------------------


def test_day_followup_without_city_asks_for_city(gate: ClarificationGate) -> None:
    reply = gate.needs_clarification("what about thursday?", [])
    assert reply is not None
    assert "Which city" in reply
    assert "Thursday" in reply


def test_day_followup_with_city_in_history(gate: ClarificationGate) -> None:
    history = [Message("user", "weather in Paris tomorrow")]
    assert gate.needs_clarification("what about thursday?", history) is None


def test_tomorrow_followup_wording(gate: ClarificationGate) -> None:
    reply = gate.needs_clarification("and tomorrow?", [])
    assert "forecast for tomorrow" in reply


# -- Pronouns ----------------------------------------------------------------


def test_pronoun_with_weather_asks_for_city(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("Is it rainy there?", []) == ASK_CITY_CONTEXTUAL


def test_pronoun_without_weather_asks_for_location(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("What can I do there?", []) == ASK_LOCATION_CONTEXTUAL


def test_existential_there_with_named_city_passes(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("Are there any good museums in Tulsa?", []) is None
    assert gate.needs_clarification("Will there be rain in Tulsa tomorrow?", []) is None


@pytest.mark.parametrize(
    ("history", "expect_clarification"),
    [
        ([], True),
        ([Message("user", "Tell me something fun")], True),
        ([Message("user", "I'm heading to Rome")], False),
        ([Message("user", "I'm heading to Rome"), Message("assistant", "Lovely choice.")], False),
    ],
)
def test_pronoun_clarification_is_monotonic(
    gate: ClarificationGate, history: list[Message], expect_clarification: bool
) -> None:
    reply = gate.needs_clarification("What can I do there?", history)
    assert (reply is not None) == expect_clarification


# -- Weather without a city --------------------------------------------------


def test_weather_without_city(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("What's the weather like tomorrow?", []) == ASK_CITY_WEATHER


def test_short_weather_message_with_city_passes(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("Paris weather", []) is None


def test_full_weather_question_passes(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("weather in Paris tomorrow", []) is None


# -- Short messages ----------------------------------------------------------


def test_short_message_asks_for_detail(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("Hi", []) == ASK_MORE_DETAIL


def test_short_question_passes(gate: ClarificationGate) -> None:
    assert gate.needs_clarification("Why?", []) is None


def test_short_answer_to_which_city_passes(gate: ClarificationGate) -> None:
    history = [
        Message("user", "what's the forecast for friday?"),
        Message("assistant", ASK_CITY_WEATHER),
    ]
    assert asked_for_city(history)
    assert gate.needs_clarification("Lyon", history) is None


def test_asked_for_city_only_checks_latest_turn() -> None:
    history = [
        Message("assistant", ASK_CITY_WEATHER),
        Message("user", "Lyon"),
    ]
    assert not asked_for_city(history)
