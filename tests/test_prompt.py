"""Tests for prompt assembly."""

from dataclasses import replace
from unittest.mock import patch

from src.context.memory import Message
from src.llm.prompt import (
    COMPLEX_GUIDANCE,
    DEFAULT_SYSTEM_PROMPT,
    STRICT_ADDENDUM,
    build_messages,
    system_prompt,
)


def _history(count: int) -> list[Message]:
    roles = ("user", "assistant")
    return [Message(roles[i % 2], f"message {i}") for i in range(count)]


def test_system_prompt_loaded_from_config() -> None:
    assert "TravelGenie" in system_prompt()


def test_system_prompt_fallback_when_file_missing(tmp_path) -> None:
    with patch("src.llm.prompt.CONFIG_DIR", tmp_path):
        assert system_prompt() == DEFAULT_SYSTEM_PROMPT


def test_single_system_turn_first() -> None:
    messages = build_messages(_history(1))
    assert messages[0]["role"] == "system"
    assert "Current date:" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "message 0"}


def test_history_window() -> None:
    messages = build_messages(_history(10), window=6)
    assert len(messages) == 7
    assert messages[1]["content"] == "message 4"
    assert messages[-1]["content"] == "message 9"


def test_system_history_messages_are_skipped() -> None:
    history = [Message("system", "internal"), Message("user", "hi")]
    messages = build_messages(history)
    assert [m["role"] for m in messages] == ["system", "user"]


def test_memory_and_guidance_sections() -> None:
    content = build_messages(
        _history(1),
        memory_context="User Profile & Context:\nUser Budget Level: budget",
        complex_query=True,
    )[0]["content"]
    assert "User Budget Level: budget" in content
    assert COMPLEX_GUIDANCE in content
    assert STRICT_ADDENDUM not in content


def test_strict_addendum() -> None:
    content = build_messages(_history(1), strict=True)[0]["content"]
    assert content.endswith(STRICT_ADDENDUM)


def test_external_context_rendered(weather_context) -> None:
    content = build_messages(_history(1), external=weather_context)[0]["content"]
    assert "ExternalContext:" in content
    assert '"location": "Paris, FR"' in content
    assert '"rain_probability": 40' in content
    assert "did not name a day" not in content


def test_default_day_noted(weather_context) -> None:
    today = replace(weather_context, query_day="today", days_ahead=0)
    content = build_messages(_history(1), external=today)[0]["content"]
    assert "did not name a day" in content
