"""Tests for reply text normalization."""

import random
import re

import pytest

from src.text.normalizer import (
    BulletList,
    Section,
    Sources,
    Summary,
    TextNormalizer,
    clean,
    parse_document,
)

SAMPLES = [
    "",
    "Plain sentence with nothing to fix.",
    "**TL;DR:** Paris is lovely.\n• Visit the Louvre\n• Eat crepes\n\n\n\n"
    "Sources: LLM knowledge",
    "Here is my take. Plan: 1. Book flights 2. Reserve hotel Recommendation: • Go in May "
    "• Pack light Sources: LLM knowledge",
    "[INTERNAL: reasoning]Identify key requirements from the user. Tokyo is great in spring.",
    "Step 2:\nBook the hotel.\n\n\n\n\nThen relax::  really.",
    "TL;DR: Go. •Pack an umbrella • Bring layers\nSources: ExternalContext weather forecast",
    "*really* nice and _calm_ with __bold__ text",
    "### Plan\nPlan:\n1) Land\n2) Eat\nRecommendation:\n- Stay central\n- Walk",
    "Note: bring cash.\n\nSources: LLM knowledge",
]


# -- Leakage -----------------------------------------------------------------


def test_strips_internal_markers_and_planning_phrases() -> None:
    text = "[INTERNAL: reasoning]Identify key requirements from the user. Tokyo is great in spring."
    assert clean(text) == "Tokyo is great in spring."


def test_strips_bare_step_labels() -> None:
    assert clean("Step 2:\nBook the hotel.") == "Book the hotel."


def test_strips_based_on_requirements_phrase() -> None:
    text = "Based on your requirements, here is the plan. Lisbon is a good fit."
    assert "requirements" not in clean(text)
    assert "Lisbon is a good fit." in clean(text)


def test_extra_patterns_are_applied() -> None:
    normalizer = TextNormalizer(extra_patterns=[re.compile(r"<<[^>]*>>")])
    assert normalizer.clean("Hello <<debug>> world") == "Hello world"


# -- Emphasis & punctuation --------------------------------------------------


def test_removes_emphasis_markup() -> None:
    assert clean("*really* nice and _calm_ with __bold__ text") == (
        "really nice and calm with bold text"
    )


def test_removes_bold_around_labels() -> None:
    assert clean("**TL;DR:** Paris is lovely.") == "TL;DR: Paris is lovely."


def test_collapses_duplicate_colons_and_spaces() -> None:
    assert clean("Then relax::  really.") == "Then relax: really."


def test_collapses_blank_line_runs() -> None:
    assert clean("Line one\n\n\n\nLine two") == "Line one\n\nLine two"


def test_empty_input() -> None:
    assert clean("") == ""
    assert clean("   \n\n  ") == ""


# -- Structure ---------------------------------------------------------------


def test_inline_plan_and_recommendation_are_split() -> None:
    text = (
        "Here is my take. Plan: 1. Book flights 2. Reserve hotel Recommendation: • Go in May "
        "• Pack light Sources: LLM knowledge"
    )
    assert clean(text) == (
        "Here is my take.\n\n"
        "Plan:\n1. Book flights\n2. Reserve hotel\n\n"
        "Recommendation:\n• Go in May\n• Pack light\n\n"
        "Sources: LLM knowledge"
    )


def test_bullets_start_new_lines() -> None:
    result = clean("TL;DR: Go. •Pack an umbrella • Bring layers")
    assert result == "TL;DR: Go.\n• Pack an umbrella\n• Bring layers"


def test_sources_separated_by_blank_line() -> None:
    result = clean("TL;DR: Sunny.\n• Wear a hat\nSources: ExternalContext weather forecast")
    assert result.endswith("• Wear a hat\n\nSources: ExternalContext weather forecast")


def test_parse_document_builds_typed_blocks() -> None:
    doc = parse_document("TL;DR: Hi\n• one\n• two\nPlan:\n1. a\n2. b\nSources: x")
    kinds = [type(b) for b in doc.blocks]
    assert kinds == [Summary, BulletList, Section, Sources]
    assert [i.text for i in doc.sections("plan")[0].items] == ["a", "b"]


# -- Idempotence -------------------------------------------------------------


@pytest.mark.parametrize("text", SAMPLES)
def test_clean_is_idempotent(text: str) -> None:
    once = clean(text)
    assert clean(once) == once


@pytest.mark.parametrize("text", SAMPLES)
def test_no_emphasis_survives(text: str) -> None:
    assert "**" not in clean(text)
    assert "__" not in clean(text)


def test_adjacent_headers_are_each_split() -> None:
    once = clean("TL;DR: Go. Plan: Sources: LLM knowledge")
    assert once == "TL;DR: Go.\n\nPlan:\n\nSources: LLM knowledge"
    assert clean(once) == once


def test_long_colon_runs_collapse_in_one_call() -> None:
    assert clean("Note" + ":" * 64 + " bring cash") == "Note: bring cash"


def test_leakage_exposed_by_splitting_is_removed() -> None:
    once = clean("Plan: Step 2:")
    assert "Step" not in once
    assert clean(once) == once


_FRAGMENTS = [
    "Plan:", "plan :", "Recommendation:", "Recommendations:", "Sources:", "Source:",
    "TL;DR:", "tldr:", "Note:", "Caveat:", "**Note**:", "•", "-", "*", "1.", "2)", "10.",
    ":", "::", ": :", ",", ",,", "(", ")", "()", "**", "__", "_", "#", "###", "[DEBUG]",
    "[INTERNAL note]", "Step 2:", "Identify key requirements", "Consider constraints.",
    "Account for rain.", "based on your requirements", "from the user (Ann)", "Paris",
    "is", "lovely.", "Book", "flights", "Pack light", "LLM knowledge", "?", "!", ".",
    "\n", "\n\n", "\n\n\n", "  ", "\t", "*x*", "_y_",
]


def _random_reply(rng: random.Random) -> str:
    parts = []
    for _ in range(rng.randint(1, 14)):
        parts.append(rng.choice(_FRAGMENTS))
        parts.append(rng.choice([" ", " ", "", "\n"]))
    return "".join(parts)


def test_clean_is_idempotent_on_random_replies() -> None:
    rng = random.Random(1234)
    for _ in range(2000):
        text = _random_reply(rng)
        once = clean(text)
        assert clean(once) == once, repr(text)
