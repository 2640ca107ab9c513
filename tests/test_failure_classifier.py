from __future__ import annotations

import allure
import pytest

from taskguard.orchestrator.failure_classifier import (
    SUGGESTIONS,
    SuggestionCategory,
    classify_error,
)

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Error Suggestions"),
]


@pytest.mark.parametrize(
    ("message", "category"),
    [
        ("Insufficient credits. Required: 12, Available: 5", SuggestionCategory.CREDITS),
        ("Balance too low", SuggestionCategory.CREDITS),
        ("Format not supported for this channel", SuggestionCategory.UNSUPPORTED),
        ("Upstream API returned 503", SuggestionCategory.API),
        ("request timed out", SuggestionCategory.API),
        ("Rate limit reached", SuggestionCategory.API),
        ("Something odd happened", SuggestionCategory.GENERIC),
    ],
)
def test_classify_error_categories(message: str, category: SuggestionCategory) -> None:
    assert classify_error(message).category == category


def test_credits_win_over_api_keywords() -> None:
    classified = classify_error("api rejected call: insufficient credits")

    assert classified.category == SuggestionCategory.CREDITS
    assert classified.matched_pattern == "insufficient"


def test_api_keyword_requires_word_boundary() -> None:
    classified = classify_error("Capital allocation failed")

    assert classified.category == SuggestionCategory.GENERIC
    assert classified.matched_pattern is None


def test_suggestion_text_comes_from_table() -> None:
    assert classify_error("credits exhausted").suggestion == SUGGESTIONS[SuggestionCategory.CREDITS]
    assert classify_error("").suggestion == "Please contact support if the problem persists."
