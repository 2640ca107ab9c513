"""Deterministic error-message classification for user-facing suggestions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class SuggestionCategory(str, Enum):
    CREDITS = "credits"
    UNSUPPORTED = "unsupported"
    API = "api"
    GENERIC = "generic"


SUGGESTIONS: dict[SuggestionCategory, str] = {
    SuggestionCategory.CREDITS: "Top up your credits to continue.",
    SuggestionCategory.UNSUPPORTED: "This feature is not available on your plan.",
    SuggestionCategory.API: "An external service is unavailable. Please retry later.",
    SuggestionCategory.GENERIC: "Please contact support if the problem persists.",
}

_CREDITS_PATTERNS: tuple[str, ...] = (
    "insufficient",
    "credits",
    "credit",
    "balance",
)
_UNSUPPORTED_PATTERNS: tuple[str, ...] = (
    "unsupported",
    "not supported",
    "not available",
)
_API_PATTERNS: tuple[str, ...] = (
    "api",
    "timeout",
    "timed out",
    "rate limit",
    "too many requests",
    "unavailable",
    "connection",
)


@dataclass(slots=True)
class ErrorClassification:
    category: SuggestionCategory
    matched_pattern: str | None

    @property
    def suggestion(self) -> str:
        return SUGGESTIONS[self.category]


def classify_error(message: str) -> ErrorClassification:
    """Classify an error message; the first matching table wins.

    Patterns match on word boundaries so that `api` does not fire on
    words such as `capital`.
    """

    haystack = message.strip().lower()
    rules = (
        (SuggestionCategory.CREDITS, _CREDITS_PATTERNS),
        (SuggestionCategory.UNSUPPORTED, _UNSUPPORTED_PATTERNS),
        (SuggestionCategory.API, _API_PATTERNS),
    )
    for category, patterns in rules:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return ErrorClassification(category=category, matched_pattern=pattern)
    return ErrorClassification(category=SuggestionCategory.GENERIC, matched_pattern=None)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if re.search(rf"\b{re.escape(pattern)}\b", haystack):
            return pattern
    return None
