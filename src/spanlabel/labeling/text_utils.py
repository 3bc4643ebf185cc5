"""Small text helpers shared by the validator, assessor and chunker."""

from __future__ import annotations

import math
import re
from typing import Any, Iterator

from spanlabel.config import DEFAULT_CONFIDENCE

# Letters, digits, apostrophes and hyphens. Hyphenated words and contractions
# count as one word.
WORD_RE = re.compile(r"\b(?:[^\W_]|['-])+\b")


def clamp01(value: Any) -> float:
    """Clamp a numeric confidence to [0, 1]; non-numbers get the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if math.isnan(value):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def word_count(text: str | None) -> int:
    if not text:
        return 0
    return sum(1 for _ in WORD_RE.finditer(text))


def whitespace_word_count(text: str | None) -> int:
    """Whitespace-separated word count, as used for routing and span budgets.

    Punctuation-only tokens and strings such as "f/2.8" count as one word
    each, unlike ``word_count``.
    """
    if not text:
        return 0
    return len(text.split())


def iter_word_intervals(text: str) -> Iterator[tuple[int, int]]:
    for match in WORD_RE.finditer(text):
        yield match.start(), match.end()


def matches_at_indices(text: str, start: int, end: int, expected: str) -> bool:
    if start < 0 or end > len(text) or start >= end:
        return False
    return text[start:end] == expected


def format_validation_errors(errors: list[str]) -> str:
    """Render errors as an itemized, 1-based numbered list."""
    return "\n".join(f"{i}. {err}" for i, err in enumerate(errors, start=1))


def spans_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end
