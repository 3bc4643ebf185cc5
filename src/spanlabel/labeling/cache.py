"""Per-call substring position cache.

Locates span text inside the source text when the offsets supplied by an
extractor or the oracle are missing or wrong. Lookups escalate through three
tiers:

1. Exact occurrences (memoized per substring, sorted by start)
2. Case-insensitive search
3. Fuzzy search, anchored on a short prefix and scored with normalized
   Levenshtein distance

A cache instance is bound to one source text and owned by exactly one call
scope. It is never shared between calls.
"""

from __future__ import annotations

import bisect
import logging
import re
import unicodedata
from dataclasses import asdict, dataclass

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

FUZZY_MAX_DISTANCE = 0.35
FUZZY_ANCHOR_LENGTH = 6
FUZZY_MAX_CANDIDATES = 120
FUZZY_WINDOW_SLACK = 10

_QUOTES_RE = re.compile(r"[`\"'“”]")
_BOLD_RE = re.compile(r"\*\*")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class CacheTelemetry:
    exact_matches: int = 0
    case_insensitive_matches: int = 0
    fuzzy_matches: int = 0
    failures: int = 0
    total_requests: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def clean_for_match(value: str) -> str:
    """Normalize text for fuzzy comparison.

    Strips diacritics, quotes and markdown bold markers, collapses whitespace
    and lower-cases.
    """
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    stripped = _QUOTES_RE.sub("", stripped)
    stripped = _BOLD_RE.sub("", stripped)
    stripped = _WHITESPACE_RE.sub(" ", stripped)
    return stripped.lower().strip()


class PositionCache:
    """Memoized substring finder bound to a single source text."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._occurrences: dict[str, list[int]] = {}
        self._lowered: str | None = None
        self.telemetry = CacheTelemetry()

    # ------------------------------------------------------------------
    # Occurrence lookup
    # ------------------------------------------------------------------

    def occurrences(self, substring: str) -> list[int]:
        """Sorted start offsets of every exact occurrence (overlaps included)."""
        cached = self._occurrences.get(substring)
        if cached is not None:
            return cached

        found: list[int] = []
        if substring:
            idx = self.text.find(substring)
            while idx != -1:
                found.append(idx)
                idx = self.text.find(substring, idx + 1)
        self._occurrences[substring] = found
        return found

    def _lower_text(self) -> str:
        if self._lowered is None:
            self._lowered = self.text.lower()
        return self._lowered

    # ------------------------------------------------------------------
    # Best-match resolution
    # ------------------------------------------------------------------

    def find_best_match(
        self,
        substring: str,
        preferred_start: int | None = None,
        used: set[tuple[int, int]] | None = None,
    ) -> tuple[int, int] | None:
        """Locate ``substring`` and return ``(start, end)`` or None.

        Among exact occurrences, picks the unused one closest to
        ``preferred_start`` (ties go to the earlier occurrence). When every
        exact occurrence is already used, returns None so that each
        occurrence backs at most one span.
        """
        if not substring:
            return None

        self.telemetry.total_requests += 1
        starts = self.occurrences(substring)

        if starts:
            length = len(substring)
            if used:
                starts = [s for s in starts if (s, s + length) not in used]
                if not starts:
                    self.telemetry.failures += 1
                    logger.debug(
                        "[PositionCache] all %d occurrences of %r already used",
                        len(self.occurrences(substring)),
                        substring[:50],
                    )
                    return None
            self.telemetry.exact_matches += 1
            start = _nearest(starts, preferred_start or 0)
            return start, start + length

        match = self._case_insensitive_find(substring, used)
        if match is not None:
            self.telemetry.case_insensitive_matches += 1
            return match

        match = self._fuzzy_find(substring)
        if match is not None and (not used or match not in used):
            self.telemetry.fuzzy_matches += 1
            logger.debug("[PositionCache] fuzzy match for %r at %s", substring[:50], match)
            return match

        self.telemetry.failures += 1
        logger.debug("[PositionCache] no match for %r", substring[:50])
        return None

    def _case_insensitive_find(
        self, substring: str, used: set[tuple[int, int]] | None
    ) -> tuple[int, int] | None:
        lowered_source = self._lower_text()
        # Offsets are only meaningful when lower-casing preserved length.
        if len(lowered_source) != len(self.text):
            return None
        target = substring.lower()
        if not target or len(target) != len(substring):
            return None
        idx = lowered_source.find(target)
        while idx != -1:
            span = (idx, idx + len(target))
            if not used or span not in used:
                return span
            idx = lowered_source.find(target, idx + 1)
        return None

    def _fuzzy_find(self, substring: str) -> tuple[int, int] | None:
        target = clean_for_match(substring)
        if not target:
            return None

        text = self.text
        lowered_source = self._lower_text()
        anchor = target[:FUZZY_ANCHOR_LENGTH]

        candidates: list[int] = []
        if anchor and len(lowered_source) == len(text):
            idx = lowered_source.find(anchor)
            while idx != -1 and len(candidates) < FUZZY_MAX_CANDIDATES:
                candidates.append(idx)
                idx = lowered_source.find(anchor, idx + 1)

        if not candidates:
            step = max(1, len(target) // 4)
            for pos in range(0, max(0, len(text) - len(target)) + 1, step):
                candidates.append(pos)
                if len(candidates) >= FUZZY_MAX_CANDIDATES:
                    break

        lengths = range(
            max(1, len(substring) - FUZZY_WINDOW_SLACK),
            len(substring) + FUZZY_WINDOW_SLACK + 1,
        )
        best: tuple[int, int] | None = None
        best_key = (1.0, 0)
        for start in candidates:
            for length in lengths:
                end = min(len(text), start + length)
                cleaned = clean_for_match(text[start:end])
                if not cleaned:
                    continue
                # Ties prefer the window closest to the requested length.
                key = (Levenshtein.normalized_distance(target, cleaned), abs(end - start - len(substring)))
                if best is None or key < best_key:
                    best, best_key = (start, end), key
                if end == len(text):
                    break

        if best is None or best_key[0] > FUZZY_MAX_DISTANCE:
            return None
        start, end = best
        while end > start and text[end - 1].isspace():
            end -= 1
        while start < end and text[start].isspace():
            start += 1
        return start, end

    def clear(self) -> None:
        self._occurrences.clear()
        self._lowered = None


def _nearest(starts: list[int], preferred: int) -> int:
    """Occurrence closest to ``preferred``; ``starts`` must be sorted."""
    if preferred <= starts[0]:
        return starts[0]
    if preferred >= starts[-1]:
        return starts[-1]
    i = bisect.bisect_left(starts, preferred)
    before, after = starts[i - 1], starts[i]
    return before if preferred - before <= after - preferred else after
