"""Tests for the per-call position cache and call scope."""
from __future__ import annotations

import threading

import pytest

from spanlabel.errors import LabelingCancelled
from spanlabel.labeling.cache import PositionCache, clean_for_match
from spanlabel.labeling.scope import CallScope


# ---------------------------------------------------------------------------
# Exact occurrences
# ---------------------------------------------------------------------------

class TestExactMatches:
    def test_occurrences_include_overlapping_hits(self):
        assert PositionCache("aaa").occurrences("aa") == [0, 1]

    def test_occurrences_are_memoized(self):
        cache = PositionCache("a b a")
        first = cache.occurrences("a")
        assert cache.occurrences("a") is first

    def test_nearest_to_preferred_start(self):
        cache = PositionCache("a b a b a")
        assert cache.find_best_match("a", preferred_start=7) == (8, 9)

    def test_no_preference_picks_first(self):
        assert PositionCache("a b a b a").find_best_match("a") == (0, 1)

    def test_tie_goes_to_earlier_occurrence(self):
        assert PositionCache("a b a").find_best_match("a", preferred_start=2) == (0, 1)

    def test_used_occurrences_are_skipped(self):
        cache = PositionCache("a b a b a")
        assert cache.find_best_match("a", used={(0, 1)}) == (4, 5)

    def test_all_occurrences_used_returns_none(self):
        cache = PositionCache("a b a")
        assert cache.find_best_match("a", used={(0, 1), (4, 5)}) is None
        assert cache.telemetry.failures == 1

    def test_empty_substring(self):
        assert PositionCache("abc").find_best_match("") is None


# ---------------------------------------------------------------------------
# Fallback tiers
# ---------------------------------------------------------------------------

class TestFallbacks:
    def test_case_insensitive(self):
        cache = PositionCache("Hello World")
        assert cache.find_best_match("world") == (6, 11)
        assert cache.telemetry.case_insensitive_matches == 1

    def test_fuzzy_misspelling(self):
        cache = PositionCache("A warm color palette with soft tones")
        assert cache.find_best_match("color pallete") == (7, 20)
        assert cache.telemetry.fuzzy_matches == 1

    def test_fuzzy_ignores_quotes_and_bold(self):
        source = "Shot on 35mm film stock"
        start, end = PositionCache(source).find_best_match('**"35mm film"**')
        assert source[start:end] == "35mm film"

    def test_unrelated_text_not_found(self):
        cache = PositionCache("abc def")
        assert cache.find_best_match("zzzzzzzz") is None
        assert cache.telemetry.failures == 1
        assert cache.telemetry.total_requests == 1

    def test_clean_for_match(self):
        assert clean_for_match('  “Crème”  **Brûlée** ') == "creme brulee"


# ---------------------------------------------------------------------------
# Call scope
# ---------------------------------------------------------------------------

class TestCallScope:
    def test_identical_texts_get_separate_caches(self):
        with CallScope() as scope:
            first, second = scope.new_cache("abc"), scope.new_cache("abc")
            assert first is not second
            first.find_best_match("abc")
            assert second.telemetry.total_requests == 0
            assert scope.telemetry().total_requests == 1

    def test_close_releases_caches(self):
        scope = CallScope()
        cache = scope.new_cache("a b a")
        cache.occurrences("a")
        with scope:
            pass
        assert scope.closed
        assert cache._occurrences == {}

    def test_telemetry_is_aggregated(self):
        scope = CallScope()
        scope.new_cache("one two").find_best_match("two")
        scope.new_cache("three four").find_best_match("missing-term")
        totals = scope.telemetry()
        assert totals.total_requests == 2
        assert totals.exact_matches == 1
        assert totals.failures == 1

    def test_cancel_event(self):
        event = threading.Event()
        scope = CallScope(cancel_event=event)
        scope.check()
        event.set()
        assert scope.is_cancelled()
        with pytest.raises(LabelingCancelled):
            scope.check()

    def test_expired_deadline(self):
        scope = CallScope(timeout=0)
        assert scope.remaining() == 0.0
        with pytest.raises(LabelingCancelled, match="deadline"):
            scope.check()

    def test_no_deadline(self):
        assert CallScope().remaining() is None
