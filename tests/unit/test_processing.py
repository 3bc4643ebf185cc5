"""Tests for span post-processing passes."""
from spanlabel.labeling.processing import (
    deduplicate,
    filter_by_confidence,
    finalize,
    find_overlaps,
    resolve_overlaps,
    sort_by_start,
    truncate,
)
from spanlabel.types import Span


def S(text, start, role="subject", confidence=0.9):
    return Span(text, start, start + len(text), role, confidence)


def test_sort_by_start():
    spans = [S("b", 5), S("a", 0), S("c", 5, role="action")]
    assert [(s.start, s.role) for s in sort_by_start(spans)] == [(0, "subject"), (5, "action"), (5, "subject")]


def test_deduplicate_keeps_first_copy():
    first = S("coat", 4, confidence=0.9)
    kept, notes = deduplicate([first, S("coat", 4, confidence=0.5)])
    assert kept == [first]
    assert notes == ["span[1] ignored: duplicate span"]


def test_deduplicate_same_range_different_role_is_kept():
    kept, notes = deduplicate([S("coat", 4), S("coat", 4, role="subject.wardrobe")])
    assert len(kept) == 2
    assert notes == []


def test_find_overlaps():
    a, b, c = S("red coat", 0), S("coat", 4), S("walks", 9)
    assert find_overlaps([c, b, a]) == [(a, b)]


def test_resolve_overlaps_prefers_attribute_roles():
    wardrobe = S("red coat", 0, role="subject.wardrobe", confidence=0.8)
    bare = S("coat", 4, role="subject", confidence=0.95)
    kept, notes = resolve_overlaps([bare, wardrobe])
    assert kept == [wardrobe]
    assert notes == ['Dropped overlapping span "coat" in favor of "red coat"']


def test_resolve_overlaps_then_confidence():
    low = S("red coat", 0, role="subject.wardrobe", confidence=0.6)
    high = S("coat", 4, role="subject.appearance", confidence=0.9)
    kept, _ = resolve_overlaps([low, high])
    assert kept == [high]


def test_filter_by_confidence():
    kept, notes = filter_by_confidence([S("a", 0, confidence=0.3), S("b", 2, confidence=0.5)], 0.5)
    assert [s.text for s in kept] == ["b"]
    assert notes == ['Dropped "a" (confidence 0.30 < 0.50)']


def test_truncate_keeps_most_confident():
    spans = [S("a", 0, confidence=0.9), S("b", 10, confidence=0.5), S("c", 20, confidence=0.9)]
    kept, notes = truncate(spans, 2)
    assert [s.text for s in kept] == ["a", "c"]
    assert notes == ["Truncated spans to maxSpans=2"]


def test_truncate_ties_go_to_earliest():
    spans = [S(t, i * 2, confidence=0.8) for i, t in enumerate("wxyz")]
    kept, _ = truncate(spans, 2)
    assert [s.text for s in kept] == ["w", "x"]


def test_truncate_noop():
    spans = [S("a", 0)]
    assert truncate(spans, 5) == (spans, [])


def test_finalize_runs_every_pass():
    spans = [
        S("z", 30, confidence=0.95),
        S("a", 0, confidence=0.9),
        S("a", 0, confidence=0.9),
        S("low", 10, confidence=0.1),
        S("m", 20, confidence=0.6),
    ]
    kept, notes = finalize(spans, min_confidence=0.5, max_spans=2)
    assert [s.text for s in kept] == ["a", "z"]
    assert notes == [
        "span[2] ignored: duplicate span",
        'Dropped "low" (confidence 0.10 < 0.50)',
        "Truncated spans to maxSpans=2",
    ]
