"""Post-processing passes over validated spans.

Each pass takes a span list and returns ``(spans, notes)`` where ``notes``
describes anything that was dropped. Passes never mutate their input.
"""

from __future__ import annotations

from spanlabel import taxonomy
from spanlabel.labeling.text_utils import spans_overlap
from spanlabel.types import Span


def sort_by_start(spans: list[Span]) -> list[Span]:
    return sorted(spans, key=lambda s: (s.start, s.end, s.role))


def deduplicate(spans: list[Span]) -> tuple[list[Span], list[str]]:
    """Drop exact ``(start, end, role)`` repeats, keeping the first copy."""
    seen: set[tuple[int, int, str]] = set()
    kept: list[Span] = []
    notes: list[str] = []
    for i, span in enumerate(spans):
        key = (span.start, span.end, span.role)
        if key in seen:
            notes.append(f"span[{i}] ignored: duplicate span")
            continue
        seen.add(key)
        kept.append(span)
    return kept, notes


def _preference(span: Span) -> tuple[int, float, int]:
    # Specific attribute roles beat bare categories, then confidence, then earlier.
    return (1 if taxonomy.is_attribute(span.role) else 0, span.confidence, -span.start)


def find_overlaps(spans: list[Span]) -> list[tuple[Span, Span]]:
    ordered = sort_by_start(spans)
    pairs: list[tuple[Span, Span]] = []
    for i, a in enumerate(ordered):
        for b in ordered[i + 1:]:
            if b.start >= a.end:
                break
            if spans_overlap(a.start, a.end, b.start, b.end):
                pairs.append((a, b))
    return pairs


def resolve_overlaps(spans: list[Span]) -> tuple[list[Span], list[str]]:
    """Greedy overlap removal; preferred spans claim their range first."""
    ranked = sorted(spans, key=_preference, reverse=True)
    kept: list[Span] = []
    notes: list[str] = []
    for span in ranked:
        clash = next(
            (k for k in kept if spans_overlap(span.start, span.end, k.start, k.end)),
            None,
        )
        if clash is not None:
            notes.append(f'Dropped overlapping span "{span.text}" in favor of "{clash.text}"')
            continue
        kept.append(span)
    return sort_by_start(kept), notes


def filter_by_confidence(spans: list[Span], min_confidence: float) -> tuple[list[Span], list[str]]:
    kept: list[Span] = []
    notes: list[str] = []
    for span in spans:
        if span.confidence < min_confidence:
            notes.append(f'Dropped "{span.text}" (confidence {span.confidence:.2f} < {min_confidence:.2f})')
            continue
        kept.append(span)
    return kept, notes


def truncate(spans: list[Span], max_spans: int) -> tuple[list[Span], list[str]]:
    """Keep the ``max_spans`` most confident spans, ties to the earliest start."""
    if len(spans) <= max_spans:
        return list(spans), []
    ranked = sorted(spans, key=lambda s: (-s.confidence, s.start, s.end))
    kept = sort_by_start(ranked[:max_spans])
    return kept, [f"Truncated spans to maxSpans={max_spans}"]


def finalize(
    spans: list[Span],
    min_confidence: float,
    max_spans: int,
) -> tuple[list[Span], list[str]]:
    """Dedupe, sort, confidence-filter and truncate, in that order."""
    notes: list[str] = []
    spans, step = deduplicate(spans)
    notes += step
    spans = sort_by_start(spans)
    spans, step = filter_by_confidence(spans, min_confidence)
    notes += step
    spans, step = truncate(spans, max_spans)
    notes += step
    return sort_by_start(spans), notes
