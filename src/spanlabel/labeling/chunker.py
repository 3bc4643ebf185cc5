"""Sentence-aware chunking of oversized text and merging of chunk results.

Splits text into sentences using pysbd, then greedily packs sentences into
chunks of at most ``max_words`` words. A single sentence that exceeds the
limit is split at whitespace boundaries. Chunks are always exact slices of
the source text, so ``source[chunk.start_offset:chunk.end_offset] ==
chunk.text`` and local span offsets translate by simple addition.
"""

from __future__ import annotations

import logging
import re
import warnings

from pysbd import Segmenter

from spanlabel import taxonomy
from spanlabel.labeling import processing
from spanlabel.labeling.text_utils import whitespace_word_count
from spanlabel.types import Chunk, ChunkResult, Span

logger = logging.getLogger(__name__)

# pysbd emits SyntaxWarnings on Python 3.12+ due to unescaped sequences
# in its regex patterns. Suppress them once at import time.
with warnings.catch_warnings():
    warnings.filterwarnings("ignore", category=SyntaxWarning)
    _SEGMENTER = Segmenter(language="en", clean=False)

_FALLBACK_SENTENCE_RE = re.compile(r"[^.!?\n]+(?:[.!?]+|\n+|$)")
# Whitespace-delimited words, the unit ``max_words`` is measured in.
_TOKEN_RE = re.compile(r"\S+")

DEFAULT_MAX_WORDS = 400


def split_sentences(text: str) -> list[tuple[int, int]]:
    """Sentence boundaries as ``(start, end)`` offsets, whitespace trimmed.

    pysbd returns sentence strings only, so offsets are recovered with a
    forward cursor. If a segment cannot be found verbatim (pysbd occasionally
    normalizes text), the regex splitter takes over for the remainder.
    """
    if not text.strip():
        return []

    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=SyntaxWarning)
        segments = [s for s in _SEGMENTER.segment(text) if s.strip()]

    bounds: list[tuple[int, int]] = []
    cursor = 0
    for segment in segments:
        needle = segment.strip()
        idx = text.find(needle, cursor)
        if idx == -1:
            logger.debug("[Chunker] pysbd segment not found at %d, using regex split", cursor)
            bounds.extend(_regex_sentences(text, cursor))
            return bounds
        bounds.append((idx, idx + len(needle)))
        cursor = idx + len(needle)

    return bounds


def _regex_sentences(text: str, offset: int) -> list[tuple[int, int]]:
    bounds = []
    for match in _FALLBACK_SENTENCE_RE.finditer(text, offset):
        segment = match.group()
        stripped = segment.strip()
        if not stripped:
            continue
        start = match.start() + (len(segment) - len(segment.lstrip()))
        bounds.append((start, start + len(stripped)))
    return bounds


def _word_split(text: str, start: int, end: int, max_words: int) -> list[tuple[int, int]]:
    """Split ``text[start:end]`` into pieces of at most ``max_words`` words.

    Cuts happen only between words, so no token is ever broken.
    """
    words = list(_TOKEN_RE.finditer(text, start, end))
    if not words:
        return [(start, end)]
    pieces = []
    piece_start = start
    for i in range(max_words, len(words), max_words):
        cut = words[i].start()
        pieces.append((piece_start, words[i - 1].end()))
        piece_start = cut
    pieces.append((piece_start, end))
    return pieces


class TextChunker:
    """Packs sentences into word-limited chunks with exact source offsets."""

    def __init__(self, max_words: int = DEFAULT_MAX_WORDS, overlap_words: int = 0) -> None:
        if max_words <= 0:
            raise ValueError(f"max_words must be positive, got {max_words}")
        if overlap_words < 0 or overlap_words >= max_words:
            raise ValueError(
                f"overlap_words must be in [0, {max_words}), got {overlap_words}"
            )
        self.max_words = max_words
        self.overlap_words = overlap_words

    def needs_chunking(self, text: str) -> bool:
        return whitespace_word_count(text) > self.max_words

    def chunk_text(self, text: str) -> list[Chunk]:
        if not text or not text.strip():
            return []

        units: list[tuple[int, int]] = []
        for start, end in split_sentences(text):
            if whitespace_word_count(text[start:end]) > self.max_words:
                units.extend(_word_split(text, start, end, self.max_words))
            else:
                units.append((start, end))

        ranges: list[tuple[int, int]] = []
        current_start: int | None = None
        current_end = 0
        current_words = 0
        for start, end in units:
            words = whitespace_word_count(text[start:end])
            if current_start is not None and current_words + words > self.max_words:
                ranges.append((current_start, current_end))
                current_start, current_words = None, 0
            if current_start is None:
                current_start = start
            current_end = end
            current_words += words
        if current_start is not None:
            ranges.append((current_start, current_end))

        if self.overlap_words:
            ranges = self._with_overlap(text, ranges)

        return [
            Chunk(
                text=text[start:end],
                start_offset=start,
                index=i,
                word_count=whitespace_word_count(text[start:end]),
            )
            for i, (start, end) in enumerate(ranges)
        ]

    def _with_overlap(self, text: str, ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
        """Extend each chunk backwards by up to ``overlap_words`` words."""
        extended = [ranges[0]] if ranges else []
        for (prev_start, prev_end), (start, end) in zip(ranges, ranges[1:]):
            tail = list(_TOKEN_RE.finditer(text, prev_start, prev_end))[-self.overlap_words:]
            extended.append((tail[0].start() if tail else start, end))
        return extended


def _same_boundary_phrase(a: Span, b: Span, tolerance: int) -> bool:
    if a.text != b.text:
        return False
    if abs(a.start - b.start) <= tolerance:
        return True
    return a.start < b.end and b.start < a.end


def merge_chunked_spans(
    results: list[ChunkResult],
    allow_overlap: bool = True,
    position_tolerance: int = 0,
) -> list[Span]:
    """Translate chunk-local spans to global offsets and merge them.

    Boundary duplicates (same text at the same or an overlapping global
    position, detected by two chunks) collapse to the higher-confidence copy;
    on a tie the copy from the earlier chunk wins. When overlap is not
    allowed, remaining cross-chunk overlaps are resolved the same way the
    lenient validator resolves them.
    """
    translated: list[Span] = []
    for result in sorted(results, key=lambda r: r.chunk.index):
        offset = result.chunk.start_offset
        translated.extend(span.shifted(offset) for span in result.spans)

    merged: list[Span] = []
    for span in translated:
        twin_idx = next(
            (i for i, kept in enumerate(merged) if _same_boundary_phrase(kept, span, position_tolerance)),
            None,
        )
        if twin_idx is None:
            merged.append(span)
        elif span.confidence > merged[twin_idx].confidence:
            merged[twin_idx] = span

    if not allow_overlap:
        merged, notes = processing.resolve_overlaps(merged)
        for note in notes:
            logger.debug("[Merge] %s", note)

    return processing.sort_by_start(merged)


def category_breakdown(spans: list[Span]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for span in spans:
        parent = taxonomy.parent_category(span.role)
        counts[parent] = counts.get(parent, 0) + 1
    return counts
