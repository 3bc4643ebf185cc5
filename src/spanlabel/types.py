"""Core data types shared across the labeling pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict

from spanlabel.config import (
    DEFAULT_MAX_SPANS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_NON_TECHNICAL_WORD_LIMIT,
    DEFAULT_TEMPLATE_VERSION,
)


@dataclass(frozen=True)
class Span:
    """A labeled substring. ``text`` always equals ``source[start:end]``."""

    text: str
    start: int
    end: int
    role: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def shifted(self, offset: int) -> Span:
        return Span(
            text=self.text,
            start=self.start + offset,
            end=self.end + offset,
            role=self.role,
            confidence=self.confidence,
        )


class CandidateSpan(TypedDict, total=False):
    """Loosely-typed span as produced by an extractor or the oracle."""

    text: str
    start: int
    end: int
    role: str
    confidence: float


@dataclass(frozen=True)
class Policy:
    allow_overlap: bool = False
    non_technical_word_limit: int = DEFAULT_NON_TECHNICAL_WORD_LIMIT


@dataclass(frozen=True)
class ProcessingOptions:
    max_spans: int = DEFAULT_MAX_SPANS
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    template_version: str = DEFAULT_TEMPLATE_VERSION


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the source text.

    Attributes:
        text: Exact slice ``source[start_offset:start_offset + len(text)]``.
        start_offset: Position of the slice in the source text.
        index: Chunk position in the sequence.
        word_count: Words in the chunk.
    """

    text: str
    start_offset: int
    index: int = 0
    word_count: int = 0

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)


@dataclass(frozen=True)
class Assessment:
    span_count: int
    expected_min_spans: int
    coverage_percent: float
    avg_confidence: float
    high_signal_count: int
    sparse_high_confidence_accepted: bool
    category_coverage: tuple[str, ...]
    word_count: int
    accept: bool
    reason: str = ""


@dataclass
class ValidationResult:
    """Outcome of validating one set of spans against the source text."""

    ok: bool
    errors: list[str] = field(default_factory=list)
    spans: list[Span] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    is_adversarial: bool = False
    analysis_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "spans": [s.to_dict() for s in self.spans],
            "meta": dict(self.meta),
            "isAdversarial": self.is_adversarial,
        }


@dataclass
class ChunkResult:
    """Per-chunk outcome, in chunk-local coordinates."""

    chunk: Chunk
    spans: list[Span] = field(default_factory=list)
    is_adversarial: bool = False
    meta: dict[str, Any] | None = None
    error: str | None = None
