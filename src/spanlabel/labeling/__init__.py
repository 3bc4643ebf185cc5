"""Hybrid span labeling: fast path, oracle, validation, chunking and repair."""

from spanlabel.labeling.assessor import FastPathAssessor, coverage_percent, expected_min_spans
from spanlabel.labeling.cache import PositionCache
from spanlabel.labeling.chunker import TextChunker, merge_chunked_spans
from spanlabel.labeling.orchestrator import SpanLabeler, label_spans
from spanlabel.labeling.repair import RepairCoordinator
from spanlabel.labeling.scope import CallScope
from spanlabel.labeling.validator import LENIENT, STRICT, validate_spans

__all__ = [
    # Entry points
    "SpanLabeler",
    "label_spans",
    # Components
    "FastPathAssessor",
    "RepairCoordinator",
    "TextChunker",
    "merge_chunked_spans",
    "PositionCache",
    "CallScope",
    # Validation
    "validate_spans",
    "STRICT",
    "LENIENT",
    # Heuristics
    "expected_min_spans",
    "coverage_percent",
]
