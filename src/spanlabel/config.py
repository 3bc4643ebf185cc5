"""Pipeline configuration and presets for span labeling.

All tunables live on a single immutable ``SpanLabelingConfig`` that is passed
into the labeler, assessor and chunker constructors.

Environment Variables (read by ``from_env``):
    SPANLABEL_PRESET: Base preset name (default: "default")
    SPANLABEL_MAX_WORDS_PER_CHUNK: Word count above which text is chunked
    SPANLABEL_MAX_CONCURRENT_CHUNKS: Chunk batch size / worker cap
    SPANLABEL_PROCESS_CHUNKS_IN_PARALLEL: "true" / "false"
    SPANLABEL_CHUNK_OVERLAP_WORDS: Words repeated at chunk boundaries
    SPANLABEL_MIN_SPANS_THRESHOLD: Minimum spans required for long prompts
    SPANLABEL_MIN_COVERAGE_PERCENT: Coverage below which text counts as sparse
    SPANLABEL_SPARSE_MIN_SPANS: Span floor for the sparse override
    SPANLABEL_SPARSE_HIGH_CONFIDENCE_THRESHOLD: Confidence floor for the sparse override
    SPANLABEL_SPARSE_MIN_SIGNAL_SPANS: High-signal span floor for the sparse override
    SPANLABEL_FAST_PATH_ENABLED: "true" / "false"
    SPANLABEL_OPEN_VOCAB_ENABLED: "true" / "false"
    SPANLABEL_ORACLE_MAX_TOKENS: Max output tokens requested from the oracle
    SPANLABEL_ENABLE_REPAIR: Default for the per-call "enableRepair" option
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.7
DEFAULT_MAX_SPANS = 60
DEFAULT_MIN_CONFIDENCE = 0.5
DEFAULT_TEMPLATE_VERSION = "v1"
DEFAULT_NON_TECHNICAL_WORD_LIMIT = 6
MAX_SPANS_ABSOLUTE_LIMIT = 80


@dataclass(frozen=True)
class SpanLabelingConfig:
    name: str = "default"

    # Chunking
    max_words_per_chunk: int = 400
    max_concurrent_chunks: int = 3
    process_chunks_in_parallel: bool = True
    chunk_overlap_words: int = 0
    # Start positions closer than this are treated as the same boundary duplicate
    merge_position_tolerance: int = 0

    # Fast-path acceptance
    fast_path_enabled: bool = True
    min_spans_threshold: int = 3
    min_coverage_percent: float = 30.0
    sparse_min_spans: int = 2
    sparse_high_confidence_threshold: float = 0.8
    sparse_min_signal_spans: int = 2
    long_prompt_word_count: int = 80
    open_vocab_enabled: bool = True

    # Oracle
    oracle_max_tokens: int = 4000
    enable_repair: bool = False


PRESETS: dict[str, SpanLabelingConfig] = {
    "default": SpanLabelingConfig(),

    # Never trust the fast path; every call goes to the oracle.
    "oracle_only": SpanLabelingConfig(
        name="oracle_only",
        fast_path_enabled=False,
    ),

    "serial": SpanLabelingConfig(
        name="serial",
        process_chunks_in_parallel=False,
    ),

    # Repair malformed oracle output instead of dropping spans leniently.
    "repair": SpanLabelingConfig(
        name="repair",
        enable_repair=True,
    ),

    # Small chunks with word overlap; boundary duplicates collapse on merge.
    "overlapping_chunks": SpanLabelingConfig(
        name="overlapping_chunks",
        max_words_per_chunk=200,
        chunk_overlap_words=12,
        merge_position_tolerance=2,
    ),
}


def get_config(name: str) -> SpanLabelingConfig:
    if name not in PRESETS:
        available = ", ".join(sorted(PRESETS.keys()))
        raise ValueError(f"Unknown preset '{name}'. Available: {available}")
    return PRESETS[name]


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


_ENV_FIELDS: dict[str, str] = {
    "SPANLABEL_MAX_WORDS_PER_CHUNK": "max_words_per_chunk",
    "SPANLABEL_MAX_CONCURRENT_CHUNKS": "max_concurrent_chunks",
    "SPANLABEL_PROCESS_CHUNKS_IN_PARALLEL": "process_chunks_in_parallel",
    "SPANLABEL_CHUNK_OVERLAP_WORDS": "chunk_overlap_words",
    "SPANLABEL_MIN_SPANS_THRESHOLD": "min_spans_threshold",
    "SPANLABEL_MIN_COVERAGE_PERCENT": "min_coverage_percent",
    "SPANLABEL_SPARSE_MIN_SPANS": "sparse_min_spans",
    "SPANLABEL_SPARSE_HIGH_CONFIDENCE_THRESHOLD": "sparse_high_confidence_threshold",
    "SPANLABEL_SPARSE_MIN_SIGNAL_SPANS": "sparse_min_signal_spans",
    "SPANLABEL_FAST_PATH_ENABLED": "fast_path_enabled",
    "SPANLABEL_OPEN_VOCAB_ENABLED": "open_vocab_enabled",
    "SPANLABEL_ORACLE_MAX_TOKENS": "oracle_max_tokens",
    "SPANLABEL_ENABLE_REPAIR": "enable_repair",
}


def from_env(environ: dict[str, str] | None = None) -> SpanLabelingConfig:
    """Build a config from a preset plus ``SPANLABEL_*`` overrides.

    Raises:
        ValueError: If the preset is unknown or a value cannot be parsed.
    """
    env = os.environ if environ is None else environ
    base = get_config(env.get("SPANLABEL_PRESET", "default"))
    types = {f.name: f.type for f in fields(SpanLabelingConfig)}

    overrides: dict[str, object] = {}
    for var, attr in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        kind = types[attr]
        try:
            if kind == "bool":
                overrides[attr] = _parse_bool(raw)
            elif kind == "int":
                overrides[attr] = int(raw)
            else:
                overrides[attr] = float(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from e

    if overrides:
        logger.debug("[Config] %s overrides: %s", base.name, overrides)
    return replace(base, **overrides)
