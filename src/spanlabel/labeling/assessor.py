"""Fast-path acceptance heuristic.

Decides whether the deterministic extractor's candidates are good enough to
skip the oracle. The heuristic is deterministic:

- ``expected_min_spans`` is a step function of the whitespace word count, clamped to
  ``[1, min(max_spans or 60, step)]``.
- Coverage is the share of word tokens touched by at least one span.
- A sparse-but-confident candidate set can still be accepted when coverage is
  low but the spans are few, highly confident and domain-salient.
- Long prompts additionally need the open-vocabulary extractor to be ready
  and at least two of the core categories (subject, action, environment).

Rejection is a routing decision, not an error: ``extract`` returns None.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from spanlabel import taxonomy
from spanlabel.config import DEFAULT_MAX_SPANS, SpanLabelingConfig
from spanlabel.labeling.scope import CallScope
from spanlabel.labeling.cache import PositionCache
from spanlabel.labeling.text_utils import iter_word_intervals, whitespace_word_count
from spanlabel.labeling.validator import LENIENT, STRICT, validate_spans
from spanlabel.types import Assessment, Policy, ProcessingOptions, Span, ValidationResult

logger = logging.getLogger(__name__)

FAST_PATH_VERSION = "fast-v1"


def expected_min_spans(words: int, max_spans: int | None = None) -> int:
    if words < 40:
        expected = 1
    elif words < 80:
        expected = 4
    elif words < 140:
        expected = 8
    elif words < 220:
        expected = 12
    else:
        expected = 15
    cap = max_spans if max_spans and max_spans > 0 else DEFAULT_MAX_SPANS
    return max(1, min(expected, cap))


def coverage_percent(spans: list[Any], text: str) -> float:
    """Percentage of word tokens overlapped by at least one span interval."""
    tokens = list(iter_word_intervals(text))
    if not tokens:
        return 0.0
    intervals = sorted(
        (start, end) for start, end in (_interval(s) for s in spans) if end > start
    )
    covered = 0
    for t_start, t_end in tokens:
        if any(s < t_end and t_start < e for s, e in intervals):
            covered += 1
    return covered / len(tokens) * 100


def _interval(span: Any) -> tuple[int, int]:
    if isinstance(span, Span):
        return span.start, span.end
    start, end = span.get("start"), span.get("end")
    if isinstance(start, int) and isinstance(end, int):
        return start, end
    return 0, 0


def _role(span: Any) -> str:
    role = span.role if isinstance(span, Span) else span.get("role")
    return role if isinstance(role, str) else ""


def _confidence(span: Any) -> float:
    value = span.confidence if isinstance(span, Span) else span.get("confidence")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


class FastPathAssessor:
    """Scores fast-extractor candidates and accepts or rejects them."""

    def __init__(self, config: SpanLabelingConfig, extractor: Any) -> None:
        self.config = config
        self.extractor = extractor

    def open_vocab_ready(self) -> bool:
        if not self.config.open_vocab_enabled:
            return False
        probe = getattr(self.extractor, "is_open_vocab_ready", None)
        return bool(probe()) if callable(probe) else False

    def assess(self, spans: list[Any], text: str, options: ProcessingOptions) -> Assessment:
        cfg = self.config
        words = whitespace_word_count(text)
        span_count = len(spans)
        expected = expected_min_spans(words, options.max_spans)
        coverage = coverage_percent(spans, text)
        avg_conf = sum(_confidence(s) for s in spans) / span_count if span_count else 0.0
        high_conf_threshold = max(cfg.sparse_high_confidence_threshold, options.min_confidence)
        high_signal = sum(1 for s in spans if taxonomy.is_high_signal(_role(s)))
        categories = tuple(sorted({taxonomy.parent_category(_role(s)) for s in spans if _role(s)}))

        sparse_ok = (
            coverage < cfg.min_coverage_percent
            and span_count >= cfg.sparse_min_spans
            and avg_conf >= high_conf_threshold
            and high_signal >= cfg.sparse_min_signal_spans
        )

        is_long = words >= cfg.long_prompt_word_count
        required = max(expected, cfg.min_spans_threshold) if is_long else expected
        accept = span_count >= required or sparse_ok
        reason = "accepted" if accept else f"span count {span_count} < {required}"

        if accept and is_long:
            core = sum(1 for c in taxonomy.CORE_CATEGORIES if c in categories)
            if not self.open_vocab_ready():
                accept, reason = False, "open-vocabulary extractor not ready for long prompt"
            elif core < 2:
                accept, reason = False, f"long prompt covers {core} of 3 core categories"

        return Assessment(
            span_count=span_count,
            expected_min_spans=expected,
            coverage_percent=coverage,
            avg_confidence=avg_conf,
            high_signal_count=high_signal,
            sparse_high_confidence_accepted=sparse_ok,
            category_coverage=categories,
            word_count=words,
            accept=accept,
            reason=reason,
        )

    def _candidates(self, text: str) -> list[Any]:
        try:
            return list(self.extractor.extract(text))
        except Exception:
            logger.exception("[FastPath] extractor failed, falling through to oracle")
            return []

    def extract(
        self,
        text: str,
        policy: Policy,
        options: ProcessingOptions,
        scope: CallScope,
        cache: PositionCache | None = None,
    ) -> ValidationResult | None:
        """Validated fast-path result, or None to route to the oracle.

        Candidates are assessed twice: before validation, to skip validating
        sets that cannot pass, and again on the spans validation keeps, since
        the confidence floor and the span cap can shrink the set.
        """
        if self.extractor is None or not self.config.fast_path_enabled:
            return None

        t0 = time.perf_counter()
        candidates = self._candidates(text)
        assessment = self.assess(candidates, text, options)
        logger.debug(
            "[FastPath] %d candidates, expected>=%d, coverage=%.1f%%, accept=%s (%s)",
            assessment.span_count,
            assessment.expected_min_spans,
            assessment.coverage_percent,
            assessment.accept,
            assessment.reason,
        )
        if not assessment.accept:
            return None

        meta = {"version": FAST_PATH_VERSION, "notes": "", "source": "fast-path"}
        if cache is None:
            cache = scope.new_cache(text)

        result = validate_spans(candidates, meta, text, policy, options, STRICT, cache)
        if not result.ok:
            logger.debug("[FastPath] strict validation failed: %s", result.errors)
            result = validate_spans(candidates, meta, text, policy, options, LENIENT, cache)

        reassessed = self.assess(result.spans, text, options)
        if not reassessed.accept:
            logger.debug("[FastPath] validated result rejected: %s", reassessed.reason)
            return None

        latency_ms = (time.perf_counter() - t0) * 1000
        result.meta["latency"] = round(latency_ms, 2)
        notes = f"Generated via fast-path ({len(result.spans)} spans, {latency_ms:.0f}ms)"
        existing = result.meta.get("notes")
        result.meta["notes"] = f"{notes} | {existing}" if existing else notes
        return result
