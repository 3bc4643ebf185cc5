"""Structural and positional validation of candidate spans.

``validate_spans`` never raises. Attempt 1 is strict: any violation makes the
result not ok. Attempt 2 is lenient: individually invalid spans are dropped
and the rest is accepted. Envelope problems (``spans`` not a list, malformed
``meta``) fail in both modes because there is nothing to salvage.

Every span that leaves the validator satisfies ``text == source[start:end]``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from spanlabel import taxonomy
from spanlabel.config import DEFAULT_CONFIDENCE
from spanlabel.labeling import processing
from spanlabel.labeling.cache import PositionCache
from spanlabel.labeling.text_utils import matches_at_indices, word_count
from spanlabel.types import Policy, ProcessingOptions, Span, ValidationResult

logger = logging.getLogger(__name__)

STRICT = 1
LENIENT = 2


@dataclass
class _Pending:
    index: int
    text: str
    start: int | None
    end: int | None
    role: str
    confidence: float


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_meta(meta: Any) -> list[str]:
    if meta is None:
        return []
    if not isinstance(meta, dict):
        return ["meta must be an object"]
    errors = []
    for key in ("version", "notes"):
        value = meta.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f"meta.{key} must be a string")
    return errors


def _normalize(index: int, raw: Any) -> tuple[_Pending | None, list[str]]:
    """Type-check one raw span. Returns the pending span or its violations."""
    if isinstance(raw, Span):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return None, [f"span[{index}] must be an object"]

    errors: list[str] = []
    text = raw.get("text")
    if not isinstance(text, str) or text == "":
        errors.append(f"span[{index}] text must be a non-empty string")

    role = raw.get("role")
    if not isinstance(role, str) or not role:
        errors.append(f"span[{index}] role must be a string")
    elif not taxonomy.is_valid_role(role):
        errors.append(f'span[{index}] has invalid role "{role}"')

    start, end = raw.get("start"), raw.get("end")
    for name, value in (("start", start), ("end", end)):
        if value is not None and not _is_int(value):
            errors.append(f"span[{index}] {name} must be an integer")

    confidence = raw.get("confidence")
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE
    elif not _is_number(confidence) or not 0.0 <= confidence <= 1.0:
        errors.append(f"span[{index}] confidence must be a number between 0 and 1")

    if errors:
        return None, errors

    return _Pending(
        index=index,
        text=text,
        start=start,
        end=end,
        role=taxonomy.resolve_role(role),
        confidence=float(confidence),
    ), []


def _locate(
    pending: list[_Pending], text: str, cache: PositionCache
) -> tuple[list[tuple[_Pending, Span]], list[str]]:
    """Pin every pending span to an exact ``[start, end)`` in ``text``.

    Spans whose offsets already match claim their occurrence first; the rest
    are relocated to the nearest unused occurrence.
    """
    located: dict[int, Span] = {}
    used: set[tuple[int, int]] = set()
    errors: list[str] = []

    for p in pending:
        if p.start is not None and p.end is not None and matches_at_indices(text, p.start, p.end, p.text):
            located[p.index] = Span(p.text, p.start, p.end, p.role, p.confidence)
            used.add((p.start, p.end))

    for p in pending:
        if p.index in located:
            continue
        match = cache.find_best_match(p.text, preferred_start=p.start, used=used)
        if match is None:
            errors.append(f'span[{p.index}] text "{p.text}" not found in source text')
            continue
        start, end = match
        used.add(match)
        located[p.index] = Span(text[start:end], start, end, p.role, p.confidence)
        if p.start is not None:
            logger.debug("[Validator] span[%d] offsets corrected %s -> %s", p.index, (p.start, p.end), match)

    return [(p, located[p.index]) for p in pending if p.index in located], errors


def _word_limit_errors(items: list[tuple[_Pending, Span]], policy: Policy) -> tuple[list[tuple[_Pending, Span]], list[str]]:
    kept = []
    errors = []
    for p, span in items:
        if not taxonomy.is_technical(span.role):
            words = word_count(span.text)
            if words > policy.non_technical_word_limit:
                errors.append(
                    f'span[{p.index}] "{span.text}" has {words} words, exceeding the '
                    f"non-technical limit of {policy.non_technical_word_limit}"
                )
                continue
        kept.append((p, span))
    return kept, errors


def _join_notes(*parts: str | list[str]) -> str:
    flat: list[str] = []
    for part in parts:
        if isinstance(part, str):
            if part:
                flat.append(part)
        else:
            flat.extend(p for p in part if p)
    return " | ".join(flat)


def adversarial_result(
    meta: Any, options: ProcessingOptions, analysis_trace: str | None = None
) -> ValidationResult:
    """Empty, successful result for input flagged as adversarial."""
    base = dict(meta) if isinstance(meta, dict) else {}
    version = base.get("version")
    notes = base.get("notes") if isinstance(base.get("notes"), str) else ""
    base["version"] = version if isinstance(version, str) and version else options.template_version
    base["notes"] = _join_notes(notes, "adversarial input flagged")
    return ValidationResult(
        ok=True, meta=base, is_adversarial=True, analysis_trace=analysis_trace
    )


def validate_spans(
    spans: Any,
    meta: Any,
    text: str,
    policy: Policy,
    options: ProcessingOptions,
    attempt: int,
    cache: PositionCache,
    is_adversarial: bool = False,
    analysis_trace: str | None = None,
) -> ValidationResult:
    lenient = attempt >= LENIENT
    envelope_errors = _check_meta(meta)
    base_meta: dict[str, Any] = dict(meta) if isinstance(meta, dict) else {}
    version = base_meta.get("version") if isinstance(base_meta.get("version"), str) else None
    original_notes = base_meta.get("notes") if isinstance(base_meta.get("notes"), str) else ""

    if spans is None:
        spans = []
    if not isinstance(spans, list):
        envelope_errors.insert(0, "spans must be an array")

    out_meta = {**base_meta, "version": version or options.template_version}

    if is_adversarial:
        return adversarial_result(out_meta, options, analysis_trace)

    if envelope_errors:
        out_meta["notes"] = original_notes
        return ValidationResult(
            ok=False,
            errors=envelope_errors,
            meta=out_meta,
            analysis_trace=analysis_trace,
        )

    errors: list[str] = []
    pending: list[_Pending] = []
    for i, raw in enumerate(spans):
        item, span_errors = _normalize(i, raw)
        errors += span_errors
        if item is not None:
            pending.append(item)

    items, locate_errors = _locate(pending, text, cache)
    errors += locate_errors

    items, limit_errors = _word_limit_errors(items, policy)
    errors += limit_errors

    located = [span for _, span in items]
    notes: list[str] = []
    located, dedupe_notes = processing.deduplicate(located)
    notes += dedupe_notes

    if not policy.allow_overlap:
        if lenient:
            located, overlap_notes = processing.resolve_overlaps(located)
            notes += overlap_notes
        else:
            for a, b in processing.find_overlaps(located):
                errors.append(
                    f'span "{a.text}" [{a.start}, {a.end}) overlaps "{b.text}" [{b.start}, {b.end})'
                )

    if errors and not lenient:
        out_meta["notes"] = original_notes
        return ValidationResult(
            ok=False,
            errors=errors,
            meta=out_meta,
            analysis_trace=analysis_trace,
        )

    final, final_notes = processing.finalize(located, options.min_confidence, options.max_spans)
    dropped_notes = [f"Dropped invalid span: {err}" for err in errors]
    out_meta["notes"] = _join_notes(original_notes, dropped_notes, notes, final_notes)

    if errors:
        logger.debug("[Validator] lenient pass dropped %d invalid span(s)", len(errors))

    return ValidationResult(
        ok=True,
        errors=errors,
        spans=final,
        meta=out_meta,
        analysis_trace=analysis_trace,
    )
