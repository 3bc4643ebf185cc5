"""Sanitize caller-supplied options into immutable Policy / ProcessingOptions."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from spanlabel.config import (
    DEFAULT_MAX_SPANS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_NON_TECHNICAL_WORD_LIMIT,
    DEFAULT_TEMPLATE_VERSION,
    MAX_SPANS_ABSOLUTE_LIMIT,
)
from spanlabel.types import Policy, ProcessingOptions


def _get(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    if camel in raw:
        return raw[camel]
    return raw.get(snake)


def _as_number(value: Any) -> float | None:
    """Numeric value of ``value``; numeric strings are accepted, bools are not."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def sanitize_policy(raw: Any) -> Policy:
    if isinstance(raw, Policy):
        return raw
    if not isinstance(raw, Mapping):
        return Policy()

    limit = _as_number(_get(raw, "nonTechnicalWordLimit", "non_technical_word_limit"))
    if limit is None or limit <= 0:
        word_limit = DEFAULT_NON_TECHNICAL_WORD_LIMIT
    else:
        word_limit = int(limit)

    # Only an explicit boolean True enables overlap.
    allow_overlap = _get(raw, "allowOverlap", "allow_overlap") is True
    return Policy(allow_overlap=allow_overlap, non_technical_word_limit=word_limit)


def sanitize_options(raw: Any) -> ProcessingOptions:
    if isinstance(raw, ProcessingOptions):
        return raw
    if not isinstance(raw, Mapping):
        return ProcessingOptions()

    max_spans = _as_number(_get(raw, "maxSpans", "max_spans"))
    if max_spans is None or max_spans <= 0 or not max_spans.is_integer():
        max_spans_value = DEFAULT_MAX_SPANS
    else:
        max_spans_value = min(int(max_spans), MAX_SPANS_ABSOLUTE_LIMIT)

    min_confidence = _as_number(_get(raw, "minConfidence", "min_confidence"))
    if min_confidence is None or not 0.0 <= min_confidence <= 1.0:
        min_confidence = DEFAULT_MIN_CONFIDENCE

    template_version = _get(raw, "templateVersion", "template_version")
    if template_version is None or str(template_version) == "":
        template_version = DEFAULT_TEMPLATE_VERSION

    return ProcessingOptions(
        max_spans=max_spans_value,
        min_confidence=min_confidence,
        template_version=str(template_version),
    )


@dataclass(frozen=True)
class LabelRequest:
    """Fully sanitized per-call request settings."""

    options: ProcessingOptions
    policy: Policy
    enable_repair: bool | None = None


def resolve_request(raw: Any) -> LabelRequest:
    """Split a raw options mapping into options, policy and the repair flag.

    ``enable_repair`` stays None when the caller did not set it, so the
    configured default applies.
    """
    if isinstance(raw, LabelRequest):
        return raw
    mapping: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    enable_repair = _get(mapping, "enableRepair", "enable_repair")
    return LabelRequest(
        options=sanitize_options(mapping),
        policy=sanitize_policy(mapping.get("policy")),
        enable_repair=enable_repair if isinstance(enable_repair, bool) else None,
    )


def build_task_description(max_spans: int, policy: Policy | Mapping[str, Any] | None) -> str:
    """Task line sent to the oracle; the policy constraints are spelled out."""
    if isinstance(policy, Policy):
        allow_overlap = policy.allow_overlap
        word_limit: Any = policy.non_technical_word_limit
    elif isinstance(policy, Mapping):
        allow_overlap = _get(policy, "allowOverlap", "allow_overlap") is True
        word_limit = _get(policy, "nonTechnicalWordLimit", "non_technical_word_limit")
    else:
        allow_overlap = False
        word_limit = None

    parts = [
        f"Identify up to {max_spans} spans in the user input and label each "
        "with a taxonomy role.",
    ]
    if allow_overlap:
        parts.append("Overlapping spans are permitted.")
    else:
        parts.append("Do not return overlapping spans.")

    limit = _as_number(word_limit)
    if limit is not None and limit > 0:
        parts.append(f"Non-technical spans must be {int(limit)} words or fewer.")
    return " ".join(parts)
