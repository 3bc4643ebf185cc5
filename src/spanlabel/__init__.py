"""Span labeling for video generation prompts."""
from spanlabel.config import SpanLabelingConfig, from_env, get_config
from spanlabel.errors import (
    InvalidInput,
    LabelingCancelled,
    OracleCallError,
    OracleProtocolError,
    SpanLabelingError,
    ValidationFailure,
)
from spanlabel.labeling.orchestrator import SpanLabeler, label_spans
from spanlabel.types import Policy, ProcessingOptions, Span, ValidationResult

__all__ = [
    "SpanLabeler",
    "label_spans",
    "SpanLabelingConfig",
    "from_env",
    "get_config",
    "Span",
    "Policy",
    "ProcessingOptions",
    "ValidationResult",
    "SpanLabelingError",
    "InvalidInput",
    "OracleProtocolError",
    "OracleCallError",
    "ValidationFailure",
    "LabelingCancelled",
]
