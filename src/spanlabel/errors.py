"""Exceptions raised by the span labeling pipeline."""

from __future__ import annotations


class SpanLabelingError(Exception):
    """Base class for all span labeling failures."""


class InvalidInput(SpanLabelingError):
    """Empty text or missing oracle handle."""


class OracleProtocolError(SpanLabelingError):
    """The oracle returned something that is not the documented JSON shape."""

    def __init__(self, message: str, content: str = "") -> None:
        super().__init__(message)
        self.content = content


class OracleCallError(SpanLabelingError):
    """The oracle could not be reached or returned an empty reply."""


class ValidationFailure(SpanLabelingError):
    """Spans still violate validation rules after every recovery was tried."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class ChunkFailure(SpanLabelingError):
    """A single chunk failed. Always recovered locally as an empty result."""

    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(f"Chunk {index} failed: {type(cause).__name__}: {cause}")
        self.index = index
        self.cause = cause


class LabelingCancelled(SpanLabelingError):
    """The caller cancelled the call or its deadline passed."""
