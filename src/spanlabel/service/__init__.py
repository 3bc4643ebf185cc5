"""FastAPI service exposing the span labeler over HTTP."""

from spanlabel.service.app import app

__all__ = ["app"]
