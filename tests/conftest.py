"""Shared test fixtures."""
from __future__ import annotations

import json
import threading

import pytest

from spanlabel.shared.llm.oracle import OracleReply, OracleRequest


class StubOracle:
    """Scripted oracle: replies are consumed in order, calls are recorded.

    A reply can be a string, a dict (serialized to JSON), an exception
    instance (raised) or a callable taking the request.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[tuple[str, OracleRequest]] = []
        self._lock = threading.Lock()

    def execute(self, operation_name: str, request: OracleRequest) -> OracleReply:
        with self._lock:
            self.calls.append((operation_name, request))
            reply = self.replies.pop(0) if self.replies else ""
        if callable(reply):
            reply = reply(request)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return OracleReply(content=reply)

    @property
    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


class StubExtractor:
    """Fast extractor returning fixed candidates."""

    def __init__(self, candidates=None, open_vocab_ready=True):
        self.candidates = list(candidates or [])
        self.ready = open_vocab_ready
        self.calls = 0

    def extract(self, text):
        self.calls += 1
        return [dict(c) for c in self.candidates]

    def is_open_vocab_ready(self):
        return self.ready


def span(text, source, role, confidence=0.9, occurrence=0):
    """Candidate dict for the ``occurrence``-th appearance of ``text``."""
    start = -1
    for _ in range(occurrence + 1):
        start = source.index(text, start + 1)
    return {"text": text, "start": start, "end": start + len(text), "role": role, "confidence": confidence}


def oracle_reply(spans, notes="", version="v1", **extra):
    return {"spans": spans, "meta": {"version": version, "notes": notes}, **extra}


@pytest.fixture
def sample_prompt():
    return (
        "A woman in a red coat walks through a rainy street at night. "
        "Wide shot, neon lights, shallow depth of field, 35mm film."
    )


@pytest.fixture
def stub_oracle():
    return StubOracle


@pytest.fixture
def stub_extractor():
    return StubExtractor


@pytest.fixture
def make_span():
    return span


@pytest.fixture
def make_reply():
    return oracle_reply
