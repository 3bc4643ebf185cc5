"""Tests for the FastAPI labeling service."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from spanlabel.config import get_config
from spanlabel.labeling.orchestrator import SpanLabeler
from spanlabel.service.app import app
from spanlabel.shared.llm import DisabledOracle

TEXT = "A woman in a red coat walks through a rainy street at night."


@pytest.fixture
def client():
    app.state.labeler = SpanLabeler(get_config("oracle_only"))
    yield TestClient(app)
    app.state.labeler = None
    app.state.oracle = None


def test_label_spans(client, stub_oracle, make_span, make_reply):
    app.state.oracle = stub_oracle(make_reply([make_span("red coat", TEXT, "subject.wardrobe")]))
    response = client.post("/label-spans", json={"text": TEXT, "maxSpans": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["spans"] == [
        {"text": "red coat", "start": 13, "end": 21, "role": "subject.wardrobe", "confidence": 0.9}
    ]
    assert body["isAdversarial"] is False
    assert body["meta"]["notes"] == "Labeled 1 spans"
    assert "elapsedMs" in body


def test_options_are_forwarded(client, stub_oracle, make_reply):
    oracle = stub_oracle(make_reply([]))
    app.state.oracle = oracle
    client.post("/label-spans", json={"text": TEXT, "maxSpans": 3, "policy": {"allowOverlap": True}})
    _, request = oracle.calls[0]
    assert "Identify up to 3 spans" in request.user_message
    assert "Overlapping spans are permitted." in request.user_message


def test_blank_text_is_400(client, stub_oracle):
    app.state.oracle = stub_oracle()
    response = client.post("/label-spans", json={"text": "   "})
    assert response.status_code == 400


def test_unparseable_oracle_output_is_502(client, stub_oracle):
    app.state.oracle = stub_oracle("not json")
    response = client.post("/label-spans", json={"text": TEXT})
    assert response.status_code == 502
    assert "could not be parsed" in response.json()["detail"]


def test_oracle_unavailable_is_502(client):
    app.state.oracle = DisabledOracle()
    response = client.post("/label-spans", json={"text": TEXT})
    assert response.status_code == 502


def test_health(client, stub_oracle):
    app.state.oracle = stub_oracle()
    body = client.get("/health").json()
    assert body["status"] == "ready"
    assert body["preset"] == "oracle_only"
    assert body["fast_path"] is False

    app.state.oracle = DisabledOracle()
    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["oracle"] == "disabled"
