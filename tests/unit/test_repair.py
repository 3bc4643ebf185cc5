"""Tests for the single-shot repair round-trip."""
from __future__ import annotations

import json

import pytest

from spanlabel.config import SpanLabelingConfig
from spanlabel.errors import OracleCallError, OracleProtocolError, ValidationFailure
from spanlabel.labeling.prompts import REPAIR_ADDENDUM, REPAIR_INSTRUCTIONS
from spanlabel.labeling.repair import RepairCoordinator
from spanlabel.labeling.scope import CallScope
from spanlabel.types import Policy, ProcessingOptions

TEXT = "Handheld shot of a dancer spinning in the rain"


def _repair(oracle, errors=("span[0] has invalid role \"dance\"",), original='{"spans": []}'):
    with CallScope() as scope:
        return RepairCoordinator(SpanLabelingConfig()).repair(
            original,
            list(errors),
            oracle,
            text=TEXT,
            policy=Policy(),
            options=ProcessingOptions(),
            scope=scope,
        )


def test_successful_repair(stub_oracle, make_span, make_reply):
    oracle = stub_oracle(make_reply([make_span("dancer", TEXT, "subject.identity")]))
    result = _repair(oracle)
    assert result.ok
    assert [s.text for s in result.spans] == ["dancer"]
    assert oracle.operations == ["repair_spans"]


def test_repair_payload_carries_feedback(stub_oracle, make_reply):
    oracle = stub_oracle(make_reply([]))
    _repair(oracle, errors=["first problem", "second problem"], original='{"spans": "bad"}')

    _, request = oracle.calls[0]
    assert request.system_prompt.endswith(REPAIR_ADDENDUM)
    payload = json.loads(request.user_message)
    assert payload["validation"] == {
        "errors": "1. first problem\n2. second problem",
        "originalResponse": '{"spans": "bad"}',
        "instructions": REPAIR_INSTRUCTIONS,
    }
    assert payload["text"] == f"<user_input>\n{TEXT}\n</user_input>"


def test_repair_is_lenient(stub_oracle, make_span, make_reply):
    oracle = stub_oracle(make_reply([
        make_span("dancer", TEXT, "subject.identity"),
        {"text": "tango", "role": "action"},
    ]))
    result = _repair(oracle)
    assert [s.text for s in result.spans] == ["dancer"]
    assert result.errors == ['span[1] text "tango" not found in source text']


def test_unparseable_repair(stub_oracle):
    with pytest.raises(OracleProtocolError, match="Repair response could not be parsed"):
        _repair(stub_oracle("definitely not json"))


def test_still_invalid_after_repair(stub_oracle):
    with pytest.raises(ValidationFailure) as excinfo:
        _repair(stub_oracle({"spans": "still wrong"}))
    assert str(excinfo.value) == "Repair attempt failed validation:\n1. spans must be an array"
    assert excinfo.value.errors == ["spans must be an array"]


def test_adversarial_during_repair(stub_oracle):
    result = _repair(stub_oracle({"spans": [], "isAdversarial": True}))
    assert result.is_adversarial
    assert result.spans == []


def test_oracle_failure_is_wrapped(stub_oracle):
    with pytest.raises(OracleCallError, match="repair_spans"):
        _repair(stub_oracle(ConnectionError("reset by peer")))
