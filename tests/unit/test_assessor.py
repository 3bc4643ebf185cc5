"""Tests for the fast-path acceptance heuristic."""
from __future__ import annotations

from dataclasses import replace

import pytest

from spanlabel.config import SpanLabelingConfig
from spanlabel.labeling.assessor import FastPathAssessor, coverage_percent, expected_min_spans
from spanlabel.labeling.scope import CallScope
from spanlabel.types import Policy, ProcessingOptions


def _words_text(n: int) -> tuple[str, list[tuple[int, int]]]:
    words = [f"w{i}" for i in range(n)]
    bounds, pos = [], 0
    for w in words:
        bounds.append((pos, pos + len(w)))
        pos += len(w) + 1
    return " ".join(words), bounds


def _candidates(text, bounds, roles, confidence=0.9):
    return [
        {"text": text[s:e], "start": s, "end": e, "role": role, "confidence": confidence}
        for (s, e), role in zip(bounds, roles)
    ]


def _assessor(stub_extractor, candidates, ready=True, **config):
    cfg = replace(SpanLabelingConfig(), **config)
    return FastPathAssessor(cfg, stub_extractor(candidates, open_vocab_ready=ready))


def _extract(assessor, text, options=None):
    with CallScope() as scope:
        return assessor.extract(text, Policy(), options or ProcessingOptions(), scope)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "words, expected",
    [(0, 1), (39, 1), (40, 4), (79, 4), (80, 8), (139, 8), (140, 12), (219, 12), (220, 15), (1000, 15)],
)
def test_expected_min_spans_steps(words, expected):
    assert expected_min_spans(words) == expected


def test_expected_min_spans_is_clamped_by_max_spans():
    assert expected_min_spans(300, 10) == 10
    assert expected_min_spans(100, 2) == 2
    assert expected_min_spans(300, 0) == 15
    assert expected_min_spans(10, None) == 1


def test_coverage_percent():
    text = "one two three four"
    assert coverage_percent([{"start": 0, "end": 7}], text) == 50.0
    assert coverage_percent([{"start": 1, "end": 2}], text) == 25.0
    assert coverage_percent([], text) == 0.0
    assert coverage_percent([{"start": 0, "end": 3}], "") == 0.0


# ---------------------------------------------------------------------------
# Acceptance rules
# ---------------------------------------------------------------------------

class TestAssess:
    def test_short_prompt_below_expected_is_rejected(self, stub_extractor):
        text, bounds = _words_text(45)
        candidates = _candidates(text, bounds[::10], ["subject.identity"] * 2, confidence=0.6)
        assessor = _assessor(stub_extractor, candidates)

        assessment = assessor.assess(candidates, text, ProcessingOptions())
        assert assessment.expected_min_spans == 4
        assert not assessment.sparse_high_confidence_accepted
        assert not assessment.accept
        assert assessment.reason == "span count 2 < 4"
        assert _extract(assessor, text) is None

    def test_sparse_high_confidence_override(self, stub_extractor):
        text = "dolly in then wide shot " + " ".join(["filler"] * 40)
        candidates = [
            {"text": "dolly in", "start": 0, "end": 8, "role": "camera.movement", "confidence": 0.9},
            {"text": "wide shot", "start": 14, "end": 23, "role": "shot.type", "confidence": 0.9},
        ]
        assessor = _assessor(stub_extractor, candidates)

        assessment = assessor.assess(candidates, text, ProcessingOptions())
        assert assessment.word_count == 45
        assert assessment.coverage_percent < 30
        assert assessment.high_signal_count == 2
        assert assessment.sparse_high_confidence_accepted
        assert assessment.accept

    def test_sparse_override_respects_min_confidence(self, stub_extractor):
        text = "dolly in then wide shot " + " ".join(["filler"] * 40)
        candidates = [
            {"text": "dolly in", "start": 0, "end": 8, "role": "camera.movement", "confidence": 0.9},
            {"text": "wide shot", "start": 14, "end": 23, "role": "shot.type", "confidence": 0.9},
        ]
        assessor = _assessor(stub_extractor, candidates)
        assessment = assessor.assess(candidates, text, ProcessingOptions(min_confidence=0.95))
        assert not assessment.accept

    def test_sparse_override_needs_high_signal_categories(self, stub_extractor):
        text, bounds = _words_text(45)
        candidates = _candidates(text, bounds[:2], ["subject.identity", "action.movement"], confidence=0.99)
        assessment = _assessor(stub_extractor, candidates).assess(candidates, text, ProcessingOptions())
        assert assessment.high_signal_count == 0
        assert not assessment.accept

    def test_long_prompt_single_category_is_rejected(self, stub_extractor):
        text, bounds = _words_text(90)
        candidates = _candidates(text, bounds[::10], ["subject.identity"] * 9)
        assessor = _assessor(stub_extractor, candidates)

        assessment = assessor.assess(candidates, text, ProcessingOptions())
        assert assessment.span_count >= assessment.expected_min_spans
        assert not assessment.accept
        assert assessment.reason == "long prompt covers 1 of 3 core categories"
        assert _extract(assessor, text) is None

    def test_long_prompt_with_core_categories_is_accepted(self, stub_extractor):
        text, bounds = _words_text(90)
        roles = ["subject.identity", "action.movement", "environment.location"] * 3
        candidates = _candidates(text, bounds[::10], roles)
        assessment = _assessor(stub_extractor, candidates).assess(candidates, text, ProcessingOptions())
        assert assessment.accept
        assert assessment.category_coverage == ("action", "environment", "subject")

    def test_long_prompt_needs_open_vocabulary(self, stub_extractor):
        text, bounds = _words_text(90)
        roles = ["subject.identity", "action.movement", "environment.location"] * 3
        candidates = _candidates(text, bounds[::10], roles)

        assessment = _assessor(stub_extractor, candidates, ready=False).assess(candidates, text, ProcessingOptions())
        assert not assessment.accept
        assert assessment.reason == "open-vocabulary extractor not ready for long prompt"

        disabled = _assessor(stub_extractor, candidates, open_vocab_enabled=False)
        assert not disabled.assess(candidates, text, ProcessingOptions()).accept

    def test_long_prompt_requires_min_spans_threshold(self, stub_extractor):
        text, bounds = _words_text(90)
        roles = ["subject.identity", "action.movement"]
        candidates = _candidates(text, bounds[:2], roles)
        assessment = _assessor(stub_extractor, candidates).assess(
            candidates, text, ProcessingOptions(max_spans=2)
        )
        assert assessment.expected_min_spans == 2
        assert assessment.reason == "span count 2 < 3"

    def test_word_count_splits_on_whitespace(self, stub_extractor):
        text = " ".join(["shot"] * 36 + ["-"] * 4)
        assessment = _assessor(stub_extractor, []).assess([], text, ProcessingOptions())
        assert assessment.word_count == 40
        assert assessment.expected_min_spans == 4

    def test_punctuation_tokens_reach_long_prompt_gate(self, stub_extractor):
        text, bounds = _words_text(76)
        text += " - - - -"
        candidates = _candidates(text, bounds[::10], ["subject.identity"] * 8)
        assessment = _assessor(stub_extractor, candidates).assess(candidates, text, ProcessingOptions())
        assert assessment.word_count == 80
        assert assessment.expected_min_spans == 8
        assert assessment.reason == "long prompt covers 1 of 3 core categories"


# ---------------------------------------------------------------------------
# extract()
# ---------------------------------------------------------------------------

class TestExtract:
    def test_accepted_result_is_validated(self, stub_extractor):
        text = "Wide shot of a harbor at golden hour"
        candidates = [
            {"text": "Wide shot", "start": 0, "end": 9, "role": "shot.type", "confidence": 1.0},
            {"text": "golden hour", "start": 25, "end": 36, "role": "lighting.timeOfDay", "confidence": 1.0},
        ]
        result = _extract(_assessor(stub_extractor, candidates), text)
        assert result is not None and result.ok
        assert [s.text for s in result.spans] == ["Wide shot", "golden hour"]
        assert result.meta["version"] == "fast-v1"
        assert result.meta["source"] == "fast-path"
        assert result.meta["notes"].startswith("Generated via fast-path (2 spans, ")
        assert isinstance(result.meta["latency"], float)

    def test_lenient_fallback_drops_invalid_candidates(self, stub_extractor):
        text = "Slow dolly in across the bridge"
        candidates = [
            {"text": "dolly in", "start": 5, "end": 13, "role": "camera.movement", "confidence": 1.0},
            {"text": "bridge", "start": 25, "end": 31, "role": "banana", "confidence": 1.0},
        ]
        result = _extract(_assessor(stub_extractor, candidates), text)
        assert result is not None
        assert [s.text for s in result.spans] == ["dolly in"]
        assert 'Dropped invalid span: span[1] has invalid role "banana"' in result.meta["notes"]

    def test_lenient_result_is_reassessed(self, stub_extractor):
        text = "Slow dolly in across the bridge"
        candidates = [{"text": "bridge", "start": 25, "end": 31, "role": "banana", "confidence": 1.0}]
        assert _extract(_assessor(stub_extractor, candidates), text) is None

    def test_result_emptied_by_confidence_floor_is_rejected(self, stub_extractor):
        text, bounds = _words_text(45)
        candidates = _candidates(text, bounds[::10][:4], ["subject.identity"] * 4, confidence=0.3)
        assessor = _assessor(stub_extractor, candidates)

        assert assessor.assess(candidates, text, ProcessingOptions()).accept
        assert _extract(assessor, text) is None

    def test_result_below_expected_after_strict_pass_is_rejected(self, stub_extractor):
        text, bounds = _words_text(45)
        candidates = _candidates(text, bounds[::10][:4], ["subject.identity"] * 4)
        candidates[0]["confidence"] = 0.3
        assert _extract(_assessor(stub_extractor, candidates), text) is None

    def test_disabled_fast_path(self, stub_extractor):
        text = "Wide shot"
        candidates = [{"text": "Wide shot", "start": 0, "end": 9, "role": "shot.type", "confidence": 1.0}]
        assessor = _assessor(stub_extractor, candidates, fast_path_enabled=False)
        assert _extract(assessor, text) is None
        assert assessor.extractor.calls == 0

    def test_no_extractor(self):
        assert _extract(FastPathAssessor(SpanLabelingConfig(), None), "Wide shot") is None

    def test_extractor_failure_routes_to_oracle(self):
        class Broken:
            def extract(self, text):
                raise RuntimeError("model crashed")

            def is_open_vocab_ready(self):
                return True

        assert _extract(FastPathAssessor(SpanLabelingConfig(), Broken()), "Wide shot") is None
