"""Tests for pipeline configuration and presets."""
import pytest

from spanlabel.config import PRESETS, SpanLabelingConfig, from_env, get_config


def test_defaults():
    cfg = SpanLabelingConfig()
    assert cfg.max_words_per_chunk == 400
    assert cfg.max_concurrent_chunks == 3
    assert cfg.process_chunks_in_parallel
    assert cfg.min_spans_threshold == 3
    assert cfg.long_prompt_word_count == 80
    assert not cfg.enable_repair


def test_presets_are_named():
    for name, cfg in PRESETS.items():
        assert cfg.name == name


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown preset 'fast'"):
        get_config("fast")


def test_from_env_defaults():
    assert from_env({}) == get_config("default")


def test_from_env_preset_and_overrides():
    cfg = from_env({
        "SPANLABEL_PRESET": "serial",
        "SPANLABEL_MAX_WORDS_PER_CHUNK": "50",
        "SPANLABEL_MIN_COVERAGE_PERCENT": "12.5",
        "SPANLABEL_ENABLE_REPAIR": "yes",
        "SPANLABEL_FAST_PATH_ENABLED": "false",
        "SPANLABEL_ORACLE_MAX_TOKENS": "",
    })
    assert cfg.name == "serial"
    assert not cfg.process_chunks_in_parallel
    assert cfg.max_words_per_chunk == 50
    assert cfg.min_coverage_percent == 12.5
    assert cfg.enable_repair
    assert not cfg.fast_path_enabled
    assert cfg.oracle_max_tokens == 4000


def test_from_env_rejects_bad_values():
    with pytest.raises(ValueError, match="SPANLABEL_MAX_WORDS_PER_CHUNK"):
        from_env({"SPANLABEL_MAX_WORDS_PER_CHUNK": "lots"})


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("SPANLABEL_PRESET", "oracle_only")
    assert not from_env().fast_path_enabled
