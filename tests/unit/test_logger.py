"""Tests for the run logger."""
from __future__ import annotations

import json
import logging

from spanlabel.shared.logger import PipelineLogger


def test_info_and_trace_sinks(tmp_path):
    info, trace = tmp_path / "run.log", tmp_path / "run.trace"
    with PipelineLogger(log_file=info, trace_file=trace, console=False) as log:
        log.info("visible everywhere")
        log.trace("trace only")

    assert "Span Labeling Log" in info.read_text()
    assert "visible everywhere" in info.read_text()
    assert "trace only" not in info.read_text()
    assert "trace only" in trace.read_text()


def test_counters_metrics_and_timers(tmp_path):
    log = PipelineLogger(console=False)
    log.count("spans_total", 3)
    assert log.count("spans_total", 2) == 5
    log.metric("f1", 0.5)
    with log.timer("labeling") as entry:
        pass
    assert entry.end is not None

    path = tmp_path / "metrics.json"
    log.write_metrics(path)
    data = json.loads(path.read_text())
    assert data["counters"] == {"spans_total": 5}
    assert data["metrics"] == {"f1": [0.5]}
    assert "labeling" in data["timers"]


def test_stdlib_bridge(tmp_path):
    info = tmp_path / "bridge.log"
    log = PipelineLogger(log_file=info, console=False)
    log.install_stdlib_bridge(root_logger="spanlabel.bridgetest", level=logging.DEBUG)
    log.install_stdlib_bridge(root_logger="spanlabel.bridgetest", level=logging.DEBUG)
    try:
        logging.getLogger("spanlabel.bridgetest.child").warning("from stdlib")
    finally:
        log.remove_stdlib_bridge(root_logger="spanlabel.bridgetest")
        log.close()

    lines = [line for line in info.read_text().splitlines() if "from stdlib" in line]
    assert len(lines) == 1
    assert "WARN" in lines[0]
    assert "[spanlabel.bridgetest.child]" in lines[0]
    assert logging.getLogger("spanlabel.bridgetest").handlers == []
