from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO


@dataclass
class _TimerEntry:
    name: str
    start: float
    end: float | None = None

    @property
    def elapsed(self) -> float:
        return (self.end or time.perf_counter()) - self.start


class PipelineLogger:
    """Run logger for batch labeling with three independent sinks.

    - console   : INFO+  (human-readable, always on)
    - info_file : INFO+  (same as console but persisted)
    - trace_file: TRACE+ (every log line, full detail)

    Metrics are recorded with timestamps and can be dumped as JSON at the end
    of a run.
    """

    LEVELS: dict[str, int] = {
        "TRACE": -1,
        "DEBUG":  0,
        "INFO":   1,
        "PROG":   1,
        "METRIC": 1,
        "WARN":   2,
        "ERROR":  3,
    }

    def __init__(
        self,
        log_file: str | Path | None = None,
        trace_file: str | Path | None = None,
        console: bool = True,
        min_level: str = "INFO",
    ) -> None:
        self.console = console
        self.min_level = self.LEVELS.get(min_level.upper(), 1)
        self._info_file: TextIO | None = None
        self._trace_file: TextIO | None = None
        self.log_path: Path | None = None
        self.trace_path: Path | None = None
        self._timers: dict[str, _TimerEntry] = {}
        self._metrics: dict[str, list[tuple[float, Any]]] = {}
        self._counters: dict[str, int] = {}
        self._start = time.perf_counter()

        if log_file:
            self.log_path = Path(log_file)
            self._info_file = self._open(self.log_path, "Span Labeling Log")
        if trace_file:
            self.trace_path = Path(trace_file)
            self._trace_file = self._open(self.trace_path, "Span Labeling Trace")

    @staticmethod
    def _open(path: Path, title: str) -> TextIO:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "w", encoding="utf-8", buffering=1)
        for line in ("=" * 80, f"{title} | {time.strftime('%Y-%m-%d %H:%M:%S')}", "=" * 80, ""):
            handle.write(line + "\n")
        return handle

    def _raw(self, line: str, info: bool = True) -> None:
        if info and self._info_file:
            self._info_file.write(line + "\n")
        if self._trace_file:
            self._trace_file.write(line + "\n")

    def _emit(self, level: str, msg: str) -> None:
        level_int = self.LEVELS.get(level, 1)
        ts = time.strftime("%H:%M:%S")
        elapsed = time.perf_counter() - self._start
        line = f"[{ts}] [{elapsed:7.2f}s] {level:6} | {msg}"

        if self.console and level_int >= self.min_level:
            print(line, flush=True)
        self._raw(line, info=level_int >= 1)

    def trace(self, msg: str) -> None:
        self._emit("TRACE", msg)

    def debug(self, msg: str) -> None:
        self._emit("DEBUG", msg)

    def info(self, msg: str) -> None:
        self._emit("INFO", msg)

    def warn(self, msg: str) -> None:
        self._emit("WARN", msg)

    def error(self, msg: str) -> None:
        self._emit("ERROR", msg)

    def section(self, title: str) -> None:
        sep = "=" * 80
        for line in ("", sep, f"  {title}", sep):
            if self.console:
                print(line, flush=True)
            self._raw(line)

    def subsection(self, title: str) -> None:
        sep = "-" * 60
        for line in ("", sep, f"  {title}", sep):
            if self.console:
                print(line, flush=True)
            self._raw(line)

    def progress(self, current: int, total: int, label: str = "") -> None:
        pct = (current / total * 100) if total else 0
        filled = int(20 * current / total) if total else 0
        bar = "█" * filled + "░" * (20 - filled)
        msg = f"[{current:>4}/{total}] {bar} {pct:5.1f}%"
        if label:
            msg += f"  {label}"
        self._emit("PROG", msg)

    def metric(self, name: str, value: Any, unit: str = "") -> None:
        t = time.perf_counter() - self._start
        self._metrics.setdefault(name, []).append((t, value))
        vstr = f"{value:.3f}" if isinstance(value, float) else str(value)
        if unit:
            vstr += f" {unit}"
        self._emit("METRIC", f"{name} = {vstr}")

    def count(self, name: str, amount: int = 1) -> int:
        """Increment a silent counter; reported by ``summary``."""
        self._counters[name] = self._counters.get(name, 0) + amount
        return self._counters[name]

    @contextmanager
    def timer(self, name: str):
        entry = _TimerEntry(name=name, start=time.perf_counter())
        self._timers[name] = entry
        try:
            yield entry
        finally:
            entry.end = time.perf_counter()
            self._emit("METRIC", f"timer:{name} = {entry.elapsed:.3f}s")

    def summary(self) -> None:
        self.section("RUN SUMMARY")
        total = time.perf_counter() - self._start
        self.info(f"Total wall time: {total:.2f}s")
        for name, value in sorted(self._counters.items()):
            self.info(f"  {name:<40} {value:>8d}")

        if self.log_path:
            self.info(f"Info log : {self.log_path}")
        if self.trace_path:
            self.info(f"Trace log: {self.trace_path}")

    def write_metrics(self, path: str | Path) -> None:
        payload = {
            "counters": dict(self._counters),
            "metrics": {k: [v for _, v in vals] for k, vals in self._metrics.items()},
            "timers": {n: round(t.elapsed, 4) for n, t in self._timers.items() if t.end},
        }
        Path(path).write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")

    def install_stdlib_bridge(self, root_logger: str = "", level: int = logging.INFO) -> None:
        handler = _BridgeHandler(self)
        handler.setLevel(level)
        root = logging.getLogger(root_logger)
        root.setLevel(min(root.level or logging.DEBUG, level))
        if not any(isinstance(h, _BridgeHandler) for h in root.handlers):
            root.addHandler(handler)

    def remove_stdlib_bridge(self, root_logger: str = "") -> None:
        root = logging.getLogger(root_logger)
        for handler in [h for h in root.handlers if isinstance(h, _BridgeHandler)]:
            root.removeHandler(handler)

    def close(self) -> None:
        if self._info_file:
            self._info_file.close()
            self._info_file = None
        if self._trace_file:
            self._trace_file.close()
            self._trace_file = None

    def __enter__(self) -> "PipelineLogger":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class _BridgeHandler(logging.Handler):
    _MAP = {
        logging.DEBUG:    "debug",
        logging.INFO:     "info",
        logging.WARNING:  "warn",
        logging.ERROR:    "error",
        logging.CRITICAL: "error",
    }

    def __init__(self, logger: PipelineLogger) -> None:
        super().__init__()
        self._run_logger = logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            getattr(self._run_logger, self._MAP.get(record.levelno, "info"))(
                f"[{record.name}] {msg}"
            )
        except Exception:
            self.handleError(record)
