"""Request scope for a single top-level labeling call.

The scope owns every ``PositionCache`` created during the call and the call's
cancellation state. It is created on entry, passed down the call tree and
cleared deterministically when the ``with`` block exits.
"""

from __future__ import annotations

import threading
import time

from spanlabel.errors import LabelingCancelled
from spanlabel.labeling.cache import CacheTelemetry, PositionCache


class CallScope:
    def __init__(
        self,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        self.cancel_event = cancel_event or threading.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._caches: list[PositionCache] = []
        self._lock = threading.Lock()
        self.closed = False

    def new_cache(self, text: str) -> PositionCache:
        """Create a cache bound to ``text`` and register it with the scope.

        Each single-pass invocation (one per chunk) gets its own cache, so two
        chunks with identical text never share one across workers. The lock
        only guards the registry.
        """
        cache = PositionCache(text)
        with self._lock:
            self._caches.append(cache)
        return cache

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def is_cancelled(self) -> bool:
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        if self.cancel_event.is_set():
            raise LabelingCancelled("Labeling call was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise LabelingCancelled("Labeling call exceeded its deadline")

    def cancel(self) -> None:
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def telemetry(self) -> CacheTelemetry:
        total = CacheTelemetry()
        with self._lock:
            for cache in self._caches:
                t = cache.telemetry
                total.exact_matches += t.exact_matches
                total.case_insensitive_matches += t.case_insensitive_matches
                total.fuzzy_matches += t.fuzzy_matches
                total.failures += t.failures
                total.total_requests += t.total_requests
        return total

    def close(self) -> None:
        with self._lock:
            for cache in self._caches:
                cache.clear()
            self._caches.clear()
            self.closed = True

    def __enter__(self) -> "CallScope":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
