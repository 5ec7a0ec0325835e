"""Retry and timeout policies.

Policies are plain values handed to the calls that need them, so tests can
inject a zero-delay policy instead of patching sleep() everywhere.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: delay = base_delay * multiplier ** (attempt - 1), capped at max_delay."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    timeout: float | None = None  # per attempt

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)


NO_DELAY = RetryPolicy(max_attempts=3, base_delay=0.0)


class AnalysisBudget:
    """Counting semaphore that bounds in-flight chunk analyses.

    One budget is shared by every execution an orchestrator runs — it is
    the only cross-execution resource. ``peak`` records the highest
    concurrency observed, which tests use to check the bound holds.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("analysis budget must allow at least one analysis")
        self.limit = limit
        self._slots = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    @contextmanager
    def slot(self):
        self._slots.acquire()
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            yield
        finally:
            with self._lock:
                self.in_flight -= 1
            self._slots.release()
