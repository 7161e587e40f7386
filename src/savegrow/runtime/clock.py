from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current trusted time in whole seconds."""
        ...


class SystemClock:
    """Wall clock in unix seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Deterministic clock for tests and simulations.

    Refuses to move backwards; a host that wants to exercise the
    clock-regression path should use set(..., allow_regression=True).
    """

    def __init__(self, start: int = 0) -> None:
        self._lock = threading.Lock()
        self._now = int(start)

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        s = int(seconds)
        if s < 0:
            raise ValueError("advance() requires seconds >= 0")
        with self._lock:
            self._now += s
            return self._now

    def set(self, t: int, *, allow_regression: bool = False) -> int:
        v = int(t)
        with self._lock:
            if v < self._now and not allow_regression:
                raise ValueError(f"clock cannot move backwards: {v} < {self._now}")
            self._now = v
            return self._now
