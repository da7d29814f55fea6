"""Elapsed-time tracking for a recording session."""

from __future__ import annotations

import time
from typing import Callable, Optional

TimeSource = Callable[[], float]


class ElapsedClock:
    """Wall-clock stopwatch that does not count paused time.

    The start reference is re-based to ``now - elapsed`` on every resume, so
    the reading after a pause continues from the retained value.
    """

    def __init__(self, time_source: Optional[TimeSource] = None) -> None:
        self._time_source = time_source or time.monotonic
        self._start_ref_ms: Optional[float] = None
        self._retained_ms = 0

    @property
    def running(self) -> bool:
        return self._start_ref_ms is not None

    @property
    def elapsed_ms(self) -> int:
        if self._start_ref_ms is None:
            return self._retained_ms
        return max(0, int(self._now_ms() - self._start_ref_ms))

    def start(self) -> None:
        self._retained_ms = 0
        self._start_ref_ms = self._now_ms()

    def pause(self) -> None:
        if not self.running:
            return
        self._retained_ms = self.elapsed_ms
        self._start_ref_ms = None

    def resume(self) -> None:
        if self.running:
            return
        self._start_ref_ms = self._now_ms() - self._retained_ms

    def reset(self) -> None:
        self._start_ref_ms = None
        self._retained_ms = 0

    def _now_ms(self) -> float:
        return self._time_source() * 1000.0


def format_elapsed(ms: int) -> str:
    total = max(0, int(ms)) // 1000
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"
