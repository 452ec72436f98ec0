"""Scroll velocity from timestamped position samples."""

from __future__ import annotations

from collections import deque

from services.intentflow.config import settings

_HISTORY = 10


class ScrollTracker:
    """
    Computes px/s between consecutive scroll samples.

    A sample arriving ``gap_ms`` or more after the previous one starts a new
    scroll sequence: no velocity is produced for it, it only becomes the new
    reference point. Non-increasing timestamps are treated the same way.
    The last ten velocities are kept for the observer report.
    """

    def __init__(self, gap_ms: int | None = None, history: int = _HISTORY) -> None:
        self.gap_ms = settings.observer_scroll_gap_ms if gap_ms is None else gap_ms
        self._last_y: float | None = None
        self._last_time: float | None = None
        self.velocities: deque[float] = deque(maxlen=history)

    def observe(self, position_y: float, timestamp_ms: float) -> float | None:
        velocity = None
        if self._last_time is not None and self._last_y is not None:
            dt = timestamp_ms - self._last_time
            if 0 < dt < self.gap_ms:
                velocity = abs(position_y - self._last_y) / (dt / 1000)
                self.velocities.append(velocity)

        self._last_y = position_y
        self._last_time = timestamp_ms
        return velocity

    @property
    def average(self) -> int:
        if not self.velocities:
            return 0
        return round(sum(self.velocities) / len(self.velocities))
