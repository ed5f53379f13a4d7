"""Time-bounded sample window with aggregation."""

from __future__ import annotations

import bisect
import math
from datetime import datetime, timedelta

from alertspine.models import Aggregation


class SlidingWindow:
    """Samples observed within the last ``time_window`` seconds.

    Samples may arrive slightly out of order: anything no older than
    ``tolerance`` seconds behind the newest sample is inserted in
    timestamp order, anything older is rejected.
    """

    def __init__(self, time_window: float, tolerance: float = 0.0) -> None:
        self.time_window = timedelta(seconds=time_window)
        self.tolerance = timedelta(seconds=tolerance)
        self._timestamps: list[datetime] = []
        self._values: list[float] = []

    def __len__(self) -> int:
        return len(self._values)

    @property
    def latest(self) -> datetime | None:
        return self._timestamps[-1] if self._timestamps else None

    def add(self, timestamp: datetime, value: float) -> bool:
        """Insert a sample; returns False if it arrived too late."""
        latest = self.latest
        if latest is not None and timestamp < latest - self.tolerance:
            return False
        index = bisect.bisect_right(self._timestamps, timestamp)
        self._timestamps.insert(index, timestamp)
        self._values.insert(index, value)
        return True

    def clear(self) -> None:
        self._timestamps.clear()
        self._values.clear()

    def evict(self, now: datetime) -> int:
        """Drop samples at or before ``now - time_window``."""
        cutoff = now - self.time_window
        index = bisect.bisect_right(self._timestamps, cutoff)
        if index:
            del self._timestamps[:index]
            del self._values[:index]
        return index

    def aggregate(self, aggregation: Aggregation) -> float | None:
        """Aggregate the window; None when empty."""
        if not self._values:
            return None
        match aggregation:
            case Aggregation.AVG:
                return math.fsum(self._values) / len(self._values)
            case Aggregation.MAX:
                return max(self._values)
            case Aggregation.MIN:
                return min(self._values)
            case Aggregation.SUM:
                return math.fsum(self._values)
            case Aggregation.COUNT:
                return float(len(self._values))
        raise ValueError(f"Unsupported aggregation: {aggregation}")
