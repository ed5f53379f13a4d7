"""Re-armable delayed-job queue.

Escalation deadlines and notification retries are jobs keyed by a string
(``escalation:<alert_id>``, ``retry:<notification_id>``). Scheduling a key
that is already pending replaces the earlier job; cancelling marks it
stale. Nothing fires on its own: :meth:`TimerQueue.run_due` is called on
every engine tick (beat-as-poller), which keeps timing deterministic under
a manual clock.

Example:
    >>> queue = TimerQueue(clock)
    >>> queue.schedule("escalation:A1", clock.now() + timedelta(seconds=900), fire)
    >>> clock.advance(900)
    >>> queue.run_due()
    1
"""

from __future__ import annotations

import heapq
import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from alertspine.core.clock import Clock
from alertspine.core.logging import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[], None]


@dataclass(order=True)
class _Job:
    deadline: datetime
    seq: int
    key: str = field(compare=False)
    callback: TimerCallback = field(compare=False)


class TimerQueue:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self._heap: list[_Job] = []
        self._live: dict[str, _Job] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()
        self.fired_count = 0

    def schedule(self, key: str, deadline: datetime, callback: TimerCallback) -> None:
        """Arm *key* to fire at *deadline*, replacing any pending job."""
        job = _Job(deadline=deadline, seq=next(self._counter), key=key, callback=callback)
        with self._lock:
            self._live[key] = job
            heapq.heappush(self._heap, job)

    def cancel(self, key: str) -> bool:
        """Cancel a pending job. Returns False if nothing was pending."""
        with self._lock:
            return self._live.pop(key, None) is not None

    def deadline(self, key: str) -> datetime | None:
        with self._lock:
            job = self._live.get(key)
            return job.deadline if job else None

    def pending(self) -> dict[str, datetime]:
        with self._lock:
            return {key: job.deadline for key, job in self._live.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._live)

    def run_due(self, now: datetime | None = None) -> int:
        """Fire every job whose deadline is at or before *now*.

        Jobs armed by a callback that are already due fire in the same
        call, in deadline order. Callbacks run outside the queue lock.
        """
        fired = 0
        while True:
            current = now or self.clock.now()
            job = self._pop_due(current)
            if job is None:
                break
            fired += 1
            try:
                job.callback()
            except Exception:
                logger.exception("timer_callback_failed", timer_key=job.key)
        self.fired_count += fired
        return fired

    def _pop_due(self, now: datetime) -> _Job | None:
        with self._lock:
            while self._heap and self._heap[0].deadline <= now:
                job = heapq.heappop(self._heap)
                if self._live.get(job.key) is job:
                    del self._live[job.key]
                    return job
        return None
