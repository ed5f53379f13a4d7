"""
Clock abstraction and time-sortable identifiers.

All engine components read time through a :class:`Clock` so that tests can
drive escalation timeouts, cooldowns and retry backoff with a
:class:`ManualClock` instead of sleeping real seconds.

Examples:
    >>> clock = ManualClock()
    >>> start = clock.now()
    >>> clock.advance(900)
    >>> (clock.now() - start).total_seconds()
    900.0
"""

from __future__ import annotations

import random
import threading
import time
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time for the engine."""

    def now(self) -> datetime:
        """Current timezone-aware UTC time."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block the caller for *seconds* of this clock's time."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """A clock that only moves when told to.

    ``sleep()`` advances the clock instead of blocking, which keeps code
    paths that wait on the clock deterministic under test.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=UTC)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> datetime:
        """Move the clock forward and return the new time."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds)
            return self._now

    def set(self, when: datetime) -> None:
        with self._lock:
            if when < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = when

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.advance(seconds)


# Crockford base32, as used by ULIDs
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def _encode_base32(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(_ENCODING[value % 32])
        value //= 32
    return "".join(reversed(chars))


def generate_ulid(at: datetime | None = None) -> str:
    """Generate a 26-character, time-sortable identifier.

    The time component comes from *at* (defaults to wall-clock time) so
    identifiers created under a :class:`ManualClock` still sort by the
    engine's notion of time.
    """
    moment = at or datetime.now(UTC)
    timestamp_ms = int(moment.timestamp() * 1000)
    return _encode_base32(timestamp_ms, 10) + "".join(random.choices(_ENCODING, k=16))


def seconds_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds()


__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "generate_ulid",
    "seconds_between",
]
