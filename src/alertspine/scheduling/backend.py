"""Tick backends.

A backend only controls WHEN the engine ticks; the engine decides WHAT a
tick does (fire due timers, sweep evaluation windows, purge history).

┌────────────────────┐   tick()    ┌─────────────────────────────┐
│ ThreadTickBackend  │ ──────────► │ AlertEngine.tick            │
│ (daemon thread)    │             │  - TimerQueue.run_due()     │
└────────────────────┘             │  - RuleEvaluator.sweep()    │
                                   └─────────────────────────────┘

Tests skip the backend entirely and call ``engine.tick()`` after moving a
ManualClock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from alertspine.core.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], Any]

# Consecutive failing ticks before health reports degraded.
MAX_CONSECUTIVE_FAILURES = 3


@runtime_checkable
class TickBackend(Protocol):
    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float = 1.0) -> None: ...

    def stop(self) -> None: ...

    def health(self) -> dict[str, Any]: ...


@dataclass
class BackendHealth:
    """Point-in-time view of a tick backend, as served by ``/health``."""

    backend: str
    running: bool
    interval_seconds: float
    tick_count: int = 0
    failed_ticks: int = 0
    consecutive_failures: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None
    slowest_tick_ms: float = 0.0

    @property
    def healthy(self) -> bool:
        return self.running and self.consecutive_failures < MAX_CONSECUTIVE_FAILURES

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "tick_count": self.tick_count,
            "failed_ticks": self.failed_ticks,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
            "slowest_tick_ms": round(self.slowest_tick_ms, 2),
        }


class ThreadTickBackend:
    """Calls the engine's tick from a daemon thread at a fixed cadence.

    The wait before each tick is shortened by however long the previous
    tick took, so a slow tick delays the next one without shifting the
    whole schedule. A tick that overruns the interval is followed
    immediately by the next.

    Example:
        >>> backend = ThreadTickBackend()
        >>> backend.start(engine.tick, interval_seconds=1.0)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, join_timeout: float = 5.0) -> None:
        self.join_timeout = join_timeout
        self._halt = threading.Event()
        self._worker: threading.Thread | None = None
        self._stats = BackendHealth(backend=self.name, running=False, interval_seconds=1.0)
        self._stats_lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 1.0) -> None:
        if self.is_running:
            logger.warning("tick_backend_already_started")
            return

        self._halt.clear()
        with self._stats_lock:
            self._stats.interval_seconds = interval_seconds
            self._stats.running = True
        self._worker = threading.Thread(
            target=self._run,
            args=(tick_callback, interval_seconds),
            daemon=True,
            name="alertspine-ticker",
        )
        self._worker.start()

    def _run(self, tick_callback: TickCallback, interval_seconds: float) -> None:
        logger.info("tick_backend_started", interval_seconds=interval_seconds)
        wait = interval_seconds
        while not self._halt.wait(wait):
            began = time.monotonic()
            error: str | None = None
            try:
                tick_callback()
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.exception("tick_failed")
            took = time.monotonic() - began
            self._record(took * 1000, error)
            wait = max(0.0, interval_seconds - took)
        logger.info("tick_backend_stopped", tick_count=self._stats.tick_count)

    def _record(self, took_ms: float, error: str | None) -> None:
        with self._stats_lock:
            stats = self._stats
            stats.tick_count += 1
            stats.last_tick = datetime.now(UTC)
            stats.slowest_tick_ms = max(stats.slowest_tick_ms, took_ms)
            if error is None:
                stats.consecutive_failures = 0
                return
            stats.failed_ticks += 1
            stats.consecutive_failures += 1
            stats.last_error = error
            if stats.consecutive_failures == MAX_CONSECUTIVE_FAILURES:
                logger.error("tick_backend_degraded", consecutive_failures=stats.consecutive_failures)

    def stop(self) -> None:
        if self._worker is None:
            return
        self._halt.set()
        self._worker.join(timeout=self.join_timeout)
        if self._worker.is_alive():
            logger.warning("tick_thread_did_not_stop", join_timeout=self.join_timeout)
        self._worker = None
        with self._stats_lock:
            self._stats.running = False

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def health(self) -> dict[str, Any]:
        with self._stats_lock:
            self._stats.running = self.is_running
            return self._stats.to_dict()
