"""Timing primitives: delayed-job queue, tick backends, executors."""

from alertspine.scheduling.backend import BackendHealth, ThreadTickBackend, TickBackend
from alertspine.scheduling.executors import InlineExecutor, create_dispatch_pool
from alertspine.scheduling.timers import TimerQueue

__all__ = [
    "BackendHealth",
    "ThreadTickBackend",
    "TickBackend",
    "InlineExecutor",
    "create_dispatch_pool",
    "TimerQueue",
]
