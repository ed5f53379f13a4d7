"""Tests for the timer queue and the thread tick backend."""

import threading
from datetime import timedelta

from alertspine.scheduling import InlineExecutor, ThreadTickBackend, TimerQueue

from conftest import START


class TestTimerQueue:
    def test_fires_when_due(self, clock):
        queue = TimerQueue(clock)
        fired = []
        queue.schedule("a", START + timedelta(seconds=10), lambda: fired.append("a"))

        assert queue.run_due() == 0
        clock.advance(10)
        assert queue.run_due() == 1
        assert fired == ["a"]
        assert len(queue) == 0

    def test_reschedule_replaces(self, clock):
        queue = TimerQueue(clock)
        fired = []
        queue.schedule("a", START + timedelta(seconds=10), lambda: fired.append("old"))
        queue.schedule("a", START + timedelta(seconds=20), lambda: fired.append("new"))

        clock.advance(30)
        queue.run_due()

        assert fired == ["new"]

    def test_cancel(self, clock):
        queue = TimerQueue(clock)
        queue.schedule("a", START, lambda: None)

        assert queue.cancel("a")
        assert not queue.cancel("a")
        assert queue.run_due() == 0

    def test_deadline_order_and_chained_jobs(self, clock):
        queue = TimerQueue(clock)
        fired = []

        def first():
            fired.append("first")
            queue.schedule("chained", START + timedelta(seconds=5), lambda: fired.append("chained"))

        queue.schedule("second", START + timedelta(seconds=8), lambda: fired.append("second"))
        queue.schedule("first", START + timedelta(seconds=1), first)

        clock.advance(10)
        assert queue.run_due() == 3
        assert fired == ["first", "chained", "second"]

    def test_failing_callback_does_not_stop_others(self, clock):
        queue = TimerQueue(clock)
        fired = []

        def boom():
            raise RuntimeError("boom")

        queue.schedule("bad", START, boom)
        queue.schedule("good", START, lambda: fired.append("good"))

        assert queue.run_due() == 2
        assert fired == ["good"]


class TestThreadTickBackend:
    def test_ticks_until_stopped(self):
        backend = ThreadTickBackend()
        ticked = threading.Event()

        backend.start(ticked.set, interval_seconds=0.01)
        try:
            assert ticked.wait(2.0)
            assert backend.health()["healthy"] is True
        finally:
            backend.stop()

        assert not backend.is_running
        assert backend.health()["tick_count"] >= 1

    def test_repeated_failures_degrade_health(self):
        backend = ThreadTickBackend()
        calls = []
        done = threading.Event()

        def failing_tick():
            calls.append(1)
            if len(calls) >= 4:
                done.set()
            raise RuntimeError("store unavailable")

        backend.start(failing_tick, interval_seconds=0.01)
        try:
            assert done.wait(2.0)
        finally:
            backend.stop()

        health = backend.health()
        assert health["healthy"] is False
        assert health["failed_ticks"] >= 3
        assert health["last_error"] == "RuntimeError: store unavailable"


class TestInlineExecutor:
    def test_runs_in_caller_thread(self):
        executor = InlineExecutor()
        future = executor.submit(threading.get_ident)

        assert future.result() == threading.get_ident()

    def test_captures_exceptions(self):
        future = InlineExecutor().submit(lambda: 1 / 0)
        assert isinstance(future.exception(), ZeroDivisionError)
