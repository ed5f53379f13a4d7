"""Tests for the clock, identifiers, keyed locks and retry strategy."""

import threading
from datetime import timedelta

import pytest

from alertspine.core.clock import ManualClock, generate_ulid, seconds_between
from alertspine.core.errors import ConfigurationError, LockTimeoutError
from alertspine.core.locks import KeyedLockManager, alert_key, pair_key
from alertspine.core.retry import ExponentialBackoff
from alertspine.core.settings import EngineSettings
from alertspine.models import RetryPolicy

from conftest import START


class TestManualClock:
    def test_advance_and_sleep(self):
        clock = ManualClock(START)
        clock.advance(30)
        clock.sleep(30)

        assert seconds_between(START, clock.now()) == 60

    def test_cannot_go_backwards(self):
        clock = ManualClock(START)
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            clock.set(START - timedelta(seconds=1))


class TestUlid:
    def test_shape(self):
        ulid = generate_ulid(START)
        assert len(ulid) == 26

    def test_sorts_by_time(self):
        earlier = generate_ulid(START)
        later = generate_ulid(START + timedelta(milliseconds=1))
        assert earlier < later


class TestKeyedLockManager:
    def test_keys(self):
        assert pair_key("cpu", "srv-1") == "pair:cpu:srv-1"
        assert alert_key("A1") == "alert:A1"

    def test_reentrant(self):
        locks = KeyedLockManager(default_timeout=0.1)
        with locks.hold("k"):
            with locks.hold("k"):
                assert locks.is_locked("k")
        assert not locks.is_locked("k")
        assert locks.list_active_locks() == []

    def test_timeout_from_other_thread(self):
        locks = KeyedLockManager(default_timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("k"):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        try:
            with pytest.raises(LockTimeoutError):
                with locks.hold("k"):
                    pass
            assert [row["lock_key"] for row in locks.list_active_locks()] == ["k"]
        finally:
            release.set()
            thread.join()

    def test_release_by_non_owner_is_refused(self):
        locks = KeyedLockManager()
        assert locks.acquire("k", timeout=0.1)
        result = []
        thread = threading.Thread(target=lambda: result.append(locks.release("k")))
        thread.start()
        thread.join()

        assert result == [False]
        assert locks.release("k")


class TestExponentialBackoff:
    def test_delays(self):
        strategy = ExponentialBackoff.from_policy(
            RetryPolicy(max_retries=3, retry_delay=10.0, backoff_multiplier=2.0)
        )
        assert [strategy.next_delay(i) for i in range(3)] == [10.0, 20.0, 40.0]

    def test_constant_with_multiplier_one(self):
        strategy = ExponentialBackoff(base_delay=5.0, multiplier=1.0)
        assert strategy.next_delay(4) == 5.0

    def test_max_delay(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=15.0)
        assert strategy.next_delay(3) == 15.0

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=100.0, multiplier=1.0, jitter=True)
        for _ in range(50):
            assert 75.0 <= strategy.next_delay(0) <= 125.0

    def test_should_retry(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(1)
        assert not strategy.should_retry(2)
        assert not strategy.should_retry(0, ConfigurationError("no sender"))


class TestEngineSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ALERTSPINE_LOG_LEVEL", raising=False)
        settings = EngineSettings(_env_file=None)

        assert settings.tick_interval_seconds == 1.0
        assert settings.database_path is None
        assert settings.retention_days == 90

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("ALERTSPINE_DISPATCH_WORKERS", "3")
        monkeypatch.setenv("ALERTSPINE_DATABASE_PATH", "/tmp/a.db")

        settings = EngineSettings(_env_file=None)

        assert settings.dispatch_workers == 3
        assert str(settings.database_path) == "/tmp/a.db"
