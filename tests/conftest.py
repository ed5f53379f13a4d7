"""
Shared pytest fixtures for alertspine tests.

This module provides:
- A manual clock starting at 2025-01-01T00:00:00Z
- Recording and failing senders registered for slack, email and webhook
- An in-memory store and an engine factory wired with an inline executor
  and a backend that never ticks on its own
- Rule and channel factories with sensible defaults
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from alertspine.core.clock import ManualClock
from alertspine.core.errors import ChannelDeliveryFailure
from alertspine.core.settings import EngineSettings
from alertspine.engine import AlertEngine
from alertspine.models import (
    Aggregation,
    AlertCondition,
    AlertRule,
    ChannelType,
    EscalationLevel,
    EscalationPolicy,
    MetricSample,
    NotificationChannel,
    Operator,
    RetryPolicy,
    Severity,
)
from alertspine.notifications import DeliveryResult, NotificationEvent, SenderRegistry
from alertspine.scheduling import InlineExecutor
from alertspine.storage import InMemoryAlertStore

START = datetime(2025, 1, 1, tzinfo=UTC)


# =============================================================================
# Test doubles
# =============================================================================


class RecordingSender:
    """Succeeds after ``fail_first`` failures and records every delivery."""

    def __init__(self, channel_type: ChannelType, fail_first: int = 0) -> None:
        self.channel_type = channel_type
        self.fail_first = fail_first
        self.calls = 0
        self.sent: list[tuple[NotificationChannel, NotificationEvent]] = []

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        self.calls += 1
        if self.calls <= self.fail_first:
            return DeliveryResult.fail(channel.id, ChannelDeliveryFailure("upstream 503"))
        self.sent.append((channel, event))
        return DeliveryResult.ok(channel.id)

    @property
    def events(self) -> list[NotificationEvent]:
        return [event for _, event in self.sent]


class FailingSender(RecordingSender):
    """Never delivers."""

    def __init__(self, channel_type: ChannelType) -> None:
        super().__init__(channel_type, fail_first=10**9)


class NullBackend:
    """Tick backend that never ticks; tests call ``engine.tick()`` directly."""

    name = "null"

    def __init__(self) -> None:
        self.running = False

    def start(self, tick_callback: Callable[[], Any], interval_seconds: float = 1.0) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def health(self) -> dict[str, Any]:
        return {"healthy": self.running, "backend": self.name}


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def slack_sender() -> RecordingSender:
    return RecordingSender(ChannelType.SLACK)


@pytest.fixture
def email_sender() -> RecordingSender:
    return RecordingSender(ChannelType.EMAIL)


@pytest.fixture
def webhook_sender() -> FailingSender:
    return FailingSender(ChannelType.WEBHOOK)


@pytest.fixture
def registry(slack_sender, email_sender, webhook_sender) -> SenderRegistry:
    return SenderRegistry([slack_sender, email_sender, webhook_sender])


@pytest.fixture
def undelivered() -> list:
    return []


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_channel() -> Callable[..., NotificationChannel]:
    def _make(channel_id: str, channel_type: ChannelType = ChannelType.SLACK, **overrides):
        defaults: dict[str, Any] = dict(
            id=channel_id,
            type=channel_type,
            name=channel_id,
            retry_policy=RetryPolicy(max_retries=2, retry_delay=10.0, backoff_multiplier=2.0),
        )
        defaults.update(overrides)
        return NotificationChannel(**defaults)

    return _make


@pytest.fixture
def make_rule() -> Callable[..., AlertRule]:
    def _make(**overrides) -> AlertRule:
        defaults: dict[str, Any] = dict(
            id="cpu-high",
            server_id="srv-1",
            metric="cpu_usage",
            condition=AlertCondition(
                operator=Operator.GTE, aggregation=Aggregation.AVG, time_window=60.0
            ),
            threshold=90.0,
            severity=Severity.HIGH,
            channel_ids=("ops-slack",),
        )
        defaults.update(overrides)
        return AlertRule(**defaults)

    return _make


@pytest.fixture
def two_level_policy() -> EscalationPolicy:
    """Level 1 after 900s to email, level 2 after a further 1800s to the lead."""
    return EscalationPolicy(
        levels=(
            EscalationLevel(level=1, channel_ids=("ops-email",), timeout=900.0),
            EscalationLevel(level=2, users=("oncall-lead",), timeout=1800.0),
        ),
        max_escalations=2,
    )


@pytest.fixture
def sample(clock) -> Callable[..., MetricSample]:
    """Sample at the clock's current time unless ``at`` is given."""

    def _make(value: float, *, server_id="srv-1", metric="cpu_usage", at=None) -> MetricSample:
        return MetricSample(
            server_id=server_id, metric=metric, value=value, timestamp=at or clock.now()
        )

    return _make


# =============================================================================
# Engine
# =============================================================================


@pytest.fixture
def make_engine(store, clock, registry, undelivered, make_channel):
    """Build an engine with ops-slack, ops-email and ops-hook channels created."""
    engines: list[AlertEngine] = []

    def _make(**settings_overrides) -> AlertEngine:
        settings = EngineSettings(
            lock_timeout_seconds=settings_overrides.pop("lock_timeout_seconds", 2.0),
            lock_retry_base_delay=0.0,
            **settings_overrides,
        )
        engine = AlertEngine(
            store,
            settings,
            clock=clock,
            executor=InlineExecutor(),
            registry=registry,
            backend=NullBackend(),
            on_undelivered=undelivered.append,
        )
        if not engine.rules.list_channels():
            engine.rules.create_channel(make_channel("ops-slack", ChannelType.SLACK))
            engine.rules.create_channel(make_channel("ops-email", ChannelType.EMAIL))
            engine.rules.create_channel(make_channel("ops-hook", ChannelType.WEBHOOK))
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.stop()


@pytest.fixture
def engine(make_engine) -> AlertEngine:
    return make_engine()
