"""
Alert engine.

Owns every component for one process and wires them together:

    ┌───────────┐ sample ┌──────────────┐ breach ┌────────────────────┐
    │  ingest() │ ─────► │ RuleEvaluator│ ─────► │ AlertStateMachine  │
    └───────────┘        └──────────────┘        └─────────┬──────────┘
                                                           │ lifecycle events
                              ┌────────────────────────────┼───────────────┐
                              ▼                            ▼               │
                   ┌─────────────────────┐     ┌────────────────────────┐  │
                   │EscalationController │ ──► │ NotificationDispatcher │◄─┘
                   └─────────┬───────────┘     └───────────┬────────────┘
                             │ arm                         │ retry
                             ▼                             ▼
                   ┌──────────────────────────────────────────┐
                   │ TimerQueue (run_due on every tick())     │
                   └──────────────────────────────────────────┘

State is scoped to the engine instance: ``start()`` recovers timers and
cooldowns from the store and starts ticking, ``stop()`` tears everything
down. Operator mutations are commands run through :meth:`execute`.

Example:
    >>> engine = AlertEngine(settings=EngineSettings())
    >>> engine.rules.create_rule(rule)
    >>> engine.start()
    >>> engine.ingest(MetricSample("srv-1", "cpu_usage", 97.0, now))
    >>> engine.stop()
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

from alertspine.alerts import AlertStateMachine, CooldownStore, LifecycleEvent, LifecycleKind
from alertspine.commands import (
    AcknowledgeAlert,
    Command,
    CommandResult,
    ResolveAlert,
    Stopwatch,
    SuppressAlert,
)
from alertspine.config import ApplyReport, RuleStore, load_definitions
from alertspine.core.clock import Clock, SystemClock, seconds_between
from alertspine.core.errors import (
    AlertNotFoundError,
    AlertSpineError,
    ErrorContext,
    InvalidSampleError,
    InvalidTransitionError,
    LockTimeoutError,
)
from alertspine.core.locks import KeyedLockManager
from alertspine.core.logging import LogContext, get_logger
from alertspine.core.retry import ExponentialBackoff
from alertspine.core.settings import EngineSettings
from alertspine.escalation import EscalationController
from alertspine.evaluation import RuleEvaluator
from alertspine.models import (
    Alert,
    AlertFilter,
    AlertNotification,
    AlertRule,
    AlertStatus,
    BreachDecision,
    DecisionState,
    EscalationLevel,
    EventKind,
    MetricSample,
    NotificationChannel,
    NotificationStatus,
    Severity,
)
from alertspine.models._serde import format_dt
from alertspine.notifications import (
    EventDispatch,
    NotificationDispatcher,
    NotificationEvent,
    SenderRegistry,
    default_registry,
)
from alertspine.notifications.dispatcher import UndeliveredHook
from alertspine.scheduling import (
    ThreadTickBackend,
    TickBackend,
    TimerQueue,
    create_dispatch_pool,
)
from alertspine.storage import AlertStore, open_store

logger = get_logger(__name__)

T = TypeVar("T")

PURGE_INTERVAL_SECONDS = 3600.0


@dataclass
class TickReport:
    timers_fired: int = 0
    gaps: list[BreachDecision] = field(default_factory=list)
    purged: int = 0


@dataclass
class RecoveryReport:
    open_alerts: int = 0
    timers_armed: int = 0
    cooldowns_restored: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "open_alerts": self.open_alerts,
            "timers_armed": self.timers_armed,
            "cooldowns_restored": self.cooldowns_restored,
        }


@dataclass
class ChannelDeliverySummary:
    """What an operator sees about one channel's deliveries for an alert."""

    channel_id: str
    channel_type: str
    attempts: int = 0
    sent: int = 0
    failed: int = 0
    pending: int = 0
    last_status: str | None = None
    last_error: str | None = None
    first_attempt_at: datetime | None = None
    last_attempt_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_type": self.channel_type,
            "attempts": self.attempts,
            "sent": self.sent,
            "failed": self.failed,
            "pending": self.pending,
            "last_status": self.last_status,
            "last_error": self.last_error,
            "first_attempt_at": format_dt(self.first_attempt_at),
            "last_attempt_at": format_dt(self.last_attempt_at),
        }


@dataclass
class AlertStats:
    total: int = 0
    open: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    resolution_rate: float = 0.0
    mean_resolution_seconds: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "open": self.open,
            "by_status": self.by_status,
            "by_severity": self.by_severity,
            "resolution_rate": round(self.resolution_rate, 4),
            "mean_resolution_seconds": self.mean_resolution_seconds,
        }


class AlertEngine:
    """Engine-scoped state and the public query/command interface.

    Args:
        store: Persistence; defaults to ``settings.database_path`` (SQLite)
            or an in-memory store.
        settings: Engine settings; defaults are read from the environment.
        clock: Time source; tests pass a ManualClock.
        executor: Runs channel sends; defaults to a thread pool owned and
            shut down by the engine.
        registry: Sender registry; defaults to the built-in senders.
        backend: Tick backend used by :meth:`start`.
        on_undelivered: Called when no channel delivered an event.
    """

    def __init__(
        self,
        store: AlertStore | None = None,
        settings: EngineSettings | None = None,
        *,
        clock: Clock | None = None,
        executor: Executor | None = None,
        registry: SenderRegistry | None = None,
        backend: TickBackend | None = None,
        on_undelivered: UndeliveredHook | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        self._owns_store = store is None
        self.store = store if store is not None else open_store(self.settings.database_path)
        self._owns_executor = executor is None
        self.executor = executor or create_dispatch_pool(self.settings.dispatch_workers)
        self.registry = registry or default_registry()
        self.backend = backend or ThreadTickBackend()

        self.locks = KeyedLockManager(default_timeout=self.settings.lock_timeout_seconds)
        self.timers = TimerQueue(self.clock)
        self.rules = RuleStore(self.store, self.clock)
        self.cooldowns = CooldownStore(self.clock)
        self.evaluator = RuleEvaluator(self.clock, self.settings.sample_tolerance_seconds)
        self.machine = AlertStateMachine(self.store, self.cooldowns, self.locks, self.clock)
        self.dispatcher = NotificationDispatcher(
            self.store,
            self.registry,
            self.timers,
            self.clock,
            self.executor,
            on_undelivered=on_undelivered,
        )
        self.escalation = EscalationController(
            self.store, self.machine, self.locks, self.timers, self._notify_escalation
        )
        self.machine.add_listener(self.escalation.handle)
        self.machine.add_listener(self._notify_lifecycle)

        self._started = False
        self._last_purge: datetime | None = None

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> RecoveryReport:
        """Recover state from the store and start ticking."""
        if self._started:
            logger.warning("engine_already_started")
            return RecoveryReport()
        report = self.recover()
        self.backend.start(self.tick, self.settings.tick_interval_seconds)
        self._started = True
        logger.info("engine_started", **report.to_dict())
        return report

    def stop(self) -> None:
        """Stop ticking and release owned resources."""
        self.backend.stop()
        if self._owns_executor:
            self.executor.shutdown(wait=True)
        if self._owns_store:
            self.store.close()
        self._started = False
        logger.info("engine_stopped")

    def __enter__(self) -> AlertEngine:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()

    def recover(self) -> RecoveryReport:
        """Rebuild cooldowns and re-arm escalation timers from persisted alerts."""
        report = RecoveryReport()
        rules = self.store.list_rules(include_deleted=True)
        report.cooldowns_restored = self.cooldowns.rebuild(self.store, rules)
        for alert in self.store.list_open_alerts():
            report.open_alerts += 1
            rule = self.store.get_rule(alert.rule_id)
            if rule is None:
                continue
            if self.escalation.recover(alert, rule) is not None:
                report.timers_armed += 1
        return report

    def tick(self) -> TickReport:
        """Fire due timers, expire idle windows and purge old history."""
        now = self.clock.now()
        report = TickReport()
        report.timers_fired = self.timers.run_due(now)
        report.gaps = self.evaluator.sweep(self.rules.active_rules(), now)
        report.purged = self._maybe_purge(now)
        return report

    def _maybe_purge(self, now: datetime) -> int:
        if (
            self._last_purge is not None
            and seconds_between(self._last_purge, now) < PURGE_INTERVAL_SECONDS
        ):
            return 0
        self._last_purge = now
        return self.purge_history(now)

    def purge_history(self, now: datetime | None = None) -> int:
        """Delete terminal alerts (and their notifications) past retention."""
        cutoff = (now or self.clock.now()) - timedelta(days=self.settings.retention_days)
        purged = self.store.purge_closed_alerts(cutoff)
        if purged:
            logger.info("history_purged", alerts=purged, closed_before=cutoff.isoformat())
        return purged

    # ── Feed ────────────────────────────────────────────────────

    def ingest(self, sample: MetricSample) -> list[BreachDecision]:
        """Evaluate *sample* against every enabled rule watching it.

        Raises:
            InvalidSampleError: the value is NaN or infinite.
        """
        if not math.isfinite(sample.value):
            raise InvalidSampleError(
                f"Sample value must be finite, got {sample.value}",
                context=ErrorContext(server_id=sample.server_id),
            ).with_context(metric=sample.metric)
        decisions = []
        for rule in self.rules.rules_for(sample.server_id, sample.metric):
            decision = self.evaluator.evaluate(rule, sample)
            decisions.append(decision)
            with LogContext(rule_id=rule.id, server_id=rule.server_id):
                self._apply(rule, decision)
        return decisions

    def ingest_many(self, samples: Iterable[MetricSample]) -> list[BreachDecision]:
        decisions = []
        for sample in sorted(samples, key=lambda s: s.timestamp):
            decisions.extend(self.ingest(sample))
        return decisions

    def _apply(self, rule: AlertRule, decision: BreachDecision) -> None:
        match decision.state:
            case DecisionState.BREACHING:
                self._with_lock_retry(
                    rule, "open", lambda: self.machine.open(rule, decision.current_value)
                )
            case DecisionState.OK:
                self._with_lock_retry(rule, "auto_resolve", lambda: self._auto_resolve(rule))

    def _auto_resolve(self, rule: AlertRule) -> Alert | None:
        alert = self.store.find_open_alert(rule.id, rule.server_id)
        if alert is None:
            return None
        try:
            return self.machine.auto_resolve(alert.id)
        except InvalidTransitionError:
            logger.debug("auto_resolve_raced", alert_id=alert.id)
            return None

    def _with_lock_retry(self, rule: AlertRule, action: str, fn: Callable[[], T]) -> T | None:
        """Run *fn*, retrying pair-lock timeouts with bounded backoff."""
        strategy = ExponentialBackoff(
            max_retries=self.settings.lock_retry_attempts,
            base_delay=self.settings.lock_retry_base_delay,
            multiplier=2.0,
            jitter=True,
        )
        attempt = 0
        while True:
            try:
                return fn()
            except LockTimeoutError as exc:
                if not strategy.should_retry(attempt, exc):
                    logger.critical(
                        "breach_dropped",
                        action=action,
                        rule_id=rule.id,
                        server_id=rule.server_id,
                        attempts=attempt + 1,
                        error=exc.message,
                    )
                    return None
                delay = strategy.next_delay(attempt)
                logger.warning("pair_lock_contended", action=action, attempt=attempt + 1, delay=delay)
                self.clock.sleep(delay)
                attempt += 1

    # ── Notification wiring ─────────────────────────────────────

    def _notify_lifecycle(self, event: LifecycleEvent) -> None:
        if event.rule is None:
            return
        match event.kind:
            case LifecycleKind.OPENED:
                kind = EventKind.TRIGGERED
            case LifecycleKind.REMINDER:
                kind = EventKind.REMINDER
            case _:
                return
        notification = NotificationEvent(
            alert=event.alert,
            kind=kind,
            escalation_level=event.alert.escalation_level,
            rule_name=event.rule.display_name,
        )
        self._dispatch(self.rules.resolve_channels(event.rule.channel_ids), notification)

    def _notify_escalation(self, alert: Alert, rule: AlertRule, step: EscalationLevel) -> None:
        channel_ids = step.channel_ids or rule.channel_ids
        notification = NotificationEvent(
            alert=alert,
            kind=EventKind.ESCALATED,
            escalation_level=alert.escalation_level,
            users=step.users,
            rule_name=rule.display_name,
        )
        self._dispatch(self.rules.resolve_channels(channel_ids), notification)

    def _dispatch(
        self, channels: list[NotificationChannel], event: NotificationEvent
    ) -> EventDispatch | None:
        if not channels:
            logger.warning("no_channels_for_event", alert_id=event.alert.id, kind=event.kind.value)
            return None
        return self.dispatcher.dispatch(channels, event)

    # ── Commands ────────────────────────────────────────────────

    def execute(self, command: Command) -> CommandResult[Alert]:
        """Run an operator command through the state machine."""
        timer = Stopwatch()
        try:
            match command:
                case AcknowledgeAlert(alert_id=alert_id, by=by):
                    alert = self.machine.acknowledge(alert_id, by)
                case ResolveAlert(alert_id=alert_id, by=by):
                    alert = self.machine.resolve(alert_id, by)
                case SuppressAlert(alert_id=alert_id, by=by, reason=reason):
                    alert = self.machine.suppress(alert_id, by, reason)
                case _:
                    return CommandResult.fail(
                        "UNSUPPORTED_COMMAND",
                        f"Unsupported command: {type(command).__name__}",
                        elapsed_ms=timer.elapsed_ms,
                    )
        except AlertSpineError as exc:
            logger.info("command_rejected", command=type(command).__name__, **exc.to_dict())
            return CommandResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
        return CommandResult.ok(alert, elapsed_ms=timer.elapsed_ms)

    def bulk_execute(self, commands: Iterable[Command]) -> list[CommandResult[Alert]]:
        """Execute commands in order; one failure does not stop the rest."""
        return [self.execute(command) for command in commands]

    def acknowledge(self, alert_id: str, by: str) -> CommandResult[Alert]:
        return self.execute(AcknowledgeAlert(alert_id=alert_id, by=by))

    def resolve(self, alert_id: str, by: str) -> CommandResult[Alert]:
        return self.execute(ResolveAlert(alert_id=alert_id, by=by))

    def suppress(self, alert_id: str, by: str, reason: str | None = None) -> CommandResult[Alert]:
        return self.execute(SuppressAlert(alert_id=alert_id, by=by, reason=reason))

    # ── Queries ─────────────────────────────────────────────────

    def get_alert(self, alert_id: str) -> Alert:
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def list_alerts(self, alert_filter: AlertFilter | None = None) -> list[Alert]:
        return self.store.list_alerts(alert_filter or AlertFilter())

    def count_alerts(self, alert_filter: AlertFilter | None = None) -> int:
        return self.store.count_alerts(alert_filter or AlertFilter())

    def notifications(self, alert_id: str) -> list[AlertNotification]:
        """Raw attempt history for an alert, in issue order."""
        self.get_alert(alert_id)
        return self.store.list_notifications(alert_id)

    def delivery_history(self, alert_id: str) -> list[ChannelDeliverySummary]:
        """Per-channel delivery summary for an alert."""
        summaries: dict[str, ChannelDeliverySummary] = {}
        for record in self.notifications(alert_id):
            summary = summaries.get(record.channel_id)
            if summary is None:
                summary = ChannelDeliverySummary(
                    channel_id=record.channel_id,
                    channel_type=record.channel_type.value,
                    first_attempt_at=record.attempted_at,
                )
                summaries[record.channel_id] = summary
            summary.attempts += 1
            match record.status:
                case NotificationStatus.SENT:
                    summary.sent += 1
                case NotificationStatus.FAILED:
                    summary.failed += 1
                case NotificationStatus.PENDING:
                    summary.pending += 1
            summary.last_status = record.status.value
            summary.last_error = record.error
            summary.last_attempt_at = record.attempted_at
        return list(summaries.values())

    def stats(self, since: datetime | None = None) -> AlertStats:
        """Totals per status and severity for alerts triggered since *since*."""
        alerts = self.store.alerts_triggered_since(since)
        stats = AlertStats(
            total=len(alerts),
            by_status={status.value: 0 for status in AlertStatus},
            by_severity={severity.value: 0 for severity in Severity},
        )
        durations = []
        for alert in alerts:
            stats.by_status[alert.status.value] += 1
            stats.by_severity[alert.severity.value] += 1
            if alert.is_open:
                stats.open += 1
            if alert.status is AlertStatus.RESOLVED and alert.resolved_at is not None:
                durations.append(seconds_between(alert.triggered_at, alert.resolved_at))
        if alerts:
            stats.resolution_rate = stats.by_status[AlertStatus.RESOLVED.value] / len(alerts)
        if durations:
            stats.mean_resolution_seconds = sum(durations) / len(durations)
        return stats

    # ── Definitions ─────────────────────────────────────────────

    def load_definitions(self, path: Path | str) -> ApplyReport:
        """Load a YAML definitions file and apply it to the rule store."""
        known = {channel.id for channel in self.rules.list_channels()}
        definitions = load_definitions(path, known_channels=known)
        report = self.rules.apply(definitions.channels, definitions.rules)
        logger.info("definitions_applied", path=str(path), **report.to_dict())
        return report

    def health(self) -> dict[str, Any]:
        return {
            "started": self._started,
            "backend": self.backend.health(),
            "pending_timers": len(self.timers),
            "open_alerts": len(self.store.list_open_alerts()),
            "active_rules": len(self.rules.active_rules()),
            "held_locks": len(self.locks.list_active_locks()),
        }
