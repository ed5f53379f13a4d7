"""
Alert lifecycle state machine.

The single entry point for every alert mutation, whether it comes from the
evaluator, the escalation controller, the API or the CLI.

States and transitions:
    ::

        open() ──► ACTIVE ──acknowledge──► ACKNOWLEDGED
                     │  ╲                     │    ╲
                     │   ╲ suppress           │     ╲ suppress
                  resolve  ╲                resolve   ╲
                     ▼      ▼                 ▼        ▼
                  RESOLVED  SUPPRESSED     RESOLVED  SUPPRESSED

RESOLVED and SUPPRESSED are terminal. An invalid transition raises
:class:`InvalidTransitionError` and leaves the alert untouched, so callers
may retry safely.

Locking:
    ``open()`` runs under the ``pair:<rule>:<server>`` lock, which keeps at
    most one open alert per pair. Every transition of an existing alert
    runs under ``alert:<id>``. Closing transitions also take the pair lock
    (first) because they start the pair's cooldown.

Listeners receive a :class:`LifecycleEvent` while the alert lock is still
held, so escalation timers are cancelled before the next transition of the
same alert can begin.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from alertspine.alerts.cooldown import CooldownStore
from alertspine.core.clock import Clock, generate_ulid, seconds_between
from alertspine.core.errors import AlertNotFoundError, InvalidTransitionError
from alertspine.core.locks import KeyedLockManager, alert_key, pair_key
from alertspine.core.logging import get_logger
from alertspine.models import Alert, AlertRule, AlertStatus
from alertspine.models._serde import format_dt, parse_dt
from alertspine.storage.base import AlertStore

logger = get_logger(__name__)

LAST_NOTIFIED_KEY = "last_notified_at"


class LifecycleKind(str, Enum):
    OPENED = "opened"
    REMINDER = "reminder"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class LifecycleEvent:
    kind: LifecycleKind
    alert: Alert
    rule: AlertRule | None = None
    actor: str | None = None


LifecycleListener = Callable[[LifecycleEvent], None]


class OpenOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class OpenResult:
    outcome: OpenOutcome
    alert: Alert | None = None
    reminder: bool = False

    @property
    def created(self) -> bool:
        return self.outcome is OpenOutcome.CREATED


class AlertStateMachine:
    """Serialized lifecycle transitions over an :class:`AlertStore`."""

    def __init__(
        self,
        store: AlertStore,
        cooldowns: CooldownStore,
        locks: KeyedLockManager,
        clock: Clock,
    ) -> None:
        self.store = store
        self.cooldowns = cooldowns
        self.locks = locks
        self.clock = clock
        self._listeners: list[LifecycleListener] = []

    def add_listener(self, listener: LifecycleListener) -> None:
        self._listeners.append(listener)

    # ── Breach path ─────────────────────────────────────────────

    def open(self, rule: AlertRule, current_value: float) -> OpenResult:
        """Record a confirmed breach of *rule*.

        Updates the pair's open alert if there is one (``triggered_at`` is
        kept), otherwise creates a new ``active`` alert unless the pair is
        cooling down.
        """
        now = self.clock.now()
        with self.locks.hold(pair_key(rule.id, rule.server_id)):
            existing = self.store.find_open_alert(rule.id, rule.server_id)
            if existing is not None:
                return self._update_open(existing.id, rule, current_value, now)

            if not self.cooldowns.can_fire(rule.id, rule.server_id, now):
                logger.info(
                    "alert_suppressed_by_cooldown",
                    rule_id=rule.id,
                    server_id=rule.server_id,
                    remaining=self.cooldowns.remaining(rule.id, rule.server_id, now),
                )
                return OpenResult(outcome=OpenOutcome.COOLDOWN)

            alert = Alert(
                id=generate_ulid(now),
                rule_id=rule.id,
                server_id=rule.server_id,
                severity=rule.severity,
                title=f"{rule.display_name} on {rule.server_id}",
                description=_describe(rule, current_value),
                metric=rule.metric,
                threshold=rule.threshold,
                current_value=current_value,
                triggered_at=now,
                updated_at=now,
                tags=rule.tags,
                metadata={LAST_NOTIFIED_KEY: format_dt(now)},
            )
            with self.locks.hold(alert_key(alert.id)):
                self.store.save_alert(alert)
                logger.info(
                    "alert_opened",
                    alert_id=alert.id,
                    rule_id=rule.id,
                    server_id=rule.server_id,
                    severity=rule.severity.value,
                    current_value=current_value,
                )
                self._emit(LifecycleEvent(LifecycleKind.OPENED, alert.copy(), rule))
            return OpenResult(outcome=OpenOutcome.CREATED, alert=alert.copy())

    def _update_open(
        self, alert_id: str, rule: AlertRule, current_value: float, now: datetime
    ) -> OpenResult:
        with self.locks.hold(alert_key(alert_id)):
            alert = self._load(alert_id)
            alert.current_value = current_value
            alert.updated_at = now
            remind = self._reminder_due(alert, rule, now)
            if remind:
                alert.metadata[LAST_NOTIFIED_KEY] = format_dt(now)
            self.store.save_alert(alert)
            if remind:
                logger.info("alert_reminder_due", alert_id=alert.id, rule_id=rule.id)
                self._emit(LifecycleEvent(LifecycleKind.REMINDER, alert.copy(), rule))
            return OpenResult(outcome=OpenOutcome.UPDATED, alert=alert.copy(), reminder=remind)

    def _reminder_due(self, alert: Alert, rule: AlertRule, now: datetime) -> bool:
        if rule.cooldown <= 0 or alert.status is not AlertStatus.ACTIVE:
            return False
        last = parse_dt(alert.metadata.get(LAST_NOTIFIED_KEY)) or alert.triggered_at
        return seconds_between(last, now) >= rule.cooldown

    # ── Operator transitions ────────────────────────────────────

    def acknowledge(self, alert_id: str, by: str) -> Alert:
        """ACTIVE → ACKNOWLEDGED. Stops escalation, keeps tracking values."""
        with self.locks.hold(alert_key(alert_id)):
            alert = self._load(alert_id)
            if alert.status is not AlertStatus.ACTIVE:
                raise InvalidTransitionError(alert_id, alert.status.value, "acknowledge")
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_at = self.clock.now()
            alert.acknowledged_by = by
            self.store.save_alert(alert)
            logger.info("alert_acknowledged", alert_id=alert_id, by=by)
            self._emit(LifecycleEvent(LifecycleKind.ACKNOWLEDGED, alert.copy(), actor=by))
            return alert.copy()

    def resolve(self, alert_id: str, by: str) -> Alert:
        """ACTIVE | ACKNOWLEDGED → RESOLVED. Starts the pair's cooldown."""
        return self._close(alert_id, by, AlertStatus.RESOLVED, "resolve")

    def auto_resolve(self, alert_id: str) -> Alert:
        return self.resolve(alert_id, by="system")

    def suppress(self, alert_id: str, by: str, reason: str | None = None) -> Alert:
        """ACTIVE | ACKNOWLEDGED → SUPPRESSED. Starts the pair's cooldown."""
        return self._close(alert_id, by, AlertStatus.SUPPRESSED, "suppress", reason)

    def _close(
        self,
        alert_id: str,
        by: str,
        target: AlertStatus,
        action: str,
        reason: str | None = None,
    ) -> Alert:
        snapshot = self._load(alert_id)
        with (
            self.locks.hold(pair_key(snapshot.rule_id, snapshot.server_id)),
            self.locks.hold(alert_key(alert_id)),
        ):
            alert = self._load(alert_id)
            if not alert.is_open:
                raise InvalidTransitionError(alert_id, alert.status.value, action)
            now = self.clock.now()
            alert.status = target
            alert.resolved_at = now
            alert.resolved_by = by
            if reason:
                alert.metadata["suppression_reason"] = reason
            self.store.save_alert(alert)

            rule = self.store.get_rule(alert.rule_id)
            cooldown = rule.cooldown if rule else 0.0
            self.cooldowns.record_close(alert.rule_id, alert.server_id, now, cooldown)

            logger.info(
                f"alert_{target.value}",
                alert_id=alert_id,
                rule_id=alert.rule_id,
                server_id=alert.server_id,
                by=by,
                open_seconds=seconds_between(alert.triggered_at, now),
            )
            kind = (
                LifecycleKind.RESOLVED
                if target is AlertStatus.RESOLVED
                else LifecycleKind.SUPPRESSED
            )
            self._emit(LifecycleEvent(kind, alert.copy(), rule, actor=by))
            return alert.copy()

    # ── Escalation ──────────────────────────────────────────────

    def escalate(self, alert_id: str, expected_level: int) -> Alert | None:
        """Bump ``escalation_level`` by one if the alert is still eligible.

        Returns None (and changes nothing) when the alert is no longer
        active or another step already advanced it past *expected_level*.
        """
        with self.locks.hold(alert_key(alert_id)):
            alert = self.store.get_alert(alert_id)
            if alert is None or alert.status is not AlertStatus.ACTIVE:
                return None
            if alert.escalation_level != expected_level:
                return None
            alert.escalation_level += 1
            alert.metadata[LAST_NOTIFIED_KEY] = format_dt(self.clock.now())
            self.store.save_alert(alert)
            return alert.copy()

    # ── Helpers ─────────────────────────────────────────────────

    def _load(self, alert_id: str) -> Alert:
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def _emit(self, event: LifecycleEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "lifecycle_listener_failed",
                    kind=event.kind.value,
                    alert_id=event.alert.id,
                )


def _describe(rule: AlertRule, value: float) -> str:
    if rule.description:
        return rule.description
    condition = rule.condition
    return (
        f"{condition.aggregation.value}({rule.metric}) over {condition.time_window:g}s "
        f"is {value:g}, {condition.operator.symbol} {rule.threshold:g}"
    )
