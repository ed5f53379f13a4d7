"""
Escalation controller.

Walks an open alert through its rule's escalation policy. Level deadlines
are cumulative from ``triggered_at``: with level timeouts of 900s and
1800s, level 1 fires at +900s and level 2 at +2700s.

Each step runs under the alert lock:

    1. re-check the alert is still ``active`` at the expected level
    2. bump ``escalation_level`` and persist it
    3. issue the level's dispatch (pending records are written here)
    4. arm the next level, unless the policy is exhausted

Acknowledge, resolve and suppress cancel the pending timer. A timer that
fires after cancellation finds the alert no longer active and does
nothing. A fire that cannot take the alert lock is re-armed for the same
level after a capped backoff; the following deadlines still count from
the original one.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from alertspine.alerts.state_machine import AlertStateMachine, LifecycleEvent, LifecycleKind
from alertspine.core.errors import LockTimeoutError
from alertspine.core.locks import KeyedLockManager, alert_key
from alertspine.core.logging import LogContext, get_logger
from alertspine.core.retry import ExponentialBackoff, RetryStrategy
from alertspine.models import Alert, AlertRule, AlertStatus, EscalationLevel, EscalationPolicy
from alertspine.scheduling.timers import TimerQueue
from alertspine.storage.base import AlertStore

logger = get_logger(__name__)

EscalationNotifier = Callable[[Alert, AlertRule, EscalationLevel], Any]


def timer_key(alert_id: str) -> str:
    return f"escalation:{alert_id}"


def cumulative_deadline(triggered_at: datetime, policy: EscalationPolicy, level: int) -> datetime:
    """Deadline for *level* (1-based), summing the timeouts of levels 1..level."""
    total = 0.0
    for index in range(1, level + 1):
        step = policy.level_at(index)
        if step is None:
            break
        total += policy.timeout_for(step)
    return triggered_at + timedelta(seconds=total)


class EscalationController:
    """Arms, fires and cancels per-alert escalation timers.

    Args:
        store: Alert and rule storage.
        machine: State machine used to advance ``escalation_level``.
        locks: Shared keyed lock manager.
        timers: Queue driven by engine ticks.
        notifier: Called once per fired level with the alert (already at
            the new level), its rule and the level definition.
        lock_backoff: Delay before re-trying a fire whose alert lock timed
            out; attempts are unlimited, the delay is capped.
    """

    def __init__(
        self,
        store: AlertStore,
        machine: AlertStateMachine,
        locks: KeyedLockManager,
        timers: TimerQueue,
        notifier: EscalationNotifier,
        lock_backoff: RetryStrategy | None = None,
    ) -> None:
        self.store = store
        self.machine = machine
        self.locks = locks
        self.timers = timers
        self.notifier = notifier
        self.lock_backoff = lock_backoff or ExponentialBackoff(base_delay=5.0, multiplier=2.0, max_delay=300.0)

    def handle(self, event: LifecycleEvent) -> None:
        """Lifecycle listener: start on open, cancel on any operator transition."""
        if event.kind is LifecycleKind.OPENED and event.rule is not None:
            self.start(event.alert, event.rule)
        elif event.kind in (
            LifecycleKind.ACKNOWLEDGED,
            LifecycleKind.RESOLVED,
            LifecycleKind.SUPPRESSED,
        ):
            self.cancel(event.alert.id)

    def start(self, alert: Alert, rule: AlertRule) -> datetime | None:
        """Arm level 1 for a freshly opened alert."""
        policy = rule.escalation
        if policy is None or policy.reachable_levels == 0:
            return None
        deadline = cumulative_deadline(alert.triggered_at, policy, 1)
        self._arm(alert.id, 1, deadline)
        return deadline

    def recover(self, alert: Alert, rule: AlertRule) -> datetime | None:
        """Re-arm the next level of an open alert after a restart.

        The deadline for level N+1 is recomputed from ``triggered_at``; an
        overdue deadline fires on the next tick.
        """
        if alert.status is not AlertStatus.ACTIVE:
            return None
        policy = rule.escalation
        if policy is None:
            return None
        next_level = alert.escalation_level + 1
        if next_level > policy.reachable_levels:
            return None
        deadline = cumulative_deadline(alert.triggered_at, policy, next_level)
        self._arm(alert.id, next_level, deadline)
        return deadline

    def cancel(self, alert_id: str) -> bool:
        cancelled = self.timers.cancel(timer_key(alert_id))
        if cancelled:
            logger.info("escalation_cancelled", alert_id=alert_id)
        return cancelled

    def deadline(self, alert_id: str) -> datetime | None:
        return self.timers.deadline(timer_key(alert_id))

    def _arm(self, alert_id: str, level: int, deadline: datetime) -> None:
        self.timers.schedule(timer_key(alert_id), deadline, partial(self._fire, alert_id, level, deadline))
        logger.debug("escalation_armed", alert_id=alert_id, level=level, deadline=deadline.isoformat())

    def _fire(self, alert_id: str, level: int, deadline: datetime, attempt: int = 0) -> None:
        try:
            self._escalate(alert_id, level, deadline)
        except LockTimeoutError as exc:
            delay = self.lock_backoff.next_delay(attempt)
            logger.warning(
                "escalation_lock_contended",
                alert_id=alert_id,
                level=level,
                attempt=attempt + 1,
                retry_in=delay,
                error=exc.message,
            )
            self.timers.schedule(
                timer_key(alert_id),
                self.timers.clock.now() + timedelta(seconds=delay),
                partial(self._fire, alert_id, level, deadline, attempt + 1),
            )

    def _escalate(self, alert_id: str, level: int, deadline: datetime) -> None:
        with self.locks.hold(alert_key(alert_id)), LogContext(alert_id=alert_id):
            current = self.store.get_alert(alert_id)
            if current is None or current.status is not AlertStatus.ACTIVE:
                logger.debug("escalation_skipped", level=level, reason="not_active")
                return
            rule = self.store.get_rule(current.rule_id)
            policy = rule.escalation if rule else None
            if rule is None or policy is None or level > policy.reachable_levels:
                logger.info("escalation_skipped", level=level, reason="policy_changed")
                return
            step = policy.level_at(level)

            alert = self.machine.escalate(alert_id, expected_level=level - 1)
            if alert is None:
                logger.debug("escalation_skipped", level=level, reason="stale_level")
                return
            logger.info("escalation_fired", level=level, rule_id=rule.id)

            try:
                self.notifier(alert, rule, step)
            except Exception:
                logger.exception("escalation_dispatch_failed", level=level)

            if level >= policy.reachable_levels:
                logger.info("escalation_exhausted", level=level)
                return
            next_step = policy.level_at(level + 1)
            self._arm(
                alert_id,
                level + 1,
                deadline + timedelta(seconds=policy.timeout_for(next_step)),
            )
