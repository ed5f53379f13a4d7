"""In-memory store.

Keeps copies of every record so callers can never mutate stored state by
accident. Thread-safe; used by tests and by the engine when no database
path is configured.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

from alertspine.models import (
    Alert,
    AlertFilter,
    AlertNotification,
    AlertRule,
    NotificationChannel,
)


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rules: dict[str, AlertRule] = {}
        self._channels: dict[str, NotificationChannel] = {}
        self._alerts: dict[str, Alert] = {}
        self._notifications: dict[str, list[AlertNotification]] = {}

    # ── Rules ─────────────────────────────────────────────────────

    def save_rule(self, rule: AlertRule) -> None:
        with self._lock:
            self._rules[rule.id] = rule

    def get_rule(self, rule_id: str) -> AlertRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def list_rules(self, *, include_deleted: bool = False) -> list[AlertRule]:
        with self._lock:
            rules = [r for r in self._rules.values() if include_deleted or not r.deleted]
        return sorted(rules, key=lambda r: r.id)

    # ── Channels ──────────────────────────────────────────────────

    def save_channel(self, channel: NotificationChannel) -> None:
        with self._lock:
            self._channels[channel.id] = channel

    def get_channel(self, channel_id: str) -> NotificationChannel | None:
        with self._lock:
            return self._channels.get(channel_id)

    def list_channels(self) -> list[NotificationChannel]:
        with self._lock:
            return sorted(self._channels.values(), key=lambda c: c.id)

    # ── Alerts ────────────────────────────────────────────────────

    def save_alert(self, alert: Alert) -> None:
        with self._lock:
            self._alerts[alert.id] = alert.copy()

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return alert.copy() if alert else None

    def find_open_alert(self, rule_id: str, server_id: str) -> Alert | None:
        with self._lock:
            for alert in self._alerts.values():
                if alert.rule_id == rule_id and alert.server_id == server_id and alert.is_open:
                    return alert.copy()
        return None

    def list_alerts(self, alert_filter: AlertFilter) -> list[Alert]:
        matched = self._matching(alert_filter)
        window = matched[alert_filter.offset : alert_filter.offset + alert_filter.limit]
        return [a.copy() for a in window]

    def count_alerts(self, alert_filter: AlertFilter) -> int:
        return len(self._matching(alert_filter))

    def list_open_alerts(self) -> list[Alert]:
        with self._lock:
            alerts = [a.copy() for a in self._alerts.values() if a.is_open]
        return sorted(alerts, key=lambda a: a.triggered_at)

    def alerts_triggered_since(self, since: datetime | None) -> list[Alert]:
        with self._lock:
            return [
                a.copy()
                for a in self._alerts.values()
                if since is None or a.triggered_at >= since
            ]

    def last_closed_at(self, rule_id: str, server_id: str) -> datetime | None:
        with self._lock:
            closed = [
                a.resolved_at
                for a in self._alerts.values()
                if a.rule_id == rule_id
                and a.server_id == server_id
                and not a.is_open
                and a.resolved_at is not None
            ]
        return max(closed) if closed else None

    def purge_closed_alerts(self, closed_before: datetime) -> int:
        with self._lock:
            doomed = [
                a.id
                for a in self._alerts.values()
                if not a.is_open and a.resolved_at is not None and a.resolved_at < closed_before
            ]
            for alert_id in doomed:
                del self._alerts[alert_id]
                self._notifications.pop(alert_id, None)
        return len(doomed)

    # ── Notifications ─────────────────────────────────────────────

    def save_notification(self, notification: AlertNotification) -> None:
        with self._lock:
            history = self._notifications.setdefault(notification.alert_id, [])
            for index, existing in enumerate(history):
                if existing.id == notification.id:
                    history[index] = replace(notification)
                    return
            history.append(replace(notification))

    def list_notifications(self, alert_id: str) -> list[AlertNotification]:
        with self._lock:
            return [replace(n) for n in self._notifications.get(alert_id, [])]

    def close(self) -> None:
        pass

    def _matching(self, alert_filter: AlertFilter) -> list[Alert]:
        with self._lock:
            matched = [a for a in self._alerts.values() if alert_filter.matches(a)]
        return sorted(matched, key=lambda a: a.triggered_at, reverse=True)
