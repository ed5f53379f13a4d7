"""Storage protocol for engine state.

A store persists everything needed to rebuild the engine after a restart:
rule and channel definitions, alert records with their lifecycle
timestamps, and the notification attempt history. Evaluation windows and
armed timers are process state and are reconstructed from these records.

Implementations:
    - InMemoryAlertStore: tests and single-process demos
    - SQLiteAlertStore: durable single-node deployments
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from alertspine.models import (
    Alert,
    AlertFilter,
    AlertNotification,
    AlertRule,
    NotificationChannel,
)


@runtime_checkable
class AlertStore(Protocol):
    # Rules
    def save_rule(self, rule: AlertRule) -> None: ...

    def get_rule(self, rule_id: str) -> AlertRule | None: ...

    def list_rules(self, *, include_deleted: bool = False) -> list[AlertRule]: ...

    # Channels
    def save_channel(self, channel: NotificationChannel) -> None: ...

    def get_channel(self, channel_id: str) -> NotificationChannel | None: ...

    def list_channels(self) -> list[NotificationChannel]: ...

    # Alerts
    def save_alert(self, alert: Alert) -> None: ...

    def get_alert(self, alert_id: str) -> Alert | None: ...

    def find_open_alert(self, rule_id: str, server_id: str) -> Alert | None: ...

    def list_alerts(self, alert_filter: AlertFilter) -> list[Alert]: ...

    def count_alerts(self, alert_filter: AlertFilter) -> int: ...

    def list_open_alerts(self) -> list[Alert]: ...

    def alerts_triggered_since(self, since: datetime | None) -> list[Alert]: ...

    def last_closed_at(self, rule_id: str, server_id: str) -> datetime | None: ...

    def purge_closed_alerts(self, closed_before: datetime) -> int: ...

    # Notification history
    def save_notification(self, notification: AlertNotification) -> None: ...

    def list_notifications(self, alert_id: str) -> list[AlertNotification]: ...

    def close(self) -> None: ...
