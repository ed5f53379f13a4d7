"""Alert instances, notification records and evaluation types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from alertspine.models._serde import format_dt, parse_dt
from alertspine.models.rules import ChannelType, Severity


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"

    @property
    def is_open(self) -> bool:
        return self in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)

    @property
    def is_terminal(self) -> bool:
        return not self.is_open


OPEN_STATUSES = (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)


@dataclass
class Alert:
    """One instance of a rule breach on a server.

    ``severity``, ``metric`` and ``threshold`` are copied from the rule at
    trigger time and never follow later rule edits.
    """

    id: str
    rule_id: str
    server_id: str
    severity: Severity
    title: str
    metric: str
    threshold: float
    current_value: float
    triggered_at: datetime
    status: AlertStatus = AlertStatus.ACTIVE
    description: str = ""
    updated_at: datetime | None = None
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    escalation_level: int = 0
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def copy(self) -> Alert:
        return replace(self, metadata=dict(self.metadata))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "server_id": self.server_id,
            "severity": self.severity.value,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "metric": self.metric,
            "threshold": self.threshold,
            "current_value": self.current_value,
            "triggered_at": format_dt(self.triggered_at),
            "updated_at": format_dt(self.updated_at),
            "acknowledged_at": format_dt(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": format_dt(self.resolved_at),
            "resolved_by": self.resolved_by,
            "escalation_level": self.escalation_level,
            "tags": list(self.tags),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Alert:
        return cls(
            id=data["id"],
            rule_id=data["rule_id"],
            server_id=data["server_id"],
            severity=Severity(data["severity"]),
            status=AlertStatus(data["status"]),
            title=data.get("title", ""),
            description=data.get("description", ""),
            metric=data["metric"],
            threshold=float(data["threshold"]),
            current_value=float(data["current_value"]),
            triggered_at=parse_dt(data["triggered_at"]),
            updated_at=parse_dt(data.get("updated_at")),
            acknowledged_at=parse_dt(data.get("acknowledged_at")),
            acknowledged_by=data.get("acknowledged_by"),
            resolved_at=parse_dt(data.get("resolved_at")),
            resolved_by=data.get("resolved_by"),
            escalation_level=int(data.get("escalation_level", 0)),
            tags=tuple(data.get("tags") or ()),
            metadata=dict(data.get("metadata") or {}),
        )


class EventKind(str, Enum):
    """Why a notification was sent."""

    TRIGGERED = "triggered"
    ESCALATED = "escalated"
    REMINDER = "reminder"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class AlertNotification:
    """Audit record of one delivery attempt (attempt 0 is the original send)."""

    id: str
    alert_id: str
    channel_id: str
    channel_type: ChannelType
    kind: EventKind
    attempt: int
    attempted_at: datetime
    escalation_level: int = 0
    status: NotificationStatus = NotificationStatus.PENDING
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is NotificationStatus.SENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "channel_id": self.channel_id,
            "channel_type": self.channel_type.value,
            "kind": self.kind.value,
            "attempt": self.attempt,
            "attempted_at": format_dt(self.attempted_at),
            "escalation_level": self.escalation_level,
            "status": self.status.value,
            "completed_at": format_dt(self.completed_at),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertNotification:
        return cls(
            id=data["id"],
            alert_id=data["alert_id"],
            channel_id=data["channel_id"],
            channel_type=ChannelType(data["channel_type"]),
            kind=EventKind(data["kind"]),
            attempt=int(data["attempt"]),
            attempted_at=parse_dt(data["attempted_at"]),
            escalation_level=int(data.get("escalation_level", 0)),
            status=NotificationStatus(data.get("status", "pending")),
            completed_at=parse_dt(data.get("completed_at")),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class MetricSample:
    """One observation from the metric feed."""

    server_id: str
    metric: str
    value: float
    timestamp: datetime


class DecisionState(str, Enum):
    OK = "ok"
    PENDING = "pending"
    BREACHING = "breaching"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class BreachDecision:
    """Outcome of evaluating one rule after a sample or sweep.

    ``confirmed`` is True only in the ``breaching`` state. ``ok`` means the
    aggregate is present and no longer satisfies the condition (recovery);
    ``no_data`` means the window is empty and is never treated as a breach.
    """

    rule_id: str
    server_id: str
    state: DecisionState
    evaluated_at: datetime
    current_value: float | None = None

    @property
    def confirmed(self) -> bool:
        return self.state is DecisionState.BREACHING

    @property
    def recovered(self) -> bool:
        return self.state is DecisionState.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "server_id": self.server_id,
            "state": self.state.value,
            "evaluated_at": format_dt(self.evaluated_at),
            "current_value": self.current_value,
        }


@dataclass(frozen=True)
class AlertFilter:
    server_id: str | None = None
    status: AlertStatus | None = None
    severity: Severity | None = None
    rule_id: str | None = None
    limit: int = 100
    offset: int = 0

    def matches(self, alert: Alert) -> bool:
        if self.server_id is not None and alert.server_id != self.server_id:
            return False
        if self.status is not None and alert.status is not self.status:
            return False
        if self.severity is not None and alert.severity is not self.severity:
            return False
        if self.rule_id is not None and alert.rule_id != self.rule_id:
            return False
        return True
