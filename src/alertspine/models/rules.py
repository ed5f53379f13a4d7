"""Rule, escalation and channel definitions.

These are owned by the configuration layer and treated as read-only by the
engine. Validation lives in :mod:`alertspine.config.validation`; the
dataclasses here only describe shape and serialisation.
"""

from __future__ import annotations

import operator as _op
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from alertspine.models._serde import parse_dt, format_dt


class Operator(str, Enum):
    """Comparison applied between the aggregated value and the threshold."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"

    def compare(self, value: float, threshold: float) -> bool:
        return _COMPARATORS[self](value, threshold)

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_COMPARATORS: dict[Operator, Callable[[float, float], bool]] = {
    Operator.GT: _op.gt,
    Operator.GTE: _op.ge,
    Operator.LT: _op.lt,
    Operator.LTE: _op.le,
    Operator.EQ: _op.eq,
    Operator.NEQ: _op.ne,
}

_SYMBOLS = {
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
    Operator.EQ: "==",
    Operator.NEQ: "!=",
}


class Aggregation(str, Enum):
    AVG = "avg"
    MAX = "max"
    MIN = "min"
    SUM = "sum"
    COUNT = "count"


class Severity(str, Enum):
    """Alert severity, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other: Severity) -> bool:
        return self.rank < other.rank

    def __le__(self, other: Severity) -> bool:
        return self.rank <= other.rank

    def __gt__(self, other: Severity) -> bool:
        return self.rank > other.rank

    def __ge__(self, other: Severity) -> bool:
        return self.rank >= other.rank


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ChannelType(str, Enum):
    EMAIL = "email"
    DISCORD = "discord"
    SLACK = "slack"
    WEBHOOK = "webhook"
    SMS = "sms"
    PUSH = "push"


@dataclass(frozen=True)
class RetryPolicy:
    """Per-channel retry settings.

    ``max_retries`` does not count the original send; a backoff multiplier
    of 1 means a constant delay.
    """

    max_retries: int = 3
    retry_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "backoff_multiplier": self.backoff_multiplier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryPolicy:
        return cls(
            max_retries=int(data.get("max_retries", 3)),
            retry_delay=float(data.get("retry_delay", 30.0)),
            backoff_multiplier=float(data.get("backoff_multiplier", 2.0)),
        )


@dataclass(frozen=True)
class NotificationChannel:
    """A delivery target (Slack webhook, SMTP recipients, SMS gateway...)."""

    id: str
    type: ChannelType
    name: str = ""
    enabled: bool = True
    config: dict[str, Any] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "enabled": self.enabled,
            "config": dict(self.config),
            "retry_policy": self.retry_policy.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationChannel:
        return cls(
            id=data["id"],
            type=ChannelType(data["type"]),
            name=data.get("name", ""),
            enabled=bool(data.get("enabled", True)),
            config=dict(data.get("config") or {}),
            retry_policy=RetryPolicy.from_dict(data.get("retry_policy") or {}),
        )


@dataclass(frozen=True)
class AlertCondition:
    operator: Operator
    aggregation: Aggregation
    time_window: float
    group_by: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "operator": self.operator.value,
            "aggregation": self.aggregation.value,
            "time_window": self.time_window,
            "group_by": list(self.group_by),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertCondition:
        return cls(
            operator=Operator(data["operator"]),
            aggregation=Aggregation(data["aggregation"]),
            time_window=float(data["time_window"]),
            group_by=tuple(data.get("group_by") or ()),
        )


@dataclass(frozen=True)
class EscalationLevel:
    """One step of an escalation policy.

    ``required_acknowledgments`` is advisory for the humans involved; the
    engine only tracks a single acknowledge transition.
    """

    level: int
    channel_ids: tuple[str, ...] = ()
    users: tuple[str, ...] = ()
    required_acknowledgments: int = 1
    timeout: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "channel_ids": list(self.channel_ids),
            "users": list(self.users),
            "required_acknowledgments": self.required_acknowledgments,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EscalationLevel:
        timeout = data.get("timeout")
        return cls(
            level=int(data["level"]),
            channel_ids=tuple(data.get("channel_ids") or ()),
            users=tuple(data.get("users") or ()),
            required_acknowledgments=int(data.get("required_acknowledgments", 1)),
            timeout=None if timeout is None else float(timeout),
        )


@dataclass(frozen=True)
class EscalationPolicy:
    """Ordered escalation levels for a rule.

    ``max_escalations`` caps how many levels fire; None means all of them
    and 0 disables escalation.
    """

    enabled: bool = True
    levels: tuple[EscalationLevel, ...] = ()
    max_escalations: int | None = None
    escalation_interval: float = 900.0

    def timeout_for(self, level: EscalationLevel) -> float:
        """Seconds to wait before *level* fires; per-level timeout wins."""
        if level.timeout is not None:
            return level.timeout
        return self.escalation_interval

    def level_at(self, index: int) -> EscalationLevel | None:
        """Return the level at 1-based position *index*, if any."""
        if 1 <= index <= len(self.levels):
            return self.levels[index - 1]
        return None

    @property
    def reachable_levels(self) -> int:
        """How many levels can actually fire."""
        if not self.enabled:
            return 0
        if self.max_escalations is None:
            return len(self.levels)
        return min(self.max_escalations, len(self.levels))

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "levels": [level.to_dict() for level in self.levels],
            "max_escalations": self.max_escalations,
            "escalation_interval": self.escalation_interval,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EscalationPolicy:
        return cls(
            enabled=bool(data.get("enabled", True)),
            levels=tuple(EscalationLevel.from_dict(lv) for lv in data.get("levels") or ()),
            max_escalations=(
                None if data.get("max_escalations") is None else int(data["max_escalations"])
            ),
            escalation_interval=float(data.get("escalation_interval", 900.0)),
        )


@dataclass(frozen=True)
class AlertRule:
    """A per-server monitoring policy."""

    id: str
    server_id: str
    metric: str
    condition: AlertCondition
    threshold: float
    severity: Severity = Severity.MEDIUM
    name: str = ""
    description: str = ""
    enabled: bool = True
    duration: float = 0.0
    cooldown: float = 0.0
    channel_ids: tuple[str, ...] = ()
    escalation: EscalationPolicy | None = None
    tags: tuple[str, ...] = ()
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted: bool = False

    @property
    def display_name(self) -> str:
        return self.name or f"{self.metric} {self.condition.operator.symbol} {self.threshold:g}"

    def with_changes(self, **changes: Any) -> AlertRule:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "server_id": self.server_id,
            "metric": self.metric,
            "condition": self.condition.to_dict(),
            "threshold": self.threshold,
            "severity": self.severity.value,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "duration": self.duration,
            "cooldown": self.cooldown,
            "channel_ids": list(self.channel_ids),
            "escalation": self.escalation.to_dict() if self.escalation else None,
            "tags": list(self.tags),
            "created_by": self.created_by,
            "created_at": format_dt(self.created_at),
            "updated_at": format_dt(self.updated_at),
            "deleted": self.deleted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertRule:
        escalation = data.get("escalation")
        return cls(
            id=data["id"],
            server_id=data["server_id"],
            metric=data["metric"],
            condition=AlertCondition.from_dict(data["condition"]),
            threshold=float(data["threshold"]),
            severity=Severity(data.get("severity", Severity.MEDIUM.value)),
            name=data.get("name", ""),
            description=data.get("description", ""),
            enabled=bool(data.get("enabled", True)),
            duration=float(data.get("duration", 0.0)),
            cooldown=float(data.get("cooldown", 0.0)),
            channel_ids=tuple(data.get("channel_ids") or ()),
            escalation=EscalationPolicy.from_dict(escalation) if escalation else None,
            tags=tuple(data.get("tags") or ()),
            created_by=data.get("created_by", ""),
            created_at=parse_dt(data.get("created_at")),
            updated_at=parse_dt(data.get("updated_at")),
            deleted=bool(data.get("deleted", False)),
        )
