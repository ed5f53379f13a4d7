"""Domain dataclasses for rules, alerts and notifications."""

from alertspine.models.alerts import (
    OPEN_STATUSES,
    Alert,
    AlertFilter,
    AlertNotification,
    AlertStatus,
    BreachDecision,
    DecisionState,
    EventKind,
    MetricSample,
    NotificationStatus,
)
from alertspine.models.rules import (
    Aggregation,
    AlertCondition,
    AlertRule,
    ChannelType,
    EscalationLevel,
    EscalationPolicy,
    NotificationChannel,
    Operator,
    RetryPolicy,
    Severity,
)

__all__ = [
    "OPEN_STATUSES",
    "Alert",
    "AlertFilter",
    "AlertNotification",
    "AlertStatus",
    "BreachDecision",
    "DecisionState",
    "EventKind",
    "MetricSample",
    "NotificationStatus",
    "Aggregation",
    "AlertCondition",
    "AlertRule",
    "ChannelType",
    "EscalationLevel",
    "EscalationPolicy",
    "NotificationChannel",
    "Operator",
    "RetryPolicy",
    "Severity",
]
