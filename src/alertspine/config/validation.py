"""Semantic validation of rule and channel definitions.

Shape and type checks happen in the pydantic schemas; the checks here are
the cross-field rules that every definition must satisfy no matter how it
was built (YAML, API or Python). Failures raise
:class:`~alertspine.core.errors.ConfigurationError` naming the field.
"""

from __future__ import annotations

import math
from collections.abc import Collection

from alertspine.core.errors import ConfigurationError, ErrorContext
from alertspine.models import AlertRule, EscalationPolicy, NotificationChannel, RetryPolicy


def _fail(message: str, field_name: str, **context: str) -> ConfigurationError:
    return ConfigurationError(message, field_name=field_name, context=ErrorContext(**context))


def validate_retry_policy(policy: RetryPolicy, channel_id: str = "") -> None:
    if policy.max_retries < 0:
        raise _fail("max_retries must be >= 0", "retry_policy.max_retries", channel_id=channel_id)
    if policy.retry_delay < 0:
        raise _fail("retry_delay must be >= 0", "retry_policy.retry_delay", channel_id=channel_id)
    if policy.backoff_multiplier < 1:
        raise _fail(
            "backoff_multiplier must be >= 1",
            "retry_policy.backoff_multiplier",
            channel_id=channel_id,
        )


def validate_channel(channel: NotificationChannel) -> None:
    if not channel.id:
        raise _fail("channel id is required", "id")
    validate_retry_policy(channel.retry_policy, channel.id)


def validate_escalation(policy: EscalationPolicy, rule_id: str = "") -> None:
    previous = 0
    for step in policy.levels:
        if step.level <= previous:
            raise _fail(
                f"escalation levels must be strictly increasing (level {step.level} "
                f"after {previous})",
                "escalation.levels",
                rule_id=rule_id,
            )
        previous = step.level
        if step.required_acknowledgments < 1:
            raise _fail(
                "required_acknowledgments must be >= 1",
                "escalation.levels.required_acknowledgments",
                rule_id=rule_id,
            )
        if step.timeout is not None and step.timeout < 0:
            raise _fail("level timeout must be >= 0", "escalation.levels.timeout", rule_id=rule_id)

    limit = policy.max_escalations
    if limit is not None and limit < 0:
        raise _fail("max_escalations must be >= 0", "escalation.max_escalations", rule_id=rule_id)
    if limit is not None and limit > len(policy.levels):
        raise _fail(
            f"max_escalations ({policy.max_escalations}) exceeds the number of levels "
            f"({len(policy.levels)})",
            "escalation.max_escalations",
            rule_id=rule_id,
        )
    if policy.escalation_interval < 0:
        raise _fail(
            "escalation_interval must be >= 0", "escalation.escalation_interval", rule_id=rule_id
        )


def validate_rule(rule: AlertRule, known_channels: Collection[str] | None = None) -> None:
    """Check *rule*; with *known_channels*, also check every channel reference."""
    if not rule.id:
        raise _fail("rule id is required", "id")
    if not rule.server_id:
        raise _fail("server_id is required", "server_id", rule_id=rule.id)
    if not rule.metric:
        raise _fail("metric is required", "metric", rule_id=rule.id)
    if not math.isfinite(rule.threshold):
        raise _fail("threshold must be finite", "threshold", rule_id=rule.id)
    if rule.threshold < 0:
        raise _fail("threshold must not be negative", "threshold", rule_id=rule.id)
    if not rule.condition.time_window > 0:
        raise _fail("time_window must be > 0", "condition.time_window", rule_id=rule.id)
    if rule.duration < 0:
        raise _fail("duration must be >= 0", "duration", rule_id=rule.id)
    if rule.cooldown < 0:
        raise _fail("cooldown must be >= 0", "cooldown", rule_id=rule.id)
    if rule.escalation is not None:
        validate_escalation(rule.escalation, rule.id)

    if known_channels is None:
        return
    referenced = list(rule.channel_ids)
    if rule.escalation is not None:
        for step in rule.escalation.levels:
            referenced.extend(step.channel_ids)
    unknown = sorted(set(referenced) - set(known_channels))
    if unknown:
        raise _fail(
            f"rule {rule.id} references unknown channel(s): {', '.join(unknown)}",
            "channel_ids",
            rule_id=rule.id,
        )
