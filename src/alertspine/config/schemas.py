"""Pydantic models for rule and channel definition files.

Usage::

    from alertspine.config.schemas import DefinitionsSpec

    parsed = DefinitionsSpec.model_validate(yaml_data)
    channels = [c.to_channel() for c in parsed.channels]
    rules = [r.to_rule() for r in parsed.rules]

Example YAML::

    apiVersion: alertspine/v1
    kind: AlertDefinitions
    channels:
      - id: ops-slack
        type: slack
        config:
          webhook_url: https://hooks.slack.com/services/XXX
        retry_policy:
          max_retries: 2
          retry_delay: 10
          backoff_multiplier: 2
    rules:
      - id: cpu-high
        server_id: srv-1
        metric: cpu_usage
        condition: {operator: gte, aggregation: avg, time_window: 300}
        threshold: 90
        severity: high
        duration: 900
        cooldown: 1800
        channel_ids: [ops-slack]
        escalation:
          max_escalations: 2
          levels:
            - {level: 1, channel_ids: [ops-slack], timeout: 900}
            - {level: 2, users: [oncall-lead], timeout: 1800}
"""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from alertspine.core.errors import ConfigurationError
from alertspine.models import (
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

M = TypeVar("M", bound=BaseModel)


class RetryPolicySpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=30.0, ge=0, description="Seconds before the first retry")
    backoff_multiplier: float = Field(default=2.0, ge=1)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            backoff_multiplier=self.backoff_multiplier,
        )


class ChannelSpec(BaseModel):
    """Notification channel definition."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    type: ChannelType
    name: str = ""
    enabled: bool = True
    config: dict[str, Any] = Field(default_factory=dict, description="Type-specific settings")
    retry_policy: RetryPolicySpec = Field(default_factory=RetryPolicySpec)

    def to_channel(self) -> NotificationChannel:
        return NotificationChannel(
            id=self.id,
            type=self.type,
            name=self.name,
            enabled=self.enabled,
            config=dict(self.config),
            retry_policy=self.retry_policy.to_policy(),
        )


class ConditionSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operator: Operator
    aggregation: Aggregation = Aggregation.AVG
    time_window: float = Field(..., gt=0, description="Window length in seconds")
    group_by: list[str] = Field(default_factory=list)

    def to_condition(self) -> AlertCondition:
        return AlertCondition(
            operator=self.operator,
            aggregation=self.aggregation,
            time_window=self.time_window,
            group_by=tuple(self.group_by),
        )


class EscalationLevelSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: int = Field(..., ge=1)
    channel_ids: list[str] = Field(default_factory=list)
    users: list[str] = Field(default_factory=list)
    required_acknowledgments: int = Field(default=1, ge=1)
    timeout: float | None = Field(default=None, ge=0)

    def to_level(self) -> EscalationLevel:
        return EscalationLevel(
            level=self.level,
            channel_ids=tuple(self.channel_ids),
            users=tuple(self.users),
            required_acknowledgments=self.required_acknowledgments,
            timeout=self.timeout,
        )


class EscalationPolicySpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    levels: list[EscalationLevelSpec] = Field(default_factory=list)
    max_escalations: int | None = Field(
        default=None, ge=0, description="Defaults to the number of levels"
    )
    escalation_interval: float = Field(default=900.0, ge=0)

    def to_policy(self) -> EscalationPolicy:
        max_escalations = self.max_escalations
        if max_escalations is None:
            max_escalations = len(self.levels)
        return EscalationPolicy(
            enabled=self.enabled,
            levels=tuple(level.to_level() for level in self.levels),
            max_escalations=max_escalations,
            escalation_interval=self.escalation_interval,
        )


class RuleSpec(BaseModel):
    """Alert rule definition."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    server_id: str = Field(..., min_length=1)
    metric: str = Field(..., min_length=1)
    condition: ConditionSpec
    threshold: float = Field(..., allow_inf_nan=False)
    severity: Severity = Severity.MEDIUM
    name: str = ""
    description: str = ""
    enabled: bool = True
    duration: float = Field(default=0.0, ge=0)
    cooldown: float = Field(default=0.0, ge=0)
    channel_ids: list[str] = Field(default_factory=list)
    escalation: EscalationPolicySpec | None = None
    tags: list[str] = Field(default_factory=list)
    created_by: str = ""

    def to_rule(self) -> AlertRule:
        return AlertRule(
            id=self.id,
            server_id=self.server_id,
            metric=self.metric,
            condition=self.condition.to_condition(),
            threshold=self.threshold,
            severity=self.severity,
            name=self.name,
            description=self.description,
            enabled=self.enabled,
            duration=self.duration,
            cooldown=self.cooldown,
            channel_ids=tuple(self.channel_ids),
            escalation=self.escalation.to_policy() if self.escalation else None,
            tags=tuple(self.tags),
            created_by=self.created_by,
        )


class DefinitionsSpec(BaseModel):
    """Root model of a definitions file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    api_version: Literal["alertspine/v1"] = Field(default="alertspine/v1", alias="apiVersion")
    kind: Literal["AlertDefinitions"] = "AlertDefinitions"
    channels: list[ChannelSpec] = Field(default_factory=list)
    rules: list[RuleSpec] = Field(default_factory=list)

    @field_validator("channels", "rules")
    @classmethod
    def validate_unique_ids(cls, v: list[Any]) -> list[Any]:
        ids = [item.id for item in v]
        duplicates = sorted({item_id for item_id in ids if ids.count(item_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate ids: {', '.join(duplicates)}")
        return v


def parse_model(model: type[M], data: Any) -> M:
    """Validate *data* against *model*, raising ConfigurationError on failure."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(
            f"Invalid {model.__name__}: {location}: {first['msg']}",
            field_name=location or None,
            cause=e,
        ) from e
