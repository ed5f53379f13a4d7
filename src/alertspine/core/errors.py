"""
Structured error types for the alert engine.

Every error raised by the engine derives from :class:`AlertSpineError` and
carries a category, a retry flag, optional context and the chained cause.
Callers can decide what to do with a failure (retry, reject, log) without
string-matching messages.

Architecture:
    ::

        AlertSpineError  (category, retryable, context, cause)
        ├── InvalidTransitionError   TRANSITION  never retryable
        ├── ChannelDeliveryFailure   DELIVERY    retryable
        ├── ConfigurationError       CONFIG      never retryable
        ├── InvalidSampleError       VALIDATION
        ├── NotFoundError            NOT_FOUND
        │   ├── AlertNotFoundError
        │   ├── RuleNotFoundError
        │   └── ChannelNotFoundError
        └── LockTimeoutError         CONCURRENCY retryable

Telemetry gaps are not errors: the evaluator reports them as a
``no_data`` decision.

Usage:
    from alertspine.core.errors import InvalidTransitionError

    try:
        machine.acknowledge(alert_id, by="ops")
    except InvalidTransitionError as exc:
        log.info("ack_rejected", **exc.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for routing and HTTP mapping."""

    TRANSITION = "TRANSITION"
    DELIVERY = "DELIVERY"
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONCURRENCY = "CONCURRENCY"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error."""

    alert_id: str | None = None
    rule_id: str | None = None
    server_id: str | None = None
    channel_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in ("alert_id", "rule_id", "server_id", "channel_id"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


class AlertSpineError(Exception):
    """
    Base class for all engine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AlertSpineError:
        """Attach context fields and return self for chaining."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "extra":
                setattr(self.context, key, value)
            else:
                self.context.extra[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logs and API problem responses."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class InvalidTransitionError(AlertSpineError):
    """A lifecycle transition that is not valid from the alert's status."""

    default_category = ErrorCategory.TRANSITION
    code = "INVALID_TRANSITION"

    def __init__(self, alert_id: str, current: str, action: str):
        super().__init__(
            f"Cannot {action} alert {alert_id} in status {current}",
            context=ErrorContext(alert_id=alert_id, extra={"status": current, "action": action}),
        )
        self.alert_id = alert_id
        self.current = current
        self.action = action


class ChannelDeliveryFailure(AlertSpineError):
    """A single delivery attempt to a channel failed."""

    default_category = ErrorCategory.DELIVERY
    default_retryable = True
    code = "DELIVERY_FAILED"


class ConfigurationError(AlertSpineError):
    """A rule, policy or channel definition is malformed."""

    default_category = ErrorCategory.CONFIG
    code = "CONFIGURATION"

    def __init__(self, message: str, *, field_name: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field_name = field_name
        if field_name:
            self.context.extra["field"] = field_name


class InvalidSampleError(AlertSpineError):
    """A metric sample is unusable: non-finite, or for another metric or server."""

    default_category = ErrorCategory.VALIDATION
    code = "INVALID_SAMPLE"


class NotFoundError(AlertSpineError):
    default_category = ErrorCategory.NOT_FOUND
    code = "NOT_FOUND"


class AlertNotFoundError(NotFoundError):
    def __init__(self, alert_id: str):
        super().__init__(f"Alert not found: {alert_id}", context=ErrorContext(alert_id=alert_id))


class RuleNotFoundError(NotFoundError):
    def __init__(self, rule_id: str):
        super().__init__(f"Rule not found: {rule_id}", context=ErrorContext(rule_id=rule_id))


class ChannelNotFoundError(NotFoundError):
    def __init__(self, channel_id: str):
        super().__init__(
            f"Channel not found: {channel_id}", context=ErrorContext(channel_id=channel_id)
        )


class LockTimeoutError(AlertSpineError):
    """A keyed lock could not be acquired within its timeout."""

    default_category = ErrorCategory.CONCURRENCY
    default_retryable = True
    code = "LOCK_TIMEOUT"

    def __init__(self, key: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout}s waiting for lock {key}",
            context=ErrorContext(extra={"lock_key": key, "timeout": timeout}),
        )
        self.key = key
        self.timeout = timeout


def is_retryable(error: BaseException) -> bool:
    """Return True when *error* is an engine error flagged as retryable."""
    if isinstance(error, AlertSpineError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AlertSpineError",
    "InvalidTransitionError",
    "ChannelDeliveryFailure",
    "ConfigurationError",
    "InvalidSampleError",
    "NotFoundError",
    "AlertNotFoundError",
    "RuleNotFoundError",
    "ChannelNotFoundError",
    "LockTimeoutError",
    "is_retryable",
]
