"""
Operator commands and the result envelope.

Every mutation requested by a UI, API or CLI caller is a command object
executed by :meth:`AlertEngine.execute`. The engine routes it through the
state machine under the alert lock and reports the outcome as a
:class:`CommandResult` instead of raising, so bulk requests can carry one
result per command.

Transports name actions with short verbs (``ack``, ``resolve``,
``suppress``); :func:`build_command` maps a verb to its command class.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from alertspine.core.errors import AlertSpineError, ConfigurationError


@dataclass(frozen=True, slots=True)
class AcknowledgeAlert:
    """ACTIVE → ACKNOWLEDGED."""

    alert_id: str
    by: str


@dataclass(frozen=True, slots=True)
class ResolveAlert:
    """ACTIVE | ACKNOWLEDGED → RESOLVED."""

    alert_id: str
    by: str


@dataclass(frozen=True, slots=True)
class SuppressAlert:
    """ACTIVE | ACKNOWLEDGED → SUPPRESSED.

    Attributes:
        reason: Free text stored in the alert's metadata.
    """

    alert_id: str
    by: str
    reason: str | None = None


Command = AcknowledgeAlert | ResolveAlert | SuppressAlert

ACTIONS: dict[str, type[AcknowledgeAlert] | type[ResolveAlert] | type[SuppressAlert]] = {
    "ack": AcknowledgeAlert,
    "resolve": ResolveAlert,
    "suppress": SuppressAlert,
}


def build_command(action: str, alert_id: str, by: str, reason: str | None = None) -> Command:
    """Build the command for an action verb.

    Raises:
        ConfigurationError: If ``action`` is not one of :data:`ACTIONS`.
    """
    command_type = ACTIONS.get(action)
    if command_type is None:
        raise ConfigurationError(
            f"Unknown action {action!r}; expected one of {sorted(ACTIONS)}",
            field_name="action",
        )
    if command_type is SuppressAlert:
        return SuppressAlert(alert_id=alert_id, by=by, reason=reason)
    return command_type(alert_id=alert_id, by=by)


@dataclass(frozen=True, slots=True)
class CommandFailure:
    """Why a command was rejected.

    ``code`` is the machine-readable error code of the underlying
    :class:`AlertSpineError` (``NOT_FOUND``, ``INVALID_TRANSITION``, ...).
    """

    code: str
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandResult[T]:
    """Outcome of one executed command.

    Exactly one of ``data`` (the updated alert) and ``error`` is set.
    """

    success: bool
    data: T | None = None
    error: CommandFailure | None = None
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, *, elapsed_ms: float = 0.0) -> CommandResult[T]:
        return cls(success=True, data=data, elapsed_ms=elapsed_ms)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        elapsed_ms: float = 0.0,
    ) -> CommandResult[T]:
        failure = CommandFailure(code=code, message=message, retryable=retryable, details=details or {})
        return cls(success=False, error=failure, elapsed_ms=elapsed_ms)

    @classmethod
    def from_error(cls, exc: AlertSpineError, *, elapsed_ms: float = 0.0) -> CommandResult[T]:
        return cls.fail(
            exc.code,
            exc.message,
            details=exc.context.to_dict(),
            retryable=exc.retryable,
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "elapsed_ms": round(self.elapsed_ms, 2)}
        if self.data is not None:
            payload["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            payload["error"] = {
                "code": self.error.code,
                "message": self.error.message,
                "retryable": self.error.retryable,
                "details": self.error.details,
            }
        return payload


class Stopwatch:
    """Wall-clock timer for command execution."""

    __slots__ = ("_began",)

    def __init__(self) -> None:
        self._began = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._began) * 1000
