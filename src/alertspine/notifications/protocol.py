"""
Notification protocol and data classes.

Defines the sender contract and the result types returned by the
dispatcher. Concrete senders live in ``senders/``; the registry maps
channel types to senders.

    NotificationEvent   what happened (alert snapshot + kind + level)
    DeliveryResult      outcome of ONE sender call
    DispatchResult      outcome of one channel for one event, across retries
    EventDispatch       all channels for one event
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from alertspine.models import Alert, ChannelType, EventKind, NotificationChannel


@dataclass(frozen=True)
class NotificationEvent:
    """A notification-worthy moment in an alert's life."""

    alert: Alert
    kind: EventKind
    escalation_level: int = 0
    users: tuple[str, ...] = ()
    rule_name: str = ""

    @property
    def subject(self) -> str:
        prefix = f"[{self.alert.severity.value.upper()}]"
        match self.kind:
            case EventKind.ESCALATED:
                return f"{prefix} Escalation level {self.escalation_level}: {self.alert.title}"
            case EventKind.REMINDER:
                return f"{prefix} Still firing: {self.alert.title}"
        return f"{prefix} {self.alert.title}"

    @property
    def message(self) -> str:
        alert = self.alert
        lines = [
            alert.description or alert.title,
            f"Server: {alert.server_id}",
            f"Metric: {alert.metric} = {alert.current_value:g} (threshold {alert.threshold:g})",
            f"Triggered: {alert.triggered_at.isoformat()}",
        ]
        if self.users:
            lines.append(f"Notify: {', '.join(self.users)}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "escalation_level": self.escalation_level,
            "users": list(self.users),
            "rule_name": self.rule_name,
            "subject": self.subject,
            "message": self.message,
            "alert": self.alert.to_dict(),
        }


@dataclass
class DeliveryResult:
    """Result of a single sender call."""

    channel_id: str
    success: bool
    message: str | None = None
    response: dict[str, Any] | None = None
    error: Exception | None = None

    @classmethod
    def ok(cls, channel_id: str, message: str | None = None, **kwargs: Any) -> DeliveryResult:
        return cls(channel_id=channel_id, success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, channel_id: str, error: Exception) -> DeliveryResult:
        return cls(channel_id=channel_id, success=False, error=error, message=str(error))


@runtime_checkable
class ChannelSender(Protocol):
    """
    Protocol for channel senders.

    A sender is stateless with respect to channels: the channel's
    ``config`` carries the destination (URL, recipients, numbers...).
    """

    @property
    def channel_type(self) -> ChannelType: ...

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult: ...


class DispatchResult:
    """Delivery state of one channel for one event.

    Completes when an attempt succeeds, when retries are exhausted, or
    immediately for a skipped (disabled) channel. Retries are timer
    driven, so completion may happen several engine ticks after the
    original send.
    """

    def __init__(
        self,
        channel_id: str,
        channel_type: ChannelType,
        on_done: Callable[[DispatchResult], None] | None = None,
    ) -> None:
        self.channel_id = channel_id
        self.channel_type = channel_type
        self.attempts = 0
        self.delivered: bool | None = None
        self.skipped = False
        self.last_error: str | None = None
        self.completed_at: datetime | None = None
        self._on_done = on_done
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def mark_skipped(self) -> None:
        self.skipped = True
        self._finish()

    def complete(self, delivered: bool, at: datetime, error: str | None = None) -> None:
        self.delivered = delivered
        self.completed_at = at
        self.last_error = error
        self._finish()

    def _finish(self) -> None:
        self._done.set()
        if self._on_done is not None:
            self._on_done(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "channel_type": self.channel_type.value,
            "attempts": self.attempts,
            "delivered": self.delivered,
            "skipped": self.skipped,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        return (
            f"DispatchResult(channel_id={self.channel_id!r}, attempts={self.attempts}, "
            f"delivered={self.delivered}, skipped={self.skipped})"
        )


@dataclass
class EventDispatch:
    """All channel results for one event.

    ``delivered`` is True as soon as any channel has succeeded.
    """

    event: NotificationEvent
    results: list[DispatchResult] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return any(result.delivered for result in self.results)

    @property
    def done(self) -> bool:
        return all(result.done for result in self.results)

    @property
    def attempted(self) -> list[DispatchResult]:
        return [result for result in self.results if not result.skipped]

    def wait(self, timeout: float | None = None) -> bool:
        return all(result.wait(timeout) for result in self.results)
