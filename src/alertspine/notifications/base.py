"""
Sender base class.

Provides common functionality for sender implementations:
- Required config lookup
- JSON POST over HTTP
- Mapping transport errors to retryable delivery failures
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Any

from alertspine.core.errors import ChannelDeliveryFailure, ConfigurationError, ErrorContext
from alertspine.models import ChannelType, NotificationChannel, Severity
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent

SEVERITY_COLORS = {
    Severity.LOW: "#36a64f",
    Severity.MEDIUM: "#daa038",
    Severity.HIGH: "#d63f3f",
    Severity.CRITICAL: "#8b0000",
}


class BaseSender(ABC):
    """Base class for channel senders."""

    channel_type: ChannelType

    def __init__(self, *, timeout: float = 10.0):
        self.timeout = timeout

    @abstractmethod
    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        """Deliver *event* to *channel*."""
        ...

    def require(self, channel: NotificationChannel, key: str) -> Any:
        """Fetch a required config value or raise ConfigurationError."""
        value = channel.config.get(key)
        if value in (None, "", []):
            raise ConfigurationError(
                f"{self.channel_type.value} channel {channel.id} is missing config '{key}'",
                field_name=key,
                context=ErrorContext(channel_id=channel.id),
            )
        return value

    def post_json(
        self,
        channel: NotificationChannel,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        try:
            req = urllib.request.Request(
                url,
                data=json.dumps(payload, default=str).encode("utf-8"),
                headers=request_headers,
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return DeliveryResult.ok(channel.id, response={"status": response.status})

        except urllib.error.HTTPError as e:
            # only server errors and throttling are retried
            retryable = e.code >= 500 or e.code == 429
            return DeliveryResult.fail(
                channel.id,
                ChannelDeliveryFailure(
                    f"HTTP {e.code} from {self.channel_type.value} endpoint",
                    retryable=retryable,
                    context=ErrorContext(channel_id=channel.id),
                    cause=e,
                ),
            )
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            return DeliveryResult.fail(
                channel.id,
                ChannelDeliveryFailure(
                    str(e), context=ErrorContext(channel_id=channel.id), cause=e
                ),
            )
