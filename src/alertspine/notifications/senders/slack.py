"""Slack incoming-webhook sender."""

from __future__ import annotations

from typing import Any

from alertspine.core.errors import ConfigurationError
from alertspine.models import ChannelType, EventKind, NotificationChannel, Severity
from alertspine.notifications.base import SEVERITY_COLORS, BaseSender
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent

_SEVERITY_EMOJI = {
    Severity.LOW: ":information_source:",
    Severity.MEDIUM: ":warning:",
    Severity.HIGH: ":x:",
    Severity.CRITICAL: ":rotating_light:",
}


class SlackSender(BaseSender):
    """
    Slack webhook sender.

    Config:
        webhook_url: incoming webhook URL (required)
        channel: override the webhook's default channel
        username: bot display name
    """

    channel_type = ChannelType.SLACK

    def build_payload(self, channel: NotificationChannel, event: NotificationEvent) -> dict[str, Any]:
        alert = event.alert
        fields = [
            {"title": "Server", "value": alert.server_id, "short": True},
            {"title": "Severity", "value": alert.severity.value, "short": True},
            {"title": "Value", "value": f"{alert.current_value:g}", "short": True},
            {"title": "Threshold", "value": f"{alert.threshold:g}", "short": True},
        ]
        if event.kind is EventKind.ESCALATED:
            fields.append({"title": "Escalation", "value": str(event.escalation_level), "short": True})
        if event.users:
            fields.append({"title": "On call", "value": ", ".join(event.users), "short": False})

        attachment = {
            "color": SEVERITY_COLORS.get(alert.severity, "#808080"),
            "title": f"{_SEVERITY_EMOJI.get(alert.severity, '')} {event.subject}",
            "text": alert.description,
            "fields": fields,
            "ts": int(alert.triggered_at.timestamp()),
        }

        payload: dict[str, Any] = {
            "username": channel.config.get("username", "alertspine"),
            "icon_emoji": channel.config.get("icon_emoji", ":warning:"),
            "attachments": [attachment],
        }
        if channel.config.get("channel"):
            payload["channel"] = channel.config["channel"]
        return payload

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            url = self.require(channel, "webhook_url")
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)
        return self.post_json(channel, url, self.build_payload(channel, event))
