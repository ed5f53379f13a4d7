"""Discord webhook sender."""

from __future__ import annotations

from typing import Any

from alertspine.core.errors import ConfigurationError
from alertspine.models import ChannelType, NotificationChannel
from alertspine.notifications.base import SEVERITY_COLORS, BaseSender
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent


class DiscordSender(BaseSender):
    channel_type = ChannelType.DISCORD

    def build_payload(self, channel: NotificationChannel, event: NotificationEvent) -> dict[str, Any]:
        alert = event.alert
        color = int(SEVERITY_COLORS.get(alert.severity, "#808080").lstrip("#"), 16)
        embed = {
            "title": event.subject,
            "description": event.message,
            "color": color,
            "timestamp": alert.triggered_at.isoformat(),
            "fields": [
                {"name": "Server", "value": alert.server_id, "inline": True},
                {"name": "Metric", "value": alert.metric, "inline": True},
                {"name": "Value", "value": f"{alert.current_value:g}", "inline": True},
            ],
        }
        return {
            "username": channel.config.get("username", "alertspine"),
            "embeds": [embed],
        }

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            url = self.require(channel, "webhook_url")
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)
        return self.post_json(channel, url, self.build_payload(channel, event))
