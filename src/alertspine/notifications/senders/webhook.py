"""Generic webhook sender.

POSTs the full event as JSON to ``config.url``. Extra request headers come
from ``config.headers``.
"""

from __future__ import annotations

from alertspine.core.errors import ConfigurationError
from alertspine.models import ChannelType, NotificationChannel
from alertspine.notifications.base import BaseSender
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent


class WebhookSender(BaseSender):
    channel_type = ChannelType.WEBHOOK

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            url = self.require(channel, "url")
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)
        payload = event.to_dict()
        payload["channel"] = {"id": channel.id, "name": channel.name}
        return self.post_json(channel, url, payload, headers=channel.config.get("headers"))
