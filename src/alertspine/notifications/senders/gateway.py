"""SMS and push senders.

Both go through an HTTP gateway (Twilio-style SMS relay, FCM-style push
relay) configured per channel; the gateway owns provider specifics.
"""

from __future__ import annotations

from alertspine.core.errors import ConfigurationError
from alertspine.models import ChannelType, NotificationChannel
from alertspine.notifications.base import BaseSender
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent


def _auth_headers(channel: NotificationChannel) -> dict[str, str]:
    api_key = channel.config.get("api_key")
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}


class SmsSender(BaseSender):
    """
    Config:
        gateway_url: relay endpoint (required)
        numbers: destination phone numbers (required)
        api_key: bearer token for the relay
    """

    channel_type = ChannelType.SMS

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            url = self.require(channel, "gateway_url")
            numbers = list(self.require(channel, "numbers"))
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)
        # SMS bodies are kept to the subject line
        payload = {"to": numbers, "body": event.subject[:160]}
        return self.post_json(channel, url, payload, headers=_auth_headers(channel))


class PushSender(BaseSender):
    """
    Config:
        gateway_url: relay endpoint (required)
        tokens or topic: device tokens, or a topic name
        api_key: bearer token for the relay
    """

    channel_type = ChannelType.PUSH

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            url = self.require(channel, "gateway_url")
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)
        tokens = channel.config.get("tokens") or []
        topic = channel.config.get("topic")
        if not tokens and not topic:
            return DeliveryResult.fail(
                channel.id,
                ConfigurationError(
                    f"push channel {channel.id} needs 'tokens' or 'topic'", field_name="tokens"
                ),
            )
        payload = {
            "title": event.subject,
            "body": event.message,
            "tokens": list(tokens),
            "topic": topic,
            "data": {"alert_id": event.alert.id, "kind": event.kind.value},
        }
        return self.post_json(channel, url, payload, headers=_auth_headers(channel))
