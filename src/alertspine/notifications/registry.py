"""Sender registry: routes a channel to the sender for its type."""

from __future__ import annotations

from collections.abc import Iterable

from alertspine.core.errors import ConfigurationError
from alertspine.models import ChannelType
from alertspine.notifications.protocol import ChannelSender


class SenderRegistry:
    """
    Registry of channel senders keyed by :class:`ChannelType`.

    Registering a sender for a type that already has one replaces it,
    which is how tests swap in recording senders.
    """

    def __init__(self, senders: Iterable[ChannelSender] = ()):
        self._senders: dict[ChannelType, ChannelSender] = {}
        for sender in senders:
            self.register(sender)

    def register(self, sender: ChannelSender) -> None:
        self._senders[sender.channel_type] = sender

    def unregister(self, channel_type: ChannelType) -> None:
        self._senders.pop(channel_type, None)

    def get(self, channel_type: ChannelType) -> ChannelSender:
        sender = self._senders.get(channel_type)
        if sender is None:
            raise ConfigurationError(f"No sender registered for channel type {channel_type.value}")
        return sender

    def list_types(self) -> list[ChannelType]:
        return sorted(self._senders, key=lambda channel_type: channel_type.value)

    def __contains__(self, channel_type: object) -> bool:
        return channel_type in self._senders


def default_registry() -> SenderRegistry:
    """Registry with the built-in sender for every channel type."""
    from alertspine.notifications.senders import (
        DiscordSender,
        EmailSender,
        PushSender,
        SlackSender,
        SmsSender,
        WebhookSender,
    )

    return SenderRegistry(
        [
            EmailSender(),
            DiscordSender(),
            SlackSender(),
            WebhookSender(),
            SmsSender(),
            PushSender(),
        ]
    )
