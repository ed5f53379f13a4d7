"""Notification delivery: senders, registry, retry and dispatch."""

from alertspine.notifications.base import BaseSender
from alertspine.notifications.dispatcher import NotificationDispatcher, retry_key
from alertspine.notifications.protocol import (
    ChannelSender,
    DeliveryResult,
    DispatchResult,
    EventDispatch,
    NotificationEvent,
)
from alertspine.notifications.registry import SenderRegistry, default_registry

__all__ = [
    "BaseSender",
    "ChannelSender",
    "DeliveryResult",
    "DispatchResult",
    "EventDispatch",
    "NotificationDispatcher",
    "NotificationEvent",
    "SenderRegistry",
    "default_registry",
    "retry_key",
]
