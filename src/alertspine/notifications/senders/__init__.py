"""Sender implementations, one module per delivery target."""

from alertspine.notifications.senders.discord import DiscordSender
from alertspine.notifications.senders.email import EmailSender
from alertspine.notifications.senders.gateway import PushSender, SmsSender
from alertspine.notifications.senders.slack import SlackSender
from alertspine.notifications.senders.webhook import WebhookSender

__all__ = [
    "DiscordSender",
    "EmailSender",
    "PushSender",
    "SlackSender",
    "SmsSender",
    "WebhookSender",
]
