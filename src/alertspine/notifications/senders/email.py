"""Email (SMTP) sender."""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from alertspine.core.errors import ChannelDeliveryFailure, ConfigurationError, ErrorContext
from alertspine.models import ChannelType, NotificationChannel
from alertspine.notifications.base import BaseSender
from alertspine.notifications.protocol import DeliveryResult, NotificationEvent


class EmailSender(BaseSender):
    """
    Email sender using SMTP.

    Config:
        smtp_host, from_address, recipients (required)
        smtp_port (587), smtp_user, smtp_password, use_tls (True)
    """

    channel_type = ChannelType.EMAIL

    def build_message(self, channel: NotificationChannel, event: NotificationEvent) -> str:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = event.subject
        msg["From"] = channel.config["from_address"]
        msg["To"] = ", ".join(channel.config["recipients"])
        msg.attach(MIMEText(event.message, "plain"))
        return msg.as_string()

    def send(self, channel: NotificationChannel, event: NotificationEvent) -> DeliveryResult:
        try:
            host = self.require(channel, "smtp_host")
            sender = self.require(channel, "from_address")
            recipients = list(self.require(channel, "recipients"))
        except ConfigurationError as e:
            return DeliveryResult.fail(channel.id, e)

        config = channel.config
        try:
            with smtplib.SMTP(host, int(config.get("smtp_port", 587)), timeout=self.timeout) as server:
                if config.get("use_tls", True):
                    server.starttls()
                if config.get("smtp_user") and config.get("smtp_password"):
                    server.login(config["smtp_user"], config["smtp_password"])
                server.sendmail(sender, recipients, self.build_message(channel, event))
            return DeliveryResult.ok(channel.id, message=f"sent to {len(recipients)} recipient(s)")

        except (smtplib.SMTPException, OSError) as e:
            return DeliveryResult.fail(
                channel.id,
                ChannelDeliveryFailure(str(e), context=ErrorContext(channel_id=channel.id), cause=e),
            )
