"""
Notification channel senders.

One sender per transport; the dispatcher picks a sender by the channel's
type and passes it the channel's config.

Components:
    base: NotificationPayload, ChannelSender protocol, HttpSender base
    smtp: EmailSender (SMTP in a worker thread)
    webhook: WebhookSender (JSON POST)
    slack: SlackSender (Slack incoming webhook)

Example:
    >>> from argus.detection.channels import create_senders
    >>> senders = create_senders(config.email, http_timeout_seconds=5)
    >>> await senders[ChannelType.WEBHOOK].send(channel, payload)
"""

from typing import Dict, Optional

from argus.config.models import EmailSettings
from argus.detection.channels.base import (
    ChannelSender,
    HttpSender,
    NotificationPayload,
)
from argus.detection.channels.slack import SlackSender
from argus.detection.channels.smtp import EmailSender
from argus.detection.channels.webhook import WebhookSender
from argus.models.channels import ChannelType


def create_senders(
    email: Optional[EmailSettings] = None,
    http_timeout_seconds: float = 10,
) -> Dict[ChannelType, ChannelSender]:
    """
    Factory function to create one sender per channel type.

    Args:
        email: SMTP settings (defaults used when None).
        http_timeout_seconds: Request timeout for webhook and Slack senders.

    Returns:
        Dict[ChannelType, ChannelSender]: Senders keyed by channel type.
    """
    email = email or EmailSettings()
    return {
        ChannelType.EMAIL: EmailSender(
            smtp_host=email.smtp_host,
            smtp_port=email.smtp_port,
            from_address=email.from_address,
            from_name=email.from_name,
            use_tls=email.use_tls,
            username=email.smtp_username,
            password=email.smtp_password,
        ),
        ChannelType.WEBHOOK: WebhookSender(timeout_seconds=http_timeout_seconds),
        ChannelType.SLACK: SlackSender(timeout_seconds=http_timeout_seconds),
    }


__all__ = [
    # Base
    "ChannelSender",
    "HttpSender",
    "NotificationPayload",
    # Senders
    "EmailSender",
    "SlackSender",
    "WebhookSender",
    "create_senders",
]
