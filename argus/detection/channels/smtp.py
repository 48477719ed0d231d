"""
SMTP email channel (ChannelType.EMAIL).

Handles:
  - SMTP connection with optional STARTTLS
  - Plaintext + HTML alternative bodies
  - Credential resolution (env vars > settings)

smtplib is blocking, so delivery runs in a worker thread.
"""

import asyncio
import html
import os
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import List, Optional

import structlog

from argus.detection.channels.base import NotificationPayload
from argus.errors import DispatchError
from argus.models.channels import NotificationChannel

logger = structlog.get_logger(__name__)


SMTP_USERNAME_ENV = "ARGUS_SMTP_USERNAME"
SMTP_PASSWORD_ENV = "ARGUS_SMTP_PASSWORD"


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: ARGUS_SMTP_USERNAME, ARGUS_SMTP_PASSWORD
      2. Constructor arguments (from settings)

    Attributes:
        smtp_host: SMTP server host.
        smtp_port: SMTP server port.
        from_address: Sender address.
        from_name: Sender display name.
        use_tls: Whether to STARTTLS after connecting.
        timeout_seconds: SMTP socket timeout.
    """

    def __init__(
        self,
        smtp_host: str = "localhost",
        smtp_port: int = 587,
        from_address: str = "argus@localhost",
        from_name: str = "Argus Alerts",
        use_tls: bool = True,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_seconds: float = 30,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.from_address = from_address
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

        # Env vars take priority
        self.username = os.environ.get(SMTP_USERNAME_ENV, username or "")
        self.password = os.environ.get(SMTP_PASSWORD_ENV, password or "")

    def build_message(self, recipients: List[str], payload: NotificationPayload) -> MIMEMultipart:
        """
        Build the MIME message for a payload.

        Args:
            recipients: Destination addresses.
            payload: Rendered alert.

        Returns:
            MIMEMultipart: Message with plaintext and HTML parts.
        """
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"Argus: {payload.title}"
        msg["Date"] = formatdate(localtime=True)

        text = f"{payload.title}\n\n{payload.message}\n\nAlert ID: {payload.alert_id}"
        body_html = (
            "<div style=\"font-family: system-ui, sans-serif;\">"
            f"<h3>{html.escape(payload.title)}</h3>"
            f"<p>{html.escape(payload.message)}</p>"
            f"<p style=\"color: #888;\">Alert ID: {html.escape(payload.alert_id)}</p>"
            "</div>"
        )
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(body_html, "html", "utf-8"))
        return msg

    def _send_sync(self, recipients: List[str], msg: MIMEMultipart) -> None:
        """Blocking SMTP delivery."""
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds) as server:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg, to_addrs=recipients)

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        """
        Email a payload to the channel's recipients.

        Args:
            channel: Email channel.
            payload: Rendered alert.

        Raises:
            DispatchError: If the SMTP exchange fails.
        """
        recipients = channel.recipients
        if not recipients:
            raise DispatchError(channel.id, "email channel has no recipients")

        msg = self.build_message(recipients, payload)
        try:
            await asyncio.to_thread(self._send_sync, recipients, msg)
        except smtplib.SMTPAuthenticationError as e:
            raise DispatchError(channel.id, "SMTP authentication failed") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise DispatchError(channel.id, f"recipients refused: {', '.join(recipients)}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(channel.id, f"SMTP delivery failed: {e}") from e

        logger.info(
            "email_sent",
            channel_id=channel.id,
            alert_id=payload.alert_id,
            recipients=len(recipients),
        )

    async def close(self) -> None:
        """Nothing to release; SMTP connections are per message."""
