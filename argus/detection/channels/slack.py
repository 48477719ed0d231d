"""
Slack incoming-webhook channel.

Formats the alert as a Slack message with a colored attachment and POSTs
it to ``config["webhook_url"]``. ``config["channel"]`` and
``config["username"]`` override the webhook defaults when present.
"""

from typing import Any, Dict

import structlog

from argus.detection.channels.base import HttpSender, NotificationPayload
from argus.errors import DispatchError
from argus.models.channels import NotificationChannel

logger = structlog.get_logger(__name__)


SEVERITY_COLORS: Dict[str, str] = {
    "low": "#439FE0",
    "medium": "#FFC107",
    "high": "#FF9800",
    "critical": "#FF1744",
}


class SlackSender(HttpSender):
    """
    Sends alerts to Slack via incoming webhooks.

    Example:
        >>> sender = SlackSender()
        >>> await sender.send(channel, NotificationPayload.from_alert(alert))
    """

    def build_message(self, channel: NotificationChannel, payload: NotificationPayload) -> Dict[str, Any]:
        """
        Build the Slack webhook body.

        Args:
            channel: Slack channel config.
            payload: Rendered alert.

        Returns:
            Dict[str, Any]: Slack message JSON.
        """
        fields = [
            {"title": "Severity", "value": payload.severity, "short": True},
            {"title": "Alert ID", "value": payload.alert_id, "short": True},
        ]
        if payload.kind == "alert":
            fields.append(
                {
                    "title": "Metric",
                    "value": f"{payload.data.get('metric_name')} ({payload.data.get('service') or 'all services'})",
                    "short": False,
                }
            )
        else:
            fields.append(
                {
                    "title": "Risk score",
                    "value": str(payload.data.get("risk_score")),
                    "short": True,
                }
            )

        message: Dict[str, Any] = {
            "text": payload.title,
            "attachments": [
                {
                    "color": SEVERITY_COLORS.get(payload.severity, "#CCCCCC"),
                    "text": payload.message,
                    "fields": fields,
                }
            ],
        }
        if channel.config.get("channel"):
            message["channel"] = channel.config["channel"]
        if channel.config.get("username"):
            message["username"] = channel.config["username"]
        return message

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        """
        Deliver a payload to the channel's Slack webhook.

        Args:
            channel: Slack channel.
            payload: Rendered alert.

        Raises:
            DispatchError: If Slack is unreachable or answers non-2xx.
        """
        url = channel.config.get("webhook_url")
        if not url:
            raise DispatchError(channel.id, "slack channel has no webhook_url")

        await self._post_json(channel, url, self.build_message(channel, payload))

        logger.debug(
            "slack_delivered",
            channel_id=channel.id,
            alert_id=payload.alert_id,
        )
