"""
Generic webhook channel.

POSTs the JSON payload to ``config["url"]``. Optional ``config["headers"]``
are sent with the request.
"""

from typing import Any, Dict

import structlog

from argus.detection.channels.base import HttpSender, NotificationPayload
from argus.errors import DispatchError
from argus.models.channels import NotificationChannel

logger = structlog.get_logger(__name__)


class WebhookSender(HttpSender):
    """
    Sends alerts as JSON to an HTTP endpoint.

    Example:
        >>> sender = WebhookSender(timeout_seconds=5)
        >>> await sender.send(channel, NotificationPayload.from_alert(alert))
    """

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        """
        Deliver a payload to the channel's URL.

        Args:
            channel: Webhook channel.
            payload: Rendered alert.

        Raises:
            DispatchError: If the endpoint is unreachable or answers non-2xx.
        """
        url = channel.config.get("url")
        if not url:
            raise DispatchError(channel.id, "webhook channel has no url")

        body: Dict[str, Any] = payload.to_json()
        headers = channel.config.get("headers") or None
        await self._post_json(channel, url, body, headers=headers)

        logger.debug(
            "webhook_delivered",
            channel_id=channel.id,
            alert_id=payload.alert_id,
        )
