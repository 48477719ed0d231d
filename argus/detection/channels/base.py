"""
Shared pieces of the notification channel senders.

Classes:
    NotificationPayload: Transport-neutral rendering of an alert
    ChannelSender: Protocol every sender implements
    HttpSender: Base class for aiohttp-backed senders (webhook, slack)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

import aiohttp
import structlog

from argus.errors import DispatchError
from argus.models.alerts import Alert
from argus.models.channels import NotificationChannel
from argus.models.security import SecurityAlert

logger = structlog.get_logger(__name__)


DEFAULT_HTTP_TIMEOUT_SECONDS = 10

NotifiableAlert = Union[Alert, SecurityAlert]


@dataclass
class NotificationPayload:
    """
    An alert rendered for delivery.

    Attributes:
        kind: "alert" or "security_alert".
        alert_id: Id of the alert being announced.
        title: One-line summary.
        message: Body text.
        severity: Severity value.
        data: JSON-safe alert fields.
    """

    kind: str
    alert_id: str
    title: str
    message: str
    severity: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_alert(cls, alert: NotifiableAlert) -> "NotificationPayload":
        """
        Render an Alert or SecurityAlert.

        Args:
            alert: The newly created alert.

        Returns:
            NotificationPayload: Rendered payload.
        """
        data = alert.model_dump(mode="json")
        if isinstance(alert, SecurityAlert):
            return cls(
                kind="security_alert",
                alert_id=alert.id,
                title=f"[{alert.severity.value.upper()}] {alert.rule_name}",
                message=f"{alert.description} (risk {alert.risk_score}/100)",
                severity=alert.severity.value,
                data=data,
            )
        return cls(
            kind="alert",
            alert_id=alert.id,
            title=f"[{alert.severity.value.upper()}] {alert.rule_name}",
            message=alert.message,
            severity=alert.severity.value,
            data=data,
        )

    def to_json(self) -> Dict[str, Any]:
        """JSON body used by the webhook sender."""
        return {
            "kind": self.kind,
            "alert_id": self.alert_id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "alert": self.data,
        }


class ChannelSender(Protocol):
    """
    Protocol for notification transports.

    ``send`` raises DispatchError (or any exception) on failure; the
    dispatcher catches and reports it.
    """

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        """Deliver a payload to a channel."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...


class HttpSender:
    """
    Base class for senders that POST JSON over HTTP.

    Holds one lazily created aiohttp session. Non-2xx responses raise
    DispatchError.

    Attributes:
        timeout_seconds: Per-request timeout.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS) -> None:
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is created."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": "argus-detector/0.1"},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("http_sender_session_closed", sender=type(self).__name__)

    async def _post_json(
        self,
        channel: NotificationChannel,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        POST a JSON body and require a 2xx response.

        Args:
            channel: Channel being delivered to (for errors).
            url: Target URL.
            body: JSON body.
            headers: Extra request headers.

        Raises:
            DispatchError: On transport errors, timeouts or non-2xx status.
        """
        session = await self._ensure_session()
        try:
            async with session.post(url, json=body, headers=headers) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    raise DispatchError(
                        channel.id,
                        f"HTTP {response.status}: {error_text[:200]}",
                    )
        except aiohttp.ClientError as e:
            raise DispatchError(channel.id, f"request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise DispatchError(
                channel.id, f"request timeout after {self.timeout_seconds}s"
            ) from e
