"""
Notification dispatcher for routing new alerts to their channels.

This module provides the ChannelDispatcher which resolves the channel ids
bound to a rule and delivers the alert to each channel concurrently.

Key Features:
    - Concurrent fan-out, each channel under its own timeout
    - Total wait bounded by the per-channel timeout, not the sum
    - Unknown channels warn, disabled channels are skipped
    - Failures are logged and reported, never raised
    - Cancellation (shutdown) cancels in-flight deliveries

Example:
    >>> dispatcher = ChannelDispatcher(
    ...     senders=create_senders(),
    ...     resolve_channel=registry.get_channel_or_none,
    ...     timeout_seconds=5,
    ... )
    >>> report = await dispatcher.dispatch(alert, rule.notification_channels)
    >>> report.delivered
    ['ops-webhook']
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from argus.detection.channels.base import ChannelSender, NotifiableAlert, NotificationPayload
from argus.errors import DispatchError
from argus.models.channels import ChannelType, NotificationChannel

logger = structlog.get_logger(__name__)


DEFAULT_CHANNEL_TIMEOUT_SECONDS = 5.0

ChannelResolver = Callable[[str], Optional[NotificationChannel]]


@dataclass
class DispatchReport:
    """
    Outcome of dispatching one alert.

    Attributes:
        alert_id: The alert that was dispatched.
        delivered: Channel ids that accepted the notification.
        failed: Channel id to error message for failed deliveries.
        skipped: Channel ids that were unknown or disabled.
    """

    alert_id: str
    delivered: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def any_delivered(self) -> bool:
        """True if at least one channel succeeded."""
        return bool(self.delivered)


class ChannelDispatcher:
    """
    Delivers new alerts to notification channels.

    Attributes:
        senders: Sender per channel type.
        timeout_seconds: Per-channel delivery timeout.

    Example:
        >>> dispatcher = ChannelDispatcher(senders, registry.get_channel_or_none)
        >>> report = await dispatcher.dispatch(alert, ["ops-webhook", "oncall-email"])
    """

    def __init__(
        self,
        senders: Mapping[ChannelType, ChannelSender],
        resolve_channel: ChannelResolver,
        timeout_seconds: float = DEFAULT_CHANNEL_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            senders: Sender per channel type.
            resolve_channel: Looks up a channel by id (None if unknown).
            timeout_seconds: Per-channel delivery timeout.
        """
        self.senders = dict(senders)
        self._resolve_channel = resolve_channel
        self.timeout_seconds = timeout_seconds

        logger.info(
            "channel_dispatcher_initialized",
            channel_types=[t.value for t in self.senders],
            timeout_seconds=timeout_seconds,
        )

    async def dispatch(
        self,
        alert: NotifiableAlert,
        channel_ids: Sequence[str],
    ) -> DispatchReport:
        """
        Dispatch an alert to the given channels.

        Args:
            alert: The newly created (already persisted) alert.
            channel_ids: Channel ids bound to the rule that raised it.

        Returns:
            DispatchReport: Delivered, failed and skipped channel ids.
        """
        report = DispatchReport(alert_id=alert.id)
        targets: List[NotificationChannel] = []

        for channel_id in dict.fromkeys(channel_ids):
            channel = self._resolve_channel(channel_id)
            if channel is None:
                logger.warning(
                    "channel_not_found",
                    channel_id=channel_id,
                    alert_id=alert.id,
                )
                report.skipped.append(channel_id)
                continue
            if not channel.enabled:
                logger.debug(
                    "channel_disabled",
                    channel_id=channel_id,
                    alert_id=alert.id,
                )
                report.skipped.append(channel_id)
                continue
            targets.append(channel)

        if not targets:
            return report

        payload = NotificationPayload.from_alert(alert)
        results = await asyncio.gather(
            *(self._deliver(channel, payload) for channel in targets),
            return_exceptions=True,
        )

        for channel, result in zip(targets, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, DispatchError):
                    error = result
                else:
                    error = DispatchError(channel.id, str(result) or type(result).__name__)
                report.failed[channel.id] = str(error)
                logger.error(
                    "channel_dispatch_failed",
                    channel_id=channel.id,
                    channel_type=channel.type.value,
                    alert_id=alert.id,
                    error=str(error),
                )
            else:
                report.delivered.append(channel.id)
                logger.debug(
                    "alert_dispatched_to_channel",
                    channel_id=channel.id,
                    channel_type=channel.type.value,
                    alert_id=alert.id,
                )

        logger.info(
            "alert_dispatch_complete",
            alert_id=alert.id,
            delivered=len(report.delivered),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )

        return report

    async def _deliver(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        """
        Deliver to one channel under the per-channel timeout.

        Raises:
            DispatchError: On missing sender, timeout, or sender failure.
        """
        sender = self.senders.get(channel.type)
        if sender is None:
            raise DispatchError(channel.id, f"no sender for channel type {channel.type.value}")

        try:
            await asyncio.wait_for(sender.send(channel, payload), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise DispatchError(channel.id, f"timed out after {self.timeout_seconds}s") from e

    async def close(self) -> None:
        """Close every sender's transport."""
        for sender in self.senders.values():
            await sender.close()
