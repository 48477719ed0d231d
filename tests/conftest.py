"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Set, Tuple

import pytest

from argus.config.models import AppConfig, RulesConfig
from argus.detection.channels.base import NotificationPayload
from argus.errors import DispatchError
from argus.models import ChannelType, MetricSample, NotificationChannel
from argus.system import DetectionSystem

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by every component of a test system."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSender:
    """Channel sender that records deliveries and fails for chosen channels."""

    def __init__(self, fail_for: Optional[Set[str]] = None, delay: float = 0.0) -> None:
        self.fail_for = fail_for or set()
        self.delay = delay
        self.sent: List[Tuple[str, NotificationPayload]] = []
        self.closed = False

    async def send(self, channel: NotificationChannel, payload: NotificationPayload) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if channel.id in self.fail_for:
            raise DispatchError(channel.id, "boom")
        self.sent.append((channel.id, payload))

    async def close(self) -> None:
        self.closed = True


def make_samples(
    metric_name: str,
    service: str,
    values: Sequence[float],
    start: datetime = T0,
    step: timedelta = timedelta(minutes=1),
) -> List[MetricSample]:
    """Samples at a fixed spacing starting at ``start``."""
    return [
        MetricSample(
            metric_name=metric_name,
            service=service,
            value=value,
            timestamp=start + i * step,
        )
        for i, value in enumerate(values)
    ]


def webhook_channel(channel_id: str, enabled: bool = True) -> NotificationChannel:
    return NotificationChannel(
        id=channel_id,
        name=channel_id,
        type=ChannelType.WEBHOOK,
        config={"url": f"https://hooks.example.com/{channel_id}"},
        enabled=enabled,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def system(clock: FakeClock, sender: RecordingSender) -> DetectionSystem:
    """System without seeded threat rules, every channel type on the recording sender."""
    config = AppConfig(rules=RulesConfig(seed_default_threat_rules=False))
    return DetectionSystem(
        config,
        senders={channel_type: sender for channel_type in ChannelType},
        clock=clock,
    )
