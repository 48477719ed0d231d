"""Tests for notification dispatch."""

import asyncio

from argus.detection.dispatcher import ChannelDispatcher
from argus.models import Alert, AlertCondition, ChannelType, Severity

from tests.conftest import RecordingSender, webhook_channel


def _alert() -> Alert:
    return Alert(
        rule_id="rule-1",
        rule_name="High CPU",
        metric_name="cpu.usage",
        service="web-1",
        current_value=95.0,
        threshold=90.0,
        condition=AlertCondition.GREATER_THAN,
        severity=Severity.HIGH,
        message="cpu.usage/web-1: 95 > 90 for 3m",
    )


def _dispatcher(sender, channels, timeout_seconds=5.0) -> ChannelDispatcher:
    by_id = {c.id: c for c in channels}
    return ChannelDispatcher(
        senders={ChannelType.WEBHOOK: sender},
        resolve_channel=by_id.get,
        timeout_seconds=timeout_seconds,
    )


class TestChannelDispatcher:
    async def test_one_failing_channel_does_not_block_others(self):
        sender = RecordingSender(fail_for={"b"})
        dispatcher = _dispatcher(sender, [webhook_channel(c) for c in "abc"])

        report = await dispatcher.dispatch(_alert(), ["a", "b", "c"])

        assert sorted(report.delivered) == ["a", "c"]
        assert list(report.failed) == ["b"]
        assert report.any_delivered

    async def test_unknown_and_disabled_channels_are_skipped(self):
        sender = RecordingSender()
        dispatcher = _dispatcher(sender, [webhook_channel("off", enabled=False)])

        report = await dispatcher.dispatch(_alert(), ["off", "missing"])

        assert report.skipped == ["off", "missing"]
        assert sender.sent == []
        assert not report.any_delivered

    async def test_slow_channel_times_out(self):
        sender = RecordingSender(delay=1.0)
        dispatcher = _dispatcher(sender, [webhook_channel("slow")], timeout_seconds=0.05)

        report = await dispatcher.dispatch(_alert(), ["slow"])

        assert "timed out" in report.failed["slow"]

    async def test_channels_are_delivered_concurrently(self):
        sender = RecordingSender(delay=0.2)
        dispatcher = _dispatcher(sender, [webhook_channel(c) for c in "abcde"], timeout_seconds=1.0)

        loop = asyncio.get_running_loop()
        started = loop.time()
        report = await dispatcher.dispatch(_alert(), list("abcde"))

        assert len(report.delivered) == 5
        assert loop.time() - started < 0.9

    async def test_missing_sender_is_a_failure(self):
        dispatcher = ChannelDispatcher(
            senders={},
            resolve_channel={"a": webhook_channel("a")}.get,
        )

        report = await dispatcher.dispatch(_alert(), ["a"])

        assert "no sender" in report.failed["a"]

    async def test_duplicate_ids_are_sent_once(self):
        sender = RecordingSender()
        dispatcher = _dispatcher(sender, [webhook_channel("a")])

        await dispatcher.dispatch(_alert(), ["a", "a"])

        assert len(sender.sent) == 1

    async def test_close_closes_senders(self):
        sender = RecordingSender()
        dispatcher = _dispatcher(sender, [])

        await dispatcher.close()

        assert sender.closed
