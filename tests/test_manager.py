"""Tests for the alert lifecycle manager."""

import asyncio

import pytest

from argus.detection.manager import AlertLifecycleManager, KeyedLocks
from argus.detection.storage import AlertStorage
from argus.errors import NotFoundError
from argus.models import AlertRule, AlertStatus, Anomaly, DetectionAlgorithm, Severity

from tests.conftest import T0, webhook_channel


@pytest.fixture
def manager(clock) -> AlertLifecycleManager:
    return AlertLifecycleManager(AlertStorage(), dispatcher=None, clock=clock)


@pytest.fixture
def rule() -> AlertRule:
    return AlertRule(
        name="High CPU",
        metric_name="cpu.usage",
        service="web-1",
        condition="greater_than",
        threshold=90.0,
        duration_minutes=3,
        severity=Severity.HIGH,
    )


class TestRaiseAlert:
    async def test_creates_then_updates(self, manager, rule):
        first, created = await manager.raise_alert(rule, value=95.0)
        second, created_again = await manager.raise_alert(rule, value=99.0)

        assert created and not created_again
        assert second.id == first.id
        assert second.current_value == 99.0
        assert len(manager.storage.alerts) == 1

    async def test_concurrent_raises_create_one_alert(self, manager, rule):
        results = await asyncio.gather(
            *(manager.raise_alert(rule, value=95.0 + i) for i in range(10))
        )

        assert sum(1 for _, created in results if created) == 1
        assert len(manager.storage.alerts) == 1

    async def test_message_describes_breach(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0, timestamp=T0)

        assert alert.message == "cpu.usage/web-1: 95 > 90 for 3m"
        assert alert.triggered_at == T0


class TestTransitions:
    async def test_acknowledge_then_resolve(self, manager, rule, clock):
        alert, _ = await manager.raise_alert(rule, value=95.0)

        clock.advance(minutes=1)
        acknowledged = await manager.acknowledge_alert(alert.id, "oncall")
        clock.advance(minutes=1)
        resolved = await manager.resolve_alert(alert.id)

        assert acknowledged.status == AlertStatus.ACKNOWLEDGED
        assert acknowledged.acknowledged_by == "oncall"
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.acknowledged_at < resolved.resolved_at

    async def test_active_alert_resolves_directly(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0)

        resolved = await manager.resolve_alert(alert.id)

        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.acknowledged_at is None

    async def test_second_resolve_is_rejected(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0)
        resolved = await manager.resolve_alert(alert.id)

        with pytest.raises(NotFoundError) as exc_info:
            await manager.resolve_alert(alert.id)

        assert exc_info.value.transition == "resolve"
        assert manager.storage.alerts.get(alert.id) == resolved

    async def test_acknowledge_requires_active(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0)
        await manager.acknowledge_alert(alert.id, "oncall")

        with pytest.raises(NotFoundError) as exc_info:
            await manager.acknowledge_alert(alert.id, "someone-else")

        assert exc_info.value.transition == "acknowledge"
        assert manager.storage.alerts.get(alert.id).acknowledged_by == "oncall"

    async def test_unknown_id(self, manager):
        with pytest.raises(NotFoundError) as exc_info:
            await manager.resolve_alert("missing")

        assert exc_info.value.entity == "alert"
        assert exc_info.value.transition is None

    async def test_concurrent_resolves_succeed_once(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0)

        outcomes = await asyncio.gather(
            *(manager.resolve_alert(alert.id) for _ in range(5)),
            return_exceptions=True,
        )

        assert sum(1 for o in outcomes if isinstance(o, NotFoundError)) == 4


class TestKeyedLocks:
    async def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        order = []

        async def hold(name: str) -> None:
            async with locks("rule:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(hold("a"), hold("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    async def test_idle_locks_are_dropped(self):
        locks = KeyedLocks()

        async with locks("rule:1"):
            assert len(locks) == 1

        assert len(locks) == 0

    async def test_lock_released_on_error(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks("rule:1"):
                raise RuntimeError("boom")

        assert len(locks) == 0
        async with locks("rule:1"):
            pass

    async def test_manager_keeps_no_locks_after_work(self, manager, rule):
        alerts = await asyncio.gather(*(manager.raise_alert(rule, value=95.0) for _ in range(5)))
        await manager.resolve_alert(alerts[0][0].id)

        assert len(manager._locks) == 0


class TestStorageIndexes:
    async def test_open_alert_index_follows_lifecycle(self, manager, rule):
        alert, _ = await manager.raise_alert(rule, value=95.0)
        assert manager.storage.open_alert_for_rule(rule.id).id == alert.id

        await manager.acknowledge_alert(alert.id, "oncall")
        assert manager.storage.open_alert_for_rule(rule.id).status == AlertStatus.ACKNOWLEDGED

        await manager.resolve_alert(alert.id)
        assert manager.storage.open_alert_for_rule(rule.id) is None

        replacement, created = await manager.raise_alert(rule, value=97.0)
        assert created and replacement.id != alert.id
        assert manager.storage.open_alert_for_rule(rule.id).id == replacement.id

    async def test_anomaly_for_same_sample_recorded_once(self, manager):
        def candidate() -> Anomaly:
            return Anomaly(
                metric_name="cpu.usage",
                service="web-1",
                algorithm=DetectionAlgorithm.ZSCORE,
                expected_value=44.0,
                actual_value=95.0,
                anomaly_score=1.2,
                severity=Severity.MEDIUM,
                detected_at=T0,
            )

        first, created = await manager.record_anomaly(candidate())
        resolved = await manager.resolve_anomaly(first.id)
        _, created_again = await manager.record_anomaly(candidate())

        assert created and not created_again
        assert resolved.status_value == "resolved"
        assert len(manager.storage.anomalies) == 1


class TestCancelledDispatch:
    async def test_alert_stays_persisted_when_dispatch_is_cancelled(self, system, sender):
        sender.delay = 5.0
        system.create_channel(webhook_channel("ops"))
        rule = system.create_alert_rule(
            {
                "name": "High CPU",
                "metric_name": "cpu.usage",
                "service": "web-1",
                "condition": "greater_than",
                "threshold": 90,
                "duration_minutes": 3,
                "severity": "high",
                "notification_channels": ["ops"],
            }
        )

        task = asyncio.create_task(system.manager.raise_alert(rule, value=95.0))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = system.storage.open_alert_for_rule(rule.id)
        assert stored is not None
        assert stored.status == AlertStatus.ACTIVE
        assert stored.notification_sent is False
        assert sender.sent == []
        assert len(system.manager._locks) == 0

        sender.delay = 0.0
        updated, created = await system.manager.raise_alert(rule, value=96.0)
        assert not created
        assert updated.id == stored.id
