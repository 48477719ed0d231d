"""Tests for the anomaly detector runner."""

from datetime import timedelta
from unittest.mock import patch

from argus.models import AnomalyStatus, Severity

from tests.conftest import T0, make_samples


def _cpu_config(**overrides) -> dict:
    fields = {
        "metric_name": "cpu.usage",
        "service": "web-1",
        "algorithm": "zscore",
        "sensitivity": 5,
        "window_minutes": 6,
    }
    fields.update(overrides)
    return fields


def _ingest(system, values, service="web-1"):
    for sample in make_samples("cpu.usage", service, values):
        system.ingest_metric_sample(sample)


class TestAnomalyDetector:
    async def test_cpu_spike_is_flagged_once(self, system):
        system.create_detection_config(_cpu_config())
        _ingest(system, [10, 10, 10, 95, 95, 95])
        now = T0 + timedelta(minutes=5)

        first = await system.trigger_detection(now=now)
        second = await system.trigger_detection(now=now)

        assert [len(found) for found in first.results] == [1]
        assert [len(found) for found in second.results] == [0]
        page = system.list_anomalies()
        assert page.count == 1
        anomaly = page.items[0]
        assert anomaly.severity == Severity.MEDIUM
        assert anomaly.status == AnomalyStatus.ACTIVE
        assert anomaly.service == "web-1"

    async def test_wildcard_config_expands_services(self, system):
        system.create_detection_config(_cpu_config(service=None))
        _ingest(system, [10, 10, 10, 95, 95, 95], service="web-1")
        _ingest(system, [10, 11, 10, 11, 10, 10], service="web-2")

        await system.trigger_detection(now=T0 + timedelta(minutes=5))

        assert [a.service for a in system.list_anomalies().items] == ["web-1"]

    async def test_disabled_config_is_skipped(self, system):
        system.create_detection_config(_cpu_config(enabled=False))
        _ingest(system, [10, 10, 10, 95, 95, 95])

        tick = await system.trigger_detection(now=T0 + timedelta(minutes=5))

        assert tick.results == []
        assert system.list_anomalies().count == 0

    async def test_only_due_waits_half_a_window(self, system):
        system.create_detection_config(_cpu_config())
        _ingest(system, [10, 10, 10, 95, 95, 95])
        now = T0 + timedelta(minutes=5)

        await system.trigger_detection(now=now, only_due=True)
        skipped = await system.trigger_detection(now=now + timedelta(minutes=2), only_due=True)
        due = await system.trigger_detection(now=now + timedelta(minutes=3), only_due=True)

        assert skipped.results == []
        assert len(due.results) == 1

    async def test_failing_config_does_not_stop_the_tick(self, system):
        system.create_detection_config(_cpu_config())
        system.create_detection_config(_cpu_config(metric_name="mem.usage"))
        _ingest(system, [10, 10, 10, 95, 95, 95])

        with patch(
            "argus.detection.anomaly.detect",
            side_effect=[ZeroDivisionError("boom"), None],
        ):
            tick = await system.trigger_detection(now=T0 + timedelta(minutes=5))

        assert len(tick.errors) == 1
        assert "boom" in str(tick.errors[0])

    async def test_anomaly_lifecycle(self, system):
        system.create_detection_config(_cpu_config())
        _ingest(system, [10, 10, 10, 95, 95, 95])
        await system.trigger_detection(now=T0 + timedelta(minutes=5))
        anomaly = system.list_anomalies().items[0]

        acknowledged = await system.acknowledge_anomaly(anomaly.id, "oncall")
        resolved = await system.resolve_anomaly(anomaly.id)

        assert acknowledged.status == AnomalyStatus.ACKNOWLEDGED
        assert acknowledged.acknowledged_by == "oncall"
        assert resolved.status == AnomalyStatus.RESOLVED
        assert system.list_anomalies(status="resolved").count == 1
