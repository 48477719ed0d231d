"""Tests for the metric window and security event stores."""

import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from argus.errors import ValidationError
from argus.metrics import MetricWindowStore, SecurityEventStore
from argus.models import EventOutcome, EventSeverity, MetricSample, SecurityEvent, SecurityEventType

from tests.conftest import T0, make_samples


class TestMetricWindowStore:
    def test_snapshot_lower_bound_is_exclusive(self):
        store = MetricWindowStore()
        for sample in make_samples("cpu.usage", "web-1", [1, 2, 3, 4]):
            store.append(sample)

        window = store.snapshot("cpu.usage", "web-1", 2, now=T0 + timedelta(minutes=3))

        assert [s.value for s in window] == [3, 4]

    def test_snapshot_excludes_future_samples(self):
        store = MetricWindowStore()
        for sample in make_samples("cpu.usage", "web-1", [1, 2, 3]):
            store.append(sample)

        window = store.snapshot("cpu.usage", "web-1", 10, now=T0 + timedelta(minutes=1))

        assert [s.value for s in window] == [1, 2]

    def test_unknown_key_is_empty(self):
        store = MetricWindowStore()
        assert store.snapshot("cpu.usage", "web-1", 5, now=T0) == ()

    def test_out_of_order_sample_rejected(self):
        store = MetricWindowStore()
        first, second = make_samples("cpu.usage", "web-1", [1, 2])
        store.append(second)

        with pytest.raises(ValidationError):
            store.append(first)

        assert store.latest("cpu.usage", "web-1") == second

    def test_retention_evicts_old_samples(self):
        store = MetricWindowStore(retention_minutes=5)
        for sample in make_samples("cpu.usage", "web-1", range(10)):
            store.append(sample)

        stats = store.stats
        assert stats.samples == 5
        assert stats.oldest == T0 + timedelta(minutes=5)

    def test_max_samples_per_key(self):
        store = MetricWindowStore(max_samples_per_key=3)
        for sample in make_samples("cpu.usage", "web-1", range(10)):
            store.append(sample)

        assert store.stats.samples == 3

    def test_snapshots_are_ordered_prefixes_during_concurrent_appends(self):
        store = MetricWindowStore(max_samples_per_key=10_000)
        services = ["web-1", "web-2", "web-3"]
        count = 1500
        end = T0 + timedelta(hours=1)
        done = threading.Event()
        snapshots = {service: [] for service in services}

        def write(service: str) -> None:
            for sample in make_samples("cpu.usage", service, range(count), step=timedelta(seconds=1)):
                store.append(sample)

        def read() -> None:
            while not done.is_set():
                for service in services:
                    snapshots[service].append(store.snapshot("cpu.usage", service, 120, now=end))

        writers = [threading.Thread(target=write, args=(service,)) for service in services]
        reader = threading.Thread(target=read)
        reader.start()
        for thread in writers:
            thread.start()
        for thread in writers:
            thread.join()
        done.set()
        reader.join()

        for service in services:
            for window in snapshots[service]:
                values = [s.value for s in window]
                assert values == list(range(len(values)))
            final = store.snapshot("cpu.usage", service, 120, now=end)
            assert len(final) == count

    def test_services_lists_reporting_services(self):

        store = MetricWindowStore()
        store.append(make_samples("cpu.usage", "web-2", [1])[0])
        store.append(make_samples("cpu.usage", "web-1", [1])[0])
        store.append(make_samples("mem.usage", "db-1", [1])[0])

        assert store.services("cpu.usage") == ["web-1", "web-2"]


class TestMetricSample:
    def test_rejects_blank_service(self):
        with pytest.raises(Exception):
            MetricSample(metric_name="cpu.usage", service="  ", value=1.0, timestamp=T0)

    def test_rejects_non_finite_value(self):
        with pytest.raises(Exception):
            MetricSample(metric_name="cpu.usage", service="web-1", value=float("nan"), timestamp=T0)

    @pytest.mark.parametrize("value", [True, False, "95", "high", b"1"])
    def test_rejects_non_numeric_value(self, value):
        with pytest.raises(PydanticValidationError):
            MetricSample(metric_name="cpu.usage", service="web-1", value=value, timestamp=T0)

    def test_integer_value_is_accepted(self):
        sample = MetricSample(metric_name="cpu.usage", service="web-1", value=95, timestamp=T0)
        assert sample.value == 95.0

    def test_naive_timestamp_is_utc(self):
        sample = MetricSample(
            metric_name="cpu.usage",
            service="web-1",
            value=1.0,
            timestamp="2025-01-15T12:00:00",
        )
        assert sample.timestamp == T0


class TestSecurityEventStore:
    def _event(self, minutes: int) -> SecurityEvent:
        return SecurityEvent(
            event_type=SecurityEventType.AUTHENTICATION,
            severity=EventSeverity.MEDIUM,
            action="login",
            outcome=EventOutcome.FAILURE,
            timestamp=T0 + timedelta(minutes=minutes),
        )

    def test_snapshot_filters_by_event_time(self):
        store = SecurityEventStore()
        for minutes in (0, 2, 4, 6):
            store.append(self._event(minutes))

        events = store.snapshot(300, now=T0 + timedelta(minutes=6))

        assert [e.timestamp for e in events] == [
            T0 + timedelta(minutes=2),
            T0 + timedelta(minutes=4),
            T0 + timedelta(minutes=6),
        ]

    def test_late_event_is_still_correlated(self):
        store = SecurityEventStore()
        store.append(self._event(5))
        store.append(self._event(3))

        events = store.snapshot(600, now=T0 + timedelta(minutes=5))

        assert [e.timestamp.minute for e in events] == [3, 5]

    def test_max_events(self):
        store = SecurityEventStore(max_events=2)
        for minutes in range(5):
            store.append(self._event(minutes))

        assert len(store) == 2
        assert store.all()[0].timestamp == T0 + timedelta(minutes=4)
