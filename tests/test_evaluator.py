"""Tests for sustained-breach alert rule evaluation."""

from datetime import timedelta

import pytest

from argus.detection.evaluator import evaluate_window
from argus.models import AlertCondition, AlertRule, AlertStatus, Severity

from tests.conftest import T0, make_samples, webhook_channel


def _rule(**overrides) -> dict:
    fields = {
        "name": "High CPU",
        "metric_name": "cpu.usage",
        "service": "web-1",
        "condition": "greater_than",
        "threshold": 90.0,
        "duration_minutes": 3,
        "severity": "high",
    }
    fields.update(overrides)
    return fields


def _ingest(system, values, start_minute=1, service="web-1"):
    for sample in make_samples(
        "cpu.usage", service, values, start=T0 + timedelta(minutes=start_minute)
    ):
        system.ingest_metric_sample(sample)


class TestEvaluateWindow:
    def test_empty_window(self):
        rule = AlertRule(**_rule())
        assert evaluate_window(rule, (), T0) == (False, "empty_window")

    def test_one_sample_below_threshold_blocks(self):
        rule = AlertRule(**_rule())
        window = make_samples("cpu.usage", "web-1", [95, 85, 95], start=T0 + timedelta(minutes=1))
        assert evaluate_window(rule, window, T0) == (False, "condition_not_met")

    def test_gap_at_window_start(self):
        rule = AlertRule(**_rule())
        window = make_samples("cpu.usage", "web-1", [95, 95], start=T0 + timedelta(minutes=2))
        assert evaluate_window(rule, window, T0) == (False, "not_sustained")

    @pytest.mark.parametrize(
        "condition,value,expected",
        [
            (AlertCondition.LESS_THAN, 5.0, True),
            (AlertCondition.EQUALS, 10.0005, True),
            (AlertCondition.EQUALS, 10.01, False),
            (AlertCondition.NOT_EQUALS, 10.01, True),
        ],
    )
    def test_conditions(self, condition, value, expected):
        assert condition.evaluate(value, 10.0) is expected


class TestAlertRuleEvaluator:
    async def test_sustained_breach_raises_one_alert(self, system):
        rule = system.create_alert_rule(_rule())
        _ingest(system, [95, 95, 95])

        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))

        [[evaluation]] = tick.results
        assert evaluation.triggered and evaluation.created
        alerts = system.list_alerts()
        assert alerts.count == 1
        alert = alerts.items[0]
        assert alert.rule_id == rule.id
        assert alert.status == AlertStatus.ACTIVE
        assert alert.severity == Severity.HIGH
        assert alert.current_value == 95

    async def test_reevaluation_updates_open_alert(self, system):
        system.create_alert_rule(_rule())
        _ingest(system, [95, 95, 95, 97])

        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))
        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=4))

        [[evaluation]] = tick.results
        assert evaluation.triggered and not evaluation.created
        alerts = system.list_alerts()
        assert alerts.count == 1
        assert alerts.items[0].current_value == 97

    async def test_short_breach_does_not_fire(self, system):
        system.create_alert_rule(_rule())
        _ingest(system, [95, 95], start_minute=2)

        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))

        [[evaluation]] = tick.results
        assert evaluation.skip_reason == "not_sustained"
        assert system.list_alerts().count == 0

    async def test_recovery_does_not_resolve(self, system):
        system.create_alert_rule(_rule())
        _ingest(system, [95, 95, 95, 85])

        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))
        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=4))

        [[evaluation]] = tick.results
        assert evaluation.skip_reason == "condition_not_met"
        alert = system.list_alerts().items[0]
        assert alert.status == AlertStatus.ACTIVE
        assert alert.current_value == 95

    async def test_disabled_rule_is_skipped_and_alert_stays_open(self, system):
        rule = system.create_alert_rule(_rule())
        _ingest(system, [95, 95, 95, 95])
        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))

        system.update_alert_rule(rule.id, {"enabled": False})
        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=4))

        assert tick.results == []
        assert system.list_alerts(status="active").count == 1

    async def test_wildcard_rule_keeps_one_open_alert(self, system):
        system.create_alert_rule(_rule(service=None))
        _ingest(system, [95, 95, 95], service="web-1")
        _ingest(system, [99, 99, 99], service="web-2")

        tick = await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))

        [evaluations] = tick.results
        assert [e.service for e in evaluations] == ["web-1", "web-2"]
        assert [e.created for e in evaluations] == [True, False]
        assert system.list_alerts().count == 1

    async def test_resolved_alert_allows_a_new_one(self, system):
        system.create_alert_rule(_rule())
        _ingest(system, [95, 95, 95, 95])

        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))
        first = system.list_alerts().items[0]
        await system.resolve_alert(first.id)
        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=4))

        assert system.list_alerts().count == 2
        assert system.list_alerts(status="active").count == 1

    async def test_new_alert_is_dispatched(self, system, sender):
        system.create_channel(webhook_channel("ops"))
        system.create_alert_rule(_rule(notification_channels=["ops"]))
        _ingest(system, [95, 95, 95])

        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))
        await system.trigger_rule_evaluation(now=T0 + timedelta(minutes=3))

        assert [channel_id for channel_id, _ in sender.sent] == ["ops"]
        alert = system.list_alerts().items[0]
        assert alert.notification_sent is True
        assert sender.sent[0][1].alert_id == alert.id
