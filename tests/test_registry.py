"""Tests for the configuration registry."""

import pytest

from argus.detection.registry import ConfigRegistry
from argus.errors import NotFoundError, ValidationError
from argus.models import DetectionAlgorithm

from tests.conftest import webhook_channel


def _config(**overrides) -> dict:
    fields = {
        "metric_name": "cpu.usage",
        "algorithm": "zscore",
        "sensitivity": 5,
        "window_minutes": 10,
    }
    fields.update(overrides)
    return fields


def _rule(**overrides) -> dict:
    fields = {
        "name": "High CPU",
        "metric_name": "cpu.usage",
        "condition": "greater_than",
        "threshold": 90,
        "duration_minutes": 3,
        "severity": "high",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def registry() -> ConfigRegistry:
    return ConfigRegistry()


class TestDetectionConfigs:
    def test_duplicate_key_rejected(self, registry):
        registry.create_detection_config(_config(service="web-1"))

        with pytest.raises(ValidationError):
            registry.create_detection_config(_config(service="web-1"))

        assert len(registry.list_detection_configs()) == 1

    def test_blank_service_is_wildcard(self, registry):
        config = registry.create_detection_config(_config(service=""))

        assert config.service is None
        assert registry.get_detection_config("cpu.usage") == config

    @pytest.mark.parametrize(
        "fields",
        [
            _config(sensitivity=11),
            _config(sensitivity=0),
            _config(window_minutes=4),
            _config(algorithm="fourier"),
            _config(metric_name=""),
        ],
    )
    def test_invalid_config(self, registry, fields):
        with pytest.raises(ValidationError) as exc_info:
            registry.create_detection_config(fields)

        assert exc_info.value.errors
        assert registry.list_detection_configs() == []

    def test_update_keeps_key(self, registry):
        registry.create_detection_config(_config(service="web-1"))

        updated = registry.update_detection_config(
            "cpu.usage", "web-1", {"algorithm": "iqr", "sensitivity": 8}
        )

        assert updated.algorithm == DetectionAlgorithm.IQR
        assert updated.sensitivity == 8
        assert updated.key == ("cpu.usage", "web-1")

    def test_key_cannot_change(self, registry):
        registry.create_detection_config(_config(service="web-1"))

        with pytest.raises(ValidationError):
            registry.update_detection_config("cpu.usage", "web-1", {"service": "web-2"})

    def test_seasonal_lookback_must_fit_retention(self):
        registry = ConfigRegistry(max_lookback_minutes=60)

        with pytest.raises(ValidationError) as exc_info:
            registry.create_detection_config(_config(algorithm="seasonal", window_minutes=30))

        assert exc_info.value.errors[0]["loc"] == "window_minutes"
        assert registry.list_detection_configs() == []
        assert registry.create_detection_config(_config(algorithm="seasonal", window_minutes=20))
        assert registry.create_detection_config(_config(service="web-1", window_minutes=60))

    def test_update_beyond_retention_leaves_config_unchanged(self):
        registry = ConfigRegistry(max_lookback_minutes=60)
        registry.create_detection_config(_config(service="web-1", window_minutes=30))

        with pytest.raises(ValidationError):
            registry.update_detection_config("cpu.usage", "web-1", {"algorithm": "seasonal"})

        assert registry.get_detection_config("cpu.usage", "web-1").algorithm == DetectionAlgorithm.ZSCORE

    def test_delete_unknown(self, registry):

        with pytest.raises(NotFoundError):
            registry.delete_detection_config("cpu.usage", "web-1")


class TestAlertRules:
    def test_update_keeps_id_and_revalidates(self, registry):
        rule = registry.create_alert_rule(_rule())

        updated = registry.update_alert_rule(rule.id, {"threshold": 95})

        assert updated.id == rule.id
        assert updated.threshold == 95
        assert updated.created_at == rule.created_at
        assert updated.updated_at >= rule.updated_at

    def test_invalid_update_leaves_rule_unchanged(self, registry):
        rule = registry.create_alert_rule(_rule())

        with pytest.raises(ValidationError):
            registry.update_alert_rule(rule.id, {"duration_minutes": 0})

        assert registry.get_alert_rule(rule.id) == rule

    def test_id_cannot_change(self, registry):
        rule = registry.create_alert_rule(_rule())

        with pytest.raises(ValidationError):
            registry.update_alert_rule(rule.id, {"id": "other"})

    def test_unknown_fields_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.create_alert_rule(_rule(priority="p1"))

    def test_unknown_channel_reference(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.create_alert_rule(_rule(notification_channels=["nowhere"]))

        assert "nowhere" in exc_info.value.message
        assert registry.list_alert_rules() == []

    def test_missing_rule(self, registry):
        with pytest.raises(NotFoundError) as exc_info:
            registry.get_alert_rule("missing")

        assert exc_info.value.entity == "alert_rule"


class TestThreatRules:
    def test_pattern_threshold_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.create_threat_rule(
                {"name": "x", "rule_type": "pattern", "threshold": 4, "severity": "high"}
            )

    def test_delete(self, registry):
        rule = registry.create_threat_rule(
            {"name": "x", "rule_type": "threshold", "threshold": 4, "severity": "high"}
        )

        registry.delete_threat_rule(rule.id)

        assert registry.list_threat_rules() == []


class TestChannels:
    def test_channel_config_checked_for_type(self, registry):
        with pytest.raises(ValidationError):
            registry.create_channel({"name": "mail", "type": "email", "config": {}})
        with pytest.raises(ValidationError):
            registry.create_channel(
                {"name": "hook", "type": "webhook", "config": {"url": "ftp://x"}}
            )

    def test_referenced_channel_cannot_be_deleted(self, registry):
        registry.create_channel(webhook_channel("ops"))
        rule = registry.create_alert_rule(_rule(notification_channels=["ops"]))

        with pytest.raises(ValidationError):
            registry.delete_channel("ops")

        registry.update_alert_rule(rule.id, {"notification_channels": []})
        registry.delete_channel("ops")
        assert registry.get_channel_or_none("ops") is None

    def test_disable_channel(self, registry):
        registry.create_channel(webhook_channel("ops"))

        updated = registry.update_channel("ops", {"enabled": False})

        assert updated.enabled is False

    def test_counts(self, registry):
        registry.create_channel(webhook_channel("ops"))
        registry.create_alert_rule(_rule())
        registry.create_alert_rule(_rule(enabled=False))

        counts = registry.counts()

        assert counts["alert_rules"] == {"total": 2, "enabled": 1}
        assert counts["channels"] == {"total": 1, "enabled": 1}
        assert counts["detection_configs"] == {"total": 0, "enabled": 0}
