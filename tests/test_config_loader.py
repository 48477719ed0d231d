"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from argus.config import ConfigLoadError, load_config
from argus.config.models import LogFormat, LogLevel

REPO_CONFIG = Path(__file__).resolve().parent.parent / "config"

SETTINGS = """
schedule:
  rules_interval_seconds: 15
dispatch:
  channel_timeout_seconds: 2
logging:
  format: console
  level: DEBUG
"""

RULES = """
channels:
  - id: ops
    name: ops
    type: webhook
    config:
      url: https://hooks.example.com/ops
alert_rules:
  - name: High CPU
    metric_name: cpu.usage
    condition: greater_than
    threshold: 90
    duration_minutes: 3
    severity: high
    notification_channels: [ops]
"""


def _write(directory: Path, settings: str = SETTINGS, rules: str = None) -> Path:
    (directory / "settings.yaml").write_text(settings)
    if rules is not None:
        (directory / "rules.yaml").write_text(rules)
    return directory


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LOG_LEVEL", "ARGUS_API_HOST", "ARGUS_API_PORT"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_loads_settings_and_rules(self, tmp_path):
        config = load_config(_write(tmp_path, rules=RULES))

        assert config.schedule.rules_interval_seconds == 15
        assert config.dispatch.channel_timeout_seconds == 2
        assert config.logging.format == LogFormat.CONSOLE
        assert config.logging.level == LogLevel.DEBUG
        assert [c.id for c in config.rules.channels] == ["ops"]
        assert config.rules.alert_rules[0].notification_channels == ["ops"]

    def test_rules_file_is_optional(self, tmp_path):
        config = load_config(_write(tmp_path))

        assert config.rules.alert_rules == []
        assert config.rules.seed_default_threat_rules is True

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            load_config(tmp_path / "nope")

    def test_missing_settings(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(tmp_path)

        assert exc_info.value.file_path == tmp_path / "settings.yaml"

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(_write(tmp_path, settings="schedule: [unclosed"))

        assert "Invalid YAML" in exc_info.value.message

    def test_unknown_setting(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            load_config(_write(tmp_path, settings="schedule:\n  every: 5\n"))

    def test_rules_in_settings_rejected(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            load_config(_write(tmp_path, settings="rules:\n  alert_rules: []\n"))

    def test_rule_with_unknown_channel(self, tmp_path):
        rules = RULES.replace("notification_channels: [ops]", "notification_channels: [pager]")

        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(_write(tmp_path, rules=rules))

        assert "pager" in exc_info.value.message

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("ARGUS_API_PORT", "9090")

        config = load_config(_write(tmp_path))

        assert config.logging.level == LogLevel.WARNING
        assert config.api.port == 9090

    def test_bad_port_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ARGUS_API_PORT", "http")

        with pytest.raises(ConfigLoadError):
            load_config(_write(tmp_path))

    def test_shipped_config_is_valid(self):
        config = load_config(REPO_CONFIG)

        assert config.rules.detection_configs
        assert config.rules.alert_rules
