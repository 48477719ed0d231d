"""
Pydantic models for application configuration.

This module defines all configuration models that are validated when loading
YAML configuration files. Every section has working defaults, so
``AppConfig()`` is a complete configuration on its own.

Configuration files:
    - config/settings.yaml: Runtime settings (stores, schedule, dispatch, API, logging)
    - config/rules.yaml: Seed channels, detection configs, alert rules and threat rules

Example:
    >>> from argus.config.models import AppConfig
    >>> config = AppConfig()
    >>> config.dispatch.channel_timeout_seconds
    5.0
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from argus.models.alerts import AlertRule
from argus.models.anomalies import DetectionConfig
from argus.models.channels import NotificationChannel
from argus.models.security import ThreatRule


# =============================================================================
# ENUMS
# =============================================================================


class LogFormat(str, Enum):
    """Logging format options."""

    JSON = "json"
    CONSOLE = "console"


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# STORE CONFIGURATION
# =============================================================================


class WindowSettings(BaseModel):
    """Metric window store bounds."""

    model_config = {"frozen": True, "extra": "forbid"}

    retention_minutes: int = Field(
        default=1440,
        description="Sample retention relative to the newest sample",
        ge=1,
    )
    max_samples_per_key: int = Field(
        default=10_000,
        description="Maximum samples kept per (metric, service)",
        ge=1,
    )


class EventSettings(BaseModel):
    """Security event store bounds."""

    model_config = {"frozen": True, "extra": "forbid"}

    retention_minutes: int = Field(
        default=1440,
        description="Event retention relative to the newest event",
        ge=1,
    )
    max_events: int = Field(
        default=100_000,
        description="Maximum retained events",
        ge=1,
    )


# =============================================================================
# EVALUATION CONFIGURATION
# =============================================================================


class ScheduleSettings(BaseModel):
    """Periodic evaluation intervals."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(
        default=True,
        description="Run the periodic loops",
    )
    detection_interval_seconds: float = Field(
        default=30.0,
        description="Scheduler tick for anomaly detection",
        gt=0,
    )
    rules_interval_seconds: float = Field(
        default=60.0,
        description="Alert rule evaluation interval",
        gt=0,
    )
    threats_interval_seconds: float = Field(
        default=60.0,
        description="Threat correlation interval",
        gt=0,
    )


class EvaluationSettings(BaseModel):
    """Rule and detector evaluation settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    sample_interval_seconds: float = Field(
        default=60.0,
        description="Expected metric spacing; a breach must start this close to the window start",
        gt=0,
    )
    max_concurrency: int = Field(
        default=32,
        description="Maximum items evaluated concurrently within a tick",
        ge=1,
    )


class DispatchSettings(BaseModel):
    """Notification dispatch settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    channel_timeout_seconds: float = Field(
        default=5.0,
        description="Per-channel delivery timeout",
        gt=0,
    )


class EmailSettings(BaseModel):
    """
    SMTP settings for email channels.

    Credentials can also come from ARGUS_SMTP_USERNAME / ARGUS_SMTP_PASSWORD,
    which take priority.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    smtp_host: str = Field(default="localhost", description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port", ge=1, le=65535)
    from_address: str = Field(default="argus@localhost", description="Sender address")
    from_name: str = Field(default="Argus Alerts", description="Sender display name")
    use_tls: bool = Field(default=True, description="Use STARTTLS")
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")


# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================


class ApiSettings(BaseModel):
    """HTTP API settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(default=True, description="Serve the HTTP API")
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port", ge=1, le=65535)
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Default log level",
    )


# =============================================================================
# SEED RULES
# =============================================================================


class RulesConfig(BaseModel):
    """
    Seed entities loaded at startup (rules.yaml).

    When ``threat_rules`` is empty and ``seed_default_threat_rules`` is set,
    the built-in threat rules are installed.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    channels: List[NotificationChannel] = Field(
        default_factory=list,
        description="Notification channels",
    )
    detection_configs: List[DetectionConfig] = Field(
        default_factory=list,
        description="Anomaly detection configs",
    )
    alert_rules: List[AlertRule] = Field(
        default_factory=list,
        description="Threshold alert rules",
    )
    threat_rules: List[ThreatRule] = Field(
        default_factory=list,
        description="Threat correlation rules",
    )
    seed_default_threat_rules: bool = Field(
        default=True,
        description="Install built-in threat rules when none are configured",
    )

    @model_validator(mode="after")
    def validate_references(self) -> "RulesConfig":
        """Validate that rules only reference configured channels."""
        channel_ids = {c.id for c in self.channels}
        for rule in [*self.alert_rules, *self.threat_rules]:
            for channel_id in rule.notification_channels:
                if channel_id not in channel_ids:
                    raise ValueError(
                        f"Rule '{rule.name}' references unknown channel: {channel_id}"
                    )

        keys = [c.key for c in self.detection_configs]
        if len(keys) != len(set(keys)):
            raise ValueError("Duplicate detection config for the same (metric_name, service)")

        return self


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class AppConfig(BaseModel):
    """
    Root application configuration.

    Aggregates all configuration sections into a single validated object.

    Example:
        >>> config = AppConfig()
        >>> config.schedule.rules_interval_seconds
        60.0
    """

    model_config = {"frozen": True, "extra": "forbid"}

    window: WindowSettings = Field(
        default_factory=WindowSettings,
        description="Metric window store settings",
    )
    events: EventSettings = Field(
        default_factory=EventSettings,
        description="Security event store settings",
    )
    schedule: ScheduleSettings = Field(
        default_factory=ScheduleSettings,
        description="Periodic loop settings",
    )
    evaluation: EvaluationSettings = Field(
        default_factory=EvaluationSettings,
        description="Evaluation settings",
    )
    dispatch: DispatchSettings = Field(
        default_factory=DispatchSettings,
        description="Dispatch settings",
    )
    email: EmailSettings = Field(
        default_factory=EmailSettings,
        description="SMTP settings",
    )
    api: ApiSettings = Field(
        default_factory=ApiSettings,
        description="HTTP API settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    rules: RulesConfig = Field(
        default_factory=RulesConfig,
        description="Seed rules and channels",
    )
