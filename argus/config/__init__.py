"""
Configuration management for the detection subsystem.

Configuration is loaded from YAML files in the config/ directory:
    - settings.yaml: Stores, schedule, evaluation, dispatch, email, API, logging
    - rules.yaml: Seed channels, detection configs, alert rules, threat rules

Environment variables can override:
    - LOG_LEVEL: Application log level
    - ARGUS_API_HOST / ARGUS_API_PORT: HTTP API bind address
    - ARGUS_SMTP_USERNAME / ARGUS_SMTP_PASSWORD: SMTP credentials
    - CONFIG_PATH: Configuration directory (read by the service runner)

Example:
    >>> from argus.config import load_config, AppConfig
    >>> config = load_config()
    >>> config.schedule.detection_interval_seconds
    30.0

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from argus.config.loader import (
    ConfigLoadError,
    ConfigLoader,
    load_config,
)
from argus.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    # Sections
    ApiSettings,
    DispatchSettings,
    EmailSettings,
    EvaluationSettings,
    EventSettings,
    LoggingConfig,
    RulesConfig,
    ScheduleSettings,
    WindowSettings,
    # Root
    AppConfig,
)

__all__ = [
    # Loader
    "ConfigLoadError",
    "ConfigLoader",
    "load_config",
    # Enums
    "LogFormat",
    "LogLevel",
    # Sections
    "ApiSettings",
    "DispatchSettings",
    "EmailSettings",
    "EvaluationSettings",
    "EventSettings",
    "LoggingConfig",
    "RulesConfig",
    "ScheduleSettings",
    "WindowSettings",
    # Root
    "AppConfig",
]
