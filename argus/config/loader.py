"""
Configuration loader for YAML-based application configuration.

This module loads and validates configuration from YAML files. All
configuration is validated using Pydantic models so configuration errors
surface at startup rather than on the first evaluation tick.

Configuration files expected:
    - config/settings.yaml: Runtime settings (required)
    - config/rules.yaml: Seed channels and rules (optional)

Environment variables override:
    - LOG_LEVEL: Application log level
    - ARGUS_API_HOST: HTTP API bind address
    - ARGUS_API_PORT: HTTP API bind port

Example:
    >>> from argus.config.loader import load_config
    >>> config = load_config("config")
    >>> config.api.port
    8080
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from argus.config.models import (
    AppConfig,
    LogLevel,
    RulesConfig,
)
from argus.errors import ArgusError


SETTINGS_FILE = "settings.yaml"
RULES_FILE = "rules.yaml"


class ConfigLoadError(ArgusError):
    """
    Raised when configuration loading fails.

    Attributes:
        message: Error message describing what went wrong.
        file_path: Path to the file that caused the error, if applicable.
        cause: Original exception that caused the error, if any.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Loads and validates application configuration from YAML files.

    Expects the following directory structure:
        config/
        ├── settings.yaml  - Stores, schedule, dispatch, email, API, logging
        └── rules.yaml     - Channels, detection configs, alert and threat rules

    Example:
        >>> loader = ConfigLoader("config")
        >>> config = loader.load()
        >>> len(config.rules.alert_rules)
        2
    """

    def __init__(self, config_dir: Path | str = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Path to configuration directory (default: 'config').

        Raises:
            ConfigLoadError: If config directory does not exist.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigLoadError(
                f"Configuration directory not found: {self.config_dir}",
                file_path=self.config_dir,
            )
        if not self.config_dir.is_dir():
            raise ConfigLoadError(
                f"Configuration path is not a directory: {self.config_dir}",
                file_path=self.config_dir,
            )

    def _load_yaml(self, filename: str, required: bool = True) -> Dict[str, Any]:
        """
        Load a YAML file from the config directory.

        Args:
            filename: Name of YAML file (e.g., 'settings.yaml').
            required: Whether a missing file is an error.

        Returns:
            Dict containing parsed YAML content (empty for a missing optional file).

        Raises:
            ConfigLoadError: If file not found, empty, or invalid YAML.
        """
        file_path = self.config_dir / filename
        if not file_path.exists():
            if not required:
                return {}
            raise ConfigLoadError(
                f"Configuration file not found: {file_path}",
                file_path=file_path,
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            if not required:
                return {}
            raise ConfigLoadError(
                f"Configuration file is empty: {file_path}",
                file_path=file_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration file must contain a mapping: {file_path}",
                file_path=file_path,
            )
        return data

    def _load_rules(self) -> RulesConfig:
        """
        Load seed entities from rules.yaml.

        Returns:
            RulesConfig: Validated seed entities (empty if the file is absent).

        Raises:
            ConfigLoadError: If an entry is invalid.
        """
        data = self._load_yaml(RULES_FILE, required=False)
        try:
            return RulesConfig(**data)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid rules configuration: {e}",
                file_path=self.config_dir / RULES_FILE,
                cause=e,
            ) from e

    def _apply_env_overrides(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge environment variable overrides into raw settings.

        Environment variables:
            - LOG_LEVEL: Log level
            - ARGUS_API_HOST: API bind address
            - ARGUS_API_PORT: API bind port

        Args:
            settings: Raw settings mapping from settings.yaml.

        Returns:
            Dict[str, Any]: Settings with overrides applied.
        """
        merged = dict(settings)

        level = self._get_log_level()
        if level is not None:
            logging_section = dict(merged.get("logging") or {})
            logging_section["level"] = level.value
            merged["logging"] = logging_section

        host = os.getenv("ARGUS_API_HOST")
        port = os.getenv("ARGUS_API_PORT")
        if host or port:
            api_section = dict(merged.get("api") or {})
            if host:
                api_section["host"] = host
            if port:
                try:
                    api_section["port"] = int(port)
                except ValueError as e:
                    raise ConfigLoadError(
                        f"ARGUS_API_PORT must be an integer, got {port!r}",
                        cause=e,
                    ) from e
            merged["api"] = api_section

        return merged

    def _get_log_level(self) -> Optional[LogLevel]:
        """
        Get log level from environment.

        Returns:
            Optional[LogLevel]: Level from LOG_LEVEL, or None if unset or invalid.
        """
        level_str = os.getenv("LOG_LEVEL")
        if not level_str:
            return None
        try:
            return LogLevel(level_str.upper())
        except ValueError:
            return None

    def load(self) -> AppConfig:
        """
        Load and validate all configuration files.

        Returns:
            AppConfig: Validated application configuration.

        Raises:
            ConfigLoadError: If any configuration is invalid or missing.

        Example:
            >>> config = ConfigLoader("config").load()
            >>> config.dispatch.channel_timeout_seconds
            5.0
        """
        try:
            settings = self._apply_env_overrides(self._load_yaml(SETTINGS_FILE))
            if "rules" in settings:
                raise ConfigLoadError(
                    f"Rules belong in {RULES_FILE}, not {SETTINGS_FILE}",
                    file_path=self.config_dir / SETTINGS_FILE,
                )
            rules = self._load_rules()

            return AppConfig(**settings, rules=rules)

        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed: {e}",
                file_path=self.config_dir / SETTINGS_FILE,
                cause=e,
            ) from e


def load_config(config_dir: Path | str = "config") -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_dir: Path to configuration directory (default: 'config').

    Returns:
        AppConfig: Validated application configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.

    Example:
        >>> from argus.config import load_config
        >>> config = load_config()
    """
    loader = ConfigLoader(config_dir)
    return loader.load()
