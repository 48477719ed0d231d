"""
Configuration registry.

Owns the user-managed configuration: detection configs, alert rules, threat
rules and notification channels. Every mutation is validated in full before
it is applied, so a rejected request leaves the registry unchanged.

Key Features:
    - CRUD for all four entity kinds behind one threading.Lock
    - pydantic errors surfaced as argus ValidationError
    - Detection configs unique by (metric_name, service), with a lookback
      that fits inside the metric retention
    - Rules may only reference existing channels; referenced channels
      cannot be deleted

Example:
    >>> registry = ConfigRegistry()
    >>> channel = registry.create_channel(
    ...     {"name": "ops", "type": "webhook", "config": {"url": "https://hooks.example/ops"}}
    ... )
    >>> rule = registry.create_alert_rule({
    ...     "name": "CPU high",
    ...     "metric_name": "cpu.usage",
    ...     "condition": "greater_than",
    ...     "threshold": 90,
    ...     "duration_minutes": 3,
    ...     "severity": "high",
    ...     "notification_channels": [channel.id],
    ... })
"""

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from argus.detection.algorithms import lookback_minutes
from argus.errors import NotFoundError, ValidationError
from argus.models.alerts import AlertRule
from argus.models.anomalies import DetectionConfig
from argus.models.channels import NotificationChannel
from argus.models.common import utcnow
from argus.models.security import ThreatRule

logger = structlog.get_logger(__name__)


M = TypeVar("M", bound=BaseModel)

ConfigKey = Tuple[str, Optional[str]]

# Fields that identify an entity and cannot be changed by an update
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "metric_name", "service"})


def _build(model: Type[M], data: Union[M, Mapping[str, Any]], entity: str) -> M:
    """Validate input into a model, converting pydantic errors."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, entity) from e


def _apply(current: M, changes: Mapping[str, Any], entity: str, keyed_by: Iterable[str]) -> M:
    """Revalidate ``current`` with ``changes`` applied."""
    locked = set(keyed_by) & set(changes)
    for name in locked:
        if changes[name] != getattr(current, name, None):
            raise ValidationError(
                f"Invalid {entity}: field '{name}' cannot be changed",
                errors=[{"loc": name, "msg": "immutable field", "type": "immutable"}],
            )

    merged = current.model_dump()
    merged.update(changes)
    if "updated_at" in type(current).model_fields:
        merged["updated_at"] = utcnow()

    try:
        return type(current).model_validate(merged)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, entity) from e


class ConfigRegistry:
    """
    Thread-safe store of detection configs, rules and channels.

    Reads return immutable models; list operations return copies of the
    current collections.
    """

    def __init__(self, max_lookback_minutes: Optional[int] = None) -> None:
        """
        Initialize an empty registry.

        Args:
            max_lookback_minutes: Retained metric history; configs needing a
                longer lookback are rejected (None disables the check).
        """
        self.max_lookback_minutes = max_lookback_minutes
        self._configs: Dict[ConfigKey, DetectionConfig] = {}
        self._alert_rules: Dict[str, AlertRule] = {}
        self._threat_rules: Dict[str, ThreatRule] = {}
        self._channels: Dict[str, NotificationChannel] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Reference checks (caller holds the lock)
    # -------------------------------------------------------------------------

    def _check_channels(self, entity: str, channel_ids: Iterable[str]) -> None:
        unknown = [c for c in channel_ids if c not in self._channels]
        if unknown:
            raise ValidationError(
                f"Invalid {entity}: unknown notification channel(s) {', '.join(unknown)}",
                errors=[
                    {"loc": "notification_channels", "msg": f"unknown channel {c}", "type": "reference"}
                    for c in unknown
                ],
            )

    def _channel_users(self, channel_id: str) -> List[str]:
        rules: List[Union[AlertRule, ThreatRule]] = [
            *self._alert_rules.values(),
            *self._threat_rules.values(),
        ]
        return [r.id for r in rules if channel_id in r.notification_channels]

    def _check_lookback(self, config: DetectionConfig) -> None:
        if self.max_lookback_minutes is None:
            return
        needed = lookback_minutes(config)
        if needed > self.max_lookback_minutes:
            raise ValidationError(
                f"Invalid detection_config: {config.algorithm.value} with window_minutes "
                f"{config.window_minutes} needs {needed} minutes of history, "
                f"retention is {self.max_lookback_minutes}",
                errors=[
                    {
                        "loc": "window_minutes",
                        "msg": f"lookback {needed}m exceeds retention {self.max_lookback_minutes}m",
                        "type": "retention",
                    }
                ],
            )

    # -------------------------------------------------------------------------
    # Detection configs
    # -------------------------------------------------------------------------

    def create_detection_config(
        self, data: Union[DetectionConfig, Mapping[str, Any]]
    ) -> DetectionConfig:
        """
        Add a detection config.

        Args:
            data: Config fields or a validated DetectionConfig.

        Returns:
            DetectionConfig: The stored config.

        Raises:
            ValidationError: Invalid fields or a config for the same
                (metric_name, service) already exists.
        """
        config = _build(DetectionConfig, data, "detection_config")
        self._check_lookback(config)
        with self._lock:
            if config.key in self._configs:
                raise ValidationError(
                    f"Invalid detection_config: {config.key_str} already configured",
                    errors=[{"loc": "metric_name", "msg": "duplicate key", "type": "duplicate"}],
                )
            self._configs[config.key] = config

        logger.info(
            "detection_config_created",
            key=config.key_str,
            algorithm=config.algorithm.value,
            sensitivity=config.sensitivity,
        )
        return config

    def get_detection_config(self, metric_name: str, service: Optional[str] = None) -> DetectionConfig:
        """
        Look up a config by key.

        Raises:
            NotFoundError: No config for the key.
        """
        with self._lock:
            config = self._configs.get((metric_name, service or None))
        if config is None:
            raise NotFoundError("detection_config", f"{metric_name}:{service or '*'}")
        return config

    def list_detection_configs(self) -> List[DetectionConfig]:
        """All detection configs."""
        with self._lock:
            return list(self._configs.values())

    def update_detection_config(
        self,
        metric_name: str,
        service: Optional[str],
        changes: Mapping[str, Any],
    ) -> DetectionConfig:
        """
        Change algorithm, sensitivity, window or enabled flag of a config.

        Raises:
            NotFoundError: No config for the key.
            ValidationError: Invalid values or an attempt to change the key.
        """
        key = (metric_name, service or None)
        with self._lock:
            current = self._configs.get(key)
            if current is None:
                raise NotFoundError("detection_config", f"{metric_name}:{service or '*'}")
            updated = _apply(current, changes, "detection_config", IMMUTABLE_FIELDS)
            self._check_lookback(updated)
            self._configs[key] = updated

        logger.info("detection_config_updated", key=updated.key_str, fields=sorted(changes))
        return updated

    def delete_detection_config(self, metric_name: str, service: Optional[str] = None) -> DetectionConfig:
        """
        Remove a config.

        Raises:
            NotFoundError: No config for the key.
        """
        with self._lock:
            config = self._configs.pop((metric_name, service or None), None)
        if config is None:
            raise NotFoundError("detection_config", f"{metric_name}:{service or '*'}")

        logger.info("detection_config_deleted", key=config.key_str)
        return config

    # -------------------------------------------------------------------------
    # Alert rules
    # -------------------------------------------------------------------------

    def create_alert_rule(self, data: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        """
        Add a threshold alert rule.

        Raises:
            ValidationError: Invalid fields, duplicate id or unknown channel.
        """
        rule = _build(AlertRule, data, "alert_rule")
        with self._lock:
            if rule.id in self._alert_rules:
                raise ValidationError(f"Invalid alert_rule: id {rule.id} already exists")
            self._check_channels("alert_rule", rule.notification_channels)
            self._alert_rules[rule.id] = rule

        logger.info(
            "alert_rule_created",
            rule_id=rule.id,
            name=rule.name,
            metric_name=rule.metric_name,
            condition=rule.condition.value,
            threshold=rule.threshold,
        )
        return rule

    def get_alert_rule(self, rule_id: str) -> AlertRule:
        """
        Look up an alert rule.

        Raises:
            NotFoundError: Unknown id.
        """
        with self._lock:
            rule = self._alert_rules.get(rule_id)
        if rule is None:
            raise NotFoundError("alert_rule", rule_id)
        return rule

    def list_alert_rules(self) -> List[AlertRule]:
        """All alert rules."""
        with self._lock:
            return list(self._alert_rules.values())

    def update_alert_rule(self, rule_id: str, changes: Mapping[str, Any]) -> AlertRule:
        """
        Update an alert rule. Disabling a rule leaves its open alerts alone.

        Raises:
            NotFoundError: Unknown id.
            ValidationError: Invalid values or unknown channel.
        """
        with self._lock:
            current = self._alert_rules.get(rule_id)
            if current is None:
                raise NotFoundError("alert_rule", rule_id)
            updated = _apply(current, changes, "alert_rule", ("id", "created_at"))
            self._check_channels("alert_rule", updated.notification_channels)
            self._alert_rules[rule_id] = updated

        logger.info("alert_rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def delete_alert_rule(self, rule_id: str) -> AlertRule:
        """
        Remove an alert rule.

        Raises:
            NotFoundError: Unknown id.
        """
        with self._lock:
            rule = self._alert_rules.pop(rule_id, None)
        if rule is None:
            raise NotFoundError("alert_rule", rule_id)

        logger.info("alert_rule_deleted", rule_id=rule_id)
        return rule

    # -------------------------------------------------------------------------
    # Threat rules
    # -------------------------------------------------------------------------

    def create_threat_rule(self, data: Union[ThreatRule, Mapping[str, Any]]) -> ThreatRule:
        """
        Add a threat correlation rule.

        Raises:
            ValidationError: Invalid fields, duplicate id or unknown channel.
        """
        rule = _build(ThreatRule, data, "threat_rule")
        with self._lock:
            if rule.id in self._threat_rules:
                raise ValidationError(f"Invalid threat_rule: id {rule.id} already exists")
            self._check_channels("threat_rule", rule.notification_channels)
            self._threat_rules[rule.id] = rule

        logger.info(
            "threat_rule_created",
            rule_id=rule.id,
            name=rule.name,
            rule_type=rule.rule_type.value,
        )
        return rule

    def get_threat_rule(self, rule_id: str) -> ThreatRule:
        """
        Look up a threat rule.

        Raises:
            NotFoundError: Unknown id.
        """
        with self._lock:
            rule = self._threat_rules.get(rule_id)
        if rule is None:
            raise NotFoundError("threat_rule", rule_id)
        return rule

    def list_threat_rules(self) -> List[ThreatRule]:
        """All threat rules."""
        with self._lock:
            return list(self._threat_rules.values())

    def update_threat_rule(self, rule_id: str, changes: Mapping[str, Any]) -> ThreatRule:
        """
        Update a threat rule.

        Raises:
            NotFoundError: Unknown id.
            ValidationError: Invalid values or unknown channel.
        """
        with self._lock:
            current = self._threat_rules.get(rule_id)
            if current is None:
                raise NotFoundError("threat_rule", rule_id)
            updated = _apply(current, changes, "threat_rule", ("id", "created_at"))
            self._check_channels("threat_rule", updated.notification_channels)
            self._threat_rules[rule_id] = updated

        logger.info("threat_rule_updated", rule_id=rule_id, fields=sorted(changes))
        return updated

    def delete_threat_rule(self, rule_id: str) -> ThreatRule:
        """
        Remove a threat rule.

        Raises:
            NotFoundError: Unknown id.
        """
        with self._lock:
            rule = self._threat_rules.pop(rule_id, None)
        if rule is None:
            raise NotFoundError("threat_rule", rule_id)

        logger.info("threat_rule_deleted", rule_id=rule_id)
        return rule

    # -------------------------------------------------------------------------
    # Notification channels
    # -------------------------------------------------------------------------

    def create_channel(
        self, data: Union[NotificationChannel, Mapping[str, Any]]
    ) -> NotificationChannel:
        """
        Add a notification channel.

        Raises:
            ValidationError: Invalid fields, type config or duplicate id.
        """
        channel = _build(NotificationChannel, data, "notification_channel")
        with self._lock:
            if channel.id in self._channels:
                raise ValidationError(
                    f"Invalid notification_channel: id {channel.id} already exists"
                )
            self._channels[channel.id] = channel

        logger.info(
            "notification_channel_created",
            channel_id=channel.id,
            channel_type=channel.type.value,
        )
        return channel

    def get_channel(self, channel_id: str) -> NotificationChannel:
        """
        Look up a channel.

        Raises:
            NotFoundError: Unknown id.
        """
        channel = self.get_channel_or_none(channel_id)
        if channel is None:
            raise NotFoundError("notification_channel", channel_id)
        return channel

    def get_channel_or_none(self, channel_id: str) -> Optional[NotificationChannel]:
        """Channel resolver used by the dispatcher."""
        with self._lock:
            return self._channels.get(channel_id)

    def list_channels(self) -> List[NotificationChannel]:
        """All notification channels."""
        with self._lock:
            return list(self._channels.values())

    def update_channel(self, channel_id: str, changes: Mapping[str, Any]) -> NotificationChannel:
        """
        Update a channel (name, config or enabled flag).

        Raises:
            NotFoundError: Unknown id.
            ValidationError: Invalid values or config for the channel type.
        """
        with self._lock:
            current = self._channels.get(channel_id)
            if current is None:
                raise NotFoundError("notification_channel", channel_id)
            updated = _apply(current, changes, "notification_channel", ("id", "created_at"))
            self._channels[channel_id] = updated

        logger.info("notification_channel_updated", channel_id=channel_id, fields=sorted(changes))
        return updated

    def delete_channel(self, channel_id: str) -> NotificationChannel:
        """
        Remove a channel that no rule references.

        Raises:
            NotFoundError: Unknown id.
            ValidationError: The channel is still bound to a rule.
        """
        with self._lock:
            if channel_id not in self._channels:
                raise NotFoundError("notification_channel", channel_id)
            users = self._channel_users(channel_id)
            if users:
                raise ValidationError(
                    f"Invalid notification_channel: {channel_id} is used by rule(s) "
                    f"{', '.join(users)}",
                    errors=[{"loc": "id", "msg": "channel in use", "type": "reference"}],
                )
            channel = self._channels.pop(channel_id)

        logger.info("notification_channel_deleted", channel_id=channel_id)
        return channel

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def counts(self) -> Dict[str, Dict[str, int]]:
        """Total and enabled counts per entity kind."""
        with self._lock:
            groups: Dict[str, List[Any]] = {
                "detection_configs": list(self._configs.values()),
                "alert_rules": list(self._alert_rules.values()),
                "threat_rules": list(self._threat_rules.values()),
                "channels": list(self._channels.values()),
            }
        return {
            name: {"total": len(items), "enabled": sum(1 for i in items if i.enabled)}
            for name, items in groups.items()
        }
