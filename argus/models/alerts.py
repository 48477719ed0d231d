"""
Alert data models.

This module defines threshold alert rules and the alerts they raise.

Models:
    AlertCondition: Comparison conditions (greater_than, less_than, equals, not_equals)
    AlertStatus: Alert lifecycle states (active, acknowledged, resolved)
    AlertRule: Threshold rule configuration
    Alert: Active or historical alert instance
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from argus.models.common import Severity, TrackedEntity, utcnow

# Absolute tolerance used by the equals/not_equals conditions
EQUALITY_TOLERANCE = 0.001


class AlertCondition(str, Enum):
    """
    Comparison conditions for alert rule evaluation.

    Attributes:
        GREATER_THAN: value > threshold.
        LESS_THAN: value < threshold.
        EQUALS: |value - threshold| < 0.001.
        NOT_EQUALS: |value - threshold| >= 0.001.
    """

    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"

    def evaluate(self, value: float, threshold: float) -> bool:
        """
        Evaluate the condition.

        Args:
            value: The metric value to check.
            threshold: The threshold to compare against.

        Returns:
            bool: True if condition is met.
        """
        if self == AlertCondition.GREATER_THAN:
            return value > threshold
        elif self == AlertCondition.LESS_THAN:
            return value < threshold
        elif self == AlertCondition.EQUALS:
            return abs(value - threshold) < EQUALITY_TOLERANCE
        elif self == AlertCondition.NOT_EQUALS:
            return abs(value - threshold) >= EQUALITY_TOLERANCE
        return False

    @property
    def symbol(self) -> str:
        """Short operator form used in messages."""
        return {
            AlertCondition.GREATER_THAN: ">",
            AlertCondition.LESS_THAN: "<",
            AlertCondition.EQUALS: "==",
            AlertCondition.NOT_EQUALS: "!=",
        }[self]


class AlertStatus(str, Enum):
    """
    Alert lifecycle states.

    Attributes:
        ACTIVE: Raised and not yet handled.
        ACKNOWLEDGED: An operator has taken ownership.
        RESOLVED: Terminal; later firings create a new alert.
    """

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class AlertRule(BaseModel):
    """
    Threshold alert rule.

    A rule fires when every sample over the last ``duration_minutes``
    satisfies ``condition(value, threshold)``.

    Attributes:
        id: Unique rule identifier.
        name: Human-readable name.
        description: Optional longer description.
        metric_name: Metric the rule watches.
        service: Service filter (None for all services).
        condition: Comparison condition.
        threshold: Threshold value.
        duration_minutes: How long the breach must be sustained.
        severity: Severity given to raised alerts.
        notification_channels: Channel ids notified when an alert is raised.
        enabled: Whether the rule is evaluated.
        created_by: Creator identifier.
        created_at: Creation time.
        updated_at: Last update time.

    Example:
        >>> rule = AlertRule(
        ...     name="High CPU",
        ...     metric_name="cpu.usage",
        ...     condition=AlertCondition.GREATER_THAN,
        ...     threshold=90.0,
        ...     duration_minutes=3,
        ...     severity=Severity.HIGH,
        ...     created_by="ops",
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique rule identifier",
    )
    name: str = Field(
        ...,
        description="Human-readable name",
        min_length=1,
        max_length=200,
    )
    description: Optional[str] = Field(
        default=None,
        description="Rule description",
    )
    metric_name: str = Field(
        ...,
        description="Metric the rule watches",
        min_length=1,
    )
    service: Optional[str] = Field(
        default=None,
        description="Service filter (None matches all services)",
    )
    condition: AlertCondition = Field(
        ...,
        description="Comparison condition",
    )
    threshold: float = Field(
        ...,
        description="Threshold value",
    )
    duration_minutes: int = Field(
        ...,
        description="Minutes the condition must hold",
        ge=1,
    )
    severity: Severity = Field(
        ...,
        description="Severity of raised alerts",
    )
    notification_channels: List[str] = Field(
        default_factory=list,
        description="Channel ids to notify",
    )
    enabled: bool = Field(
        default=True,
        description="Whether the rule is evaluated",
    )
    created_by: str = Field(
        default="system",
        description="Creator identifier",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="Creation time",
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        description="Last update time",
    )

    @field_validator("service", mode="before")
    @classmethod
    def blank_service_is_wildcard(cls, v: Any) -> Any:
        """Treat an empty service string as the wildcard."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("notification_channels")
    @classmethod
    def dedupe_channels(cls, v: List[str]) -> List[str]:
        """Channel bindings are a set; keep first-seen order."""
        return list(dict.fromkeys(v))

    @field_validator("created_by", mode="before")
    @classmethod
    def coerce_creator(cls, v: Any) -> Any:
        """Accept numeric user ids."""
        if isinstance(v, int):
            return str(v)
        return v


class Alert(TrackedEntity):
    """
    Alert raised by a threshold rule.

    At most one open (active or acknowledged) alert exists per rule.

    Attributes:
        id: Unique alert identifier.
        rule_id: Rule that raised the alert.
        rule_name: Rule name at trigger time.
        metric_name: Metric that breached.
        service: Service that reported the metric.
        current_value: Latest observed value (updated while open).
        threshold: Threshold that was breached.
        condition: Condition that was evaluated.
        severity: Alert severity.
        status: Lifecycle status.
        message: Human-readable trigger message.
        triggered_at: When the alert was raised.
        updated_at: When current_value last changed.
        notification_sent: Whether at least one channel was notified.
    """

    model_config = {"extra": "forbid"}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique alert identifier",
    )
    rule_id: str = Field(..., description="Rule that raised the alert")
    rule_name: str = Field(..., description="Rule name at trigger time")
    metric_name: str = Field(..., description="Metric that breached")
    service: Optional[str] = Field(default=None, description="Reporting service")
    current_value: float = Field(..., description="Latest observed value")
    threshold: float = Field(..., description="Threshold that was breached")
    condition: AlertCondition = Field(..., description="Evaluated condition")
    severity: Severity = Field(..., description="Alert severity")
    status: AlertStatus = Field(
        default=AlertStatus.ACTIVE,
        description="Lifecycle status",
    )
    message: str = Field(default="", description="Trigger message")
    triggered_at: datetime = Field(
        default_factory=utcnow,
        description="When the alert was raised",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        description="When current_value last changed",
    )
    notification_sent: bool = Field(
        default=False,
        description="Whether at least one channel was notified",
    )

    def update_value(self, value: float, timestamp: Optional[datetime] = None) -> "Alert":
        """
        Record the latest observed value without retriggering.

        Args:
            value: Current metric value.
            timestamp: Observation time, defaults to now.

        Returns:
            Alert: Updated copy.
        """
        return self.model_copy(
            update={
                "current_value": value,
                "updated_at": timestamp or utcnow(),
            }
        )
