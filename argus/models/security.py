"""
Security event and threat correlation models.

Models:
    SecurityEventType: Categories of audited security events
    EventSeverity: Reported severity of a single event (includes info)
    EventOutcome: Outcome of the audited action
    SecurityEvent: One audited security event
    ThreatRuleType: threshold (count in window) or pattern (single event)
    GroupBy: Event attribute used as the correlation key
    ThreatRule: Correlation rule configuration
    SecurityAlertStatus: Lifecycle states of a security alert
    SecurityAlert: Risk-scored alert raised by the correlator
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from argus.models.common import Severity, TrackedEntity, as_utc, utcnow


class SecurityEventType(str, Enum):
    """Categories of audited security events."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_ACCESS = "data_access"
    SYSTEM_CHANGE = "system_change"
    NETWORK_INTRUSION = "network_intrusion"
    MALWARE_DETECTION = "malware_detection"


class EventSeverity(str, Enum):
    """Severity reported with an individual security event."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EventOutcome(str, Enum):
    """
    Outcome of the audited action.

    Attributes:
        SUCCESS: The action succeeded.
        FAILURE: The action was attempted and failed.
        BLOCKED: The action was stopped by a control.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    BLOCKED = "blocked"


class SecurityEvent(BaseModel):
    """
    An audited security event.

    ``risk_score`` is computed by the correlator when the event is ingested;
    callers do not supply it.

    Attributes:
        id: Unique event identifier.
        event_type: Event category.
        severity: Reported severity.
        source_ip: Originating address, if known.
        user_id: Acting user id, if known.
        username: Acting username, if known.
        resource: Target resource, if any.
        action: Action that was attempted (e.g. "login").
        outcome: Outcome of the action.
        timestamp: When the event happened (UTC).
        details: Free-form context.
        risk_score: Per-event risk, 0-100.

    Example:
        >>> event = SecurityEvent(
        ...     event_type=SecurityEventType.AUTHENTICATION,
        ...     severity=EventSeverity.MEDIUM,
        ...     username="alice",
        ...     source_ip="10.0.0.5",
        ...     action="login",
        ...     outcome=EventOutcome.FAILURE,
        ...     timestamp=utcnow(),
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: f"sec_event_{uuid4().hex}",
        description="Unique event identifier",
    )
    event_type: SecurityEventType = Field(..., description="Event category")
    severity: EventSeverity = Field(..., description="Reported severity")
    source_ip: Optional[str] = Field(default=None, description="Originating address")
    user_id: Optional[str] = Field(default=None, description="Acting user id")
    username: Optional[str] = Field(default=None, description="Acting username")
    resource: Optional[str] = Field(default=None, description="Target resource")
    action: str = Field(..., description="Attempted action", min_length=1)
    outcome: EventOutcome = Field(..., description="Outcome of the action")
    timestamp: datetime = Field(..., description="Event time (UTC)")
    details: Dict[str, Any] = Field(default_factory=dict, description="Free-form context")
    risk_score: float = Field(
        default=0.0,
        description="Per-event risk score",
        ge=0,
        le=100,
    )

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        """Numeric user ids are stored as strings."""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store timestamps in UTC."""
        return as_utc(v)


class ThreatRuleType(str, Enum):
    """
    Correlation rule kinds.

    Attributes:
        THRESHOLD: At least ``threshold`` matching events per group in the window.
        PATTERN: A single matching event is enough.
    """

    THRESHOLD = "threshold"
    PATTERN = "pattern"


class GroupBy(str, Enum):
    """Event attribute used to group events into correlation keys."""

    SOURCE_IP = "source_ip"
    USERNAME = "username"
    USER_ID = "user_id"
    RESOURCE = "resource"


class ThreatRule(BaseModel):
    """
    Threat correlation rule.

    The attribute matchers (``event_type``, ``action``, ``outcome``) select
    events; unset matchers match anything. Matching events are grouped by
    ``group_by`` and each group is compared against ``threshold`` within the
    trailing ``window_seconds``.

    Attributes:
        id: Unique rule identifier.
        name: Human-readable name.
        description: What the rule detects.
        rule_type: threshold or pattern.
        event_type: Event category matcher.
        action: Action matcher.
        outcome: Outcome matcher.
        threshold: Matching events needed per group (pattern rules: 1).
        window_seconds: Correlation window, also the dedup cool-down.
        group_by: Grouping attribute.
        severity: Severity of raised alerts.
        enabled: Whether the rule is evaluated.
        notification_channels: Channel ids notified on a new alert.
        created_at: Creation time.
        updated_at: Last update time.

    Example:
        >>> rule = ThreatRule(
        ...     name="Multiple Failed Login Attempts",
        ...     rule_type=ThreatRuleType.THRESHOLD,
        ...     event_type=SecurityEventType.AUTHENTICATION,
        ...     outcome=EventOutcome.FAILURE,
        ...     threshold=5,
        ...     window_seconds=300,
        ...     severity=Severity.MEDIUM,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique rule identifier",
    )
    name: str = Field(..., description="Rule name", min_length=1, max_length=200)
    description: str = Field(default="", description="What the rule detects")
    rule_type: ThreatRuleType = Field(..., description="Rule kind")
    event_type: Optional[SecurityEventType] = Field(
        default=None,
        description="Event category matcher",
    )
    action: Optional[str] = Field(default=None, description="Action matcher")
    outcome: Optional[EventOutcome] = Field(default=None, description="Outcome matcher")
    threshold: int = Field(
        default=1,
        description="Matching events needed per group",
        ge=1,
    )
    window_seconds: int = Field(
        default=300,
        description="Correlation window and cool-down in seconds",
        ge=1,
    )
    group_by: GroupBy = Field(
        default=GroupBy.SOURCE_IP,
        description="Grouping attribute",
    )
    severity: Severity = Field(..., description="Severity of raised alerts")
    enabled: bool = Field(default=True, description="Whether the rule is evaluated")
    notification_channels: List[str] = Field(
        default_factory=list,
        description="Channel ids to notify",
    )
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update time")

    @model_validator(mode="after")
    def pattern_rules_match_single_events(self) -> "ThreatRule":
        """A pattern rule with a count threshold is a threshold rule in disguise."""
        if self.rule_type == ThreatRuleType.PATTERN and self.threshold != 1:
            raise ValueError("pattern rules must have threshold 1")
        return self

    @field_validator("notification_channels")
    @classmethod
    def dedupe_channels(cls, v: List[str]) -> List[str]:
        """Channel bindings are a set; keep first-seen order."""
        return list(dict.fromkeys(v))

    @property
    def threat_type(self) -> str:
        """Threat classification given to alerts raised by this rule."""
        if self.rule_type == ThreatRuleType.THRESHOLD:
            return "brute_force"
        return "policy_violation"

    def matches(self, event: SecurityEvent) -> bool:
        """
        Check the attribute matchers against an event.

        Args:
            event: The event to test.

        Returns:
            bool: True if every set matcher agrees with the event.
        """
        if self.event_type is not None and event.event_type != self.event_type:
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.outcome is not None and event.outcome != self.outcome:
            return False
        return True

    def group_key(self, event: SecurityEvent) -> str:
        """Correlation key of an event, "unknown" when the attribute is missing."""
        value = getattr(event, self.group_by.value)
        return value if value else "unknown"


class SecurityAlertStatus(str, Enum):
    """
    Security alert lifecycle states.

    Acknowledging a security alert moves it to INVESTIGATING.
    """

    ACTIVE = "active"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class SecurityAlert(TrackedEntity):
    """
    Risk-scored alert raised by the threat correlator.

    Attributes:
        id: Unique alert identifier.
        rule_id: Rule that raised the alert.
        rule_name: Rule name at trigger time.
        threat_type: Threat classification (brute_force, policy_violation).
        severity: Rule severity.
        description: Human-readable summary.
        risk_score: Correlated risk, 0-100.
        status: Lifecycle status.
        created_at: When the alert was raised.
        related_event_ids: Events that contributed to the match.
        affected_assets: Group key values the alert concerns.
        notification_sent: Whether at least one channel was notified.
    """

    STATUS_ACKNOWLEDGED: ClassVar[str] = "investigating"

    model_config = {"extra": "forbid"}

    id: str = Field(
        default_factory=lambda: f"sec_alert_{uuid4().hex}",
        description="Unique alert identifier",
    )
    rule_id: str = Field(..., description="Rule that raised the alert")
    rule_name: str = Field(..., description="Rule name at trigger time")
    threat_type: str = Field(..., description="Threat classification")
    severity: Severity = Field(..., description="Alert severity")
    description: str = Field(default="", description="Summary")
    risk_score: int = Field(..., description="Correlated risk score", ge=0, le=100)
    status: SecurityAlertStatus = Field(
        default=SecurityAlertStatus.ACTIVE,
        description="Lifecycle status",
    )
    created_at: datetime = Field(default_factory=utcnow, description="Creation time")
    related_event_ids: List[str] = Field(
        default_factory=list,
        description="Contributing event ids",
    )
    affected_assets: List[str] = Field(
        default_factory=list,
        description="Group key values the alert concerns",
    )
    notification_sent: bool = Field(
        default=False,
        description="Whether at least one channel was notified",
    )
