"""
Shared Pydantic data models for the detection subsystem.

Modules:
    common: Severity, lifecycle base class and list pages
    metrics: Metric samples
    anomalies: Detection configs and anomalies
    alerts: Threshold alert rules and alerts
    security: Security events, threat rules and security alerts
    channels: Notification channels

Example:
    >>> from argus.models import MetricSample, AlertRule, AlertCondition
    >>> from argus.models import Severity, Page
"""

# Shared primitives
from argus.models.common import (
    Page,
    Severity,
    TrackedEntity,
    as_utc,
    utcnow,
)

# Metric models
from argus.models.metrics import MetricSample

# Anomaly models
from argus.models.anomalies import (
    Anomaly,
    AnomalyStatus,
    DetectionAlgorithm,
    DetectionConfig,
)

# Alert models
from argus.models.alerts import (
    Alert,
    AlertCondition,
    AlertRule,
    AlertStatus,
)

# Security models
from argus.models.security import (
    EventOutcome,
    EventSeverity,
    GroupBy,
    SecurityAlert,
    SecurityAlertStatus,
    SecurityEvent,
    SecurityEventType,
    ThreatRule,
    ThreatRuleType,
)

# Channel models
from argus.models.channels import ChannelType, NotificationChannel

__all__ = [
    # Common
    "Page",
    "Severity",
    "TrackedEntity",
    "as_utc",
    "utcnow",
    # Metrics
    "MetricSample",
    # Anomalies
    "Anomaly",
    "AnomalyStatus",
    "DetectionAlgorithm",
    "DetectionConfig",
    # Alerts
    "Alert",
    "AlertCondition",
    "AlertRule",
    "AlertStatus",
    # Security
    "EventOutcome",
    "EventSeverity",
    "GroupBy",
    "SecurityAlert",
    "SecurityAlertStatus",
    "SecurityEvent",
    "SecurityEventType",
    "ThreatRule",
    "ThreatRuleType",
    # Channels
    "ChannelType",
    "NotificationChannel",
]
