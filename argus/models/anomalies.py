"""
Anomaly detection models.

Models:
    DetectionAlgorithm: Supported statistical algorithms
    AnomalyStatus: Lifecycle states of an anomaly
    DetectionConfig: Per-metric detection configuration
    Anomaly: A detected deviation
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from argus.models.common import Severity, TrackedEntity, utcnow


class DetectionAlgorithm(str, Enum):
    """
    Statistical detection algorithms.

    Attributes:
        ZSCORE: Deviation from the window mean in standard deviations.
        IQR: Tukey fences around the interquartile range.
        MOVING_AVERAGE: Relative deviation from a trailing moving average.
        SEASONAL: Comparison with the same phase of previous cycles.
    """

    ZSCORE = "zscore"
    IQR = "iqr"
    MOVING_AVERAGE = "moving_average"
    SEASONAL = "seasonal"


class AnomalyStatus(str, Enum):
    """Lifecycle states of an anomaly."""

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class DetectionConfig(BaseModel):
    """
    Anomaly detection configuration for one metric.

    Unique by (metric_name, service); a missing service matches every
    service reporting the metric.

    Attributes:
        metric_name: Metric to watch.
        service: Service filter, None for all services.
        algorithm: Detection algorithm.
        sensitivity: 1-10 dial, higher means smaller deviations are flagged.
        window_minutes: Lookback window (seasonal: cycle length).
        enabled: Whether detection runs for this config.
        created_at: Creation time.

    Example:
        >>> config = DetectionConfig(
        ...     metric_name="cpu.usage",
        ...     service="web-1",
        ...     algorithm=DetectionAlgorithm.ZSCORE,
        ...     sensitivity=5,
        ...     window_minutes=6,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    metric_name: str = Field(
        ...,
        description="Metric to watch",
        min_length=1,
        max_length=255,
    )
    service: Optional[str] = Field(
        default=None,
        description="Service filter (None matches all services)",
    )
    algorithm: DetectionAlgorithm = Field(
        ...,
        description="Detection algorithm",
    )
    sensitivity: float = Field(
        ...,
        description="Sensitivity dial, 1 (least) to 10 (most sensitive)",
        ge=1,
        le=10,
    )
    window_minutes: int = Field(
        ...,
        description="Lookback window in minutes",
        ge=5,
    )
    enabled: bool = Field(
        default=True,
        description="Whether detection runs for this config",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="Creation time",
    )

    @field_validator("service", mode="before")
    @classmethod
    def blank_service_is_wildcard(cls, v: Any) -> Any:
        """Treat an empty service string as the wildcard."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        """Uniqueness key."""
        return (self.metric_name, self.service)

    @property
    def key_str(self) -> str:
        """String form of the key, e.g. "cpu.usage:web-1" or "cpu.usage:*"."""
        return f"{self.metric_name}:{self.service or '*'}"


class Anomaly(TrackedEntity):
    """
    A deviation flagged by a detector.

    Attributes:
        id: Unique anomaly identifier.
        metric_name: Metric that deviated.
        service: Service that reported the metric.
        algorithm: Algorithm that flagged it.
        expected_value: Baseline value the algorithm expected.
        actual_value: Observed latest value.
        anomaly_score: Deviation divided by the threshold (>= 1 when flagged).
        severity: Severity banded from the score.
        status: Lifecycle status.
        detected_at: Timestamp of the sample that was flagged.
        description: Human-readable summary.
    """

    model_config = {"extra": "forbid"}

    id: str = Field(
        default_factory=lambda: f"anomaly_{uuid4().hex}",
        description="Unique anomaly identifier",
    )
    metric_name: str = Field(..., description="Metric that deviated")
    service: str = Field(..., description="Service that reported the metric")
    algorithm: DetectionAlgorithm = Field(..., description="Algorithm that flagged it")
    expected_value: float = Field(..., description="Expected (baseline) value")
    actual_value: float = Field(..., description="Observed value")
    anomaly_score: float = Field(
        ...,
        description="Deviation relative to the detection threshold",
        ge=0,
    )
    severity: Severity = Field(..., description="Severity banded from the score")
    status: AnomalyStatus = Field(
        default=AnomalyStatus.ACTIVE,
        description="Lifecycle status",
    )
    detected_at: datetime = Field(..., description="Timestamp of the flagged sample")
    description: str = Field(default="", description="Human-readable summary")
