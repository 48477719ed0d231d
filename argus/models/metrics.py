"""
Metric sample model.

Models:
    MetricSample: One recorded observation of a metric for a service
"""

import math
from datetime import datetime
from typing import Any, Tuple

from pydantic import BaseModel, Field, field_validator

from argus.models.common import as_utc


class MetricSample(BaseModel):
    """
    A single metric observation.

    Immutable once recorded. Owned by the window store, read by detectors.

    Attributes:
        metric_name: Metric identifier (e.g. "cpu.usage").
        service: Service that reported the value (e.g. "web-1").
        value: Observed value.
        timestamp: Observation time (UTC).

    Example:
        >>> sample = MetricSample(
        ...     metric_name="cpu.usage",
        ...     service="web-1",
        ...     value=42.0,
        ...     timestamp="2025-01-26T12:00:00Z",
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    metric_name: str = Field(
        ...,
        description="Metric identifier",
        min_length=1,
        max_length=255,
    )
    service: str = Field(
        ...,
        description="Reporting service",
        min_length=1,
        max_length=255,
    )
    value: float = Field(
        ...,
        description="Observed value",
    )
    timestamp: datetime = Field(
        ...,
        description="Observation time (UTC)",
    )

    @field_validator("metric_name", "service", mode="before")
    @classmethod
    def strip_names(cls, v: Any) -> Any:
        """Reject whitespace-only identifiers."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("value", mode="before")
    @classmethod
    def require_number(cls, v: Any) -> Any:
        """Only numbers are observations; booleans and numeric strings are not."""
        if isinstance(v, (bool, str, bytes)):
            raise ValueError("value must be a number")
        return v

    @field_validator("value")
    @classmethod
    def require_finite(cls, v: float) -> float:
        """NaN and infinities are not valid observations."""
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store timestamps in UTC."""
        return as_utc(v)

    @property
    def key(self) -> Tuple[str, str]:
        """Window key for this sample."""
        return (self.metric_name, self.service)
