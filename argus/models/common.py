"""
Shared model primitives.

Models:
    Severity: Ordinal severity for anomalies, rules and alerts
    TrackedEntity: Base for entities that follow the alert lifecycle
    Page: List response with an explicit count
"""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC.

    Naive datetimes are taken to be UTC already.

    Args:
        value: The datetime to normalize.

    Returns:
        datetime: Timezone-aware UTC datetime.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Severity(str, Enum):
    """
    Severity levels shared by anomalies, alert rules and alerts.

    Attributes:
        LOW: Informational deviation.
        MEDIUM: Investigate when convenient.
        HIGH: Investigate soon.
        CRITICAL: Immediate attention required.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_ratio(cls, ratio: float) -> "Severity":
        """
        Band a deviation/threshold ratio into a severity.

        Args:
            ratio: Deviation divided by the detection threshold.

        Returns:
            Severity: critical at 3x, high at 2x, medium at 1x, else low.
        """
        if ratio >= 3.0:
            return cls.CRITICAL
        if ratio >= 2.0:
            return cls.HIGH
        if ratio >= 1.0:
            return cls.MEDIUM
        return cls.LOW


class TrackedEntity(BaseModel):
    """
    Base for entities that follow the active -> acknowledged -> resolved lifecycle.

    Subclasses declare a ``status`` field and set the three class-level
    status values. Transitions return updated copies; the original instance
    is never mutated.
    """

    STATUS_ACTIVE: ClassVar[str] = "active"
    STATUS_ACKNOWLEDGED: ClassVar[str] = "acknowledged"
    STATUS_RESOLVED: ClassVar[str] = "resolved"

    acknowledged_at: Optional[datetime] = Field(
        default=None,
        description="When the entity was acknowledged",
    )
    acknowledged_by: Optional[str] = Field(
        default=None,
        description="Actor who acknowledged the entity",
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        description="When the entity was resolved",
    )

    @property
    def status_value(self) -> str:
        """Raw status string."""
        status = getattr(self, "status")
        return status.value if isinstance(status, Enum) else str(status)

    @property
    def is_open(self) -> bool:
        """Check if the entity is active or acknowledged (not resolved)."""
        return self.status_value != self.STATUS_RESOLVED

    def can_acknowledge(self) -> bool:
        """Only active entities can be acknowledged."""
        return self.status_value == self.STATUS_ACTIVE

    def can_resolve(self) -> bool:
        """Any open entity can be resolved."""
        return self.is_open

    def acknowledge(self, actor: str, timestamp: Optional[datetime] = None):
        """
        Mark the entity as acknowledged.

        Args:
            actor: Who acknowledged it.
            timestamp: Acknowledgment time, defaults to now.

        Returns:
            Updated copy with acknowledgment recorded.
        """
        return self.model_copy(
            update={
                "status": type(getattr(self, "status"))(self.STATUS_ACKNOWLEDGED),
                "acknowledged_at": timestamp or utcnow(),
                "acknowledged_by": actor,
            }
        )

    def resolve(self, timestamp: Optional[datetime] = None):
        """
        Mark the entity as resolved.

        Args:
            timestamp: Resolution time, defaults to now.

        Returns:
            Updated copy with resolution recorded.
        """
        return self.model_copy(
            update={
                "status": type(getattr(self, "status"))(self.STATUS_RESOLVED),
                "resolved_at": timestamp or utcnow(),
            }
        )


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """
    List response carrying an explicit count.

    Attributes:
        items: The returned items (after the limit).
        count: Number of returned items.
        total: Number of matching items before the limit.
    """

    items: List[T] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @classmethod
    def of(cls, items: Sequence[T], total: Optional[int] = None) -> "Page[T]":
        """Build a page from the returned items and the pre-limit total."""
        item_list = list(items)
        return cls(
            items=item_list,
            count=len(item_list),
            total=len(item_list) if total is None else total,
        )
