"""Shared request dependencies and request bodies."""

from datetime import datetime
from typing import Optional

from fastapi import Query, Request
from pydantic import BaseModel, Field

from argus.detection.concurrency import TickResult
from argus.system import DetectionSystem


def get_system(request: Request) -> DetectionSystem:
    """The DetectionSystem the app was created with."""
    return request.app.state.system


class ActorRequest(BaseModel):
    """Body of acknowledge requests."""

    actor: str = Field(..., min_length=1, description="Who is taking ownership")


class ListFilters:
    """Common list query parameters."""

    def __init__(
        self,
        severity: Optional[str] = Query(None, description="Severity filter"),
        status: Optional[str] = Query(None, description="Status filter"),
        start: Optional[datetime] = Query(None, description="Earliest timestamp (ISO-8601)"),
        end: Optional[datetime] = Query(None, description="Latest timestamp (ISO-8601)"),
        limit: int = Query(100, ge=0, le=1000, description="Maximum items returned"),
    ) -> None:
        self.severity = severity
        self.status = status
        self.start = start
        self.end = end
        self.limit = limit


class TickSummary(BaseModel):
    """Response of manual trigger endpoints."""

    items: int = Field(..., description="Items that evaluated successfully")
    created: int = Field(..., description="Entities created by this run")
    errors: list = Field(default_factory=list, description="Per-item failures")

    @classmethod
    def from_tick(cls, tick: TickResult, created: int) -> "TickSummary":
        return cls(
            items=len(tick.results),
            created=created,
            errors=[{"item": e.item, "message": str(e)} for e in tick.errors],
        )
