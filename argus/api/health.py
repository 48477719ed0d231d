"""
Health API endpoints.

Provides:
    GET /api/health - Overall status with store sizes and uptime
    GET /api/health/live - Liveness probe
    GET /api/health/ready - Readiness probe
"""

from typing import Dict

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from argus.api.deps import get_system
from argus.models.common import utcnow
from argus.system import DetectionSystem

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for health endpoint."""

    status: str = "healthy"
    uptime_seconds: int = 0
    stores: Dict[str, int]
    timestamp: str

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "uptime_seconds": 3600,
                "stores": {"metric_keys": 12, "metric_samples": 7200, "security_events": 340},
                "timestamp": "2025-01-26T12:34:57+00:00",
            }
        }


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Get system health",
)
async def get_health(
    request: Request,
    system: DetectionSystem = Depends(get_system),
) -> HealthResponse:
    """Report health with store sizes and uptime."""
    now = utcnow()
    stats = system.windows.stats
    return HealthResponse(
        status="healthy",
        uptime_seconds=int((now - request.app.state.start_time).total_seconds()),
        stores={
            "metric_keys": stats.keys,
            "metric_samples": stats.samples,
            "security_events": len(system.events),
        },
        timestamp=now.isoformat(),
    )


@router.get("/health/live", summary="Liveness probe")
async def get_live() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready", summary="Readiness probe")
async def get_ready() -> Dict[str, str]:
    return {"status": "ready"}
