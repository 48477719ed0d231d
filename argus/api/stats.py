"""
Statistics API endpoint.

Provides:
    GET /api/stats - Counts by severity and status for anomalies, alerts and
                     security alerts, plus configuration and store totals
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from argus.api.deps import get_system
from argus.system import DetectionSystem

router = APIRouter()


@router.get("/stats", summary="Get summary statistics")
async def get_stats(system: DetectionSystem = Depends(get_system)) -> Dict[str, Any]:
    return system.statistics()
