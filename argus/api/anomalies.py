"""
Anomaly API endpoints.

Provides:
    GET    /api/anomalies/configs - List detection configs
    POST   /api/anomalies/configs - Create a detection config
    GET    /api/anomalies/configs/{metric_name} - Get a config (?service=)
    PUT    /api/anomalies/configs/{metric_name} - Update a config (?service=)
    DELETE /api/anomalies/configs/{metric_name} - Delete a config (?service=)
    POST   /api/anomalies/detect - Run detection now
    GET    /api/anomalies - List anomalies
    POST   /api/anomalies/{anomaly_id}/acknowledge - Acknowledge an anomaly
    POST   /api/anomalies/{anomaly_id}/resolve - Resolve an anomaly
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query

from argus.api.deps import ActorRequest, ListFilters, TickSummary, get_system
from argus.models.anomalies import Anomaly, DetectionConfig
from argus.models.common import Page
from argus.system import DetectionSystem

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/configs", response_model=Page[DetectionConfig], summary="List detection configs")
async def list_configs(system: DetectionSystem = Depends(get_system)) -> Page[DetectionConfig]:
    return system.list_detection_configs()


@router.post(
    "/configs",
    response_model=DetectionConfig,
    status_code=201,
    summary="Create a detection config",
)
async def create_config(
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> DetectionConfig:
    """Create a config; duplicates of (metric_name, service) are rejected with 400."""
    return system.create_detection_config(body)


@router.get(
    "/configs/{metric_name}",
    response_model=DetectionConfig,
    summary="Get a detection config",
)
async def get_config(
    metric_name: str,
    service: Optional[str] = Query(None, description="Service (omit for the wildcard config)"),
    system: DetectionSystem = Depends(get_system),
) -> DetectionConfig:
    return system.get_detection_config(metric_name, service)


@router.put(
    "/configs/{metric_name}",
    response_model=DetectionConfig,
    summary="Update a detection config",
)
async def update_config(
    metric_name: str,
    body: Dict[str, Any] = Body(...),
    service: Optional[str] = Query(None, description="Service (omit for the wildcard config)"),
    system: DetectionSystem = Depends(get_system),
) -> DetectionConfig:
    return system.update_detection_config(metric_name, service, body)


@router.delete("/configs/{metric_name}", status_code=204, summary="Delete a detection config")
async def delete_config(
    metric_name: str,
    service: Optional[str] = Query(None, description="Service (omit for the wildcard config)"),
    system: DetectionSystem = Depends(get_system),
) -> None:
    system.delete_detection_config(metric_name, service)


@router.post("/detect", response_model=TickSummary, summary="Run anomaly detection now")
async def trigger_detection(system: DetectionSystem = Depends(get_system)) -> TickSummary:
    """Run every enabled config once and report new anomalies."""
    tick = await system.trigger_detection()
    created = sum(len(found) for found in tick.results)
    logger.info("manual_detection_triggered", anomalies=created, errors=len(tick.errors))
    return TickSummary.from_tick(tick, created)


@router.get("", response_model=Page[Anomaly], summary="List anomalies")
async def list_anomalies(
    service: Optional[str] = Query(None, description="Service filter"),
    metric_name: Optional[str] = Query(None, description="Metric filter"),
    filters: ListFilters = Depends(),
    system: DetectionSystem = Depends(get_system),
) -> Page[Anomaly]:
    return system.list_anomalies(
        service=service,
        metric_name=metric_name,
        severity=filters.severity,
        status=filters.status,
        start=filters.start,
        end=filters.end,
        limit=filters.limit,
    )


@router.post("/{anomaly_id}/acknowledge", response_model=Anomaly, summary="Acknowledge an anomaly")
async def acknowledge_anomaly(
    anomaly_id: str,
    body: ActorRequest,
    system: DetectionSystem = Depends(get_system),
) -> Anomaly:
    return await system.acknowledge_anomaly(anomaly_id, body.actor)


@router.post("/{anomaly_id}/resolve", response_model=Anomaly, summary="Resolve an anomaly")
async def resolve_anomaly(
    anomaly_id: str,
    system: DetectionSystem = Depends(get_system),
) -> Anomaly:
    return await system.resolve_anomaly(anomaly_id)
