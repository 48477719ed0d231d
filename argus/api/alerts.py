"""
Alerts API endpoints.

Provides:
    GET    /api/alerts/rules - List alert rules
    POST   /api/alerts/rules - Create an alert rule
    GET    /api/alerts/rules/{rule_id} - Get an alert rule
    PUT    /api/alerts/rules/{rule_id} - Update an alert rule
    DELETE /api/alerts/rules/{rule_id} - Delete an alert rule
    GET    /api/alerts/channels - List notification channels
    POST   /api/alerts/channels - Create a notification channel
    GET    /api/alerts/channels/{channel_id} - Get a channel
    PUT    /api/alerts/channels/{channel_id} - Update a channel
    DELETE /api/alerts/channels/{channel_id} - Delete an unused channel
    POST   /api/alerts/evaluate - Evaluate alert rules now
    GET    /api/alerts - List alerts
    POST   /api/alerts/{alert_id}/acknowledge - Acknowledge an alert
    POST   /api/alerts/{alert_id}/resolve - Resolve an alert
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query

from argus.api.deps import ActorRequest, ListFilters, TickSummary, get_system
from argus.models.alerts import Alert, AlertRule
from argus.models.channels import NotificationChannel
from argus.models.common import Page
from argus.system import DetectionSystem

logger = structlog.get_logger(__name__)

router = APIRouter()


# =============================================================================
# RULES
# =============================================================================


@router.get("/rules", response_model=Page[AlertRule], summary="List alert rules")
async def list_rules(system: DetectionSystem = Depends(get_system)) -> Page[AlertRule]:
    return system.list_alert_rules()


@router.post("/rules", response_model=AlertRule, status_code=201, summary="Create an alert rule")
async def create_rule(
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> AlertRule:
    """
    Create a threshold alert rule.

    Every referenced notification channel must exist; unknown channels,
    unknown conditions and out-of-range durations are rejected with 400.
    """
    return system.create_alert_rule(body)


@router.get("/rules/{rule_id}", response_model=AlertRule, summary="Get an alert rule")
async def get_rule(rule_id: str, system: DetectionSystem = Depends(get_system)) -> AlertRule:
    return system.get_alert_rule(rule_id)


@router.put("/rules/{rule_id}", response_model=AlertRule, summary="Update an alert rule")
async def update_rule(
    rule_id: str,
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> AlertRule:
    return system.update_alert_rule(rule_id, body)


@router.delete("/rules/{rule_id}", status_code=204, summary="Delete an alert rule")
async def delete_rule(rule_id: str, system: DetectionSystem = Depends(get_system)) -> None:
    system.delete_alert_rule(rule_id)


# =============================================================================
# CHANNELS
# =============================================================================


@router.get("/channels", response_model=Page[NotificationChannel], summary="List channels")
async def list_channels(
    system: DetectionSystem = Depends(get_system),
) -> Page[NotificationChannel]:
    return system.list_channels()


@router.post(
    "/channels",
    response_model=NotificationChannel,
    status_code=201,
    summary="Create a notification channel",
)
async def create_channel(
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> NotificationChannel:
    return system.create_channel(body)


@router.get("/channels/{channel_id}", response_model=NotificationChannel, summary="Get a channel")
async def get_channel(
    channel_id: str,
    system: DetectionSystem = Depends(get_system),
) -> NotificationChannel:
    return system.get_channel(channel_id)


@router.put(
    "/channels/{channel_id}",
    response_model=NotificationChannel,
    summary="Update a channel",
)
async def update_channel(
    channel_id: str,
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> NotificationChannel:
    return system.update_channel(channel_id, body)


@router.delete("/channels/{channel_id}", status_code=204, summary="Delete a channel")
async def delete_channel(channel_id: str, system: DetectionSystem = Depends(get_system)) -> None:
    system.delete_channel(channel_id)


# =============================================================================
# ALERTS
# =============================================================================


@router.post("/evaluate", response_model=TickSummary, summary="Evaluate alert rules now")
async def evaluate_rules(system: DetectionSystem = Depends(get_system)) -> TickSummary:
    tick = await system.trigger_rule_evaluation()
    created = sum(1 for evals in tick.results for e in evals if e.created)
    logger.info("manual_rule_evaluation_triggered", created=created, errors=len(tick.errors))
    return TickSummary.from_tick(tick, created)


@router.get("", response_model=Page[Alert], summary="List alerts")
async def list_alerts(
    service: Optional[str] = Query(None, description="Service filter"),
    metric_name: Optional[str] = Query(None, description="Metric filter"),
    filters: ListFilters = Depends(),
    system: DetectionSystem = Depends(get_system),
) -> Page[Alert]:
    return system.list_alerts(
        service=service,
        metric_name=metric_name,
        severity=filters.severity,
        status=filters.status,
        start=filters.start,
        end=filters.end,
        limit=filters.limit,
    )


@router.post("/{alert_id}/acknowledge", response_model=Alert, summary="Acknowledge an alert")
async def acknowledge_alert(
    alert_id: str,
    body: ActorRequest,
    system: DetectionSystem = Depends(get_system),
) -> Alert:
    return await system.acknowledge_alert(alert_id, body.actor)


@router.post("/{alert_id}/resolve", response_model=Alert, summary="Resolve an alert")
async def resolve_alert(alert_id: str, system: DetectionSystem = Depends(get_system)) -> Alert:
    return await system.resolve_alert(alert_id)
