"""
Security API endpoints.

Provides:
    POST   /api/security/events - Ingest a security event
    GET    /api/security/events - List retained events
    GET    /api/security/threats/rules - List threat rules
    POST   /api/security/threats/rules - Create a threat rule
    GET    /api/security/threats/rules/{rule_id} - Get a threat rule
    PUT    /api/security/threats/rules/{rule_id} - Update a threat rule
    DELETE /api/security/threats/rules/{rule_id} - Delete a threat rule
    POST   /api/security/threats/evaluate - Correlate events now
    GET    /api/security/alerts - List security alerts
    POST   /api/security/alerts/{alert_id}/acknowledge - Start investigating
    POST   /api/security/alerts/{alert_id}/resolve - Resolve
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from argus.api.deps import ActorRequest, ListFilters, TickSummary, get_system
from argus.models.common import Page
from argus.models.security import SecurityAlert, SecurityEvent, ThreatRule
from argus.system import DetectionSystem

logger = structlog.get_logger(__name__)

router = APIRouter()


class EventIngestResponse(BaseModel):
    """Response of event ingestion: the scored event and alerts it raised."""

    event: SecurityEvent
    alerts: List[SecurityAlert]


# =============================================================================
# EVENTS
# =============================================================================


@router.post(
    "/events",
    response_model=EventIngestResponse,
    status_code=201,
    summary="Ingest a security event",
)
async def ingest_event(
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> EventIngestResponse:
    """Validate, score and correlate an event; the timestamp defaults to now."""
    event, alerts = await system.ingest_security_event(body)
    return EventIngestResponse(event=event, alerts=alerts)


@router.get("/events", response_model=Page[SecurityEvent], summary="List security events")
async def list_events(
    event_type: Optional[str] = Query(None, description="Event type filter"),
    outcome: Optional[str] = Query(None, description="Outcome filter"),
    source_ip: Optional[str] = Query(None, description="Source address filter"),
    username: Optional[str] = Query(None, description="Username filter"),
    filters: ListFilters = Depends(),
    system: DetectionSystem = Depends(get_system),
) -> Page[SecurityEvent]:
    return system.list_security_events(
        event_type=event_type,
        outcome=outcome,
        source_ip=source_ip,
        username=username,
        start=filters.start,
        end=filters.end,
        limit=filters.limit,
    )


# =============================================================================
# THREAT RULES
# =============================================================================


@router.get("/threats/rules", response_model=Page[ThreatRule], summary="List threat rules")
async def list_threat_rules(system: DetectionSystem = Depends(get_system)) -> Page[ThreatRule]:
    return system.list_threat_rules()


@router.post(
    "/threats/rules",
    response_model=ThreatRule,
    status_code=201,
    summary="Create a threat rule",
)
async def create_threat_rule(
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> ThreatRule:
    return system.create_threat_rule(body)


@router.get("/threats/rules/{rule_id}", response_model=ThreatRule, summary="Get a threat rule")
async def get_threat_rule(rule_id: str, system: DetectionSystem = Depends(get_system)) -> ThreatRule:
    return system.get_threat_rule(rule_id)


@router.put("/threats/rules/{rule_id}", response_model=ThreatRule, summary="Update a threat rule")
async def update_threat_rule(
    rule_id: str,
    body: Dict[str, Any] = Body(...),
    system: DetectionSystem = Depends(get_system),
) -> ThreatRule:
    return system.update_threat_rule(rule_id, body)


@router.delete("/threats/rules/{rule_id}", status_code=204, summary="Delete a threat rule")
async def delete_threat_rule(rule_id: str, system: DetectionSystem = Depends(get_system)) -> None:
    system.delete_threat_rule(rule_id)


@router.post("/threats/evaluate", response_model=TickSummary, summary="Correlate events now")
async def evaluate_threats(system: DetectionSystem = Depends(get_system)) -> TickSummary:
    tick = await system.trigger_threat_evaluation()
    created = sum(len(raised) for raised in tick.results)
    logger.info("manual_threat_evaluation_triggered", alerts=created, errors=len(tick.errors))
    return TickSummary.from_tick(tick, created)


# =============================================================================
# SECURITY ALERTS
# =============================================================================


@router.get("/alerts", response_model=Page[SecurityAlert], summary="List security alerts")
async def list_security_alerts(
    filters: ListFilters = Depends(),
    system: DetectionSystem = Depends(get_system),
) -> Page[SecurityAlert]:
    return system.list_security_alerts(
        severity=filters.severity,
        status=filters.status,
        start=filters.start,
        end=filters.end,
        limit=filters.limit,
    )


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=SecurityAlert,
    summary="Start investigating a security alert",
)
async def acknowledge_security_alert(
    alert_id: str,
    body: ActorRequest,
    system: DetectionSystem = Depends(get_system),
) -> SecurityAlert:
    return await system.acknowledge_security_alert(alert_id, body.actor)


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=SecurityAlert,
    summary="Resolve a security alert",
)
async def resolve_security_alert(
    alert_id: str,
    system: DetectionSystem = Depends(get_system),
) -> SecurityAlert:
    return await system.resolve_security_alert(alert_id)
