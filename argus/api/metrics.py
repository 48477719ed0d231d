"""
Metric ingestion API endpoints.

Provides:
    POST /api/metrics - Ingest one sample
    POST /api/metrics/batch - Ingest a list of samples; bad items are reported
        per index and do not stop the rest
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from argus.api.deps import get_system
from argus.errors import ValidationError
from argus.models.metrics import MetricSample
from argus.system import DetectionSystem

router = APIRouter()


class MetricIn(BaseModel):
    """Request body for one sample; the timestamp defaults to now."""

    metric_name: Any = None
    service: Any = None
    value: Any = None
    timestamp: Optional[Union[datetime, str]] = None


class BatchRequest(BaseModel):
    samples: List[MetricIn] = Field(..., description="Samples in timestamp order per key")


class BatchResponse(BaseModel):
    accepted: int = 0
    rejected: List[Dict[str, Any]] = Field(default_factory=list)


@router.post("", response_model=MetricSample, status_code=201, summary="Ingest a metric sample")
async def ingest_metric(
    body: MetricIn,
    system: DetectionSystem = Depends(get_system),
) -> MetricSample:
    return system.ingest_metric(body.metric_name, body.service, body.value, body.timestamp)


@router.post("/batch", response_model=BatchResponse, summary="Ingest metric samples")
async def ingest_batch(
    body: BatchRequest,
    system: DetectionSystem = Depends(get_system),
) -> BatchResponse:
    result = BatchResponse()
    for index, item in enumerate(body.samples):
        try:
            system.ingest_metric(item.metric_name, item.service, item.value, item.timestamp)
        except ValidationError as e:
            result.rejected.append({"index": index, "message": e.message})
            continue
        result.accepted += 1
    return result
