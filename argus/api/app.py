"""
FastAPI application exposing the detection system.

This module creates and configures the FastAPI application with:
- CORS configuration for cross-origin requests
- Router registration for the detection, alerting and security endpoints
- Exception handlers mapping domain errors to HTTP status codes
- Lifespan events recording startup time

Routes (all under /api):
    /health                 Liveness and readiness
    /metrics                Metric sample ingestion
    /anomalies/...          Detection configs, anomalies, manual detection
    /alerts/...             Alert rules, channels, alerts, manual evaluation
    /security/...           Security events, threat rules, security alerts
    /stats                  Summary counts

Error mapping:
    ValidationError -> 400
    NotFoundError -> 404
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from argus.errors import NotFoundError, ValidationError
from argus.models.common import utcnow
from argus.system import DetectionSystem

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Manage application lifespan events.

    The DetectionSystem is owned by the caller of create_app(); the API
    only records when it started serving.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control flow returns to the application.
    """
    app.state.start_time = utcnow()
    logger.info("api_ready")

    yield

    logger.info("api_shutdown_complete")


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Map ValidationError to 400 with field details."""
    return JSONResponse(
        status_code=400,
        content={"error": "validation_error", "message": exc.message, "details": exc.errors},
    )


async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Map NotFoundError (unknown id or inapplicable transition) to 404."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "not_found",
            "message": str(exc),
            "entity": exc.entity,
            "id": exc.entity_id,
            "transition": exc.transition,
        },
    )


def create_app(
    system: DetectionSystem,
    cors_origins: Optional[List[str]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        system: The detection system served by the API.
        cors_origins: Allowed CORS origins (defaults to the system's API
            settings).

    Returns:
        FastAPI: Configured FastAPI application instance.

    Example:
        >>> app = create_app(create_detection_system(config))
        >>> uvicorn.run(app, host="0.0.0.0", port=8080)
    """
    app = FastAPI(
        title="Argus Detection & Alerting",
        description="Anomaly detection, threshold alerting and threat correlation",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.system = system
    app.state.start_time = utcnow()

    origins = cors_origins if cors_origins is not None else system.config.api.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, not_found_error_handler)  # type: ignore[arg-type]

    # Register API routers
    from argus.api.alerts import router as alerts_router
    from argus.api.anomalies import router as anomalies_router
    from argus.api.health import router as health_router
    from argus.api.metrics import router as metrics_router
    from argus.api.security import router as security_router
    from argus.api.stats import router as stats_router

    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(metrics_router, prefix="/api/metrics", tags=["Metrics"])
    app.include_router(anomalies_router, prefix="/api/anomalies", tags=["Anomalies"])
    app.include_router(alerts_router, prefix="/api/alerts", tags=["Alerts"])
    app.include_router(security_router, prefix="/api/security", tags=["Security"])
    app.include_router(stats_router, prefix="/api", tags=["Stats"])

    logger.info("fastapi_app_created", cors_origins=origins)

    return app
