"""
Detection service entry point.

This service is responsible for:
- Running anomaly detection on the detection interval
- Evaluating threshold alert rules on the rules interval
- Correlating security events on the threats interval
- Serving the HTTP API in the same event loop (optional)

Each loop runs independently; a failing tick is logged and the loop
continues on the next interval.

Usage:
    argus-detector
    python -m argus.services.detector

Environment Variables:
    CONFIG_PATH: Path to config directory (default: config)
    LOG_LEVEL: Logging level (default: INFO)
    ARGUS_API_HOST / ARGUS_API_PORT: HTTP API bind address
    ARGUS_SMTP_USERNAME / ARGUS_SMTP_PASSWORD: SMTP credentials
"""

import asyncio
import os
import sys
from typing import Awaitable, Callable, List, Optional

import structlog
import uvicorn

from argus.api.app import create_app
from argus.services.runner import ServiceRunner, setup_logging
from argus.system import DetectionSystem, create_detection_system

logger = structlog.get_logger(__name__)


class DetectionService(ServiceRunner):
    """
    Long-running detection and alerting service.

    Attributes:
        system: The detection system (set by _initialize).
        server: Embedded uvicorn server, None when the API is disabled.
    """

    def __init__(self, config_path: str = "config") -> None:
        """Initialize the detection service."""
        super().__init__(config_path)
        self.system: Optional[DetectionSystem] = None
        self.server: Optional[uvicorn.Server] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def service_name(self) -> str:
        """Return service name."""
        return "argus-detector"

    async def _initialize(self) -> None:
        """Build the detection system and, if enabled, the API server."""
        if self.config is None:
            raise RuntimeError("Service not properly initialized")

        self.system = create_detection_system(self.config)

        if self.config.api.enabled:
            app = create_app(self.system)
            self.server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=self.config.api.host,
                    port=self.config.api.port,
                    log_level=self.config.logging.level.value.lower(),
                    access_log=False,
                )
            )

        self.logger.info(
            "detection_components_initialized",
            api_enabled=self.server is not None,
            schedule_enabled=self.config.schedule.enabled,
            **{k: v["total"] for k, v in self.system.registry.counts().items()},
        )

    async def _periodic(
        self,
        name: str,
        interval_seconds: float,
        tick: Callable[[], Awaitable[object]],
    ) -> None:
        """Run ``tick`` every interval until shutdown, logging failures."""
        try:
            while not self.shutdown_event.is_set():
                try:
                    await tick()
                except Exception as e:
                    self.logger.error(
                        "scheduled_tick_failed",
                        loop=name,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval_seconds)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            self.logger.debug("scheduled_loop_cancelled", loop=name)

    async def _run(self) -> None:
        """Start the loops and the API, then wait for shutdown."""
        if self.config is None or self.system is None:
            raise RuntimeError("Service not properly initialized")

        system = self.system
        schedule = self.config.schedule

        if schedule.enabled:
            self._tasks.extend(
                [
                    asyncio.create_task(
                        self._periodic(
                            "anomaly_detection",
                            schedule.detection_interval_seconds,
                            lambda: system.trigger_detection(only_due=True),
                        )
                    ),
                    asyncio.create_task(
                        self._periodic(
                            "rule_evaluation",
                            schedule.rules_interval_seconds,
                            system.trigger_rule_evaluation,
                        )
                    ),
                    asyncio.create_task(
                        self._periodic(
                            "threat_correlation",
                            schedule.threats_interval_seconds,
                            system.trigger_threat_evaluation,
                        )
                    ),
                ]
            )

        waiters = [asyncio.create_task(self.shutdown_event.wait())]
        if self.server is not None:
            waiters.append(asyncio.create_task(self.server.serve()))

        _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

        # The API server exits on its own when it catches the signal first
        self.stop()
        if self.server is not None:
            self.server.should_exit = True
        await asyncio.gather(*pending, return_exceptions=True)

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _cleanup(self) -> None:
        """Close channel transports and log final state."""
        if self.system is not None:
            stats = self.system.statistics()
            self.logger.info(
                "cleanup_state",
                open_alerts=stats["alerts"]["by_status"].get("active", 0),
                anomalies=stats["anomalies"]["total"]["count"],
                security_alerts=stats["security_alerts"]["total"]["count"],
            )
            await self.system.close()


async def main() -> None:
    """Main entry point."""
    # Set up initial logging
    setup_logging()

    config_path = os.getenv("CONFIG_PATH", "config")

    logger.info(
        "detection_service_starting",
        version="1.0.0",
        config_path=config_path,
    )

    service = DetectionService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
