"""
Service runner base class and logging setup.

ServiceRunner owns the process lifecycle shared by long-running services:
load configuration, configure logging, initialize components, run until a
shutdown signal arrives, then clean up.

Subclasses implement:
    service_name: Name used in logs
    _initialize(): Build service components (config is loaded)
    _run(): Main loop; should return once shutdown_event is set
    _cleanup(): Release service resources
"""

import asyncio
import logging
import signal
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from argus.config.loader import load_config
from argus.config.models import AppConfig, LogFormat, LogLevel

logger = structlog.get_logger(__name__)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    fmt: LogFormat = LogFormat.JSON,
) -> None:
    """
    Configure structlog and standard logging.

    Args:
        level: Minimum log level.
        fmt: json for production, console for local development.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.value),
        force=True,
    )

    # Reduce noise from uvicorn access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class ServiceRunner(ABC):
    """
    Base class for long-running services.

    Attributes:
        config_path: Directory holding settings.yaml and rules.yaml.
        config: Loaded configuration (set by run()).
        shutdown_event: Set on SIGINT/SIGTERM or by stop().
        logger: Logger bound to the service name.
    """

    def __init__(self, config_path: str = "config") -> None:
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(__name__).bind(service=self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Service name used in logs."""

    @abstractmethod
    async def _initialize(self) -> None:
        """Build service components."""

    @abstractmethod
    async def _run(self) -> None:
        """Main service loop."""

    async def _cleanup(self) -> None:
        """Release service resources."""

    def stop(self) -> None:
        """Request shutdown."""
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested")
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                self.logger.debug("signal_handler_unsupported", signal=sig.name)

    async def run(self) -> None:
        """
        Load config, initialize, run until shutdown, then clean up.

        Raises:
            ConfigLoadError: If the configuration cannot be loaded.
        """
        self.config = load_config(self.config_path)
        setup_logging(self.config.logging.level, self.config.logging.format)
        self._install_signal_handlers()

        self.logger.info("service_initializing", config_path=self.config_path)
        await self._initialize()

        self.logger.info("service_started")
        try:
            await self._run()
        finally:
            self.logger.info("service_stopping")
            await self._cleanup()
            self.logger.info("service_stopped")
