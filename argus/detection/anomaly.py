"""
Anomaly detector runner.

Applies the configured algorithm to every (config, service) window and
records flagged anomalies with the lifecycle manager. The periodic loop
and the manual trigger share ``evaluate_config``.

Scheduling:
    Each config is due every ``window_minutes / 2``; the service loop ticks
    more often and ``run(..., only_due=True)`` skips configs whose interval
    has not elapsed.

Example:
    >>> detector = AnomalyDetector(store, manager)
    >>> tick = await detector.run(registry.list_detection_configs())
    >>> [a.actual_value for found in tick.results for a in found]
    [95.0]
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from argus.detection.algorithms import detect, lookback_minutes
from argus.detection.concurrency import TickResult, run_isolated
from argus.detection.manager import AlertLifecycleManager
from argus.errors import EvaluationError
from argus.metrics.window import MetricWindowStore
from argus.models.anomalies import Anomaly, DetectionConfig
from argus.models.common import as_utc, utcnow

logger = structlog.get_logger(__name__)


class AnomalyDetector:
    """
    Runs statistical detection over the metric window store.

    Attributes:
        store: Metric window store to snapshot.
        manager: Lifecycle manager that records anomalies.
        max_concurrency: Maximum configs evaluated at once.
    """

    def __init__(
        self,
        store: MetricWindowStore,
        manager: AlertLifecycleManager,
        max_concurrency: int = 32,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.manager = manager
        self.max_concurrency = max_concurrency
        self.clock = clock
        self._last_run: Dict[Tuple[str, Optional[str]], datetime] = {}

    async def evaluate_config(self, config: DetectionConfig, now: datetime) -> List[Anomaly]:
        """
        Run one config over every service it covers.

        Args:
            config: Detection configuration.
            now: Upper bound of the snapshot windows.

        Returns:
            List[Anomaly]: Newly recorded anomalies.

        Raises:
            EvaluationError: If the algorithm fails on a window.
        """
        services = (
            [config.service]
            if config.service is not None
            else self.store.services(config.metric_name)
        )
        lookback = lookback_minutes(config)
        found: List[Anomaly] = []

        for service in services:
            window = self.store.snapshot(config.metric_name, service, lookback, now=now)
            try:
                candidate = detect(config, window)
            except (ArithmeticError, ValueError) as e:
                raise EvaluationError(f"{config.key_str}/{service}", str(e), cause=e) from e

            if candidate is None:
                continue

            anomaly, created = await self.manager.record_anomaly(candidate)
            if created:
                found.append(anomaly)

        self._last_run[config.key] = now
        return found

    def is_due(self, config: DetectionConfig, now: datetime) -> bool:
        """Whether half a window has passed since the config last ran."""
        last = self._last_run.get(config.key)
        if last is None:
            return True
        return now - last >= timedelta(minutes=config.window_minutes / 2)

    async def run(
        self,
        configs: Sequence[DetectionConfig],
        now: Optional[datetime] = None,
        only_due: bool = False,
    ) -> TickResult[List[Anomaly]]:
        """
        Evaluate enabled configs once.

        Args:
            configs: Detection configs (disabled ones are skipped).
            now: Evaluation time, defaults to the detector clock.
            only_due: Skip configs whose interval has not elapsed (periodic loop).

        Returns:
            TickResult[List[Anomaly]]: New anomalies per config, and errors.
        """
        at = as_utc(now) if now is not None else self.clock()
        selected = [
            c for c in configs if c.enabled and (not only_due or self.is_due(c, at))
        ]

        result = await run_isolated(
            "anomaly_detection",
            selected,
            lambda config: self.evaluate_config(config, at),
            item_key=lambda config: config.key_str,
            max_concurrency=self.max_concurrency,
        )

        logger.info(
            "anomaly_detection_complete",
            configs=len(selected),
            anomalies=sum(len(found) for found in result.results),
            errors=len(result.errors),
        )
        return result

    def forget(self, config: DetectionConfig) -> None:
        """Drop scheduling state of a deleted config."""
        self._last_run.pop(config.key, None)
