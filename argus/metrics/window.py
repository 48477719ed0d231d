"""
Metric window store.

This module provides the MetricWindowStore, a bounded in-memory buffer of
recent samples per (metric_name, service) key. Detectors never read the
store directly; they take snapshots, which are immutable copies.

Key Features:
    - One deque per key, evicted by age and by length on every append
    - Atomic snapshots under a single lock
    - Rejects out-of-order samples so windows stay time-ordered
    - Lists the services reporting a metric (wildcard rule expansion)

Example:
    >>> store = MetricWindowStore(retention_minutes=60)
    >>> store.append(sample)
    >>> window = store.snapshot("cpu.usage", "web-1", lookback_minutes=5)
"""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional, Tuple

import structlog

from argus.errors import ValidationError
from argus.models.common import as_utc, utcnow
from argus.models.metrics import MetricSample

logger = structlog.get_logger(__name__)


DEFAULT_RETENTION_MINUTES = 24 * 60
DEFAULT_MAX_SAMPLES_PER_KEY = 10_000

WindowKey = Tuple[str, str]


@dataclass
class WindowStats:
    """
    Size information about the store.

    Attributes:
        keys: Number of (metric_name, service) windows.
        samples: Total samples held across all windows.
        oldest: Oldest retained timestamp (None if empty).
        newest: Newest retained timestamp (None if empty).
    """

    keys: int
    samples: int
    oldest: Optional[datetime]
    newest: Optional[datetime]


class MetricWindowStore:
    """
    Thread-safe store of recent metric samples.

    Each key holds a deque ordered by timestamp. Appends evict samples with
    ``timestamp <= newest - retention`` and trim the deque to
    ``max_samples_per_key``; both are amortized O(1).

    Attributes:
        retention: How long samples are kept relative to the newest sample.
        max_samples_per_key: Hard cap on samples per key.

    Example:
        >>> store = MetricWindowStore(retention_minutes=60, max_samples_per_key=1000)
        >>> store.append(MetricSample(
        ...     metric_name="cpu.usage", service="web-1", value=42.0,
        ...     timestamp=utcnow(),
        ... ))
        >>> len(store.snapshot("cpu.usage", "web-1", lookback_minutes=5))
        1
    """

    def __init__(
        self,
        retention_minutes: int = DEFAULT_RETENTION_MINUTES,
        max_samples_per_key: int = DEFAULT_MAX_SAMPLES_PER_KEY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the store.

        Args:
            retention_minutes: Sample retention relative to the newest sample.
            max_samples_per_key: Maximum samples kept per key.
            clock: Source of "now" for snapshots without an explicit time.

        Raises:
            ValueError: If a bound is not positive.
        """
        if retention_minutes <= 0:
            raise ValueError("retention_minutes must be positive")
        if max_samples_per_key <= 0:
            raise ValueError("max_samples_per_key must be positive")

        self.retention = timedelta(minutes=retention_minutes)
        self.max_samples_per_key = max_samples_per_key
        self._clock = clock
        self._windows: Dict[WindowKey, Deque[MetricSample]] = {}
        self._lock = threading.Lock()

    def append(self, sample: MetricSample) -> None:
        """
        Append a sample to its window.

        Args:
            sample: Validated metric sample.

        Raises:
            ValidationError: If the sample is older than the newest sample
                already stored for its key.
        """
        with self._lock:
            window = self._windows.get(sample.key)
            if window is None:
                window = deque(maxlen=self.max_samples_per_key)
                self._windows[sample.key] = window
            elif window and sample.timestamp < window[-1].timestamp:
                logger.debug(
                    "out_of_order_sample_rejected",
                    metric_name=sample.metric_name,
                    service=sample.service,
                    timestamp=sample.timestamp.isoformat(),
                    newest=window[-1].timestamp.isoformat(),
                )
                raise ValidationError(
                    f"Out-of-order sample for {sample.metric_name}/{sample.service}: "
                    f"{sample.timestamp.isoformat()} < {window[-1].timestamp.isoformat()}",
                    errors=[
                        {
                            "loc": "timestamp",
                            "msg": "older than the newest stored sample",
                            "type": "out_of_order",
                        }
                    ],
                )

            window.append(sample)

            cutoff = sample.timestamp - self.retention
            while window and window[0].timestamp <= cutoff:
                window.popleft()

    def snapshot(
        self,
        metric_name: str,
        service: str,
        lookback_minutes: float,
        now: Optional[datetime] = None,
    ) -> Tuple[MetricSample, ...]:
        """
        Copy the samples in ``(now - lookback, now]``.

        Args:
            metric_name: Metric identifier.
            service: Reporting service.
            lookback_minutes: Window length in minutes.
            now: Upper bound of the window, defaults to the store clock.

        Returns:
            Tuple[MetricSample, ...]: Samples in timestamp order, possibly empty.
        """
        end = as_utc(now) if now is not None else self._clock()
        start = end - timedelta(minutes=lookback_minutes)

        with self._lock:
            window = self._windows.get((metric_name, service))
            if not window:
                return ()
            return tuple(s for s in window if start < s.timestamp <= end)

    def services(self, metric_name: str) -> List[str]:
        """
        List the services that have reported a metric.

        Args:
            metric_name: Metric identifier.

        Returns:
            List[str]: Sorted service names with at least one retained sample.
        """
        with self._lock:
            return sorted(
                service
                for (name, service), window in self._windows.items()
                if name == metric_name and window
            )

    @property
    def stats(self) -> WindowStats:
        """
        Get the current size of the store.

        Returns:
            WindowStats: Key and sample counts plus the retained time span.
        """
        with self._lock:
            windows = [w for w in self._windows.values() if w]
            return WindowStats(
                keys=len(windows),
                samples=sum(len(w) for w in windows),
                oldest=min((w[0].timestamp for w in windows), default=None),
                newest=max((w[-1].timestamp for w in windows), default=None),
            )

    def __repr__(self) -> str:
        """String representation of the store."""
        stats = self.stats
        return f"MetricWindowStore(keys={stats.keys}, samples={stats.samples})"
