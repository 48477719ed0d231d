"""
Security event store.

Bounded, thread-safe buffer of recent SecurityEvents read by the threat
correlator. Events are kept in arrival order; snapshots filter by event
time, so late events from slow sources are still correlated.

Example:
    >>> store = SecurityEventStore(retention_minutes=60, max_events=50_000)
    >>> store.append(event)
    >>> recent = store.snapshot(window_seconds=300)
"""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, List, Optional, Tuple

import structlog

from argus.models.common import as_utc, utcnow
from argus.models.security import SecurityEvent

logger = structlog.get_logger(__name__)


DEFAULT_EVENT_RETENTION_MINUTES = 24 * 60
DEFAULT_MAX_EVENTS = 100_000


class SecurityEventStore:
    """
    Thread-safe bounded store of recent security events.

    Attributes:
        retention: Events older than the newest event by more than this are
            dropped on append.
        max_events: Hard cap on stored events (oldest arrivals dropped first).
    """

    def __init__(
        self,
        retention_minutes: int = DEFAULT_EVENT_RETENTION_MINUTES,
        max_events: int = DEFAULT_MAX_EVENTS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if retention_minutes <= 0:
            raise ValueError("retention_minutes must be positive")
        if max_events <= 0:
            raise ValueError("max_events must be positive")

        self.retention = timedelta(minutes=retention_minutes)
        self.max_events = max_events
        self._clock = clock
        self._events: Deque[SecurityEvent] = deque(maxlen=max_events)
        self._newest: Optional[datetime] = None
        self._lock = threading.Lock()

    def append(self, event: SecurityEvent) -> None:
        """
        Store an event and evict expired ones from the head.

        Args:
            event: Validated security event (risk already scored).
        """
        with self._lock:
            self._events.append(event)
            if self._newest is None or event.timestamp > self._newest:
                self._newest = event.timestamp

            cutoff = self._newest - self.retention
            evicted = 0
            while self._events and self._events[0].timestamp <= cutoff:
                self._events.popleft()
                evicted += 1

        if evicted:
            logger.debug("security_events_evicted", count=evicted, cutoff=cutoff.isoformat())

    def snapshot(
        self,
        window_seconds: float,
        now: Optional[datetime] = None,
    ) -> Tuple[SecurityEvent, ...]:
        """
        Copy the events with ``now - window < timestamp <= now``.

        Args:
            window_seconds: Window length in seconds.
            now: Upper bound of the window, defaults to the store clock.

        Returns:
            Tuple[SecurityEvent, ...]: Matching events sorted by timestamp.
        """
        end = as_utc(now) if now is not None else self._clock()
        start = end - timedelta(seconds=window_seconds)

        with self._lock:
            selected = [e for e in self._events if start < e.timestamp <= end]

        selected.sort(key=lambda e: e.timestamp)
        return tuple(selected)

    def all(self) -> List[SecurityEvent]:
        """Every retained event, newest first."""
        with self._lock:
            events = list(self._events)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
