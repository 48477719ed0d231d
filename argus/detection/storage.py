"""
In-memory storage for anomalies, alerts and security alerts.

This module provides the repositories owned by the alert lifecycle manager.
Each repository is a dict keyed by entity id behind a threading.Lock, so
ingestion threads, the HTTP layer and the scheduler loops can all read it.

Key Features:
    - Save/get/delete by id
    - Filtered, newest-first queries returning the pre-limit total
    - Indexed open-alert lookup per rule and flagged-sample lookup (deduplication)
    - Count aggregation by severity and status (statistics)

Example:
    >>> storage = AlertStorage()
    >>> storage.alerts.save(alert)
    >>> items, total = storage.alerts.query(AlertQuery(status="active", limit=10))
"""

import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Generic, List, Optional, Set, Tuple, TypeVar

import structlog

from argus.models.alerts import Alert
from argus.models.anomalies import Anomaly
from argus.models.common import TrackedEntity, as_utc
from argus.models.security import SecurityAlert

logger = structlog.get_logger(__name__)


E = TypeVar("E", bound=TrackedEntity)


@dataclass
class AlertQuery:
    """
    Filters for listing tracked entities.

    Unset filters match everything. ``start``/``end`` bound the entity's
    timestamp field inclusively.

    Attributes:
        service: Reporting service.
        metric_name: Metric identifier.
        severity: Severity value (e.g. "high").
        status: Status value (e.g. "active", "investigating").
        start: Earliest timestamp.
        end: Latest timestamp.
        limit: Maximum items returned (None for all).
    """

    service: Optional[str] = None
    metric_name: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None


class EntityRepository(Generic[E]):
    """
    Thread-safe id-keyed repository for one tracked entity kind.

    Attributes:
        entity: Entity kind name used in logs and errors.
        time_field: Attribute used for time filtering and ordering.
    """

    def __init__(self, entity: str, time_field: str) -> None:
        self.entity = entity
        self.time_field = time_field
        self._items: Dict[str, E] = {}
        self._lock = threading.Lock()

    def save(self, item: E) -> E:
        """Insert or replace an entity."""
        with self._lock:
            self._items[item.id] = item  # type: ignore[attr-defined]
        return item

    def get(self, item_id: str) -> Optional[E]:
        """Look up an entity by id."""
        with self._lock:
            return self._items.get(item_id)

    def all(self) -> List[E]:
        """Every stored entity, newest first."""
        with self._lock:
            items = list(self._items.values())
        items.sort(key=lambda i: getattr(i, self.time_field), reverse=True)
        return items

    def query(self, query: AlertQuery) -> Tuple[List[E], int]:
        """
        List entities matching the filters.

        Args:
            query: Filters and limit.

        Returns:
            Tuple[List[E], int]: Newest-first items after the limit, and the
                number of matches before the limit.
        """
        start = as_utc(query.start) if query.start else None
        end = as_utc(query.end) if query.end else None

        def matches(item: E) -> bool:
            if query.service is not None and getattr(item, "service", None) != query.service:
                return False
            if query.metric_name is not None and getattr(item, "metric_name", None) != query.metric_name:
                return False
            if query.severity is not None and item.severity.value != query.severity:  # type: ignore[attr-defined]
                return False
            if query.status is not None and item.status_value != query.status:
                return False
            ts = getattr(item, self.time_field)
            if start is not None and ts < start:
                return False
            if end is not None and ts > end:
                return False
            return True

        matched = [item for item in self.all() if matches(item)]
        total = len(matched)
        if query.limit is not None:
            matched = matched[: query.limit]
        return matched, total

    def counts(self) -> Dict[str, Dict[str, int]]:
        """
        Count entities by severity and by status.

        Returns:
            Dict[str, Dict[str, int]]: ``{"by_severity": {...}, "by_status": {...}, "total": {...}}``.
        """
        with self._lock:
            items = list(self._items.values())
        return {
            "by_severity": dict(Counter(i.severity.value for i in items)),  # type: ignore[attr-defined]
            "by_status": dict(Counter(i.status_value for i in items)),
            "total": {"count": len(items)},
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class AlertRepository(EntityRepository[Alert]):
    """
    Alert repository with an index of the open alert per rule.

    The index relies on the manager keeping at most one open alert per rule.
    """

    def __init__(self) -> None:
        super().__init__("alert", "triggered_at")
        self._open_by_rule: Dict[str, str] = {}

    def save(self, item: Alert) -> Alert:
        with self._lock:
            self._items[item.id] = item
            if item.is_open:
                self._open_by_rule[item.rule_id] = item.id
            elif self._open_by_rule.get(item.rule_id) == item.id:
                del self._open_by_rule[item.rule_id]
        return item

    def open_for_rule(self, rule_id: str) -> Optional[Alert]:
        """The open (active or acknowledged) alert of a rule, if any."""
        with self._lock:
            alert_id = self._open_by_rule.get(rule_id)
            return self._items.get(alert_id) if alert_id is not None else None


SampleKey = Tuple[str, str, str, datetime]


class AnomalyRepository(EntityRepository[Anomaly]):
    """Anomaly repository remembering which samples were already flagged."""

    def __init__(self) -> None:
        super().__init__("anomaly", "detected_at")
        self._flagged: Set[SampleKey] = set()

    @staticmethod
    def sample_key(anomaly: Anomaly) -> SampleKey:
        return (anomaly.metric_name, anomaly.service, anomaly.algorithm.value, anomaly.detected_at)

    def save(self, item: Anomaly) -> Anomaly:
        with self._lock:
            self._items[item.id] = item
            self._flagged.add(self.sample_key(item))
        return item

    def flagged(self, anomaly: Anomaly) -> bool:
        """Whether an anomaly for the same sample was already recorded."""
        with self._lock:
            return self.sample_key(anomaly) in self._flagged


class AlertStorage:
    """
    Repositories for every entity the lifecycle manager owns.

    Attributes:
        anomalies: Anomaly repository, ordered by detected_at.
        alerts: Threshold alert repository, ordered by triggered_at.
        security_alerts: Security alert repository, ordered by created_at.

    Example:
        >>> storage = AlertStorage()
        >>> storage.open_alert_for_rule("rule-1") is None
        True
    """

    def __init__(self) -> None:
        self.anomalies = AnomalyRepository()
        self.alerts = AlertRepository()
        self.security_alerts: EntityRepository[SecurityAlert] = EntityRepository(
            "security_alert", "created_at"
        )

        logger.debug("alert_storage_initialized")

    def open_alert_for_rule(self, rule_id: str) -> Optional[Alert]:
        """
        Get the open (active or acknowledged) alert of a rule.

        Args:
            rule_id: Alert rule identifier.

        Returns:
            Optional[Alert]: The open alert, or None.
        """
        return self.alerts.open_for_rule(rule_id)

    def anomaly_exists(self, anomaly: Anomaly) -> bool:
        """Check whether an anomaly for the same sample was already recorded."""
        return self.anomalies.flagged(anomaly)
