"""
Alert lifecycle manager.

This module provides the AlertLifecycleManager, the single writer of
anomalies, alerts and security alerts. Detectors hand it candidates; it
deduplicates them against stored state, persists them and triggers
notification dispatch for new alerts.

Key Features:
    - At most one open alert per rule (create or update current value)
    - Per-key asyncio locks: rule id on create, entity id on transitions
    - active -> acknowledged -> resolved, active -> resolved
    - Transitions that do not apply raise NotFoundError and change nothing
    - Alerts are persisted before dispatch; notification_sent set afterwards

Example:
    >>> manager = AlertLifecycleManager(storage, dispatcher)
    >>> alert, created = await manager.raise_alert(rule, value=95.0, service="web-1")
    >>> await manager.acknowledge_alert(alert.id, actor="oncall")
    >>> await manager.resolve_alert(alert.id)
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Optional, Sequence, Tuple, TypeVar, Union

import structlog

from argus.detection.dispatcher import ChannelDispatcher, DispatchReport
from argus.detection.storage import AlertStorage, EntityRepository
from argus.errors import NotFoundError
from argus.models.alerts import Alert, AlertRule
from argus.models.anomalies import Anomaly
from argus.models.common import TrackedEntity, utcnow
from argus.models.security import SecurityAlert

logger = structlog.get_logger(__name__)


E = TypeVar("E", bound=TrackedEntity)
N = TypeVar("N", bound=Union[Alert, SecurityAlert])


class KeyedLocks:
    """
    asyncio locks keyed by string, dropped when idle.

    A lock exists only while some task holds it or waits for it, so keys
    taken from event attributes or entity ids do not accumulate.

    Example:
        >>> locks = KeyedLocks()
        >>> async with locks("rule:abc"):
        ...     ...
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def __call__(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class AlertLifecycleManager:
    """
    Owns the lifecycle of anomalies, alerts and security alerts.

    Attributes:
        storage: Repositories for all tracked entities.
        dispatcher: Notification dispatcher (None disables notifications).
        clock: Source of "now" for lifecycle timestamps.
    """

    def __init__(
        self,
        storage: AlertStorage,
        dispatcher: Optional[ChannelDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.dispatcher = dispatcher
        self.clock = clock
        self._locks = KeyedLocks()

        logger.info(
            "alert_lifecycle_manager_initialized",
            notifications_enabled=dispatcher is not None,
        )

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def raise_alert(
        self,
        rule: AlertRule,
        value: float,
        service: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Tuple[Alert, bool]:
        """
        Create an alert for a firing rule, or update its open alert.

        Serialized per rule id so concurrent ticks cannot create two open
        alerts for the same rule.

        Args:
            rule: The rule that fired.
            value: Latest observed value.
            service: Concrete service the breach was observed on.
            timestamp: Trigger time, defaults to the manager clock.

        Returns:
            Tuple[Alert, bool]: The stored alert and whether it was created.
        """
        now = timestamp or self.clock()

        async with self._locks(f"rule:{rule.id}"):
            existing = self.storage.open_alert_for_rule(rule.id)
            if existing is not None:
                updated = existing.update_value(value, now)
                self.storage.alerts.save(updated)
                logger.debug(
                    "alert_value_updated",
                    alert_id=existing.id,
                    rule_id=rule.id,
                    current_value=value,
                )
                return updated, False

            target = service or rule.service
            subject = f"{rule.metric_name}/{target}" if target else rule.metric_name
            alert = Alert(
                rule_id=rule.id,
                rule_name=rule.name,
                metric_name=rule.metric_name,
                service=target,
                current_value=value,
                threshold=rule.threshold,
                condition=rule.condition,
                severity=rule.severity,
                message=(
                    f"{subject}: {value:g} {rule.condition.symbol} {rule.threshold:g} "
                    f"for {rule.duration_minutes}m"
                ),
                triggered_at=now,
                updated_at=now,
            )
            self.storage.alerts.save(alert)

            logger.info(
                "alert_triggered",
                alert_id=alert.id,
                rule_id=rule.id,
                severity=alert.severity.value,
                metric_name=alert.metric_name,
                service=alert.service,
                current_value=value,
            )

        alert = await self._notify(
            self.storage.alerts, alert, rule.notification_channels
        )
        return alert, True

    async def record_anomaly(self, anomaly: Anomaly) -> Tuple[Anomaly, bool]:
        """
        Store an anomaly unless the same sample was already flagged.

        Args:
            anomaly: Candidate anomaly from a detector.

        Returns:
            Tuple[Anomaly, bool]: The stored anomaly and whether it is new.
        """
        key = f"anomaly:{anomaly.metric_name}:{anomaly.service}:{anomaly.algorithm.value}"
        async with self._locks(key):
            if self.storage.anomaly_exists(anomaly):
                return anomaly, False
            self.storage.anomalies.save(anomaly)

        logger.info(
            "anomaly_detected",
            anomaly_id=anomaly.id,
            metric_name=anomaly.metric_name,
            service=anomaly.service,
            algorithm=anomaly.algorithm.value,
            severity=anomaly.severity.value,
            score=anomaly.anomaly_score,
        )
        return anomaly, True

    async def record_security_alert(
        self,
        alert: SecurityAlert,
        channel_ids: Sequence[str] = (),
    ) -> SecurityAlert:
        """
        Store a new security alert and notify its rule's channels.

        Deduplication happens in the correlator; every call stores an alert.

        Args:
            alert: The new security alert.
            channel_ids: Channels bound to the threat rule.

        Returns:
            SecurityAlert: The stored alert (notification_sent updated).
        """
        self.storage.security_alerts.save(alert)

        logger.warning(
            "security_alert_created",
            alert_id=alert.id,
            rule_id=alert.rule_id,
            threat_type=alert.threat_type,
            severity=alert.severity.value,
            risk_score=alert.risk_score,
            affected_assets=alert.affected_assets,
        )

        return await self._notify(self.storage.security_alerts, alert, channel_ids)

    async def _notify(
        self,
        repo: EntityRepository[N],
        alert: N,
        channel_ids: Sequence[str],
    ) -> N:
        """Dispatch a persisted alert and record whether any channel succeeded."""
        if self.dispatcher is None or not channel_ids:
            return alert

        report: DispatchReport = await self.dispatcher.dispatch(alert, channel_ids)
        if not report.any_delivered:
            return alert

        async with self._locks(alert.id):
            current = repo.get(alert.id) or alert
            updated = current.model_copy(update={"notification_sent": True})
            repo.save(updated)
        return updated

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _acknowledge(self, repo: EntityRepository[E], entity_id: str, actor: str) -> E:
        async with self._locks(entity_id):
            entity = repo.get(entity_id)
            if entity is None:
                raise NotFoundError(repo.entity, entity_id)
            if not entity.can_acknowledge():
                raise NotFoundError(repo.entity, entity_id, transition="acknowledge")

            updated = entity.acknowledge(actor, self.clock())
            repo.save(updated)

        logger.info(
            "entity_acknowledged",
            entity=repo.entity,
            entity_id=entity_id,
            acknowledged_by=actor,
        )
        return updated

    async def _resolve(self, repo: EntityRepository[E], entity_id: str) -> E:
        async with self._locks(entity_id):
            entity = repo.get(entity_id)
            if entity is None:
                raise NotFoundError(repo.entity, entity_id)
            if not entity.can_resolve():
                raise NotFoundError(repo.entity, entity_id, transition="resolve")

            updated = entity.resolve(self.clock())
            repo.save(updated)

        logger.info(
            "entity_resolved",
            entity=repo.entity,
            entity_id=entity_id,
            previous_status=entity.status_value,
        )
        return updated

    async def acknowledge_alert(self, alert_id: str, actor: str) -> Alert:
        """
        Acknowledge an active alert.

        Args:
            alert_id: Alert identifier.
            actor: Who is taking ownership.

        Returns:
            Alert: The acknowledged alert.

        Raises:
            NotFoundError: Unknown id, or the alert is not active.
        """
        return await self._acknowledge(self.storage.alerts, alert_id, actor)

    async def resolve_alert(self, alert_id: str) -> Alert:
        """
        Resolve an open alert.

        Raises:
            NotFoundError: Unknown id, or the alert is already resolved.
        """
        return await self._resolve(self.storage.alerts, alert_id)

    async def acknowledge_anomaly(self, anomaly_id: str, actor: str) -> Anomaly:
        """Acknowledge an active anomaly."""
        return await self._acknowledge(self.storage.anomalies, anomaly_id, actor)

    async def resolve_anomaly(self, anomaly_id: str) -> Anomaly:
        """Resolve an open anomaly."""
        return await self._resolve(self.storage.anomalies, anomaly_id)

    async def acknowledge_security_alert(self, alert_id: str, actor: str) -> SecurityAlert:
        """Move an active security alert to investigating."""
        return await self._acknowledge(self.storage.security_alerts, alert_id, actor)

    async def resolve_security_alert(self, alert_id: str) -> SecurityAlert:
        """Resolve an active or investigating security alert."""
        return await self._resolve(self.storage.security_alerts, alert_id)
