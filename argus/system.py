"""
Detection system facade.

DetectionSystem wires the stores, registry, detectors, lifecycle manager
and dispatcher together and is the single entry point used by the HTTP API,
the service runner and tests.

Boundaries:
    Ingestion: ingest_metric, ingest_metric_sample, ingest_security_event
    Configuration: create/get/list/update/delete for detection configs,
        alert rules, threat rules and notification channels
    Reads: list_anomalies, list_alerts, list_security_alerts,
        list_security_events
    Every list_* call returns a Page (items with an explicit count)
    Actions: acknowledge/resolve for alerts, anomalies, security alerts
    Triggers: trigger_detection, trigger_rule_evaluation,
        trigger_threat_evaluation
    Summary: statistics

Example:
    >>> system = create_detection_system(load_config("config"))
    >>> system.ingest_metric("cpu.usage", "web-1", 95.0)
    >>> await system.trigger_rule_evaluation()
    >>> system.list_alerts(status="active").count
    1
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from argus.config.models import AppConfig, RulesConfig
from argus.detection.anomaly import AnomalyDetector
from argus.detection.channels import create_senders
from argus.detection.channels.base import ChannelSender
from argus.detection.concurrency import TickResult
from argus.detection.dispatcher import ChannelDispatcher
from argus.detection.evaluator import AlertRuleEvaluator, RuleEvaluation
from argus.detection.manager import AlertLifecycleManager
from argus.detection.registry import ConfigRegistry
from argus.detection.storage import AlertQuery, AlertStorage
from argus.detection.threats import ThreatCorrelator, default_threat_rules, event_risk_score
from argus.errors import ValidationError
from argus.metrics.events import SecurityEventStore
from argus.metrics.window import MetricWindowStore
from argus.models.alerts import Alert, AlertRule
from argus.models.anomalies import Anomaly, DetectionConfig
from argus.models.channels import ChannelType, NotificationChannel
from argus.models.common import Page, as_utc, utcnow
from argus.models.metrics import MetricSample
from argus.models.security import SecurityAlert, SecurityEvent, ThreatRule

logger = structlog.get_logger(__name__)


DEFAULT_LIST_LIMIT = 100

Filter = Optional[Union[str, Enum]]


def _filter_value(value: Filter) -> Optional[str]:
    """Accept enum members or their string values as filters."""
    if isinstance(value, Enum):
        return value.value
    return value


class DetectionSystem:
    """
    Detection and alerting subsystem.

    Attributes:
        config: Application configuration.
        windows: Metric window store.
        events: Security event store.
        registry: Detection configs, rules and channels.
        storage: Anomaly, alert and security alert repositories.
        dispatcher: Notification dispatcher.
        manager: Alert lifecycle manager.
        detector: Anomaly detector runner.
        evaluator: Alert rule evaluator.
        correlator: Threat correlator.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        senders: Optional[Mapping[ChannelType, ChannelSender]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Build the subsystem from configuration.

        Args:
            config: Application configuration (defaults when None).
            senders: Channel senders; built from ``config.email`` when None.
            clock: Source of "now" shared by every component.
        """
        self.config = config or AppConfig()
        self.clock = clock

        self.windows = MetricWindowStore(
            retention_minutes=self.config.window.retention_minutes,
            max_samples_per_key=self.config.window.max_samples_per_key,
            clock=clock,
        )
        self.events = SecurityEventStore(
            retention_minutes=self.config.events.retention_minutes,
            max_events=self.config.events.max_events,
            clock=clock,
        )
        self.registry = ConfigRegistry(max_lookback_minutes=self.config.window.retention_minutes)
        self.storage = AlertStorage()

        self.dispatcher = ChannelDispatcher(
            senders=senders if senders is not None else create_senders(self.config.email),
            resolve_channel=self.registry.get_channel_or_none,
            timeout_seconds=self.config.dispatch.channel_timeout_seconds,
        )
        self.manager = AlertLifecycleManager(self.storage, self.dispatcher, clock=clock)

        max_concurrency = self.config.evaluation.max_concurrency
        self.detector = AnomalyDetector(
            self.windows, self.manager, max_concurrency=max_concurrency, clock=clock
        )
        self.evaluator = AlertRuleEvaluator(
            self.windows,
            self.manager,
            sample_interval_seconds=self.config.evaluation.sample_interval_seconds,
            max_concurrency=max_concurrency,
            clock=clock,
        )
        self.correlator = ThreatCorrelator(
            self.events, self.manager, max_concurrency=max_concurrency, clock=clock
        )

        self.seed(self.config.rules)

    def seed(self, rules: RulesConfig) -> None:
        """
        Install seed entities. Channels go first so rule references resolve.

        Args:
            rules: Seed channels, configs and rules.
        """
        for channel in rules.channels:
            self.registry.create_channel(channel)
        for config in rules.detection_configs:
            self.registry.create_detection_config(config)
        for rule in rules.alert_rules:
            self.registry.create_alert_rule(rule)

        threat_rules = list(rules.threat_rules)
        if not threat_rules and rules.seed_default_threat_rules:
            threat_rules = default_threat_rules()
        for threat_rule in threat_rules:
            self.registry.create_threat_rule(threat_rule)

        logger.info(
            "detection_system_seeded",
            channels=len(rules.channels),
            detection_configs=len(rules.detection_configs),
            alert_rules=len(rules.alert_rules),
            threat_rules=len(threat_rules),
        )

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest_metric(
        self,
        metric_name: str,
        service: str,
        value: Any,
        timestamp: Optional[Union[datetime, str]] = None,
    ) -> MetricSample:
        """
        Validate and append a metric sample.

        Args:
            metric_name: Metric identifier.
            service: Reporting service.
            value: Numeric value (finite).
            timestamp: datetime or ISO-8601 string; defaults to now.

        Returns:
            MetricSample: The stored sample.

        Raises:
            ValidationError: Invalid fields or an out-of-order timestamp.
        """
        try:
            sample = MetricSample(
                metric_name=metric_name,
                service=service,
                value=value,
                timestamp=timestamp if timestamp is not None else self.clock(),
            )
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e, "metric_sample") from e
        return self.ingest_metric_sample(sample)

    def ingest_metric_sample(self, sample: MetricSample) -> MetricSample:
        """Append an already validated sample."""
        self.windows.append(sample)
        return sample

    async def ingest_security_event(
        self,
        data: Union[SecurityEvent, Mapping[str, Any]],
    ) -> Tuple[SecurityEvent, List[SecurityAlert]]:
        """
        Validate, score, store and correlate a security event.

        Args:
            data: Event fields or a SecurityEvent. Any supplied risk_score
                is replaced by the computed one.

        Returns:
            Tuple[SecurityEvent, List[SecurityAlert]]: The stored event and
                the alerts it raised.

        Raises:
            ValidationError: Invalid fields.
        """
        if isinstance(data, SecurityEvent):
            event = data
        else:
            fields = dict(data)
            fields.setdefault("timestamp", self.clock())
            try:
                event = SecurityEvent.model_validate(fields)
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e, "security_event") from e

        event = event.model_copy(update={"risk_score": event_risk_score(event)})
        self.events.append(event)

        logger.debug(
            "security_event_ingested",
            event_id=event.id,
            event_type=event.event_type.value,
            outcome=event.outcome.value,
            risk_score=event.risk_score,
        )

        alerts = await self.correlator.on_event(event, self.registry.list_threat_rules())
        return event, alerts

    # -------------------------------------------------------------------------
    # Detection configs
    # -------------------------------------------------------------------------

    def create_detection_config(self, data: Union[DetectionConfig, Mapping[str, Any]]) -> DetectionConfig:
        return self.registry.create_detection_config(data)

    def get_detection_config(self, metric_name: str, service: Optional[str] = None) -> DetectionConfig:
        return self.registry.get_detection_config(metric_name, service)

    def list_detection_configs(self) -> Page[DetectionConfig]:
        return Page.of(self.registry.list_detection_configs())

    def update_detection_config(
        self,
        metric_name: str,
        service: Optional[str],
        changes: Mapping[str, Any],
    ) -> DetectionConfig:
        return self.registry.update_detection_config(metric_name, service, changes)

    def delete_detection_config(self, metric_name: str, service: Optional[str] = None) -> DetectionConfig:
        config = self.registry.delete_detection_config(metric_name, service)
        self.detector.forget(config)
        return config

    # -------------------------------------------------------------------------
    # Alert rules
    # -------------------------------------------------------------------------

    def create_alert_rule(self, data: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        return self.registry.create_alert_rule(data)

    def get_alert_rule(self, rule_id: str) -> AlertRule:
        return self.registry.get_alert_rule(rule_id)

    def list_alert_rules(self) -> Page[AlertRule]:
        return Page.of(self.registry.list_alert_rules())

    def update_alert_rule(self, rule_id: str, changes: Mapping[str, Any]) -> AlertRule:
        return self.registry.update_alert_rule(rule_id, changes)

    def delete_alert_rule(self, rule_id: str) -> AlertRule:
        return self.registry.delete_alert_rule(rule_id)

    # -------------------------------------------------------------------------
    # Threat rules
    # -------------------------------------------------------------------------

    def create_threat_rule(self, data: Union[ThreatRule, Mapping[str, Any]]) -> ThreatRule:
        return self.registry.create_threat_rule(data)

    def get_threat_rule(self, rule_id: str) -> ThreatRule:
        return self.registry.get_threat_rule(rule_id)

    def list_threat_rules(self) -> Page[ThreatRule]:
        return Page.of(self.registry.list_threat_rules())

    def update_threat_rule(self, rule_id: str, changes: Mapping[str, Any]) -> ThreatRule:
        return self.registry.update_threat_rule(rule_id, changes)

    def delete_threat_rule(self, rule_id: str) -> ThreatRule:
        rule = self.registry.delete_threat_rule(rule_id)
        self.correlator.forget(rule_id)
        return rule

    # -------------------------------------------------------------------------
    # Notification channels
    # -------------------------------------------------------------------------

    def create_channel(
        self, data: Union[NotificationChannel, Mapping[str, Any]]
    ) -> NotificationChannel:
        return self.registry.create_channel(data)

    def get_channel(self, channel_id: str) -> NotificationChannel:
        return self.registry.get_channel(channel_id)

    def list_channels(self) -> Page[NotificationChannel]:
        return Page.of(self.registry.list_channels())

    def update_channel(self, channel_id: str, changes: Mapping[str, Any]) -> NotificationChannel:
        return self.registry.update_channel(channel_id, changes)

    def delete_channel(self, channel_id: str) -> NotificationChannel:
        return self.registry.delete_channel(channel_id)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @staticmethod
    def _query(
        service: Optional[str],
        metric_name: Optional[str],
        severity: Filter,
        status: Filter,
        start: Optional[datetime],
        end: Optional[datetime],
        limit: Optional[int],
    ) -> AlertQuery:
        if limit is not None and limit < 0:
            raise ValidationError("Invalid query: limit must be non-negative")
        return AlertQuery(
            service=service,
            metric_name=metric_name,
            severity=_filter_value(severity),
            status=_filter_value(status),
            start=start,
            end=end,
            limit=limit,
        )

    def list_anomalies(
        self,
        service: Optional[str] = None,
        metric_name: Optional[str] = None,
        severity: Filter = None,
        status: Filter = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
    ) -> Page[Anomaly]:
        """
        List anomalies, newest first.

        Returns:
            Page[Anomaly]: Items after the limit, with the pre-limit total.
        """
        query = self._query(service, metric_name, severity, status, start, end, limit)
        items, total = self.storage.anomalies.query(query)
        return Page.of(items, total)

    def list_alerts(
        self,
        service: Optional[str] = None,
        metric_name: Optional[str] = None,
        severity: Filter = None,
        status: Filter = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
    ) -> Page[Alert]:
        """List threshold alerts, newest first."""
        query = self._query(service, metric_name, severity, status, start, end, limit)
        items, total = self.storage.alerts.query(query)
        return Page.of(items, total)

    def list_security_alerts(
        self,
        severity: Filter = None,
        status: Filter = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
    ) -> Page[SecurityAlert]:
        """List security alerts, newest first."""
        query = self._query(None, None, severity, status, start, end, limit)
        items, total = self.storage.security_alerts.query(query)
        return Page.of(items, total)

    def list_security_events(
        self,
        event_type: Filter = None,
        outcome: Filter = None,
        source_ip: Optional[str] = None,
        username: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = DEFAULT_LIST_LIMIT,
    ) -> Page[SecurityEvent]:
        """List retained security events, newest first."""
        if limit is not None and limit < 0:
            raise ValidationError("Invalid query: limit must be non-negative")

        event_type_value = _filter_value(event_type)
        outcome_value = _filter_value(outcome)
        lower = as_utc(start) if start else None
        upper = as_utc(end) if end else None

        def matches(event: SecurityEvent) -> bool:
            if event_type_value is not None and event.event_type.value != event_type_value:
                return False
            if outcome_value is not None and event.outcome.value != outcome_value:
                return False
            if source_ip is not None and event.source_ip != source_ip:
                return False
            if username is not None and event.username != username:
                return False
            if lower is not None and event.timestamp < lower:
                return False
            if upper is not None and event.timestamp > upper:
                return False
            return True

        matched = [e for e in self.events.all() if matches(e)]
        items = matched if limit is None else matched[:limit]
        return Page.of(items, len(matched))

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def acknowledge_alert(self, alert_id: str, actor: str) -> Alert:
        return await self.manager.acknowledge_alert(alert_id, actor)

    async def resolve_alert(self, alert_id: str) -> Alert:
        return await self.manager.resolve_alert(alert_id)

    async def acknowledge_anomaly(self, anomaly_id: str, actor: str) -> Anomaly:
        return await self.manager.acknowledge_anomaly(anomaly_id, actor)

    async def resolve_anomaly(self, anomaly_id: str) -> Anomaly:
        return await self.manager.resolve_anomaly(anomaly_id)

    async def acknowledge_security_alert(self, alert_id: str, actor: str) -> SecurityAlert:
        return await self.manager.acknowledge_security_alert(alert_id, actor)

    async def resolve_security_alert(self, alert_id: str) -> SecurityAlert:
        return await self.manager.resolve_security_alert(alert_id)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def trigger_detection(
        self,
        now: Optional[datetime] = None,
        only_due: bool = False,
    ) -> TickResult[List[Anomaly]]:
        """
        Run anomaly detection over every enabled config.

        Args:
            now: Evaluation time, defaults to the system clock.
            only_due: Skip configs whose detection interval has not elapsed.
        """
        return await self.detector.run(
            self.registry.list_detection_configs(), now=now, only_due=only_due
        )

    async def trigger_rule_evaluation(
        self,
        now: Optional[datetime] = None,
    ) -> TickResult[List[RuleEvaluation]]:
        """Evaluate every enabled alert rule once."""
        return await self.evaluator.run(self.registry.list_alert_rules(), now=now)

    async def trigger_threat_evaluation(
        self,
        now: Optional[datetime] = None,
    ) -> TickResult[List[SecurityAlert]]:
        """Correlate the event store against every enabled threat rule."""
        return await self.correlator.run(self.registry.list_threat_rules(), now=now)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        """
        Counts for the dashboard and the stats endpoint.

        Returns:
            Dict[str, Any]: Per-entity counts by severity and status,
                registry totals and store sizes.
        """
        window_stats = self.windows.stats
        return {
            "alerts": self.storage.alerts.counts(),
            "anomalies": self.storage.anomalies.counts(),
            "security_alerts": self.storage.security_alerts.counts(),
            "registry": self.registry.counts(),
            "stores": {
                "metric_keys": window_stats.keys,
                "metric_samples": window_stats.samples,
                "security_events": len(self.events),
            },
            "generated_at": self.clock().isoformat(),
        }

    async def close(self) -> None:
        """Release channel transports."""
        await self.dispatcher.close()
        logger.info("detection_system_closed")


def create_detection_system(
    config: Optional[AppConfig] = None,
    senders: Optional[Mapping[ChannelType, ChannelSender]] = None,
) -> DetectionSystem:
    """
    Factory function to create a DetectionSystem.

    Args:
        config: Application configuration (defaults when None).
        senders: Optional sender overrides (tests).

    Returns:
        DetectionSystem: Configured and seeded instance.
    """
    return DetectionSystem(config, senders=senders)
