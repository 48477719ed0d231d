"""
Threat correlator.

Matches security events against threat rules and raises risk-scored
SecurityAlerts through the lifecycle manager.

Key Features:
    - threshold rules: count matching events per group within the window
    - pattern rules: a single matching event is enough
    - Per (rule, group key) cool-down equal to the rule window; expired
      cool-downs are pruned on every evaluation
    - Runs for each ingested event and on a periodic tick; a failing rule
      is logged and skipped

Risk scoring:
    Per-event risk is assigned on ingestion from event type, severity and
    outcome. Alert risk combines the rule severity, the worst outcome among
    the matched events, and how far past the threshold the group went.

Example:
    >>> correlator = ThreatCorrelator(event_store, manager)
    >>> alerts = await correlator.on_event(event, registry.list_threat_rules())
    >>> alerts[0].threat_type
    'brute_force'
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from argus.detection.concurrency import TickResult, run_isolated
from argus.detection.manager import AlertLifecycleManager, KeyedLocks
from argus.errors import EvaluationError
from argus.metrics.events import SecurityEventStore
from argus.models.common import Severity, as_utc, utcnow
from argus.models.security import (
    EventOutcome,
    EventSeverity,
    GroupBy,
    SecurityAlert,
    SecurityEvent,
    SecurityEventType,
    ThreatRule,
    ThreatRuleType,
)

logger = structlog.get_logger(__name__)


EVENT_TYPE_BASE_RISK: Dict[SecurityEventType, float] = {
    SecurityEventType.AUTHENTICATION: 20,
    SecurityEventType.AUTHORIZATION: 30,
    SecurityEventType.DATA_ACCESS: 40,
    SecurityEventType.SYSTEM_CHANGE: 50,
    SecurityEventType.NETWORK_INTRUSION: 80,
    SecurityEventType.MALWARE_DETECTION: 90,
}

EVENT_SEVERITY_MULTIPLIER: Dict[EventSeverity, float] = {
    EventSeverity.INFO: 1.0,
    EventSeverity.LOW: 1.2,
    EventSeverity.MEDIUM: 1.5,
    EventSeverity.HIGH: 2.0,
    EventSeverity.CRITICAL: 3.0,
}

EVENT_OUTCOME_MODIFIER: Dict[EventOutcome, float] = {
    EventOutcome.FAILURE: 1.5,
    EventOutcome.BLOCKED: 0.8,
    EventOutcome.SUCCESS: 1.0,
}

RULE_SEVERITY_BASE: Dict[Severity, int] = {
    Severity.LOW: 30,
    Severity.MEDIUM: 50,
    Severity.HIGH: 70,
    Severity.CRITICAL: 90,
}

OUTCOME_WEIGHT: Dict[EventOutcome, int] = {
    EventOutcome.FAILURE: 20,
    EventOutcome.BLOCKED: 10,
    EventOutcome.SUCCESS: 0,
}

MAX_FREQUENCY_FACTOR = 2.0


def event_risk_score(event: SecurityEvent) -> float:
    """
    Per-event risk: type base x severity multiplier x outcome modifier.

    Args:
        event: The ingested event.

    Returns:
        float: Risk in [0, 100], rounded to one decimal.

    Example:
        >>> event_risk_score(failed_login)  # authentication, medium, failure
        45.0
    """
    score = (
        EVENT_TYPE_BASE_RISK[event.event_type]
        * EVENT_SEVERITY_MULTIPLIER[event.severity]
        * EVENT_OUTCOME_MODIFIER[event.outcome]
    )
    return round(min(100.0, score), 1)


def threat_risk_score(rule: ThreatRule, matched: Sequence[SecurityEvent]) -> int:
    """
    Correlated risk of a rule match.

    Args:
        rule: The matching rule.
        matched: Events in the matching group (non-empty).

    Returns:
        int: Risk in [0, 100].
    """
    base = RULE_SEVERITY_BASE[rule.severity]
    outcome = max((OUTCOME_WEIGHT[e.outcome] for e in matched), default=0)

    if rule.rule_type == ThreatRuleType.PATTERN:
        frequency = 1.0
    else:
        frequency = min(len(matched) / rule.threshold, MAX_FREQUENCY_FACTOR)

    return min(100, round((base + outcome) * frequency))


def default_threat_rules() -> List[ThreatRule]:
    """Rules seeded when the configuration supplies none."""
    return [
        ThreatRule(
            name="Multiple Failed Login Attempts",
            description="Repeated failed logins from one source address",
            rule_type=ThreatRuleType.THRESHOLD,
            event_type=SecurityEventType.AUTHENTICATION,
            outcome=EventOutcome.FAILURE,
            threshold=5,
            window_seconds=300,
            group_by=GroupBy.SOURCE_IP,
            severity=Severity.MEDIUM,
        ),
        ThreatRule(
            name="Privilege Escalation Attempt",
            description="Failed attempt to elevate privileges",
            rule_type=ThreatRuleType.PATTERN,
            event_type=SecurityEventType.AUTHORIZATION,
            action="elevate_privileges",
            outcome=EventOutcome.FAILURE,
            group_by=GroupBy.USER_ID,
            severity=Severity.HIGH,
        ),
    ]


class ThreatCorrelator:
    """
    Correlates security events against threat rules.

    Attributes:
        event_store: Source of recent events.
        manager: Lifecycle manager that stores and dispatches alerts.
        max_concurrency: Maximum rules evaluated at once on a tick.
    """

    def __init__(
        self,
        event_store: SecurityEventStore,
        manager: AlertLifecycleManager,
        max_concurrency: int = 32,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.event_store = event_store
        self.manager = manager
        self.max_concurrency = max_concurrency
        self.clock = clock
        self._cooldown_until: Dict[Tuple[str, str], datetime] = {}
        self._locks = KeyedLocks()

    def _in_cooldown(self, rule: ThreatRule, key: str, now: datetime) -> bool:
        until = self._cooldown_until.get((rule.id, key))
        return until is not None and now < until

    def _prune(self, now: datetime) -> None:
        """Drop cool-downs that have expired at ``now``."""
        expired = [k for k, until in self._cooldown_until.items() if until <= now]
        for key in expired:
            del self._cooldown_until[key]

    def _group(
        self,
        rule: ThreatRule,
        events: Sequence[SecurityEvent],
    ) -> Dict[str, List[SecurityEvent]]:
        groups: Dict[str, List[SecurityEvent]] = {}
        for event in events:
            if rule.matches(event):
                groups.setdefault(rule.group_key(event), []).append(event)
        return groups

    def _describe(self, rule: ThreatRule, key: str, matched: Sequence[SecurityEvent]) -> str:
        if rule.rule_type == ThreatRuleType.PATTERN:
            event = matched[-1]
            return (
                f"{event.event_type.value} {event.action} {event.outcome.value} "
                f"by {rule.group_by.value} {key}"
            )
        return (
            f"{len(matched)} matching events from {rule.group_by.value} {key} "
            f"within {rule.window_seconds}s (threshold {rule.threshold})"
        )

    async def _raise(
        self,
        rule: ThreatRule,
        key: str,
        matched: Sequence[SecurityEvent],
        now: datetime,
    ) -> Optional[SecurityAlert]:
        """Raise an alert for a matching group unless it is cooling down."""
        async with self._locks(f"{rule.id}:{key}"):
            if self._in_cooldown(rule, key, now):
                logger.debug(
                    "threat_match_suppressed",
                    rule_id=rule.id,
                    group_key=key,
                    matched=len(matched),
                )
                return None
            self._cooldown_until[(rule.id, key)] = now + timedelta(seconds=rule.window_seconds)

        alert = SecurityAlert(
            rule_id=rule.id,
            rule_name=rule.name,
            threat_type=rule.threat_type,
            severity=rule.severity,
            description=self._describe(rule, key, matched),
            risk_score=threat_risk_score(rule, matched),
            created_at=now,
            related_event_ids=[e.id for e in matched],
            affected_assets=[key],
        )
        return await self.manager.record_security_alert(alert, rule.notification_channels)

    async def evaluate_rule(self, rule: ThreatRule, now: datetime) -> List[SecurityAlert]:
        """
        Evaluate one rule over its trailing window.

        Args:
            rule: The rule to evaluate.
            now: Upper bound of the window.

        Returns:
            List[SecurityAlert]: Alerts raised (one per matching group).
        """
        events = self.event_store.snapshot(rule.window_seconds, now=now)
        raised: List[SecurityAlert] = []

        for key, matched in self._group(rule, events).items():
            if len(matched) < rule.threshold:
                continue
            alert = await self._raise(rule, key, matched, now)
            if alert is not None:
                raised.append(alert)

        return raised

    async def on_event(
        self,
        event: SecurityEvent,
        rules: Sequence[ThreatRule],
    ) -> List[SecurityAlert]:
        """
        Correlate a newly ingested event.

        Only the group the event belongs to is examined, with the window
        ending at the event timestamp.

        Args:
            event: The event just stored.
            rules: Threat rules (disabled ones are skipped).

        Returns:
            List[SecurityAlert]: Alerts raised by this event. A rule that
                fails is logged and skipped; the other rules still run.
        """
        raised: List[SecurityAlert] = []
        self._prune(event.timestamp)

        for rule in rules:
            if not rule.enabled:
                continue
            try:
                alert = await self._correlate_event(rule, event)
            except Exception as e:
                error = EvaluationError(rule.id, str(e) or type(e).__name__, cause=e)
                logger.error(
                    "threat_rule_evaluation_failed",
                    rule_id=rule.id,
                    event_id=event.id,
                    error=str(error),
                    error_type=type(e).__name__,
                )
                continue
            if alert is not None:
                raised.append(alert)

        return raised

    async def _correlate_event(
        self,
        rule: ThreatRule,
        event: SecurityEvent,
    ) -> Optional[SecurityAlert]:
        if not rule.matches(event):
            return None

        key = rule.group_key(event)
        if rule.rule_type == ThreatRuleType.PATTERN:
            matched: List[SecurityEvent] = [event]
        else:
            window = self.event_store.snapshot(rule.window_seconds, now=event.timestamp)
            matched = self._group(rule, window).get(key, [])
            if len(matched) < rule.threshold:
                return None

        return await self._raise(rule, key, matched, event.timestamp)

    async def run(
        self,
        rules: Sequence[ThreatRule],
        now: Optional[datetime] = None,
    ) -> TickResult[List[SecurityAlert]]:
        """
        Evaluate every enabled rule once.

        Args:
            rules: Threat rules.
            now: Evaluation time, defaults to the correlator clock.

        Returns:
            TickResult[List[SecurityAlert]]: Alerts per rule, and errors.
        """
        at = as_utc(now) if now is not None else self.clock()
        self._prune(at)
        enabled = [rule for rule in rules if rule.enabled]

        result = await run_isolated(
            "threat_correlation",
            enabled,
            lambda rule: self.evaluate_rule(rule, at),
            item_key=lambda rule: rule.id,
            max_concurrency=self.max_concurrency,
        )

        logger.info(
            "threat_correlation_complete",
            rules=len(enabled),
            alerts=sum(len(raised) for raised in result.results),
            errors=len(result.errors),
        )
        return result

    def forget(self, rule_id: str) -> None:
        """Drop cool-down state of a deleted rule."""
        for key in [k for k in self._cooldown_until if k[0] == rule_id]:
            del self._cooldown_until[key]
