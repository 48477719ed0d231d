"""
Alert rule evaluator with sustained-breach logic.

This module provides the AlertRuleEvaluator which decides, on each tick,
whether threshold rules fire and hands firing rules to the lifecycle
manager.

Key Features:
    - A rule fires only when EVERY sample in its duration window breaches
    - The breach must cover the duration: the earliest sample has to sit
      within one sample interval of the window start
    - Wildcard rules (no service) are evaluated per reporting service
    - Per-rule isolation; one failing rule does not stop the tick
    - No auto-resolution: a recovered metric leaves the alert open

Example:
    >>> evaluator = AlertRuleEvaluator(store, manager)
    >>> tick = await evaluator.run(rules)
    >>> [e.alert_id for evals in tick.results for e in evals if e.created]
    ['3f1c...']
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

import structlog

from argus.detection.concurrency import TickResult, run_isolated
from argus.detection.manager import AlertLifecycleManager
from argus.metrics.window import MetricWindowStore
from argus.models.alerts import AlertRule
from argus.models.common import as_utc, utcnow
from argus.models.metrics import MetricSample

logger = structlog.get_logger(__name__)


DEFAULT_SAMPLE_INTERVAL_SECONDS = 60.0


@dataclass
class RuleEvaluation:
    """
    Result of evaluating one rule against one service window.

    Attributes:
        rule_id: Evaluated rule.
        service: Concrete service evaluated (None if nothing reported).
        triggered: True if the rule fires.
        value: Latest value in the window, if any.
        skip_reason: Why the rule did not fire (empty_window, not_sustained,
            condition_not_met, rule_disabled), or None.
        created: True if a new alert was created by this evaluation.
        alert_id: The new or updated alert id, if any.
    """

    rule_id: str
    service: Optional[str]
    triggered: bool
    value: Optional[float] = None
    skip_reason: Optional[str] = None
    created: bool = False
    alert_id: Optional[str] = None


def evaluate_window(
    rule: AlertRule,
    window: Sequence[MetricSample],
    window_start: datetime,
    sample_interval_seconds: float = DEFAULT_SAMPLE_INTERVAL_SECONDS,
) -> Tuple[bool, Optional[str]]:
    """
    Decide whether a rule fires for one window snapshot.

    Args:
        rule: The rule being evaluated.
        window: Samples in ``(window_start, now]`` in timestamp order.
        window_start: Exclusive lower bound of the window.
        sample_interval_seconds: Expected spacing of samples.

    Returns:
        Tuple[bool, Optional[str]]: (fires, skip_reason).

    Example:
        >>> fires, reason = evaluate_window(rule, window, now - timedelta(minutes=3))
    """
    if not window:
        return False, "empty_window"

    for sample in window:
        if not rule.condition.evaluate(sample.value, rule.threshold):
            return False, "condition_not_met"

    # Breach must span the whole duration, not just the last few samples
    coverage_gap = window[0].timestamp - window_start
    if coverage_gap > timedelta(seconds=sample_interval_seconds):
        return False, "not_sustained"

    return True, None


class AlertRuleEvaluator:
    """
    Evaluates threshold alert rules against the metric window store.

    Attributes:
        store: Metric window store to snapshot.
        manager: Lifecycle manager receiving firing rules.
        sample_interval_seconds: Expected metric spacing.
        max_concurrency: Maximum rules evaluated at once.

    Example:
        >>> evaluator = AlertRuleEvaluator(store, manager, sample_interval_seconds=60)
        >>> await evaluator.run(registry.list_alert_rules())
    """

    def __init__(
        self,
        store: MetricWindowStore,
        manager: AlertLifecycleManager,
        sample_interval_seconds: float = DEFAULT_SAMPLE_INTERVAL_SECONDS,
        max_concurrency: int = 32,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.manager = manager
        self.sample_interval_seconds = sample_interval_seconds
        self.max_concurrency = max_concurrency
        self.clock = clock

    def _services_for(self, rule: AlertRule) -> List[str]:
        if rule.service is not None:
            return [rule.service]
        return self.store.services(rule.metric_name)

    async def evaluate_rule(self, rule: AlertRule, now: datetime) -> List[RuleEvaluation]:
        """
        Evaluate one rule for every service it covers.

        Args:
            rule: The rule to evaluate.
            now: Evaluation time (upper bound of the window).

        Returns:
            List[RuleEvaluation]: One result per evaluated service.
        """
        if not rule.enabled:
            return [
                RuleEvaluation(
                    rule_id=rule.id,
                    service=rule.service,
                    triggered=False,
                    skip_reason="rule_disabled",
                )
            ]

        services = self._services_for(rule)
        if not services:
            return [
                RuleEvaluation(
                    rule_id=rule.id,
                    service=None,
                    triggered=False,
                    skip_reason="empty_window",
                )
            ]

        window_start = now - timedelta(minutes=rule.duration_minutes)
        evaluations: List[RuleEvaluation] = []

        for service in services:
            window = self.store.snapshot(
                rule.metric_name, service, rule.duration_minutes, now=now
            )
            fires, reason = evaluate_window(
                rule, window, window_start, self.sample_interval_seconds
            )
            latest = window[-1].value if window else None

            if not fires:
                logger.debug(
                    "alert_rule_not_firing",
                    rule_id=rule.id,
                    service=service,
                    reason=reason,
                    samples=len(window),
                )
                evaluations.append(
                    RuleEvaluation(
                        rule_id=rule.id,
                        service=service,
                        triggered=False,
                        value=latest,
                        skip_reason=reason,
                    )
                )
                continue

            alert, created = await self.manager.raise_alert(
                rule, value=window[-1].value, service=service, timestamp=now
            )
            evaluations.append(
                RuleEvaluation(
                    rule_id=rule.id,
                    service=service,
                    triggered=True,
                    value=latest,
                    created=created,
                    alert_id=alert.id,
                )
            )

        return evaluations

    async def run(
        self,
        rules: Sequence[AlertRule],
        now: Optional[datetime] = None,
    ) -> TickResult[List[RuleEvaluation]]:
        """
        Evaluate all enabled rules once.

        Args:
            rules: Rules to evaluate (disabled ones are skipped).
            now: Evaluation time, defaults to the evaluator clock.

        Returns:
            TickResult[List[RuleEvaluation]]: Per-rule results and errors.
        """
        at = as_utc(now) if now is not None else self.clock()
        enabled = [rule for rule in rules if rule.enabled]

        result = await run_isolated(
            "rule_evaluation",
            enabled,
            lambda rule: self.evaluate_rule(rule, at),
            item_key=lambda rule: rule.id,
            max_concurrency=self.max_concurrency,
        )

        triggered = sum(1 for evals in result.results for e in evals if e.triggered)
        created = sum(1 for evals in result.results for e in evals if e.created)
        logger.info(
            "rule_evaluation_complete",
            rules=len(enabled),
            triggered=triggered,
            created=created,
            errors=len(result.errors),
        )
        return result
