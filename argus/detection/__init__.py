"""
Detection and alerting core.

Components:
    algorithms: zscore, iqr, moving_average and seasonal detectors
    anomaly: AnomalyDetector tick runner
    evaluator: AlertRuleEvaluator (sustained threshold rules)
    threats: ThreatCorrelator and risk scoring
    manager: AlertLifecycleManager (dedup, state machine, dispatch hand-off)
    storage: In-memory repositories for tracked entities
    dispatcher: ChannelDispatcher fan-out with per-channel timeouts
    registry: ConfigRegistry CRUD for configs, rules and channels
"""

from argus.detection.algorithms import ALGORITHMS, Deviation, detect, lookback_minutes
from argus.detection.anomaly import AnomalyDetector
from argus.detection.concurrency import TickResult, run_isolated
from argus.detection.dispatcher import ChannelDispatcher, DispatchReport
from argus.detection.evaluator import AlertRuleEvaluator, RuleEvaluation, evaluate_window
from argus.detection.manager import AlertLifecycleManager
from argus.detection.registry import ConfigRegistry
from argus.detection.storage import AlertQuery, AlertStorage
from argus.detection.threats import (
    ThreatCorrelator,
    default_threat_rules,
    event_risk_score,
    threat_risk_score,
)

__all__ = [
    # Algorithms
    "ALGORITHMS",
    "Deviation",
    "detect",
    "lookback_minutes",
    # Runners
    "AnomalyDetector",
    "AlertRuleEvaluator",
    "RuleEvaluation",
    "evaluate_window",
    "ThreatCorrelator",
    "default_threat_rules",
    "event_risk_score",
    "threat_risk_score",
    "TickResult",
    "run_isolated",
    # Lifecycle
    "AlertLifecycleManager",
    "AlertQuery",
    "AlertStorage",
    # Dispatch
    "ChannelDispatcher",
    "DispatchReport",
    # Configuration
    "ConfigRegistry",
]
