"""
In-memory stores feeding the detectors.

Components:
    window: MetricWindowStore, per-(metric, service) sliding windows
    events: SecurityEventStore, recent security events for correlation
"""

from argus.metrics.events import SecurityEventStore
from argus.metrics.window import MetricWindowStore, WindowStats

__all__: list[str] = [
    "MetricWindowStore",
    "WindowStats",
    "SecurityEventStore",
]
