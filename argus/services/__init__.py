"""
Long-running services.

Components:
    runner: ServiceRunner base class and setup_logging
    detector: DetectionService (scheduled ticks plus the HTTP API)
"""

from argus.services.runner import ServiceRunner, setup_logging

__all__ = ["ServiceRunner", "setup_logging"]
