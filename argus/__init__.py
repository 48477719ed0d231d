"""
Argus Detection & Alerting.

Continuous detection over metric streams and security events: threshold
alert rules, statistical anomaly detection, threat correlation, and the
shared alert lifecycle and notification pipeline.

This package provides:
- Data models for metric samples, rules, alerts, anomalies and channels
- The metric window and security event stores
- Detectors, the rule evaluator and the threat correlator
- The alert lifecycle manager and notification dispatcher
- Configuration management, the service runtime and the HTTP API
"""

__version__ = "0.1.0"
__author__ = "Argus Team"
