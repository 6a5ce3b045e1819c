"""
SwarmCheck Telemetry

Metrics sinks injected into checks and a Loki log handler.
"""

from swarmcheck.telemetry.metrics import MetricsSink, NullMetrics, InMemoryMetrics
from swarmcheck.telemetry.loki import LokiHandler

__all__ = ["MetricsSink", "NullMetrics", "InMemoryMetrics", "LokiHandler"]
