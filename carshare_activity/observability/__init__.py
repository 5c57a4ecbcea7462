"""Observability layer: in-process counters and timings. No external SaaS."""

from carshare_activity.observability.metrics import MetricsCollector

__all__ = [
    "MetricsCollector",
]
