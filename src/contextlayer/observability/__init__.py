"""Observability: in-process metrics."""

from contextlayer.observability.metrics import MetricsCollector, get_metrics

__all__ = ["MetricsCollector", "get_metrics"]
