"""Metrics — Prometheus metrics collection and exposure."""

from __future__ import annotations

from domain_clients.metrics.collector import LifecycleMetrics, MetricsCollector

__all__ = ["LifecycleMetrics", "MetricsCollector"]
