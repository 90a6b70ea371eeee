"""Metrics collector — Prometheus counters, gauges, histograms.

Lifecycle and transfer metrics:
- ``domain_clients_broadcast_attempts_total{chain_id,result}``
- ``domain_clients_tx_outcomes_total{chain_id,status}``
- ``domain_clients_confirmation_seconds{chain_id}``
- ``domain_clients_transfers_total{status}``
- ``domain_clients_active_transfers``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "domain_clients"

# Confirmation latency buckets (seconds); blocks land every ~1-15s
_CONFIRMATION_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`LifecycleMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        """Register and return a Gauge."""
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(
        self,
        name: str,
        doc: str,
        labels: tuple[str, ...] = (),
        buckets: tuple[float, ...] = Histogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry, buckets=buckets)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class LifecycleMetrics:
    """High-level metrics for transaction lifecycles and cross-chain transfers."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._broadcast_attempts = self._collector.counter(
            f"{_PREFIX}_broadcast_attempts_total",
            "Broadcast attempts by result (accepted, rejected, network_error, mempool_full)",
            ("chain_id", "result"),
        )
        self._tx_outcomes = self._collector.counter(
            f"{_PREFIX}_tx_outcomes_total",
            "Terminal transaction outcomes",
            ("chain_id", "status"),
        )
        self._confirmation = self._collector.histogram(
            f"{_PREFIX}_confirmation_seconds",
            "Time from accepted broadcast to terminal confirmation status",
            ("chain_id",),
            buckets=_CONFIRMATION_BUCKETS,
        )

        # Transfer metrics
        self._transfers = self._collector.counter(
            f"{_PREFIX}_transfers_total",
            "Cross-chain transfers reaching a status",
            ("status",),
        )
        self._active_transfers = self._collector.gauge(
            f"{_PREFIX}_active_transfers",
            "Cross-chain transfers not yet settled or refunded",
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Lifecycle --

    def record_broadcast(self, chain_id: str, result: str) -> None:
        self._broadcast_attempts.labels(chain_id=chain_id, result=result).inc()

    def record_outcome(self, chain_id: str, status: str) -> None:
        self._tx_outcomes.labels(chain_id=chain_id, status=status).inc()

    @contextmanager
    def track_confirmation(self, chain_id: str) -> Iterator[None]:
        """Track the duration of confirmation polling."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._confirmation.labels(chain_id=chain_id).observe(time.monotonic() - start)

    # -- Transfers --

    def record_transfer(self, status: str) -> None:
        self._transfers.labels(status=status).inc()

    def set_active_transfers(self, count: int) -> None:
        self._active_transfers.set(count)
