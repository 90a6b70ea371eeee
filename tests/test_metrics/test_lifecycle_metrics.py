"""Tests for Prometheus lifecycle metrics — metrics/collector.py."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, generate_latest

from domain_clients.metrics.collector import LifecycleMetrics, MetricsCollector

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _metrics() -> tuple[LifecycleMetrics, CollectorRegistry]:
    registry = CollectorRegistry()
    return LifecycleMetrics(MetricsCollector(registry)), registry


class TestMetricsCollector:
    def test_own_registry_by_default(self) -> None:
        assert isinstance(MetricsCollector().registry, CollectorRegistry)

    def test_independent_instances(self) -> None:
        """Two LifecycleMetrics without a shared registry must not collide."""
        LifecycleMetrics()
        LifecycleMetrics()

    def test_counter_registered(self) -> None:
        collector = MetricsCollector()
        counter = collector.counter("things_total", "Things", ("kind",))
        counter.labels(kind="a").inc(2)
        assert collector.registry.get_sample_value("things_total", {"kind": "a"}) == 2.0


class TestLifecycleMetrics:
    def test_record_broadcast(self) -> None:
        metrics, registry = _metrics()
        metrics.record_broadcast("osmosis-1", "accepted")
        metrics.record_broadcast("osmosis-1", "accepted")
        metrics.record_broadcast("osmosis-1", "network_error")

        assert registry.get_sample_value(
            "domain_clients_broadcast_attempts_total",
            {"chain_id": "osmosis-1", "result": "accepted"},
        ) == 2.0
        assert registry.get_sample_value(
            "domain_clients_broadcast_attempts_total",
            {"chain_id": "osmosis-1", "result": "network_error"},
        ) == 1.0

    def test_record_outcome(self) -> None:
        metrics, registry = _metrics()
        metrics.record_outcome("1", "timed_out")
        assert registry.get_sample_value(
            "domain_clients_tx_outcomes_total", {"chain_id": "1", "status": "timed_out"}
        ) == 1.0

    def test_track_confirmation(self) -> None:
        metrics, registry = _metrics()
        with metrics.track_confirmation("cosmoshub-4"):
            pass
        assert registry.get_sample_value(
            "domain_clients_confirmation_seconds_count", {"chain_id": "cosmoshub-4"}
        ) == 1.0

    def test_track_confirmation_observes_on_error(self) -> None:
        metrics, registry = _metrics()
        try:
            with metrics.track_confirmation("c-1"):
                raise RuntimeError("poll failed")
        except RuntimeError:
            pass
        assert registry.get_sample_value(
            "domain_clients_confirmation_seconds_count", {"chain_id": "c-1"}
        ) == 1.0

    def test_transfers(self) -> None:
        metrics, registry = _metrics()
        metrics.record_transfer("sent")
        metrics.set_active_transfers(3)
        assert registry.get_sample_value(
            "domain_clients_transfers_total", {"status": "sent"}
        ) == 1.0
        assert registry.get_sample_value("domain_clients_active_transfers") == 3.0

    def test_exposition(self) -> None:
        metrics, registry = _metrics()
        metrics.record_transfer("refunded")
        assert b"domain_clients_transfers_total" in generate_latest(registry)
