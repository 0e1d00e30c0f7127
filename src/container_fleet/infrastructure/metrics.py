"""Prometheus metrics for the container fleet."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all container fleet metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Batch dispatch metrics
        self.batch_units_total = Counter(
            "fleet_batch_units_total",
            "Batch units dispatched",
            ["operation", "status"],  # start/stop/remove/remove_image, success/error
            registry=self._registry,
        )

        self.batch_duration_seconds = Histogram(
            "fleet_batch_duration_seconds",
            "Wall time of a whole batch",
            ["operation"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        # Stats metrics
        self.stats_pollers_active = Gauge(
            "fleet_stats_pollers_active",
            "Running per-container stats pollers",
            registry=self._registry,
        )

        self.stats_samples_total = Counter(
            "fleet_stats_samples_total",
            "Stats samples received",
            registry=self._registry,
        )

        self.stats_cache_entries = Gauge(
            "fleet_stats_cache_entries",
            "Containers tracked by the stats cache",
            registry=self._registry,
        )

        self.discovery_failures_total = Counter(
            "fleet_discovery_failures_total",
            "Failed container listings during discovery",
            registry=self._registry,
        )

        # Stream metrics
        self.stream_bytes_total = Counter(
            "fleet_stream_bytes_total",
            "Bytes relayed between terminal and containers",
            ["direction"],  # output, input
            registry=self._registry,
        )

        # Server info
        self.info = Info(
            "container_fleet",
            "Container fleet information",
            registry=self._registry,
        )


_metrics: MetricsRegistry | None = None


def setup_metrics(port: int, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """Set up Prometheus metrics server."""
    global _metrics
    _metrics = MetricsRegistry(registry)

    from container_fleet import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)
    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
