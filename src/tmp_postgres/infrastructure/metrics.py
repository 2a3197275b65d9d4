"""Prometheus metrics for temporary PostgreSQL instances."""

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
    """Registry of all tmp_postgres metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Template metrics
        self.template_initializations_total = Counter(
            "tmp_postgres_template_initializations_total",
            "Total initdb runs producing a template",
            ["status"],  # success, error
            registry=self._registry,
        )

        self.template_init_seconds = Histogram(
            "tmp_postgres_template_init_seconds",
            "Time spent running initdb for a template",
            buckets=(0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        # Instance metrics
        self.instances_created_total = Counter(
            "tmp_postgres_instances_created_total",
            "Total instance creation attempts",
            ["mode", "status"],  # blocking/cooperative, success/error
            registry=self._registry,
        )

        self.instance_startup_seconds = Histogram(
            "tmp_postgres_instance_startup_seconds",
            "Time from materialization to a ready, bootstrapped server",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        self.instances_running = Gauge(
            "tmp_postgres_instances_running",
            "Number of servers currently owned by a guard",
            registry=self._registry,
        )

        # External command metrics
        self.commands_total = Counter(
            "tmp_postgres_commands_total",
            "External commands executed",
            ["command", "status"],  # initdb/cp/createuser/createdb, success/error
            registry=self._registry,
        )

        # Server info
        self.info = Info(
            "tmp_postgres",
            "tmp_postgres information",
            registry=self._registry,
        )


_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8005, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """Set up Prometheus metrics server."""
    global _metrics
    _metrics = MetricsRegistry(registry)

    from tmp_postgres import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)
    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
