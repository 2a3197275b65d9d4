"""Infrastructure layer - cross-cutting concerns."""

from tmp_postgres.infrastructure.config import Config, get_config
from tmp_postgres.infrastructure.container import Container, get_container
from tmp_postgres.infrastructure.logging import setup_logging, get_logger
from tmp_postgres.infrastructure.metrics import setup_metrics, get_metrics, MetricsRegistry
from tmp_postgres.infrastructure.tracing import setup_tracing, get_tracer, trace_span

__all__ = [
    "Config",
    "get_config",
    "Container",
    "get_container",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
