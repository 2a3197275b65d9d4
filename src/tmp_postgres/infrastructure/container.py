"""Dependency injection container for tmp_postgres."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace

from tmp_postgres.infrastructure.config import Config, get_config
from tmp_postgres.infrastructure.logging import setup_logging, get_logger
from tmp_postgres.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from tmp_postgres.infrastructure.tracing import setup_tracing, get_tracer


@dataclass
class Container:
    """Shared collaborators handed to factories that are not given their own."""

    config: Config
    logger: structlog.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry

    _instance: ClassVar[Container | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def create(cls, config: Config | None = None) -> Container:
        """Create and initialize the container with all dependencies."""
        config = config or get_config()
        observability = config.observability

        if not structlog.is_configured():
            setup_logging(observability.log_level, observability.log_format)

        if observability.otel_endpoint:
            tracer = setup_tracing(observability.otel_service_name, observability.otel_endpoint)
        else:
            tracer = get_tracer()

        if observability.metrics_port is not None:
            metrics = setup_metrics(observability.metrics_port)
        else:
            metrics = get_metrics()

        logger = get_logger(__name__)
        logger.debug(
            "tmp_postgres_container_initialized",
            log_level=observability.log_level,
            bin_dir=str(config.postgres.bin_dir) if config.postgres.bin_dir else None,
        )
        return cls(config=config, logger=logger, tracer=tracer, metrics=metrics)

    @classmethod
    def get(cls) -> Container:
        """Get the singleton container instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls.create()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        with cls._lock:
            cls._instance = None


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()
