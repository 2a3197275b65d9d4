"""OpenTelemetry spans around factory construction and instance start/stop.

Spans go to the globally installed tracer provider. setup_tracing() installs
one exporting over OTLP; without it the API's no-op provider is used.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

TRACER_NAME = "tmp_postgres"


def setup_tracing(service_name: str, otlp_endpoint: str) -> trace.Tracer:
    """Install a provider exporting spans to otlp_endpoint."""
    from tmp_postgres import __version__

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.version": __version__})
    )
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
    trace.set_tracer_provider(provider)
    return get_tracer()


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def trace_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[trace.Span]:
    """Run the block inside a span; exceptions are recorded on it."""
    with get_tracer().start_as_current_span(name, attributes=attributes) as span:
        yield span
