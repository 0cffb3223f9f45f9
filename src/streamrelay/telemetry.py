"""OpenTelemetry tracing (optional).

Tracing is switched on when any of the standard OTLP environment variables
is present.  Without them the global tracer stays the OpenTelemetry no-op
implementation, so instrumented code runs unchanged either way.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_NAMESPACE, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from streamrelay import __version__

logger = logging.getLogger(__name__)

_ENABLE_VARS: tuple[str, ...] = (
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
    "OTEL_SERVICE_NAME",
)

DEFAULT_OTLP_ENDPOINT: str = "http://localhost:4317"


def otlp_traces_endpoint() -> str:
    """Return the OTLP trace endpoint, preferring the traces-specific variable."""
    return (
        os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or DEFAULT_OTLP_ENDPOINT
    )


def is_tracing_enabled() -> bool:
    """Check whether any OTLP configuration is present in the environment."""
    return any(os.getenv(name) for name in _ENABLE_VARS)


def configure_tracing(service_name: str = "discord-to-sp-bot") -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider if tracing is enabled.

    Args:
        service_name: Fallback service name; ``OTEL_SERVICE_NAME`` wins.

    Returns:
        The installed provider, or ``None`` when tracing is disabled.
    """
    if not is_tracing_enabled():
        logger.info("No OpenTelemetry configuration found; tracing disabled")
        return None

    resource = Resource.create(
        {
            SERVICE_NAME: os.getenv("OTEL_SERVICE_NAME") or service_name,
            SERVICE_VERSION: __version__,
            SERVICE_NAMESPACE: "discord-bridge",
        }
    )
    endpoint = otlp_traces_endpoint()

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)

    logger.info("OpenTelemetry tracing configured (endpoint=%s)", endpoint)
    return provider


def shutdown_tracing(provider: TracerProvider | None) -> None:
    """Flush pending spans and stop the exporter."""
    if provider is not None:
        provider.shutdown()


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
