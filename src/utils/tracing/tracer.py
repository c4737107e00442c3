"""
Tracer provider setup for OpenTelemetry.

Exporters are opt-in: the OTLP exporter is attached only when an endpoint
is given (argument or ``OTEL_EXPORTER_OTLP_ENDPOINT``), and the console
exporter only when requested (argument or ``TRACE_CONSOLE=true``).
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "diffcheck"

_provider: TracerProvider | None = None
_service_name = DEFAULT_SERVICE_NAME


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
) -> trace.Tracer:
    """
    Install a global tracer provider.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector, e.g. "localhost:4317"
        console_export: Also print finished spans to stdout
        sampling_rate: Fraction of root traces to sample (0.0-1.0)

    Returns:
        Tracer bound to ``service_name``
    """
    global _provider, _service_name

    if _provider is not None:
        logger.debug("Tracing already initialized, reusing provider")
        return trace.get_tracer(_service_name)

    if not 0.0 <= sampling_rate <= 1.0:
        raise ValueError(f"sampling_rate must be within [0, 1], got {sampling_rate}")

    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )

    exporters = []

    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
        exporters.append(f"otlp={endpoint}")

    if console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("console")

    trace.set_tracer_provider(provider)
    _provider = provider
    _service_name = service_name

    logger.info(
        f"Tracing initialized: service={service_name}, "
        f"exporters={', '.join(exporters) or 'none'}, sampling={sampling_rate}"
    )
    return trace.get_tracer(service_name)


def get_tracer() -> trace.Tracer:
    """
    Tracer for library code.

    Before ``initialize_tracing`` this is the OpenTelemetry proxy tracer,
    whose spans are non-recording.
    """
    return trace.get_tracer(_service_name)


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down."""
    global _provider

    if _provider is None:
        return
    try:
        _provider.shutdown()
        logger.debug("Tracing shutdown complete")
    finally:
        _provider = None
