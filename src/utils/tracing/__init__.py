"""
OpenTelemetry tracing for reconciliation runs.

A run produces one ``reconciliation.run`` span with a child span per chunk
and a client span per SQL statement. Without ``initialize_tracing`` (or
without a configured exporter) every span is a no-op.
"""

from .context import add_span_attributes, add_span_event, trace_operation
from .database import trace_database_query
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "add_span_attributes",
    "add_span_event",
    "trace_database_query",
]
