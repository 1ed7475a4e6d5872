"""
OpenTelemetry tracing for prompt transactions.

Spans are exported over OTLP when TRACING_ENABLED is set. Otherwise the
global provider stays the API default and every span is a no-op, so service
code can open spans unconditionally.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from remix_market.config import settings

SpanValue = str | int | float | bool

_TRACER_NAME = "remix_market.transactions"


def build_tracer_provider(
    service_name: str, service_version: str, endpoint: str, insecure: bool
) -> TracerProvider:
    """TracerProvider batching spans to an OTLP collector."""
    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.version": service_version}
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    return provider


def setup_tracing() -> None:
    """Install the OTLP provider globally if tracing is enabled."""
    if settings.tracing_enabled:
        trace.set_tracer_provider(
            build_tracer_provider(
                settings.service_name,
                settings.api_version,
                settings.otlp_endpoint,
                settings.otlp_insecure,
            )
        )


def instrument_fastapi(app: FastAPI) -> None:
    """Trace every request handled by `app` (no-op when tracing is off)."""
    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app)


def _span_value(value: object) -> SpanValue:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@contextmanager
def transaction_span(name: str, **attributes: object) -> Iterator[Span]:
    """
    Current span around one transaction.

    None-valued attributes are skipped, enums are recorded by value. An
    exception escaping the block marks the span as failed and is re-raised.

    Usage:
        with transaction_span("prompt_purchase", record_id=record_id, price=5):
            ...
    """
    tracer = trace.get_tracer(_TRACER_NAME)
    with tracer.start_as_current_span(name, record_exception=False) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _span_value(value))
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
