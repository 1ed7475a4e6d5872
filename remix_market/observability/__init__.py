"""
Observability - structured logs, Prometheus metrics and OpenTelemetry spans.
"""

from remix_market.observability.logging import bind_request, configure_logging, get_logger
from remix_market.observability.metrics import metrics
from remix_market.observability.tracing import instrument_fastapi, setup_tracing, transaction_span

__all__ = [
    "bind_request",
    "configure_logging",
    "get_logger",
    "instrument_fastapi",
    "metrics",
    "setup_tracing",
    "transaction_span",
]
