"""
Structlog configuration.

Every entry carries the service name and version. Request-scoped keys such
as the request id are bound through contextvars, so anything logged while
handling a request picks them up without passing a logger around.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from remix_market.config import settings


def _stamp_service(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("version", settings.api_version)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Route structlog through the stdlib root logger.

    `level` and `log_format` default to LOG_LEVEL and LOG_FORMAT. Debug runs
    render tracebacks inline; otherwise they are flattened into the
    `exception` key so JSON output stays one line per event.
    """
    level = (level or settings.log_level).upper()
    log_format = log_format or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    exception_processor: Processor = (
        structlog.processors.ExceptionRenderer()
        if level == "DEBUG"
        else structlog.processors.format_exc_info
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _stamp_service,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            exception_processor,
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for `name`, usually the calling module's `__name__`."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def bind_request(**values: str) -> Iterator[None]:
    """
    Bind `values` to every log entry emitted inside the block.

    Usage:
        with bind_request(request_id="req-123", user_id="buyer-1"):
            logger.info("purchase_requested")
    """
    tokens = structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
