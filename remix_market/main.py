"""
FastAPI application for the prompt transaction service.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest

from remix_market.api.dependencies import get_notification_dispatcher
from remix_market.api.routes import router
from remix_market.config import settings
from remix_market.db.migration_runner import run_migrations
from remix_market.db.session import close_engines
from remix_market.observability import (
    bind_request,
    configure_logging,
    get_logger,
    instrument_fastapi,
    metrics,
    setup_tracing,
)

configure_logging()
logger = get_logger(__name__)

_VALIDATION_KEYS = ("type", "loc", "msg")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "service_starting",
        service=settings.service_name,
        version=settings.api_version,
        payout_percent=settings.seller_payout_percent,
        tracing_enabled=settings.tracing_enabled,
    )
    if settings.run_migrations_on_startup:
        run_migrations()

    yield

    # Let in-flight seller notifications finish before the pools go away.
    await get_notification_dispatcher().drain()
    await close_engines()
    logger.info("service_stopped")


def _sanitize(error: dict) -> dict:
    # Raw validation errors can carry the offending input and exception objects.
    cleaned = {key: error.get(key) for key in _VALIDATION_KEYS}
    if "ctx" in error:
        cleaned["ctx"] = {name: str(value) for name, value in error["ctx"].items()}
    return cleaned


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [_sanitize(error) for error in exc.errors()]
    logger.warning("request_rejected", path=request.url.path, method=request.method, errors=errors)
    return JSONResponse(status_code=422, content={"detail": errors})


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    """Intents and caller identities raise ValueError on malformed ids or prices."""
    logger.warning("intent_rejected", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": str(exc)})


async def observe_request(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Request log lines plus the http_* Prometheus series."""
    path, method = request.url.path, request.method
    in_progress = metrics.http_requests_in_progress.labels(endpoint=path, method=method)
    started = time.perf_counter()

    with bind_request(request_id=request.headers.get("X-Request-ID", "unknown")):
        in_progress.inc()
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            metrics.record_http_request(path, method, 500, elapsed)
            metrics.record_error(type(exc).__name__, "http_request")
            logger.exception("request_failed", method=method, path=path, duration_seconds=elapsed)
            raise
        finally:
            in_progress.dec()

        elapsed = time.perf_counter() - started
        metrics.record_http_request(path, method, response.status_code, elapsed)
        logger.info(
            "request_handled",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_seconds=elapsed,
        )
        return response


def create_app() -> FastAPI:
    """Build the application with routes, handlers and middleware attached."""
    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    application.add_exception_handler(RequestValidationError, handle_request_validation)
    application.add_exception_handler(ValueError, handle_value_error)

    setup_tracing()
    instrument_fastapi(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(observe_request)
    application.include_router(router)

    @application.get("/")
    async def root() -> dict[str, str]:
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }

    @application.get("/metrics")
    async def metrics_endpoint() -> Response:
        """Prometheus text exposition."""
        return PlainTextResponse(generate_latest())

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "remix_market.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
