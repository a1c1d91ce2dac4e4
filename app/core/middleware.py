import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import settings

CORRELATION_HEADER = "X-Correlation-ID"


async def request_context(request: Request, call_next):
    """Correlation id, timing and one access log line per request."""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    logger = structlog.get_logger()
    started = time.perf_counter()
    try:
        response = await call_next(request)
    finally:
        elapsed = time.perf_counter() - started
        structlog.contextvars.unbind_contextvars("correlation_id")

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(elapsed * 1000, 2),
        correlation_id=correlation_id,
    )
    response.headers[CORRELATION_HEADER] = correlation_id
    response.headers["X-Process-Time"] = f"{elapsed:.6f}"
    return response


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    # Discount previews are per-user
    response.headers["Cache-Control"] = "no-store"
    if settings.ENVIRONMENT == "production":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


def register_middleware(app: FastAPI) -> None:
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", CORRELATION_HEADER],
        expose_headers=["X-Process-Time", CORRELATION_HEADER],
        max_age=3600,
    )
    app.middleware("http")(security_headers)
    # Registered last so it wraps everything above
    app.middleware("http")(request_context)
