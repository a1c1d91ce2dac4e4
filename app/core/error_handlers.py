import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.exceptions import APIError, PromotionError
from app.utils.response import error_response

logger = structlog.get_logger()


def _correlation_id(request: Request):
    return getattr(request.state, "correlation_id", None)


async def promotion_error_handler(request: Request, exc: PromotionError):
    # Shopper-facing outcomes (limits, conditions, races); not failures of the service
    logger.info(
        "promotion_request_rejected",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
    )
    return error_response(exc.status_code, exc.message, exc.errors, _correlation_id(request))


async def api_error_handler(request: Request, exc: APIError):
    return error_response(exc.status_code, exc.message, exc.errors, _correlation_id(request))


async def http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        message, errors = detail.get("message", "Request failed"), detail.get("errors", [])
    elif isinstance(detail, list):
        message, errors = "Request failed", detail
    else:
        message, errors = str(detail), []
    return error_response(exc.status_code, message, errors, _correlation_id(request))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation failed",
        errors,
        _correlation_id(request),
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limit_exceeded", path=request.url.path, limit=str(exc.detail))
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "Too many requests. Please try again later.",
        correlation_id=_correlation_id(request),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)

    message = "Internal server error"
    errors = []
    if settings.DEBUG and settings.ENVIRONMENT != "production":
        message = f"Internal server error: {exc}"
        errors = [{"type": type(exc).__name__}]
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, errors, _correlation_id(request))


def register_exception_handlers(app: FastAPI) -> None:
    # Starlette picks the most specific class, PromotionError wins over APIError
    app.add_exception_handler(PromotionError, promotion_error_handler)
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
