import os

import sentry_sdk
import structlog
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sqlalchemy import text

from app.api.v1 import cart, coupons, promotions
from app.core.config import settings
from app.core.error_handlers import register_exception_handlers
from app.core.logging_config import configure_logging
from app.core.middleware import register_middleware
from app.core.rate_limiter import limiter
from app.db.session import engine

API_VERSION = "1.0.0"

configure_logging()
logger = structlog.get_logger()


def init_sentry() -> None:
    """Error reporting is production-only and never blocks startup."""
    if settings.ENVIRONMENT != "production" or not settings.SENTRY_DSN:
        return
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=os.getenv("GIT_COMMIT"),
            traces_sample_rate=0.1,
            integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        )
        logger.info("sentry_initialized")
    except Exception as exc:
        logger.warning("sentry_init_failed", error=str(exc))


init_sentry()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=API_VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
)

app.state.limiter = limiter
register_middleware(app)
register_exception_handlers(app)

app.include_router(promotions.router, prefix=f"{settings.API_V1_STR}/promotions", tags=["Promotions"])
app.include_router(coupons.router, prefix=f"{settings.API_V1_STR}/coupons", tags=["Coupons"])
app.include_router(cart.router, prefix=f"{settings.API_V1_STR}/cart", tags=["Cart"])


@app.get("/health")
def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT, "version": API_VERSION}


@app.get("/health/database")
def database_health_check():
    """The ledger lives in the database; without it no coupon can be redeemed."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("database_health_check_failed", error=str(exc))
        return {"status": "unhealthy", "reason": "Database connectivity check failed"}

    pool = engine.pool
    return {
        "status": "healthy",
        "pool": {
            "pool_class": type(pool).__name__,
            "checked_out": pool.checkedout() if hasattr(pool, "checkedout") else None,
            "status": pool.status(),
        },
    }


@app.get("/")
def root():
    return {"message": settings.PROJECT_NAME, "docs": f"{settings.API_V1_STR}/docs", "version": API_VERSION}


@app.get(f"{settings.API_V1_STR}/version")
def get_version():
    return {"version": API_VERSION, "commit": os.getenv("GIT_COMMIT", "unknown")}
