"""modtrail API - moderation audit trail service."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from modtrail_api.middleware.correlation import CorrelationIDMiddleware, CorrelationIdLogFilter
from modtrail_api.routes import audit, integrity
from modtrail_api.settings import get_settings

# Configure logging
log_handler = logging.StreamHandler(sys.stdout)
log_handler.addFilter(CorrelationIdLogFilter())
logging.basicConfig(
    level=get_settings().log_level,
    format=(
        '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", '
        '"module": "%(name)s", "correlation_id": "%(correlation_id)s"}'
    ),
    handlers=[log_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting modtrail API...")
    try:
        settings.validate_production_settings()
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down modtrail API...")


app = FastAPI(
    title="modtrail API",
    description="Tamper-evident moderation audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(audit.router)
app.include_router(integrity.router)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "modtrail-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from modtrail_api.db.cache import get_redis_client
    from modtrail_api.db.session import SessionLocal

    checks = {"database": False, "redis": False}

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    try:
        get_redis_client().ping()
        checks["redis"] = True
    except Exception as e:
        logger.error(f"Redis check failed: {e}")

    all_ready = all(checks.values())
    return JSONResponse(
        content={"status": "ready" if all_ready else "not_ready", "checks": checks},
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "modtrail API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
