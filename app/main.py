"""FastAPI application entrypoint — lifespan, routers, middleware."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.config import get_settings
from app.database import async_session_factory, engine
from app.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from app.routes import analytics, history, ingest, live, ws
from app.services.crop_monitor import CropMonitor
from app.services.live_channel import make_subscription_factory
from app.services.store import SqlTelemetryStore

logger = logging.getLogger("soilsense")


async def _run_readiness_checks(app: FastAPI) -> dict[str, dict[str, Any]]:
    """Check each backing service; never raises."""
    checks: dict[str, dict[str, Any]] = {}

    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        checks["database"] = {"ok": True, "message": "ok"}
    except Exception as exc:
        checks["database"] = {"ok": False, "message": str(exc)}

    redis: Redis | None = getattr(app.state, "redis", None)
    if redis is None:
        checks["redis"] = {"ok": False, "message": "not connected"}
    else:
        try:
            await redis.ping()
            checks["redis"] = {"ok": True, "message": "ok"}
        except Exception as exc:
            checks["redis"] = {"ok": False, "message": str(exc)}

    monitor: CropMonitor | None = getattr(app.state, "monitor", None)
    if monitor is None or not monitor.running:
        checks["monitor"] = {"ok": False, "message": "not running"}
    elif not monitor.feed.subscription_active:
        checks["monitor"] = {"ok": False, "message": "live subscription inactive"}
    else:
        checks["monitor"] = {"ok": True, "message": monitor.selection.active_crop}
    return checks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Verify the database connection
      3. Connect to Redis
      4. Start the crop monitor (selection bootstrap, live subscription, loads)

    Shutdown:
      1. Stop the monitor (cancel loads, close subscription, flush preference writes)
      2. Close Redis connection pool
      3. Dispose SQLAlchemy engine
    """
    settings = get_settings()
    configure_structured_logging(settings)
    logger.info(
        "SoilSense starting",
        extra={
            "log_level": settings.log_level,
            "default_crop": settings.default_crop,
        },
    )

    redis: Redis | None = None
    monitor: CropMonitor | None = None
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        await redis.ping()
        app.state.redis = redis

        monitor = CropMonitor(
            SqlTelemetryStore(async_session_factory),
            make_subscription_factory(
                redis,
                settings.live_channel_prefix,
                poll_timeout=settings.subscription_poll_timeout_seconds,
            ),
            default_crop=settings.default_crop,
            history_window=settings.history_window,
        )
        app.state.monitor = monitor
        if settings.start_monitor_on_startup:
            await monitor.start()
    except Exception as exc:
        logger.exception("startup failure", extra={"error": str(exc)})
        raise

    yield

    logger.info("SoilSense shutting down")
    if monitor is not None:
        await monitor.stop()
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


app = FastAPI(
    title="SoilSense API",
    description=(
        "Live soil telemetry API — tracks moisture, temperature, EC, pH and NPK "
        "per crop, classifies readings against crop thresholds, suggests "
        "alternative crops and summarizes historical windows."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check — verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "soilsense",
        "version": "0.1.0",
    }


@app.get("/health/ready", tags=["system"])
async def readiness_check() -> JSONResponse:
    """Readiness — database, Redis and the live monitor must all be up."""
    checks = await _run_readiness_checks(app)
    ready = all(check["ok"] for check in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", "checks": checks},
    )


# ── Router registration ────────────────────────────────────────────────────
app.include_router(live.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")
app.include_router(history.router, prefix="/api/v1")
app.include_router(ingest.router, prefix="/api/v1")
app.include_router(ws.router)
