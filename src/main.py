"""CivicTrack FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the complaint services (store, user directory,
audit log, notification gateway, SLA policy, lifecycle engine, SLA
monitor and its scheduler).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level.lower()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of all CivicTrack services.

    On startup:
      1. Initialise the complaint store (memory or Redis)
      2. Initialise the user directory and seed demo users
      3. Initialise the audit log and notification gateway
      4. Build the SLA policy and the lifecycle engine
      5. Build the SLA monitor; start its scheduler in development
      6. Store everything on ``app.state``

    On shutdown:
      - Stop the SLA scheduler.
      - Close the Redis connection pool if one was opened.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, store_backend=settings.store_backend)

    app.state.start_time = time.time()

    # -- 1. Complaint store ---------------------------------------------------
    from src.services.complaint_store import InMemoryComplaintStore, RedisComplaintStore

    redis_store: RedisComplaintStore | None = None
    if settings.store_backend == "redis":
        redis_store = RedisComplaintStore(settings.redis_url, namespace="civictrack:")
        app.state.store = redis_store
    else:
        app.state.store = InMemoryComplaintStore()
    logger.info("app.store_initialised", backend=settings.store_backend)

    # -- 2. User directory ----------------------------------------------------
    from src.services.user_directory import InMemoryUserDirectory

    directory = InMemoryUserDirectory()
    if settings.seed_demo_users:
        try:
            from src.data.seed import seed_demo_users

            seed_demo_users(directory)
        except Exception:
            logger.warning("app.demo_users_seed_failed", exc_info=True)
    app.state.directory = directory
    logger.info("app.directory_initialised", users=len(directory))

    # -- 3. Audit log and notifications ---------------------------------------
    from src.services.audit import InMemoryAuditLog
    from src.services.notifications import InMemoryNotificationGateway

    app.state.audit = InMemoryAuditLog()
    app.state.notifications = InMemoryNotificationGateway(directory)

    # -- 4. SLA policy and lifecycle engine -----------------------------------
    from src.services.complaint_stats import ComplaintStatsService
    from src.services.lifecycle import LifecycleEngine
    from src.services.sla_policy import SLAPolicy

    policy = SLAPolicy(settings.sla_hours_overrides, default_hours=settings.sla_default_hours)
    app.state.sla_policy = policy
    app.state.lifecycle = LifecycleEngine(
        store=app.state.store,
        directory=directory,
        audit=app.state.audit,
        notifications=app.state.notifications,
        policy=policy,
        display_timezone=settings.sla_timezone,
    )
    app.state.stats = ComplaintStatsService(app.state.store)
    logger.info("app.lifecycle_initialised")

    # -- 5. SLA monitor -------------------------------------------------------
    from src.services.sla_monitor import SLAMonitor, SLAMonitorScheduler

    monitor = SLAMonitor(
        app.state.store,
        app.state.notifications,
        warning_window_minutes=settings.sla_warning_window_minutes,
        warning_dedup_hours=settings.sla_warning_dedup_hours,
        timezone=settings.sla_timezone,
    )
    scheduler = SLAMonitorScheduler(monitor, settings)
    app.state.sla_monitor = monitor
    app.state.sla_scheduler = scheduler

    # In production the sweep is driven by an external cron via /api/v1/sla/check.
    if not settings.is_production and settings.enable_sla_monitor:
        scheduler.start()
        logger.info("app.sla_scheduler_started", interval_minutes=settings.sla_check_interval_minutes)

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -------------------------------------------------------------
    logger.info("app.shutdown_start")

    await scheduler.stop()
    if redis_store is not None:
        await redis_store.close()

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CivicTrack API",
    description=(
        "CivicTrack -- municipal grievance tracker. Citizens file complaints, "
        "officers resolve them within category SLAs, admins supervise."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-User-Id", "X-Admin-API-Key"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "X-User-Id", "X-Admin-API-Key"],
    )

# -- Prometheus metrics -----------------------------------------------------
try:
    from prometheus_fastapi_instrumentator import Instrumentator

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
    ).instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=not settings.is_production,
    )
    logger.info("app.prometheus_metrics_enabled")
except ImportError:
    logger.warning("app.prometheus_not_available")

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "CivicTrack API",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "complaints": "/api/v1/complaints",
            "track": "/api/v1/complaints/track/{complaint_id}",
            "notifications": "/api/v1/notifications",
            "sla_policy": "/api/v1/sla/policy",
            "sla_check": "/api/v1/sla/check",
            "stats": "/api/v1/stats/public",
            "audit": "/api/v1/audit",
        },
    }
