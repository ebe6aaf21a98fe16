"""Health check endpoints for CivicTrack API v1.

Provides liveness and readiness probes for container deployments.  The
readiness check verifies the complaint store and reports the SLA
scheduler state.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    """Readiness check response with individual component statuses."""

    status: str
    checks: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.

    Returns 200 if the application process is running and able to
    handle requests.  Does *not* check downstream dependencies.
    """
    start_time: float = getattr(request.app.state, "start_time", time.time())
    uptime = time.time() - start_time

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(uptime, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Readiness probe.

    Verifies the complaint store answers queries so the load balancer
    only routes traffic to fully-initialised instances.
    """
    checks: dict[str, str] = {}
    all_ok = True

    # -- Complaint store -----------------------------------------------------
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            total = await store.count()
            checks["store"] = f"ok ({total} complaints)"
        except Exception as exc:
            checks["store"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["store"] = "not_initialised"
        all_ok = False

    # -- Lifecycle engine ----------------------------------------------------
    if getattr(request.app.state, "lifecycle", None) is not None:
        checks["lifecycle"] = "ok"
    else:
        checks["lifecycle"] = "not_initialised"
        all_ok = False

    # -- SLA scheduler (informational) --------------------------------------
    scheduler = getattr(request.app.state, "sla_scheduler", None)
    if scheduler is None:
        checks["sla_scheduler"] = "not_configured"
    elif scheduler.is_running:
        checks["sla_scheduler"] = "running"
    else:
        checks["sla_scheduler"] = "external_trigger"

    status = "ready" if all_ok else "degraded"

    logger.info("health.readiness_check", status=status, checks=checks)

    return ReadinessResponse(status=status, checks=checks)
