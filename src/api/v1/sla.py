"""SLA policy and sweep endpoints for CivicTrack v1.

``POST /sla/check`` is the production entry point for the SLA sweep:
an external cron calls it with the admin API key every few minutes.
In development the background scheduler runs the same sweep on its own.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from src.middleware.auth import require_admin_api_key
from src.services.sla_monitor import SLASweepResult

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sla", tags=["sla"])


class SLAPolicyResponse(BaseModel):
    default_hours: int
    budgets: dict[str, int]


@router.get("/policy", response_model=SLAPolicyResponse)
async def get_policy(request: Request) -> SLAPolicyResponse:
    """Effective resolution budget per category, in hours."""
    policy = request.app.state.sla_policy
    return SLAPolicyResponse(default_hours=policy.default_hours, budgets=policy.budgets())


@router.post(
    "/check",
    response_model=SLASweepResult,
    dependencies=[Depends(require_admin_api_key)],
)
async def trigger_sla_check(request: Request) -> SLASweepResult:
    """Run one SLA sweep now and report what was sent."""
    scheduler = request.app.state.sla_scheduler
    result = await scheduler.run_now()
    if result is None:
        raise HTTPException(status_code=503, detail="SLA sweep failed; see server logs.")

    logger.info(
        "api.sla.check_complete",
        warnings_sent=result.warnings_sent,
        breaches_sent=result.breaches_sent,
        failures=result.failures,
    )
    return result
