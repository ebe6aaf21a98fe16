"""Complaint statistics endpoints for CivicTrack v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from src.middleware.auth import require_roles
from src.models.enums import UserRole
from src.models.user import Actor
from src.services.complaint_stats import DashboardStats, PublicStats
from src.services.errors import LifecycleError

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard_stats(
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.OFFICER, UserRole.ADMIN)),
) -> DashboardStats:
    """Counters by status and category.  Officers see their own assignments."""
    try:
        return await request.app.state.stats.dashboard(actor)
    except LifecycleError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@router.get("/public", response_model=PublicStats)
async def public_stats(request: Request) -> PublicStats:
    try:
        return await request.app.state.stats.public()
    except LifecycleError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
