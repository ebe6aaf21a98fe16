"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Complaints: filing, tracking, transitions, comments, audit trail
    * Notifications: per-user inbox
    * SLA: policy table and the cron-triggered sweep
    * Stats: staff dashboard and public counters
    * Audit: admin listing of the full audit trail
    * Health: liveness and readiness probes
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import audit, complaints, health, notifications, sla, stats

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(complaints.router)
api_router.include_router(notifications.router)
api_router.include_router(sla.router)
api_router.include_router(stats.router)
api_router.include_router(audit.router)
api_router.include_router(health.router)
