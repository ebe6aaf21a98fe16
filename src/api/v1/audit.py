"""Audit log endpoints for CivicTrack v1.

Admins page through the whole audit trail, newest first.  Each entry
carries its SHA-256 checksum so an exported trail can be verified
offline.  The per-complaint trail lives under ``/complaints/{ref}/audit``.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from src.middleware.auth import require_roles
from src.models.enums import UserRole
from src.models.user import Actor
from src.services.audit import AuditEntry

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditLogResponse(BaseModel):
    entries: list[AuditEntry]
    total: int
    limit: int
    offset: int


@router.get("", response_model=AuditLogResponse)
async def list_audit_log(
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> AuditLogResponse:
    audit = request.app.state.audit
    entries = await audit.recent(limit, offset=offset)
    total = await audit.count()

    logger.info("api.audit.listed", actor_id=actor.user_id, returned=len(entries), total=total)
    return AuditLogResponse(entries=entries, total=total, limit=limit, offset=offset)
