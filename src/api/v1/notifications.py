"""Notification inbox endpoints for CivicTrack v1.

Each caller only ever sees and mutates their own notifications.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from src.middleware.auth import get_actor
from src.models.user import Actor
from src.services.notifications import Notification

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationListResponse(BaseModel):
    items: list[Notification]
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkReadResponse(BaseModel):
    updated: int


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    request: Request,
    actor: Actor = Depends(get_actor),
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
) -> NotificationListResponse:
    """The caller's notifications, newest first."""
    gateway = request.app.state.notifications
    items = await gateway.list_for_recipient(actor.user_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        items=items,
        unread_count=await gateway.unread_count(actor.user_id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(request: Request, actor: Actor = Depends(get_actor)) -> UnreadCountResponse:
    count = await request.app.state.notifications.unread_count(actor.user_id)
    return UnreadCountResponse(unread_count=count)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(request: Request, actor: Actor = Depends(get_actor)) -> MarkReadResponse:
    updated = await request.app.state.notifications.mark_all_read(actor.user_id)
    logger.info("api.notifications.read_all", actor_id=actor.user_id, updated=updated)
    return MarkReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_read(
    notification_id: str,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> MarkReadResponse:
    found = await request.app.state.notifications.mark_read(actor.user_id, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found.")
    return MarkReadResponse(updated=1)
