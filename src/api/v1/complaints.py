"""Complaint API endpoints for CivicTrack v1.

Citizens file and track complaints, officers work the ones assigned to
them, admins triage and supervise.  Every state change goes through the
:class:`~src.services.lifecycle.LifecycleEngine` held on ``app.state``;
this module only translates HTTP to engine calls and engine errors to
HTTP status codes.
"""

from __future__ import annotations

from typing import NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from src.middleware.auth import get_actor, require_roles
from src.models.complaint import Complaint, ComplaintDraft, ComplaintSummary, TransitionPayload
from src.models.enums import ComplaintCategory, ComplaintStatus, UserRole
from src.models.user import Actor
from src.services import transitions
from src.services.audit import AuditEntry
from src.services.complaint_store import ComplaintQuery
from src.services.errors import LifecycleError
from src.services.lifecycle import LifecycleEngine, can_view

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class TransitionRequest(TransitionPayload):
    """Target status plus the optional payload for the move."""

    target_status: ComplaintStatus


class CommentRequest(BaseModel):
    comment: str = Field(..., max_length=2000)


class ComplaintListResponse(BaseModel):
    items: list[Complaint]
    total: int
    page: int
    limit: int


class AllowedTransitionsResponse(BaseModel):
    complaint_id: str
    status: ComplaintStatus
    allowed: list[ComplaintStatus]
    can_comment: bool
    terminal: bool


class AuditTrailResponse(BaseModel):
    complaint_id: str
    entries: list[AuditEntry]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _engine(request: Request) -> LifecycleEngine:
    return request.app.state.lifecycle


def _raise_http(exc: LifecycleError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


async def _load_visible(request: Request, complaint_ref: str, actor: Actor) -> Complaint:
    try:
        complaint = await _engine(request).get_complaint(complaint_ref)
    except LifecycleError as exc:
        _raise_http(exc)
    if not can_view(complaint, actor):
        raise HTTPException(status_code=403, detail="You do not have access to this complaint.")
    return complaint


def _scope_for(actor: Actor) -> ComplaintQuery:
    if actor.role == UserRole.CITIZEN:
        return ComplaintQuery(created_by=actor.user_id)
    if actor.role == UserRole.OFFICER:
        return ComplaintQuery(assigned_to=actor.user_id)
    return ComplaintQuery()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=Complaint, status_code=201)
async def create_complaint(
    body: ComplaintDraft,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Complaint:
    """File a new complaint.  Citizens only."""
    try:
        return await _engine(request).create_complaint(actor, body)
    except LifecycleError as exc:
        _raise_http(exc)


@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    request: Request,
    actor: Actor = Depends(get_actor),
    status: ComplaintStatus | None = Query(default=None),
    category: ComplaintCategory | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> ComplaintListResponse:
    """List complaints visible to the caller, newest first.

    Citizens see what they filed, officers what is assigned to them,
    admins everything.
    """
    scope = _scope_for(actor)
    query = ComplaintQuery(
        statuses=frozenset({status}) if status is not None else None,
        category=category,
        created_by=scope.created_by,
        assigned_to=scope.assigned_to,
    )
    store = request.app.state.store
    try:
        total = await store.count(query)
        items = await store.find(query, offset=(page - 1) * limit, limit=limit)
    except LifecycleError as exc:
        _raise_http(exc)

    return ComplaintListResponse(items=items, total=total, page=page, limit=limit)


@router.get("/track/{complaint_id}", response_model=ComplaintSummary)
async def track_complaint(complaint_id: str, request: Request) -> ComplaintSummary:
    """Public status lookup by ``CMP-`` id.  No caller identity required."""
    try:
        complaint = await _engine(request).get_complaint(complaint_id.strip().upper())
    except LifecycleError as exc:
        _raise_http(exc)
    return ComplaintSummary.from_complaint(complaint)


@router.get("/{complaint_ref}", response_model=Complaint)
async def get_complaint(
    complaint_ref: str,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Complaint:
    return await _load_visible(request, complaint_ref, actor)


@router.get("/{complaint_ref}/allowed-transitions", response_model=AllowedTransitionsResponse)
async def allowed_transitions(
    complaint_ref: str,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> AllowedTransitionsResponse:
    """Statuses the caller may move this complaint to right now."""
    complaint = await _load_visible(request, complaint_ref, actor)
    try:
        allowed = await _engine(request).allowed_actions(complaint.record_id, actor)
    except LifecycleError as exc:
        _raise_http(exc)

    return AllowedTransitionsResponse(
        complaint_id=complaint.complaint_id,
        status=complaint.status,
        allowed=sorted(allowed),
        can_comment=transitions.can_comment(actor.role, complaint.status)
        and complaint.assigned_to == actor.user_id,
        terminal=transitions.is_terminal(complaint.status),
    )


@router.post("/{complaint_ref}/transitions", response_model=Complaint)
async def apply_transition(
    complaint_ref: str,
    body: TransitionRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Complaint:
    """Move a complaint to ``target_status``.

    Errors map to HTTP as follows: unknown complaint 404, illegal move
    403, bad assignee or missing resolution proof 422, stale
    ``expected_version`` 409, store unavailable 503.
    """
    payload = TransitionPayload.model_validate(body.model_dump(exclude={"target_status"}))
    try:
        return await _engine(request).apply_transition(complaint_ref, actor, body.target_status, payload)
    except LifecycleError as exc:
        logger.info(
            "api.complaints.transition_rejected",
            complaint_ref=complaint_ref,
            target_status=str(body.target_status),
            error=type(exc).__name__,
        )
        _raise_http(exc)


@router.post("/{complaint_ref}/comments", response_model=Complaint)
async def add_comment(
    complaint_ref: str,
    body: CommentRequest,
    request: Request,
    actor: Actor = Depends(get_actor),
) -> Complaint:
    """Add a progress note.  Assigned officer only, while in progress."""
    try:
        return await _engine(request).add_comment(complaint_ref, actor, body.comment)
    except LifecycleError as exc:
        _raise_http(exc)


@router.get("/{complaint_ref}/audit", response_model=AuditTrailResponse)
async def complaint_audit_trail(
    complaint_ref: str,
    request: Request,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> AuditTrailResponse:
    """Full audit trail for one complaint, oldest first.  Admins only."""
    try:
        complaint = await _engine(request).get_complaint(complaint_ref)
    except LifecycleError as exc:
        _raise_http(exc)

    entries = await request.app.state.audit.for_entity(complaint.record_id)
    return AuditTrailResponse(complaint_id=complaint.complaint_id, entries=entries)
