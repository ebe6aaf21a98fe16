"""Complaint record models for CivicTrack.

A :class:`Complaint` is the system of record for one citizen grievance.
Only the lifecycle engine mutates its status-bearing fields; everything
else reads it.  The status history and officer comments are append-only
and every record carries a ``version`` counter used for compare-and-swap
updates in the complaint store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from src.models.enums import ComplaintCategory, ComplaintStatus

COMPLAINT_ID_PREFIX: Final[str] = "CMP"

# Statuses in which a complaint still needs work from an officer.
OPEN_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset({
    ComplaintStatus.NEW,
    ComplaintStatus.ASSIGNED,
    ComplaintStatus.IN_PROGRESS,
})


def format_complaint_id(sequence: int, year: int) -> str:
    """Build the public complaint identifier, e.g. ``CMP-2026-000123``."""
    if sequence < 1:
        raise ValueError("sequence must be positive")
    return f"{COMPLAINT_ID_PREFIX}-{year}-{sequence:06d}"


def is_public_complaint_id(ref: str) -> bool:
    return ref.startswith(f"{COMPLAINT_ID_PREFIX}-")


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: str = Field(default="", max_length=500)


class StatusHistoryEntry(BaseModel):
    """One step in a complaint's status trail.  Never modified once written."""

    model_config = {"frozen": True}

    status: ComplaintStatus
    changed_by: str
    changed_at: datetime
    notes: str | None = None


class OfficerComment(BaseModel):
    model_config = {"frozen": True}

    comment: str
    added_by: str
    added_at: datetime


class ComplaintDraft(BaseModel):
    """Citizen-supplied fields for a new complaint."""

    title: str = Field(..., min_length=5, max_length=200)
    description: str = Field(..., min_length=10, max_length=2000)
    category: ComplaintCategory
    images: list[str] = Field(default_factory=list, max_length=5)
    location: Location | None = None


class TransitionPayload(BaseModel):
    """Optional data accompanying a status change request.

    ``assignee_id`` is used for moves into ASSIGNED, ``resolution_proof``
    and ``resolution_notes`` for moves into RESOLVED.  ``expected_version``
    lets a caller pin the version it last read.
    """

    notes: str | None = Field(default=None, max_length=2000)
    assignee_id: str | None = None
    resolution_proof: list[str] = Field(default_factory=list)
    resolution_notes: str | None = Field(default=None, max_length=2000)
    expected_version: int | None = Field(default=None, ge=1)


class Complaint(BaseModel):
    """A citizen complaint and its full lifecycle state."""

    record_id: str = Field(default_factory=lambda: uuid4().hex)
    complaint_id: str
    title: str
    description: str
    category: ComplaintCategory
    images: list[str] = Field(default_factory=list)
    location: Location | None = None

    status: ComplaintStatus = ComplaintStatus.NEW
    created_by: str
    assigned_to: str | None = None
    assigned_at: datetime | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    sla_deadline: datetime
    resolved_at: datetime | None = None
    is_sla_met: bool | None = None

    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    resolution_proof: list[str] = Field(default_factory=list)
    resolution_notes: str | None = None
    officer_comments: list[OfficerComment] = Field(default_factory=list)

    version: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _history_matches_status(self) -> Complaint:
        if not self.status_history:
            raise ValueError("status_history must contain at least the creation entry")
        if self.status_history[-1].status != self.status:
            raise ValueError(
                f"last status_history entry ({self.status_history[-1].status}) "
                f"does not match status ({self.status})"
            )
        return self

    @property
    def has_been_resolved(self) -> bool:
        return self.resolved_at is not None


class ComplaintSummary(BaseModel):
    """Public, non-identifying view used by the tracking endpoint."""

    complaint_id: str
    title: str
    category: ComplaintCategory
    status: ComplaintStatus
    created_at: datetime
    sla_deadline: datetime
    resolved_at: datetime | None = None
    history: list[StatusHistoryEntry]

    @classmethod
    def from_complaint(cls, complaint: Complaint) -> ComplaintSummary:
        return cls(
            complaint_id=complaint.complaint_id,
            title=complaint.title,
            category=complaint.category,
            status=complaint.status,
            created_at=complaint.created_at,
            sla_deadline=complaint.sla_deadline,
            resolved_at=complaint.resolved_at,
            history=[
                StatusHistoryEntry(
                    status=entry.status,
                    changed_by="",
                    changed_at=entry.changed_at,
                    notes=entry.notes,
                )
                for entry in complaint.status_history
            ],
        )
