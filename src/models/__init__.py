from src.models.complaint import (
    Complaint,
    ComplaintDraft,
    ComplaintSummary,
    Location,
    OfficerComment,
    StatusHistoryEntry,
    TransitionPayload,
)
from src.models.enums import (
    AuditAction,
    ComplaintCategory,
    ComplaintStatus,
    NotificationType,
    UserRole,
)
from src.models.user import Actor, User

__all__ = [
    "Actor",
    "AuditAction",
    "Complaint",
    "ComplaintCategory",
    "ComplaintDraft",
    "ComplaintStatus",
    "ComplaintSummary",
    "Location",
    "NotificationType",
    "OfficerComment",
    "StatusHistoryEntry",
    "TransitionPayload",
    "User",
    "UserRole",
]
