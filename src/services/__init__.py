"""CivicTrack service layer -- lifecycle engine, SLA policy and monitor, stores and gateways."""

from __future__ import annotations

from src.services.audit import AuditEntry, AuditGateway, InMemoryAuditLog
from src.services.complaint_stats import ComplaintStatsService, DashboardStats, PublicStats
from src.services.complaint_store import (
    ComplaintQuery,
    ComplaintStore,
    InMemoryComplaintStore,
    RedisComplaintStore,
)
from src.services.errors import (
    CommentValidationError,
    ComplaintNotFoundError,
    ConflictError,
    InvalidAssigneeError,
    LifecycleError,
    MissingResolutionProofError,
    PersistenceError,
    TransitionForbiddenError,
)
from src.services.lifecycle import LifecycleEngine
from src.services.notifications import InMemoryNotificationGateway, Notification, NotificationGateway
from src.services.sla_monitor import SLAMonitor, SLAMonitorScheduler, SLASweepResult
from src.services.sla_policy import SLAPolicy
from src.services.user_directory import InMemoryUserDirectory, UserDirectory

__all__ = [
    "AuditEntry",
    "AuditGateway",
    "CommentValidationError",
    "ComplaintNotFoundError",
    "ComplaintQuery",
    "ComplaintStatsService",
    "ComplaintStore",
    "ConflictError",
    "DashboardStats",
    "InMemoryAuditLog",
    "InMemoryComplaintStore",
    "InMemoryNotificationGateway",
    "InMemoryUserDirectory",
    "InvalidAssigneeError",
    "LifecycleEngine",
    "LifecycleError",
    "MissingResolutionProofError",
    "Notification",
    "NotificationGateway",
    "PersistenceError",
    "PublicStats",
    "RedisComplaintStore",
    "SLAMonitor",
    "SLAMonitorScheduler",
    "SLAPolicy",
    "SLASweepResult",
    "TransitionForbiddenError",
    "UserDirectory",
]
