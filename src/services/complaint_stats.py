"""Aggregate complaint counters for dashboards and the public landing page."""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from src.models.enums import ComplaintStatus, UserRole
from src.services.complaint_store import ComplaintQuery
from src.services.sla_policy import SLAPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.models.user import Actor
    from src.services.complaint_store import ComplaintStore

logger = structlog.get_logger(__name__)

_RESOLVED_STATUSES = frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED})
_ACTIVE_STATUSES = frozenset({ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS})


class DashboardStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    sla_breached: int = 0
    sla_met: int = 0
    sla_missed: int = 0


class PublicStats(BaseModel):
    total: int = 0
    resolved: int = 0
    in_progress: int = 0
    avg_resolution_hours: float = 0.0


class ComplaintStatsService:
    """Computes counters straight from the complaint store.

    Officers see figures for their own assignments only; admins see
    everything.
    """

    __slots__ = ("_clock", "_store")

    def __init__(self, store: ComplaintStore, *, clock: Callable[[], datetime] | None = None) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def dashboard(self, actor: Actor) -> DashboardStats:
        if actor.role == UserRole.OFFICER:
            query = ComplaintQuery(assigned_to=actor.user_id)
        else:
            query = ComplaintQuery()
        complaints = await self._store.find(query)
        now = self._clock()

        by_status = {str(status): 0 for status in ComplaintStatus}
        by_status.update(Counter(str(c.status) for c in complaints))

        stats = DashboardStats(
            total=len(complaints),
            by_status=by_status,
            by_category=dict(Counter(str(c.category) for c in complaints)),
            sla_breached=sum(1 for c in complaints if SLAPolicy.is_breached(c.sla_deadline, c.status, now)),
            sla_met=sum(1 for c in complaints if c.is_sla_met is True),
            sla_missed=sum(1 for c in complaints if c.is_sla_met is False),
        )
        logger.debug("complaint_stats.dashboard", actor_id=actor.user_id, total=stats.total)
        return stats

    async def public(self) -> PublicStats:
        complaints = await self._store.find()
        resolved = [c for c in complaints if c.status in _RESOLVED_STATUSES]
        durations = [
            (c.resolved_at - c.created_at).total_seconds() / 3600
            for c in resolved
            if c.resolved_at is not None
        ]
        return PublicStats(
            total=len(complaints),
            resolved=len(resolved),
            in_progress=sum(1 for c in complaints if c.status in _ACTIVE_STATUSES),
            avg_resolution_hours=round(sum(durations) / len(durations), 1) if durations else 0.0,
        )
