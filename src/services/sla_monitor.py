"""SLA deadline sweep and its background scheduler.

The sweep has two passes over open, assigned complaints:

Approaching
    Deadline within the warning window (default one hour) from now.  The
    assignee gets one ALERT unless an approaching-deadline alert for the
    same complaint already reached them within the dedup window (default
    two hours).

Breached
    Deadline already in the past.  The assignee gets one ALERT per
    calendar day (in the configured timezone) until the complaint is
    resolved, closed or rejected.

Dedup state is re-derived every run by scanning the recipient's recent
notifications; nothing is stored on the complaint.  Running the sweep
twice in a row is therefore harmless.

Development mode
    :class:`SLAMonitorScheduler` runs the sweep in an ``asyncio``
    background task every ``sla_check_interval_minutes``.

Production mode
    An external cron calls ``POST /api/v1/sla/check`` with the admin API
    key; no background loop runs inside the web process.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Final
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel

from src.models.complaint import OPEN_STATUSES
from src.models.enums import ComplaintStatus, NotificationType
from src.services.complaint_store import ComplaintQuery

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.models.complaint import Complaint
    from src.services.complaint_store import ComplaintStore
    from src.services.notifications import NotificationGateway

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ALERT_KIND_APPROACHING: Final[str] = "sla_approaching"
ALERT_KIND_BREACHED: Final[str] = "sla_breached"

# Marker phrases embedded in alert messages.  Older alerts may lack the
# ``alert_kind`` metadata, so dedup also matches on these.
APPROACHING_MARKER: Final[str] = "SLA deadline approaching"
BREACHED_MARKER: Final[str] = "SLA deadline has been breached"

_INACTIVE_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset(ComplaintStatus) - OPEN_STATUSES


class SLASweepResult(BaseModel):
    """Outcome counters for one sweep."""

    started_at: datetime
    warnings_sent: int = 0
    breaches_sent: int = 0
    skipped: int = 0
    failures: int = 0
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------------
# SLAMonitor
# ---------------------------------------------------------------------------


class SLAMonitor:
    """Sends approaching and breached SLA alerts to assigned officers.

    Parameters
    ----------
    store:
        Complaint store to query.
    notifications:
        Gateway used both to send alerts and to scan for earlier ones.
    clock:
        ``() -> datetime`` used when :meth:`run` is called without ``now``.
    warning_window_minutes:
        How far ahead of the deadline the approaching alert fires.
    warning_dedup_hours:
        Minimum gap between two approaching alerts for one complaint.
    timezone:
        IANA zone whose calendar day bounds the breach alert.
    """

    __slots__ = (
        "_clock",
        "_dedup",
        "_notifications",
        "_store",
        "_timezone",
        "_window",
    )

    def __init__(
        self,
        store: ComplaintStore,
        notifications: NotificationGateway,
        *,
        clock: Callable[[], datetime] | None = None,
        warning_window_minutes: int = 60,
        warning_dedup_hours: int = 2,
        timezone: str = "Asia/Kolkata",
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._clock = clock or (lambda: datetime.now(UTC))
        self._window = timedelta(minutes=warning_window_minutes)
        self._dedup = timedelta(hours=warning_dedup_hours)
        self._timezone = ZoneInfo(timezone)

    async def run(self, now: datetime | None = None) -> SLASweepResult:
        """Execute both passes and return the counters.

        A failure while alerting one complaint is counted and logged; the
        rest of the batch still runs.  A failing store query propagates.
        """
        now = now or self._clock()
        started = time.monotonic()
        result = SLASweepResult(started_at=now)

        approaching = await self._store.find(
            ComplaintQuery(
                exclude_statuses=_INACTIVE_STATUSES,
                assigned_only=True,
                deadline_from=now,
                deadline_to=now + self._window,
            )
        )
        for complaint in approaching:
            try:
                if await self._warn_approaching(complaint, now):
                    result.warnings_sent += 1
                else:
                    result.skipped += 1
            except Exception:
                result.failures += 1
                logger.warning(
                    "sla_monitor.warning_failed",
                    complaint_id=complaint.complaint_id,
                    exc_info=True,
                )

        breached = await self._store.find(
            ComplaintQuery(
                exclude_statuses=_INACTIVE_STATUSES,
                assigned_only=True,
                deadline_before=now,
            )
        )
        for complaint in breached:
            try:
                if await self._warn_breached(complaint, now):
                    result.breaches_sent += 1
                else:
                    result.skipped += 1
            except Exception:
                result.failures += 1
                logger.warning(
                    "sla_monitor.breach_failed",
                    complaint_id=complaint.complaint_id,
                    exc_info=True,
                )

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "sla_monitor.sweep_complete",
            approaching=len(approaching),
            breached=len(breached),
            warnings_sent=result.warnings_sent,
            breaches_sent=result.breaches_sent,
            skipped=result.skipped,
            failures=result.failures,
        )
        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def _warn_approaching(self, complaint: Complaint, now: datetime) -> bool:
        assignee = complaint.assigned_to
        if await self._already_alerted(
            assignee, complaint, ALERT_KIND_APPROACHING, APPROACHING_MARKER, since=now - self._dedup
        ):
            return False

        remaining_minutes = int((complaint.sla_deadline - now).total_seconds() // 60)
        await self._notifications.enqueue(
            assignee,
            NotificationType.ALERT,
            "SLA Deadline Approaching!",
            f'{APPROACHING_MARKER}: your assigned complaint "{complaint.title}" '
            f"({complaint.complaint_id}) has only {remaining_minutes} minutes remaining. "
            "Please resolve it urgently!",
            complaint_ref=complaint.complaint_id,
            metadata={
                "alert_kind": ALERT_KIND_APPROACHING,
                "sla_deadline": complaint.sla_deadline.isoformat(),
                "remaining_minutes": remaining_minutes,
                "category": str(complaint.category),
            },
        )
        logger.info(
            "sla_monitor.warning_sent",
            complaint_id=complaint.complaint_id,
            assignee=assignee,
            remaining_minutes=remaining_minutes,
        )
        return True

    async def _warn_breached(self, complaint: Complaint, now: datetime) -> bool:
        assignee = complaint.assigned_to
        if await self._already_alerted(
            assignee, complaint, ALERT_KIND_BREACHED, BREACHED_MARKER, since=self.start_of_day(now)
        ):
            return False

        overdue_hours = int((now - complaint.sla_deadline).total_seconds() // 3600)
        await self._notifications.enqueue(
            assignee,
            NotificationType.ALERT,
            "SLA Deadline Breached!",
            f'Complaint "{complaint.title}" ({complaint.complaint_id}) {BREACHED_MARKER} '
            f"by {overdue_hours} hours. This requires immediate attention!",
            complaint_ref=complaint.complaint_id,
            metadata={
                "alert_kind": ALERT_KIND_BREACHED,
                "sla_deadline": complaint.sla_deadline.isoformat(),
                "overdue_hours": overdue_hours,
                "category": str(complaint.category),
            },
        )
        logger.info(
            "sla_monitor.breach_sent",
            complaint_id=complaint.complaint_id,
            assignee=assignee,
            overdue_hours=overdue_hours,
        )
        return True

    # ------------------------------------------------------------------
    # Dedup
    # ------------------------------------------------------------------

    def start_of_day(self, now: datetime) -> datetime:
        """Midnight of *now*'s calendar day in the monitor's timezone."""
        local = now.astimezone(self._timezone)
        return local.replace(hour=0, minute=0, second=0, microsecond=0)

    async def _already_alerted(
        self,
        recipient_id: str,
        complaint: Complaint,
        kind: str,
        marker: str,
        *,
        since: datetime,
    ) -> bool:
        recent = await self._notifications.list_for_recipient(recipient_id, since=since, limit=None)
        return any(
            n.complaint_ref == complaint.complaint_id
            and n.type == NotificationType.ALERT
            and (n.metadata.get("alert_kind") == kind or marker in n.message)
            for n in recent
        )


# ---------------------------------------------------------------------------
# SLAMonitorScheduler
# ---------------------------------------------------------------------------


class SLAMonitorScheduler:
    """Runs :class:`SLAMonitor` on a fixed interval.

    Parameters
    ----------
    monitor:
        The sweep to execute.
    settings:
        Application settings object (used for ``enable_sla_monitor`` and
        ``sla_check_interval_minutes``).
    """

    def __init__(self, monitor: SLAMonitor, settings: object) -> None:
        self._monitor = monitor
        self._settings = settings
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._running = False
        self._last_run: datetime | None = None
        self._last_result: SLASweepResult | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_run(self) -> datetime | None:
        return self._last_run

    @property
    def last_result(self) -> SLASweepResult | None:
        return self._last_result

    # ------------------------------------------------------------------
    # Background loop (development mode)
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Spawn the background loop unless disabled in settings."""
        if not getattr(self._settings, "enable_sla_monitor", True):
            logger.info("sla_scheduler.disabled")
            return
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def _loop(self) -> None:
        interval_seconds = getattr(self._settings, "sla_check_interval_minutes", 15) * 60
        logger.info("sla_scheduler.background_started", interval_seconds=interval_seconds)

        try:
            while self._running:
                await self._safe_run()
                await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("sla_scheduler.background_cancelled")
        except Exception:
            logger.error("sla_scheduler.background_error", exc_info=True)
        finally:
            self._running = False
            logger.info("sla_scheduler.background_stopped")

    async def _safe_run(self) -> SLASweepResult | None:
        """Run one sweep, logging instead of raising on failure."""
        try:
            result = await self._monitor.run()
        except Exception:
            logger.error("sla_scheduler.run_failed", exc_info=True)
            return None

        self._last_run = result.started_at
        self._last_result = result
        return result

    # ------------------------------------------------------------------
    # On-demand execution (admin API / external cron)
    # ------------------------------------------------------------------

    async def run_now(self) -> SLASweepResult | None:
        logger.info("sla_scheduler.manual_trigger")
        return await self._safe_run()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Cancel the background task and wait briefly for it to finish."""
        logger.info("sla_scheduler.stopping")
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._task = None

        logger.info("sla_scheduler.stopped")
