"""In-app notification gateway for complaint lifecycle events.

The lifecycle engine and the SLA monitor enqueue notifications here:

* ``INFO``   -- something happened to a complaint you filed or supervise.
* ``ACTION`` -- you need to act (a new complaint to triage, an assignment).
* ``ALERT``  -- an SLA deadline is approaching or has been breached, or a
  complaint was resolved late.

Fan-out to every active admin is resolved here from the user directory so
callers never enumerate admins themselves.  This service does NOT handle
out-of-band delivery (SMS, email, push); it keeps an inbox per recipient
that the HTTP layer reads from.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from src.models.enums import NotificationType, UserRole

if TYPE_CHECKING:
    from collections.abc import Callable

    from src.services.user_directory import UserDirectory

logger = structlog.get_logger(__name__)

_DEFAULT_LIST_LIMIT: Final[int] = 50

# Per-recipient inbox bound.  Past it the oldest non-alert entries are
# dropped first; SLA alerts double as the monitor's dedup evidence.
_MAX_INBOX_SIZE: Final[int] = 1_000


# ---------------------------------------------------------------------------
# Notification model
# ---------------------------------------------------------------------------


class Notification(BaseModel):
    """A single in-app notification addressed to one user."""

    notification_id: str = Field(default_factory=lambda: uuid4().hex)
    recipient_id: str
    type: NotificationType = NotificationType.INFO
    title: str
    message: str
    complaint_ref: str | None = None  # human-readable complaint id
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


@runtime_checkable
class NotificationGateway(Protocol):
    async def enqueue(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        *,
        complaint_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification: ...

    async def enqueue_for_all_admins(
        self,
        title: str,
        message: str,
        *,
        type: NotificationType = NotificationType.INFO,
        complaint_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[Notification]: ...

    async def list_for_recipient(
        self,
        recipient_id: str,
        *,
        since: datetime | None = None,
        unread_only: bool = False,
        limit: int | None = _DEFAULT_LIST_LIMIT,
    ) -> list[Notification]: ...


class InMemoryNotificationGateway:
    """Per-recipient in-process inboxes.

    Parameters
    ----------
    directory:
        User directory used to resolve the admin fan-out list.
    clock:
        Optional ``() -> datetime`` used to timestamp notifications;
        defaults to the current UTC time.
    """

    __slots__ = ("_clock", "_directory", "_inboxes")

    def __init__(
        self,
        directory: UserDirectory,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._directory = directory
        self._clock = clock or (lambda: datetime.now(UTC))
        self._inboxes: defaultdict[str, list[Notification]] = defaultdict(list)

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        message: str,
        *,
        complaint_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            complaint_ref=complaint_ref,
            metadata=dict(metadata or {}),
            created_at=self._clock(),
        )
        inbox = self._inboxes[recipient_id]
        inbox.append(notification)
        if len(inbox) > _MAX_INBOX_SIZE:
            self._trim(recipient_id, inbox)

        logger.info(
            "notifications.enqueued",
            notification_id=notification.notification_id,
            recipient_id=recipient_id,
            type=str(type),
            complaint_ref=complaint_ref,
        )
        return notification

    def _trim(self, recipient_id: str, inbox: list[Notification]) -> None:
        excess = len(inbox) - _MAX_INBOX_SIZE
        dropped_alerts = 0
        # Oldest non-alert entries go first; alerts only when nothing else is left.
        victims = [i for i, n in enumerate(inbox) if n.type != NotificationType.ALERT][:excess]
        if len(victims) < excess:
            alerts = [i for i, n in enumerate(inbox) if n.type == NotificationType.ALERT]
            dropped_alerts = excess - len(victims)
            victims.extend(alerts[:dropped_alerts])
        doomed = set(victims)
        inbox[:] = [n for i, n in enumerate(inbox) if i not in doomed]

        logger.warning(
            "notifications.inbox_trimmed",
            recipient_id=recipient_id,
            dropped=excess,
            dropped_alerts=dropped_alerts,
        )

    async def enqueue_for_all_admins(
        self,
        title: str,
        message: str,
        *,
        type: NotificationType = NotificationType.INFO,
        complaint_ref: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[Notification]:
        """Send the same notification to every active admin."""
        admins = await self._directory.list_by_role(UserRole.ADMIN)
        sent: list[Notification] = []
        for admin in admins:
            sent.append(
                await self.enqueue(
                    admin.user_id,
                    type,
                    title,
                    message,
                    complaint_ref=complaint_ref,
                    metadata=metadata,
                )
            )

        logger.debug("notifications.admin_fanout", admins=len(admins), complaint_ref=complaint_ref)
        return sent

    # ------------------------------------------------------------------
    # Recipient-side reads
    # ------------------------------------------------------------------

    async def list_for_recipient(
        self,
        recipient_id: str,
        *,
        since: datetime | None = None,
        unread_only: bool = False,
        limit: int | None = _DEFAULT_LIST_LIMIT,
    ) -> list[Notification]:
        """Notifications for *recipient_id*, newest first."""
        items = [
            n
            for n in reversed(self._inboxes.get(recipient_id, []))
            if (since is None or n.created_at >= since) and not (unread_only and n.is_read)
        ]
        return items if limit is None else items[:limit]

    async def unread_count(self, recipient_id: str) -> int:
        return sum(1 for n in self._inboxes.get(recipient_id, []) if not n.is_read)

    async def mark_read(self, recipient_id: str, notification_id: str) -> bool:
        """Mark one of the recipient's own notifications as read."""
        for n in self._inboxes.get(recipient_id, []):
            if n.notification_id == notification_id:
                n.is_read = True
                return True
        return False

    async def mark_all_read(self, recipient_id: str) -> int:
        updated = 0
        for n in self._inboxes.get(recipient_id, []):
            if not n.is_read:
                n.is_read = True
                updated += 1
        return updated

    @property
    def total(self) -> int:
        return sum(len(inbox) for inbox in self._inboxes.values())
