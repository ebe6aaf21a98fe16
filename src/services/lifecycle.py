"""Complaint lifecycle engine.

The engine is the only component that mutates complaint records.  Every
mutation follows the same pipeline:

1. Load the record (by record id or ``CMP-`` id).
2. Check the actor's role against the transition table, and officer
   custody of the complaint.
3. Validate the payload (assignee, resolution proof, comment text).
4. Apply the change to a deep copy and append one history entry.
5. Persist with a compare-and-swap on ``version``.
6. Write exactly one audit entry and fan out notifications.

Anything that fails before step 5 leaves the stored record untouched and
emits nothing.  Steps in 6 are best-effort: a failing audit or
notification gateway is logged and swallowed, the committed change stands.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from src.models.complaint import (
    Complaint,
    ComplaintDraft,
    OfficerComment,
    StatusHistoryEntry,
    TransitionPayload,
    format_complaint_id,
)
from src.models.enums import AuditAction, ComplaintStatus, NotificationType, UserRole
from src.services import transitions
from src.services.audit import AuditEntry
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
from src.services.sla_policy import format_local

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from src.models.user import Actor
    from src.services.audit import AuditGateway
    from src.services.complaint_store import ComplaintStore
    from src.services.notifications import NotificationGateway
    from src.services.sla_policy import SLAPolicy
    from src.services.user_directory import UserDirectory

logger = structlog.get_logger(__name__)

_MAX_COMMENT_LENGTH = 2000


def can_view(complaint: Complaint, actor: Actor) -> bool:
    """Read access: citizens see their own, officers their assignments, admins all."""
    if actor.role == UserRole.ADMIN:
        return True
    if actor.role == UserRole.OFFICER:
        return complaint.assigned_to == actor.user_id
    return complaint.created_by == actor.user_id


class LifecycleEngine:
    """Role-gated state machine over the complaint store.

    Parameters
    ----------
    store:
        Complaint persistence with versioned compare-and-swap.
    directory:
        Used to validate assignees.
    audit:
        Receives one entry per committed mutation.
    notifications:
        Receives the per-transition fan-out.
    policy:
        Supplies the SLA deadline for new complaints.
    clock:
        ``() -> datetime`` returning an aware UTC timestamp.
    display_timezone:
        IANA zone used when a deadline is rendered in a message.
    """

    __slots__ = (
        "_audit",
        "_clock",
        "_directory",
        "_display_timezone",
        "_notifications",
        "_policy",
        "_store",
    )

    def __init__(
        self,
        store: ComplaintStore,
        directory: UserDirectory,
        audit: AuditGateway,
        notifications: NotificationGateway,
        policy: SLAPolicy,
        *,
        clock: Callable[[], datetime] | None = None,
        display_timezone: str = "Asia/Kolkata",
    ) -> None:
        self._store = store
        self._directory = directory
        self._audit = audit
        self._notifications = notifications
        self._policy = policy
        self._clock = clock or (lambda: datetime.now(UTC))
        self._display_timezone = display_timezone

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_complaint(self, complaint_ref: str) -> Complaint:
        complaint = await self._store.get(complaint_ref)
        if complaint is None:
            raise ComplaintNotFoundError(complaint_ref)
        return complaint

    async def allowed_actions(self, complaint_ref: str, actor: Actor) -> frozenset[ComplaintStatus]:
        """Statuses *actor* may move the complaint to right now."""
        complaint = await self.get_complaint(complaint_ref)
        if not self._has_custody(complaint, actor):
            return frozenset()
        return transitions.allowed_next(actor.role, complaint.status)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_complaint(self, actor: Actor, draft: ComplaintDraft) -> Complaint:
        """File a new complaint on behalf of a citizen.

        The SLA deadline is fixed here from the category budget and never
        recomputed afterwards.
        """
        if actor.role != UserRole.CITIZEN:
            raise TransitionForbiddenError("Only citizens can file complaints")

        now = self._clock()
        sequence = await self._guarded(self._store.next_sequence(), complaint_ref=None)
        complaint = Complaint(
            complaint_id=format_complaint_id(sequence, now.year),
            title=draft.title,
            description=draft.description,
            category=draft.category,
            images=list(draft.images),
            location=draft.location,
            status=ComplaintStatus.NEW,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
            sla_deadline=self._policy.compute_deadline(draft.category, now),
            status_history=[
                StatusHistoryEntry(
                    status=ComplaintStatus.NEW,
                    changed_by=actor.user_id,
                    changed_at=now,
                    notes="Complaint created",
                )
            ],
        )
        stored = await self._guarded(self._store.insert(complaint), complaint_ref=complaint.complaint_id)

        await self._write_audit(
            stored,
            actor,
            AuditAction.CREATE,
            changes={
                "status": str(stored.status),
                "category": str(stored.category),
                "sla_deadline": stored.sla_deadline.isoformat(),
            },
        )
        await self._notify_created(stored)

        logger.info(
            "lifecycle.complaint_created",
            complaint_id=stored.complaint_id,
            category=str(stored.category),
            created_by=actor.user_id,
        )
        return stored

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    async def apply_transition(
        self,
        complaint_ref: str,
        actor: Actor,
        target_status: ComplaintStatus | str,
        payload: TransitionPayload | None = None,
    ) -> Complaint:
        """Move a complaint to *target_status* on behalf of *actor*.

        Raises
        ------
        ComplaintNotFoundError
            No complaint matches *complaint_ref*.
        ConflictError
            ``payload.expected_version`` is stale, or the record changed
            between read and write.
        TransitionForbiddenError
            The role may not make this move, or an officer acts on a
            complaint not assigned to them.
        InvalidAssigneeError
            Assignment without a valid, active officer.
        MissingResolutionProofError
            Resolution without at least one proof reference.
        PersistenceError
            The store could not commit the change.
        """
        payload = payload or TransitionPayload()
        current = await self.get_complaint(complaint_ref)

        log = logger.bind(
            complaint_id=current.complaint_id,
            actor_id=actor.user_id,
            role=str(actor.role),
            from_status=str(current.status),
            to_status=str(target_status),
        )

        if payload.expected_version is not None and payload.expected_version != current.version:
            raise ConflictError(
                current.complaint_id,
                expected=payload.expected_version,
                actual=current.version,
            )

        try:
            target = ComplaintStatus(target_status)
        except ValueError:
            raise TransitionForbiddenError(
                f"Unknown target status {target_status!r}",
                complaint_ref=current.complaint_id,
            ) from None

        if not transitions.is_allowed(actor.role, current.status, target):
            log.info("lifecycle.transition.forbidden")
            raise TransitionForbiddenError(
                f"{actor.role} cannot move complaint from {current.status} to {target}",
                complaint_ref=current.complaint_id,
            )
        if not self._has_custody(current, actor):
            log.info("lifecycle.transition.not_assignee")
            raise TransitionForbiddenError(
                "Officers can only act on complaints assigned to them",
                complaint_ref=current.complaint_id,
            )

        now = self._clock()
        updated = current.model_copy(deep=True)

        if target == ComplaintStatus.ASSIGNED:
            assignee_id = await self._resolve_assignee(current, actor, payload)
            if assignee_id != current.assigned_to:
                updated.assigned_at = now
            updated.assigned_to = assignee_id
        elif target == ComplaintStatus.NEW:
            updated.assigned_to = None
            updated.assigned_at = None
        elif target == ComplaintStatus.RESOLVED:
            if not payload.resolution_proof:
                raise MissingResolutionProofError(
                    "At least one resolution proof is required to resolve a complaint",
                    complaint_ref=current.complaint_id,
                )
            updated.resolution_proof = list(payload.resolution_proof)
            updated.resolution_notes = payload.resolution_notes
            # Only the first resolution counts towards the SLA.
            if not updated.has_been_resolved:
                updated.resolved_at = now
                updated.is_sla_met = self._policy.is_met(now, updated.sla_deadline)

        updated.status = target
        updated.updated_at = now
        updated.status_history.append(
            StatusHistoryEntry(
                status=target,
                changed_by=actor.user_id,
                changed_at=now,
                notes=payload.notes,
            )
        )

        stored = await self._commit(updated, expected_version=current.version)

        await self._write_audit(
            stored,
            actor,
            AuditAction.ASSIGN if self._assignee_changed(current, stored) else AuditAction.STATUS_CHANGE,
            changes=self._diff(current, stored),
        )
        await self._notify_transition(current, stored, actor)

        log.info("lifecycle.transition.applied", version=stored.version)
        return stored

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def add_comment(self, complaint_ref: str, actor: Actor, comment: str) -> Complaint:
        """Append an officer progress note to an in-progress complaint."""
        current = await self.get_complaint(complaint_ref)

        if not transitions.can_comment(actor.role, current.status) or not self._has_custody(current, actor):
            raise TransitionForbiddenError(
                "Only the assigned officer can comment on an in-progress complaint",
                complaint_ref=current.complaint_id,
            )

        text = (comment or "").strip()
        if not text:
            raise CommentValidationError("Comment must not be empty", complaint_ref=current.complaint_id)
        if len(text) > _MAX_COMMENT_LENGTH:
            raise CommentValidationError(
                f"Comment must be at most {_MAX_COMMENT_LENGTH} characters",
                complaint_ref=current.complaint_id,
            )

        now = self._clock()
        updated = current.model_copy(deep=True)
        updated.officer_comments.append(OfficerComment(comment=text, added_by=actor.user_id, added_at=now))
        updated.updated_at = now

        stored = await self._commit(updated, expected_version=current.version)

        await self._write_audit(stored, actor, AuditAction.UPDATE, changes={"comment_added": text})
        await self._safe_notify(
            self._notifications.enqueue(
                stored.created_by,
                NotificationType.INFO,
                "New Update",
                f"Update added to your complaint {stored.complaint_id}",
                complaint_ref=stored.complaint_id,
            ),
            stored,
        )

        logger.info("lifecycle.comment_added", complaint_id=stored.complaint_id, actor_id=actor.user_id)
        return stored

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _has_custody(complaint: Complaint, actor: Actor) -> bool:
        if actor.role == UserRole.OFFICER:
            return complaint.assigned_to == actor.user_id
        return True

    @staticmethod
    def _assignee_changed(before: Complaint, after: Complaint) -> bool:
        """True when the move handed the complaint to a new officer."""
        return after.status == ComplaintStatus.ASSIGNED and before.assigned_to != after.assigned_to

    async def _resolve_assignee(
        self,
        current: Complaint,
        actor: Actor,
        payload: TransitionPayload,
    ) -> str:
        requested = payload.assignee_id

        if actor.role == UserRole.OFFICER:
            if requested is not None and requested != actor.user_id:
                raise InvalidAssigneeError(
                    "Officers cannot reassign a complaint to someone else",
                    complaint_ref=current.complaint_id,
                )
            return actor.user_id

        if requested is None:
            if current.assigned_to is None:
                raise InvalidAssigneeError(
                    "An assignee is required to assign a complaint",
                    complaint_ref=current.complaint_id,
                )
            return current.assigned_to

        user = await self._directory.find_by_id(requested)
        if user is None or not user.is_active or user.role != UserRole.OFFICER:
            raise InvalidAssigneeError(
                f"User {requested} is not an active officer",
                complaint_ref=current.complaint_id,
            )
        return user.user_id

    async def _guarded(self, operation: Awaitable[Any], *, complaint_ref: str | None) -> Any:
        try:
            return await operation
        except LifecycleError:
            raise
        except Exception as exc:
            logger.error("lifecycle.persist_failed", complaint_ref=complaint_ref, exc_info=True)
            raise PersistenceError(
                "Complaint store is unavailable",
                complaint_ref=complaint_ref,
            ) from exc

    async def _commit(self, updated: Complaint, *, expected_version: int) -> Complaint:
        return await self._guarded(
            self._store.replace(updated, expected_version=expected_version),
            complaint_ref=updated.complaint_id,
        )

    @staticmethod
    def _diff(before: Complaint, after: Complaint) -> dict[str, Any]:
        changes: dict[str, Any] = {"status": {"from": str(before.status), "to": str(after.status)}}
        if before.assigned_to != after.assigned_to:
            changes["assigned_to"] = {"from": before.assigned_to, "to": after.assigned_to}
        if after.status == ComplaintStatus.RESOLVED:
            changes["resolution_proof"] = list(after.resolution_proof)
            changes["is_sla_met"] = after.is_sla_met
        return changes

    async def _write_audit(
        self,
        complaint: Complaint,
        actor: Actor,
        action: AuditAction,
        *,
        changes: dict[str, Any],
    ) -> None:
        entry = AuditEntry(
            action=action,
            entity_id=complaint.record_id,
            actor_id=actor.user_id,
            actor_name=actor.name,
            actor_role=actor.role,
            changes=changes,
            metadata={"complaint_id": complaint.complaint_id, "version": complaint.version},
            timestamp=self._clock(),
        )
        try:
            await self._audit.write(entry)
        except Exception:
            logger.warning(
                "lifecycle.audit_failed",
                complaint_id=complaint.complaint_id,
                action=str(action),
                exc_info=True,
            )

    @staticmethod
    async def _safe_notify(send: Awaitable[Any], complaint: Complaint) -> None:
        try:
            await send
        except Exception:
            logger.warning("lifecycle.notification_failed", complaint_id=complaint.complaint_id, exc_info=True)

    async def _notify_created(self, complaint: Complaint) -> None:
        await self._safe_notify(
            self._notifications.enqueue(
                complaint.created_by,
                NotificationType.INFO,
                "Complaint Created",
                f"Your complaint {complaint.complaint_id} has been submitted successfully.",
                complaint_ref=complaint.complaint_id,
            ),
            complaint,
        )
        await self._safe_notify(
            self._notifications.enqueue_for_all_admins(
                "New Complaint",
                f"New complaint {complaint.complaint_id} has been submitted - {complaint.title}",
                type=NotificationType.ACTION,
                complaint_ref=complaint.complaint_id,
                metadata={"category": str(complaint.category)},
            ),
            complaint,
        )

    async def _notify_transition(self, before: Complaint, after: Complaint, actor: Actor) -> None:
        ref = after.complaint_id
        notify = self._notifications

        # A send-back to the same officer falls through to the generic update.
        if self._assignee_changed(before, after):
            deadline = format_local(after.sla_deadline, self._display_timezone)
            await self._safe_notify(
                notify.enqueue(
                    after.assigned_to,
                    NotificationType.ACTION,
                    "New Complaint Assigned",
                    f'Complaint {ref} "{after.title}" has been assigned to you. SLA Deadline: {deadline}',
                    complaint_ref=ref,
                    metadata={"sla_deadline": after.sla_deadline.isoformat()},
                ),
                after,
            )
            await self._safe_notify(
                notify.enqueue(
                    after.created_by,
                    NotificationType.INFO,
                    "Complaint Assigned",
                    f"Your complaint {ref} has been assigned to an officer",
                    complaint_ref=ref,
                ),
                after,
            )
            return

        if before.status == ComplaintStatus.ASSIGNED and after.status == ComplaintStatus.IN_PROGRESS:
            await self._safe_notify(
                notify.enqueue(
                    after.created_by,
                    NotificationType.INFO,
                    "Complaint In Progress",
                    f"Your complaint {ref} is now being worked on",
                    complaint_ref=ref,
                ),
                after,
            )
            await self._safe_notify(
                notify.enqueue_for_all_admins(
                    "Complaint In Progress",
                    f"Complaint {ref} is now in progress",
                    complaint_ref=ref,
                ),
                after,
            )
            return

        if after.status == ComplaintStatus.RESOLVED:
            sla_met = bool(after.is_sla_met)
            await self._safe_notify(
                notify.enqueue(
                    after.created_by,
                    NotificationType.INFO,
                    "Complaint Resolved",
                    f"Your complaint {ref} has been resolved",
                    complaint_ref=ref,
                ),
                after,
            )
            await self._safe_notify(
                notify.enqueue_for_all_admins(
                    "Complaint Resolved",
                    f"Complaint {ref} has been resolved - SLA {'met' if sla_met else 'breached'}",
                    type=NotificationType.INFO if sla_met else NotificationType.ALERT,
                    complaint_ref=ref,
                    metadata={"is_sla_met": sla_met},
                ),
                after,
            )
            return

        # A citizen closing their own complaint needs no echo.
        if actor.user_id == after.created_by:
            return
        await self._safe_notify(
            notify.enqueue(
                after.created_by,
                NotificationType.INFO,
                "Complaint Status Updated",
                f"Your complaint {ref} status has been updated to {after.status}",
                complaint_ref=ref,
            ),
            after,
        )
