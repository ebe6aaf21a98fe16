"""Append-only audit trail for complaint mutations.

Every committed change to a complaint produces exactly one
:class:`AuditEntry`: ``CREATE`` on filing, ``ASSIGN`` when the complaint
moves into ASSIGNED under a new assignee, ``STATUS_CHANGE`` for any other transition and
``UPDATE`` when an officer comment is added.

Entries are immutable and carry a SHA-256 checksum over their identifying
fields so a tampered record can be detected when the trail is exported.
Writes are fire-and-forget from the engine's point of view: the engine
logs and swallows gateway failures, the committed state change stands.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from typing import Any, Final, Protocol, runtime_checkable
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, computed_field

from src.models.enums import AuditAction, UserRole

logger = structlog.get_logger(__name__)


# Oldest entries are dropped from the in-memory buffer past this size.
_MAX_BUFFER_SIZE: Final[int] = 50_000

_ENTITY_COMPLAINT: Final[str] = "Complaint"


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class AuditEntry(BaseModel):
    """A single immutable audit record."""

    model_config = {"frozen": True}

    audit_id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction
    entity: str = _ENTITY_COMPLAINT
    entity_id: str
    actor_id: str
    actor_name: str = ""
    actor_role: UserRole | None = None
    changes: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checksum(self) -> str:
        """SHA-256 over the identifying fields, for tamper detection."""
        content = (
            f"{self.audit_id}:{self.timestamp.isoformat()}:{self.action}:"
            f"{self.entity}:{self.entity_id}:{self.actor_id}"
        )
        return hashlib.sha256(content.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


@runtime_checkable
class AuditGateway(Protocol):
    async def write(self, entry: AuditEntry) -> None: ...


class InMemoryAuditLog:
    """Append-only in-process audit log.

    Parameters
    ----------
    max_entries:
        Buffer bound; once exceeded the oldest entries are discarded.
    """

    __slots__ = ("_entries", "_max_entries")

    def __init__(self, max_entries: int = _MAX_BUFFER_SIZE) -> None:
        self._entries: list[AuditEntry] = []
        self._max_entries = max_entries

    async def write(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

        logger.info(
            "audit.entry_written",
            audit_id=entry.audit_id,
            action=str(entry.action),
            entity_id=entry.entity_id,
            actor_id=entry.actor_id,
        )

        if len(self._entries) > self._max_entries:
            self._entries = self._entries[-self._max_entries :]

    async def for_entity(
        self,
        entity_id: str,
        *,
        action: AuditAction | None = None,
    ) -> list[AuditEntry]:
        """Entries for one record, oldest first."""
        entries = [e for e in self._entries if e.entity_id == entity_id]
        if action is not None:
            entries = [e for e in entries if e.action == action]
        return entries

    async def recent(self, limit: int = 100, *, offset: int = 0) -> list[AuditEntry]:
        """Most recent entries, newest first."""
        ordered = sorted(reversed(self._entries), key=lambda e: e.timestamp, reverse=True)
        return ordered[offset : offset + limit]

    async def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
