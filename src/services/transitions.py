"""Role-gated complaint status transition table.

Answers two questions for the lifecycle engine and the HTTP layer:

* may ``role`` move a complaint from ``current`` to ``target``?
* which statuses may ``role`` move a complaint to from ``current``?

The table is fixed at import time.  Every (role, status) pair is listed
explicitly so that an omission shows up as an empty set rather than a
``KeyError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from src.models.enums import ComplaintStatus, UserRole

_S = ComplaintStatus

_NONE: Final[frozenset[ComplaintStatus]] = frozenset()

TRANSITIONS: Final[Mapping[UserRole, Mapping[ComplaintStatus, frozenset[ComplaintStatus]]]] = MappingProxyType({
    # Citizens only confirm a resolution by closing it.
    UserRole.CITIZEN: MappingProxyType({
        _S.NEW: _NONE,
        _S.ASSIGNED: _NONE,
        _S.IN_PROGRESS: _NONE,
        _S.RESOLVED: frozenset({_S.CLOSED}),
        _S.CLOSED: _NONE,
        _S.REJECTED: _NONE,
    }),
    # Officers work complaints in their own custody.  IN_PROGRESS -> ASSIGNED
    # is a send-back.
    UserRole.OFFICER: MappingProxyType({
        _S.NEW: _NONE,
        _S.ASSIGNED: frozenset({_S.IN_PROGRESS, _S.REJECTED}),
        _S.IN_PROGRESS: frozenset({_S.RESOLVED, _S.ASSIGNED}),
        _S.RESOLVED: _NONE,
        _S.CLOSED: _NONE,
        _S.REJECTED: _NONE,
    }),
    # Admins triage new complaints, override resolutions, and re-open
    # rejected ones.
    UserRole.ADMIN: MappingProxyType({
        _S.NEW: frozenset({_S.ASSIGNED, _S.REJECTED}),
        _S.ASSIGNED: frozenset({_S.IN_PROGRESS, _S.NEW, _S.REJECTED}),
        _S.IN_PROGRESS: frozenset({_S.RESOLVED, _S.ASSIGNED}),
        _S.RESOLVED: frozenset({_S.CLOSED, _S.IN_PROGRESS}),
        _S.CLOSED: _NONE,
        _S.REJECTED: frozenset({_S.NEW}),
    }),
})

# Officer comments are a side mutation; they follow the same
# (role, status) gate as transitions.
COMMENT_PERMISSIONS: Final[Mapping[UserRole, frozenset[ComplaintStatus]]] = MappingProxyType({
    UserRole.CITIZEN: _NONE,
    UserRole.OFFICER: frozenset({_S.IN_PROGRESS}),
    UserRole.ADMIN: _NONE,
})


def _coerce_role(role: object) -> UserRole | None:
    try:
        return UserRole(role)
    except ValueError:
        return None


def _coerce_status(status: object) -> ComplaintStatus | None:
    try:
        return ComplaintStatus(status)
    except ValueError:
        return None


def allowed_next(role: UserRole | str, current: ComplaintStatus | str) -> frozenset[ComplaintStatus]:
    """Return the statuses *role* may move a complaint to from *current*.

    Unknown roles or statuses yield an empty set.
    """
    parsed_role = _coerce_role(role)
    parsed_status = _coerce_status(current)
    if parsed_role is None or parsed_status is None:
        return _NONE
    return TRANSITIONS[parsed_role].get(parsed_status, _NONE)


def is_allowed(
    role: UserRole | str,
    current: ComplaintStatus | str,
    target: ComplaintStatus | str,
) -> bool:
    """Return ``True`` if *role* may move a complaint from *current* to *target*."""
    parsed_target = _coerce_status(target)
    if parsed_target is None:
        return False
    return parsed_target in allowed_next(role, current)


def can_comment(role: UserRole | str, current: ComplaintStatus | str) -> bool:
    parsed_role = _coerce_role(role)
    parsed_status = _coerce_status(current)
    if parsed_role is None or parsed_status is None:
        return False
    return parsed_status in COMMENT_PERMISSIONS[parsed_role]


def is_terminal(status: ComplaintStatus) -> bool:
    """A status is terminal when no role has an outgoing transition from it."""
    return all(not table.get(status) for table in TRANSITIONS.values())
