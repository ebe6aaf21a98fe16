"""Tests for the role-gated complaint transition table."""

from __future__ import annotations

import pytest

from src.models.enums import ComplaintStatus, UserRole
from src.services.transitions import (
    TRANSITIONS,
    allowed_next,
    can_comment,
    is_allowed,
    is_terminal,
)

S = ComplaintStatus


class TestTableCompleteness:
    def test_every_role_lists_every_status(self) -> None:
        for role in UserRole:
            assert set(TRANSITIONS[role]) == set(ComplaintStatus), f"{role} must list every status"

    def test_closed_is_terminal_for_every_role(self) -> None:
        for role in UserRole:
            assert allowed_next(role, S.CLOSED) == frozenset(), f"{role} must have no move out of CLOSED"
        assert is_terminal(S.CLOSED) is True

    def test_rejected_is_not_terminal(self) -> None:
        assert is_terminal(S.REJECTED) is False, "admins can re-open rejected complaints"

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            TRANSITIONS[UserRole.CITIZEN] = {}  # type: ignore[index]


class TestCitizen:
    def test_can_close_resolved(self) -> None:
        assert is_allowed(UserRole.CITIZEN, S.RESOLVED, S.CLOSED) is True

    @pytest.mark.parametrize("current", [S.NEW, S.ASSIGNED, S.IN_PROGRESS, S.REJECTED])
    def test_nothing_else(self, current: ComplaintStatus) -> None:
        assert allowed_next(UserRole.CITIZEN, current) == frozenset()


class TestOfficer:
    def test_assigned_moves(self) -> None:
        assert allowed_next(UserRole.OFFICER, S.ASSIGNED) == {S.IN_PROGRESS, S.REJECTED}

    def test_in_progress_moves(self) -> None:
        assert allowed_next(UserRole.OFFICER, S.IN_PROGRESS) == {S.RESOLVED, S.ASSIGNED}

    @pytest.mark.parametrize("current", [S.NEW, S.RESOLVED, S.CLOSED, S.REJECTED])
    def test_no_moves_outside_custody(self, current: ComplaintStatus) -> None:
        assert allowed_next(UserRole.OFFICER, current) == frozenset()

    def test_officer_cannot_assign_new(self) -> None:
        assert is_allowed(UserRole.OFFICER, S.NEW, S.ASSIGNED) is False


class TestAdmin:
    def test_triage_new(self) -> None:
        assert allowed_next(UserRole.ADMIN, S.NEW) == {S.ASSIGNED, S.REJECTED}

    def test_override_resolved(self) -> None:
        assert allowed_next(UserRole.ADMIN, S.RESOLVED) == {S.CLOSED, S.IN_PROGRESS}

    def test_reopen_rejected(self) -> None:
        assert allowed_next(UserRole.ADMIN, S.REJECTED) == {S.NEW}

    def test_unassign(self) -> None:
        assert is_allowed(UserRole.ADMIN, S.ASSIGNED, S.NEW) is True


class TestMalformedInput:
    def test_unknown_role_is_not_allowed(self) -> None:
        assert is_allowed("SUPERUSER", S.NEW, S.ASSIGNED) is False
        assert allowed_next("SUPERUSER", S.NEW) == frozenset()

    def test_unknown_status_is_not_allowed(self) -> None:
        assert is_allowed(UserRole.ADMIN, "ARCHIVED", S.NEW) is False
        assert is_allowed(UserRole.ADMIN, S.NEW, "ARCHIVED") is False

    def test_plain_strings_are_accepted(self) -> None:
        assert is_allowed("ADMIN", "NEW", "ASSIGNED") is True


class TestCommentPermission:
    def test_officer_while_in_progress(self) -> None:
        assert can_comment(UserRole.OFFICER, S.IN_PROGRESS) is True

    def test_officer_outside_in_progress(self) -> None:
        assert can_comment(UserRole.OFFICER, S.ASSIGNED) is False

    @pytest.mark.parametrize("role", [UserRole.CITIZEN, UserRole.ADMIN])
    def test_other_roles_never(self, role: UserRole) -> None:
        assert can_comment(role, S.IN_PROGRESS) is False
