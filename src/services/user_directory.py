"""User directory lookups for the lifecycle engine.

Authentication lives outside this service; the engine only needs to
resolve a user id to a :class:`User` (to validate assignees and to
identify the HTTP caller) and to enumerate users by role (to fan out
admin notifications).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import structlog

from src.models.enums import UserRole
from src.models.user import User

logger = structlog.get_logger(__name__)


@runtime_checkable
class UserDirectory(Protocol):
    async def find_by_id(self, user_id: str) -> User | None: ...

    async def list_by_role(self, role: UserRole, *, active_only: bool = True) -> list[User]: ...


class InMemoryUserDirectory:
    """Dict-backed directory, populated at startup from demo seed data."""

    __slots__ = ("_users",)

    def __init__(self, users: list[User] | None = None) -> None:
        self._users: dict[str, User] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: User) -> User:
        if user.user_id in self._users:
            logger.warning("user_directory.user_replaced", user_id=user.user_id)
        self._users[user.user_id] = user
        return user

    def deactivate(self, user_id: str) -> bool:
        user = self._users.get(user_id)
        if user is None:
            return False
        self._users[user_id] = user.model_copy(update={"is_active": False})
        return True

    async def find_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def list_by_role(self, role: UserRole, *, active_only: bool = True) -> list[User]:
        return [
            user
            for user in self._users.values()
            if user.role == role and (user.is_active or not active_only)
        ]

    def __len__(self) -> int:
        return len(self._users)
