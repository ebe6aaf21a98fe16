"""User directory records and the authenticated caller."""

from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.enums import UserRole


class User(BaseModel):
    user_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(..., min_length=1, max_length=200)
    email: str = ""
    role: UserRole = UserRole.CITIZEN
    department: str | None = None
    is_active: bool = True


class Actor(BaseModel):
    """The user performing an operation, as seen by the lifecycle engine."""

    model_config = {"frozen": True}

    user_id: str
    name: str
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> Actor:
        return cls(user_id=user.user_id, name=user.name, role=user.role)
