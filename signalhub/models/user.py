"""User and identity models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from signalhub.models.base import CamelModel


class Role(str, Enum):
    """Closed set of account roles."""

    USER = "user"
    ADMIN = "admin"


class User(CamelModel):
    """A registered account.

    The password hash and the active refresh token list live only in the
    credential store and are never loaded into this model.
    """

    id: UUID
    name: str
    email: str
    role: Role = Role.USER
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class UserProfile(CamelModel):
    """Public view of a user returned by the API."""

    id: UUID
    name: str
    email: str
    role: Role
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
        )
