"""Auth request and response models with validation."""

import re
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from signalhub.models.base import CamelModel
from signalhub.models.user import UserProfile

EMAIL_RE = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$")
NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
PASSWORD_SPECIALS = "@$!%*?&"
# bcrypt only hashes the first 72 bytes
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


def _validate_email(v: str) -> str:
    v = normalize_email(v)
    if not EMAIL_RE.match(v):
        raise ValueError("Please provide a valid email address")
    return v


def _validate_name(v: str) -> str:
    v = v.strip()
    if not 3 <= len(v) <= 50:
        raise ValueError("Name must be between 3 and 50 characters")
    if not NAME_RE.match(v):
        raise ValueError("Name can only contain letters and spaces")
    return v


class RegisterRequest(CamelModel):
    """New account registration.

    Attributes:
        name: Display name (3-50 chars, letters and spaces)
        email: Email address, normalized to lower case
        password: At least 8 chars with upper, lower, digit and one of @$!%*?&
    """

    name: str
    email: str
    password: str = Field(..., min_length=8)

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("password")
    @classmethod
    def password_complex(cls, v: str) -> str:
        """Require mixed case, a digit and a special character."""
        checks = (
            any(c.islower() for c in v),
            any(c.isupper() for c in v),
            any(c.isdigit() for c in v),
            any(c in PASSWORD_SPECIALS for c in v),
        )
        if not all(checks):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase "
                f"letter, one number, and one special character ({PASSWORD_SPECIALS})"
            )
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginRequest(CamelModel):
    """Login credentials."""

    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _validate_email(v)


class RefreshRequest(CamelModel):
    """Body form of the refresh token; the cookie takes precedence."""

    refresh_token: Optional[str] = None


class UpdateProfileRequest(CamelModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _validate_name(v)


class UserStatusRequest(CamelModel):
    """Admin request to deactivate or reactivate an account."""

    is_active: bool


class TokenPair(CamelModel):
    """Access and refresh tokens issued together."""

    access_token: str
    refresh_token: str


class TokenPayload(CamelModel):
    """Decoded claims of a verified token."""

    sub: UUID
    email: str
    role: Optional[str] = None
    type: Literal["access", "refresh"]
    exp: int
    iat: int
    jti: Optional[str] = None


class AuthData(CamelModel):
    """Payload returned by register and login."""

    user: UserProfile
    tokens: TokenPair


class TokensData(CamelModel):
    tokens: TokenPair


class ProfileData(CamelModel):
    user: UserProfile
