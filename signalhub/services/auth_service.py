"""Session lifecycle: registration, login, refresh-token rotation and logout."""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import bcrypt
import structlog

from signalhub.config import Settings
from signalhub.errors import (
    AuthenticationError,
    ConflictError,
    TokenError,
    ValidationFailedError,
)
from signalhub.models.auth import MAX_PASSWORD_BYTES, TokenPair, normalize_email
from signalhub.models.user import Role, User
from signalhub.services.token_service import TokenService
from signalhub.services.user_service import UserStore

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain-text password to hash
        rounds: bcrypt work factor

    Returns:
        Bcrypt hash string

    Raises:
        ValidationFailedError: If the password exceeds bcrypt's 72-byte input limit
    """
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationFailedError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            details=[{"field": "password", "message": "too long"}],
        )
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(encoded, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash.

    Returns:
        True if the password matches, False otherwise (including malformed hashes)
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.error("password_hash_malformed")
        return False


@dataclass
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    """Orchestrates credential checks against the user store and token issuance."""

    def __init__(self, users: UserStore, tokens: TokenService, settings: Settings):
        self.users = users
        self.tokens = tokens
        self.settings = settings

    @property
    def max_refresh_tokens(self) -> int:
        return self.settings.max_refresh_tokens

    async def register(self, name: str, email: str, password: str) -> AuthResult:
        """Create a ``user``-role account and issue its first token pair.

        Raises:
            ConflictError: If the email is already registered
        """
        email = normalize_email(email)
        if await self.users.get_by_email(email) is not None:
            raise ConflictError("Email already registered")

        password_hash = hash_password(password, self.settings.bcrypt_salt_rounds)
        user = await self.users.create_user(name, email, password_hash, Role.USER)

        tokens = self.tokens.create_token_pair(user)
        await self.users.add_refresh_token(user.id, tokens.refresh_token, self.max_refresh_tokens)

        logger.info("user_registered", user_id=str(user.id))
        return AuthResult(user=user, tokens=tokens)

    async def login(self, email: str, password: str) -> AuthResult:
        """Check credentials and issue a token pair.

        Unknown email, deactivated account and wrong password all raise the
        same error so callers cannot enumerate accounts; each is logged with
        its own event.

        Raises:
            AuthenticationError: On any credential failure
        """
        result = await self.users.get_by_email(email)
        if result is None:
            logger.warning("login_failed_unknown_email")
            raise AuthenticationError(INVALID_CREDENTIALS)

        user, password_hash = result

        if not user.is_active:
            logger.warning("login_failed_inactive", user_id=str(user.id))
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not verify_password(password, password_hash):
            logger.warning("login_failed_bad_password", user_id=str(user.id))
            raise AuthenticationError(INVALID_CREDENTIALS)

        tokens = self.tokens.create_token_pair(user)
        updated = await self.users.record_login(
            user.id, tokens.refresh_token, self.max_refresh_tokens
        )
        if updated is None:
            raise AuthenticationError(INVALID_CREDENTIALS)

        logger.info("user_logged_in", user_id=str(user.id))
        return AuthResult(user=updated, tokens=tokens)

    async def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        """Exchange a refresh token for a new pair (rotation).

        The presented token is consumed: it is removed from the user's
        stored list in the same write that appends its replacement, so a
        second use is rejected.

        Raises:
            AuthenticationError: Missing, invalid, expired, revoked, wrong-type,
                unknown-user or already-rotated token
        """
        if not refresh_token:
            raise AuthenticationError("Refresh token is required")

        try:
            payload = await self.tokens.verify_token(refresh_token, "refresh")
        except TokenError as e:
            logger.warning("refresh_token_rejected", reason=e.code)
            raise AuthenticationError("Invalid or expired refresh token", code=e.code)

        user = await self.users.get_by_id(payload.sub)
        if user is None or not user.is_active:
            logger.warning("refresh_user_unavailable", user_id=str(payload.sub))
            raise AuthenticationError("Invalid or expired refresh token")

        tokens = self.tokens.create_token_pair(user)
        rotated = await self.users.rotate_refresh_token(
            user.id, refresh_token, tokens.refresh_token, self.max_refresh_tokens
        )
        if not rotated:
            logger.warning("refresh_token_reuse_detected", user_id=str(user.id))
            raise AuthenticationError("Invalid refresh token")

        logger.info("tokens_refreshed", user_id=str(user.id))
        return tokens

    async def _revoke_access_token(self, access_token: Optional[str]) -> bool:
        if not access_token:
            return False
        ttl = self.tokens.get_token_expiry(access_token)
        return await self.tokens.revoke_token(access_token, ttl)

    async def logout(
        self,
        access_token: Optional[str],
        refresh_token: Optional[str],
        user_id: Optional[UUID] = None,
    ) -> None:
        """End one session. Never fails from the caller's point of view."""
        revoked = await self._revoke_access_token(access_token)

        removed = False
        if refresh_token and user_id is not None:
            removed = await self.users.remove_refresh_token(user_id, refresh_token)

        logger.info(
            "user_logged_out",
            user_id=str(user_id) if user_id else None,
            access_revoked=revoked,
            refresh_removed=removed,
        )

    async def logout_all(self, user_id: UUID, access_token: Optional[str] = None) -> None:
        """End every session: clear all refresh tokens and revoke the presented access token.

        Other sessions' access tokens stay valid until their natural expiry.

        Raises:
            AuthenticationError: If the user no longer exists
        """
        if not await self.users.clear_refresh_tokens(user_id):
            raise AuthenticationError("User not found")

        revoked = await self._revoke_access_token(access_token)
        logger.info("user_logged_out_all", user_id=str(user_id), access_revoked=revoked)

    async def get_profile(self, user_id: UUID) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise AuthenticationError("User not found")
        return user

    async def update_profile(self, user_id: UUID, name: str) -> User:
        user = await self.users.update_profile(user_id, name)
        if user is None:
            raise AuthenticationError("User not found")
        logger.info("profile_updated", user_id=str(user_id))
        return user
