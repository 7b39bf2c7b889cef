"""Token service: JWT minting, verification and revocation.

Access and refresh tokens are signed with separate secrets and carry a
``type`` claim that is checked after signature verification, so one class
of token is never honored where the other is required.

Revocation is recorded negatively: the literal access token is written to the
revocation registry with a TTL equal to its remaining lifetime, so registry
entries expire together with the tokens they block.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

import jwt
import structlog
from pydantic import ValidationError
from starlette.requests import Request

from signalhub.config import Settings
from signalhub.errors import (
    InvalidTokenError,
    TokenExpiredError,
    TokenRevokedError,
    UnavailableError,
    WrongTokenTypeError,
)
from signalhub.models.auth import TokenPair, TokenPayload
from signalhub.models.user import User
from signalhub.services.redis_service import RedisService

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
DEFAULT_TOKEN_EXPIRY_SECONDS = 900
ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

TokenType = Literal["access", "refresh"]


class TokenService:
    """Mint, verify, decode and revoke access/refresh tokens."""

    def __init__(self, settings: Settings, cache: Optional[RedisService] = None):
        self.settings = settings
        self.cache = cache

    def _secret_for(self, token_type: TokenType) -> str:
        if token_type == "access":
            return self.settings.jwt_secret
        return self.settings.jwt_refresh_secret

    def _encode(self, claims: dict, token_type: TokenType) -> str:
        now = datetime.now(timezone.utc)
        ttl = (
            self.settings.access_token_ttl
            if token_type == "access"
            else self.settings.refresh_token_ttl
        )
        payload = {
            **claims,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
            # Unique per token so two tokens minted in the same second differ
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_for(token_type), algorithm=JWT_ALGORITHM)

    def create_access_token(self, user: User) -> str:
        """Create a signed access token carrying id, email and role."""
        token = self._encode(
            {"sub": str(user.id), "email": user.email, "role": user.role.value},
            "access",
        )
        logger.debug("access_token_created", user_id=str(user.id))
        return token

    def create_refresh_token(self, user: User) -> str:
        """Create a signed refresh token carrying id and email."""
        token = self._encode({"sub": str(user.id), "email": user.email}, "refresh")
        logger.debug("refresh_token_created", user_id=str(user.id))
        return token

    def create_token_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=self.create_refresh_token(user),
        )

    async def verify_token(self, token: str, token_type: TokenType = "access") -> TokenPayload:
        """Verify a token and return its claims.

        Args:
            token: Encoded JWT string
            token_type: Class the caller requires ("access" or "refresh")

        Returns:
            Decoded payload

        Raises:
            TokenRevokedError: Token has a revocation entry
            TokenExpiredError: Signature valid but lifetime elapsed
            InvalidTokenError: Bad signature, issuer, audience or structure
            WrongTokenTypeError: Token class differs from ``token_type``
        """
        if await self.is_token_revoked(token):
            raise TokenRevokedError("Token has been revoked")

        try:
            claims = jwt.decode(
                token,
                self._secret_for(token_type),
                algorithms=[JWT_ALGORITHM],
                issuer=self.settings.jwt_issuer,
                audience=self.settings.jwt_audience,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError("Invalid token", details={"reason": str(e)})

        if claims.get("type") != token_type:
            raise WrongTokenTypeError(
                f"Invalid token type. Expected {token_type}, got {claims.get('type')}"
            )

        try:
            return TokenPayload.model_validate(claims)
        except ValidationError as e:
            raise InvalidTokenError("Invalid token", details={"reason": str(e)})

    async def revoke_token(
        self, token: str, ttl_seconds: int = DEFAULT_TOKEN_EXPIRY_SECONDS
    ) -> bool:
        """Add a token to the revocation registry (best-effort).

        Returns:
            True if recorded, False if the registry is unavailable
        """
        if self.cache is None:
            logger.warning("token_revoke_skipped", reason="registry_not_configured")
            return False

        try:
            await self.cache.blacklist_token(token, ttl_seconds)
        except UnavailableError as e:
            logger.error("token_revoke_failed", error=e.message)
            return False

        logger.info("token_revoked", ttl_seconds=ttl_seconds)
        return True

    async def is_token_revoked(self, token: str) -> bool:
        """Check the revocation registry.

        Fails open: when the registry cannot be consulted the token is
        treated as not revoked, bounding exposure to the access token's own
        short lifetime.
        """
        if self.cache is None:
            return False

        try:
            return await self.cache.is_token_blacklisted(token)
        except UnavailableError as e:
            logger.error("revocation_check_failed", error=e.message)
            return False

    def get_token_expiry(self, token: str) -> int:
        """Seconds until the token's ``exp``, floored at 0.

        The signature is not checked; defaults to 900 when the expiry cannot
        be read.
        """
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return DEFAULT_TOKEN_EXPIRY_SECONDS

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            return DEFAULT_TOKEN_EXPIRY_SECONDS

        now = int(datetime.now(timezone.utc).timestamp())
        return max(int(exp) - now, 0)


def extract_token(request: Request) -> Optional[str]:
    """Access token from ``Authorization: Bearer`` or, failing that, the cookie."""
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        if token:
            return token

    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


def extract_refresh_token(request: Request, body_token: Optional[str] = None) -> Optional[str]:
    """Refresh token from the cookie or, failing that, the request body field."""
    cookie_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if cookie_token:
        return cookie_token

    return body_token or None
