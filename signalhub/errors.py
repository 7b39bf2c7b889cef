"""Application error hierarchy.

Every error carries an HTTP status and a stable machine-readable code. The
API layer renders them into the standard response envelope; services raise
them directly.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationFailedError(AppError):
    """Malformed input (400)."""

    status_code = 400
    code = "VALIDATION_FAILED"


class AuthenticationError(AppError):
    """Missing or bad credentials (401)."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"


class TokenError(AuthenticationError):
    """A presented token failed verification."""


class TokenExpiredError(TokenError):
    """Token signature is valid but its lifetime has elapsed."""

    code = "TOKEN_EXPIRED"


class TokenRevokedError(TokenError):
    """Token was explicitly revoked before its natural expiry."""

    code = "TOKEN_REVOKED"


class InvalidTokenError(TokenError):
    """Bad signature, issuer, audience or structure."""

    code = "INVALID_TOKEN"


class WrongTokenTypeError(TokenError):
    """A refresh token was presented where an access token is required, or vice versa."""

    code = "INVALID_TOKEN_TYPE"


class AuthorizationError(AppError):
    """Authenticated but not permitted (403)."""

    status_code = 403
    code = "AUTHORIZATION_FAILED"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class UnavailableError(AppError):
    """A best-effort dependency (e.g. Redis) could not be reached."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"


__all__ = [
    "AppError",
    "ValidationFailedError",
    "AuthenticationError",
    "TokenError",
    "TokenExpiredError",
    "TokenRevokedError",
    "InvalidTokenError",
    "WrongTokenTypeError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "UnavailableError",
]
