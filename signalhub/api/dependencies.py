"""FastAPI dependencies: service wiring, authentication and authorization gates.

Services are constructed once in the application lifespan and kept on
``app.state``; the getters below hand them to route handlers so tests can
swap any of them for doubles.
"""

from typing import Callable, Optional

import structlog
from fastapi import Depends, Request

from signalhub.config import Settings
from signalhub.errors import (
    AppError,
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    RateLimitError,
    TokenError,
    TokenExpiredError,
    TokenRevokedError,
    UnavailableError,
)
from signalhub.models.user import Role, User
from signalhub.services.auth_service import AuthService
from signalhub.services.redis_service import RedisService
from signalhub.services.signal_service import SignalService
from signalhub.services.token_service import TokenService, extract_token
from signalhub.services.user_service import UserService

logger = structlog.get_logger(__name__)


def _state_attr(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise UnavailableError(f"{name} is not available")
    return service


def get_settings_dep(request: Request) -> Settings:
    return _state_attr(request, "settings")


def get_redis_service(request: Request) -> RedisService:
    return _state_attr(request, "redis_service")


def get_token_service(request: Request) -> TokenService:
    return _state_attr(request, "token_service")


def get_user_service(request: Request) -> UserService:
    return _state_attr(request, "user_service")


def get_auth_service(request: Request) -> AuthService:
    return _state_attr(request, "auth_service")


def get_signal_service(request: Request) -> SignalService:
    return _state_attr(request, "signal_service")


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------

async def _resolve_user(request: Request, token: str) -> User:
    tokens = get_token_service(request)
    users = get_user_service(request)

    payload = await tokens.verify_token(token, "access")

    user = await users.get_by_id(payload.sub)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    return user


def _attach(request: Request, user: User, token: str) -> None:
    request.state.user = user
    request.state.user_id = user.id
    request.state.user_role = user.role
    request.state.access_token = token


async def get_current_user(request: Request) -> User:
    """Resolve the presented access token into an active user.

    Raises:
        AuthenticationError: With code TOKEN_EXPIRED, TOKEN_REVOKED,
            INVALID_TOKEN or AUTHENTICATION_FAILED
    """
    token = extract_token(request)
    if not token:
        raise AuthenticationError("Access token is required")

    try:
        user = await _resolve_user(request, token)
    except TokenExpiredError:
        raise TokenExpiredError("Access token has expired. Please refresh your token.")
    except TokenRevokedError:
        raise TokenRevokedError("Token has been revoked. Please login again.")
    except TokenError as e:
        logger.warning("access_token_invalid", reason=e.code)
        raise InvalidTokenError("Invalid access token", details=e.details)

    _attach(request, user, token)
    return user


async def get_optional_user(request: Request) -> Optional[User]:
    """Like :func:`get_current_user` but any failure yields an anonymous caller."""
    token = extract_token(request)
    if not token:
        return None

    try:
        user = await _resolve_user(request, token)
    except AppError as e:
        logger.info("optional_authentication_failed", reason=e.code)
        return None

    _attach(request, user, token)
    return user


# ---------------------------------------------------------------------------
# Authorization gate
# ---------------------------------------------------------------------------

def check_roles(request: Request, allowed: tuple[Role, ...]) -> User:
    """Permit the attached user if their role is in ``allowed``.

    Raises:
        AuthorizationError: If no user is attached or the role is not allowed
    """
    user: Optional[User] = getattr(request.state, "user", None)
    role = getattr(request.state, "user_role", None)
    if user is None or role is None:
        raise AuthorizationError("Authentication required for authorization")

    if role not in allowed:
        required = " or ".join(r.value for r in allowed)
        logger.warning(
            "authorization_denied",
            user_id=str(user.id),
            role=role.value,
            required=required,
            path=request.url.path,
        )
        raise AuthorizationError(f"Access denied. Required role(s): {required}")

    if role == Role.ADMIN:
        logger.info(
            "admin_action",
            user_id=str(user.id),
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )
    return user


def require_roles(*roles: Role) -> Callable:
    """Dependency factory: authenticated user whose role is one of ``roles``."""
    allowed = tuple(roles)

    async def dependency(
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> User:
        return check_roles(request, allowed)

    return dependency


require_admin = require_roles(Role.ADMIN)


def check_owner_or_admin(request: Request, resource_user_id: Optional[str]) -> User:
    """Permit admins or the user whose id equals ``resource_user_id``.

    Raises:
        AuthorizationError: If no user is attached or neither condition holds
    """
    user: Optional[User] = getattr(request.state, "user", None)
    if user is None:
        raise AuthorizationError("Authentication required")

    if user.role == Role.ADMIN or str(user.id) == str(resource_user_id):
        return user

    logger.warning(
        "resource_access_denied",
        user_id=str(user.id),
        attempted=str(resource_user_id),
        path=request.url.path,
    )
    raise AuthorizationError("You can only access your own resources")


def require_owner_or_admin(param_name: str = "user_id") -> Callable:
    """Dependency factory: admin, or the owner named by path parameter ``param_name``."""

    async def dependency(
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> User:
        return check_owner_or_admin(request, request.path_params.get(param_name))

    return dependency


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

def rate_limit(scope: str) -> Callable:
    """Dependency factory: fixed-window limit per client IP for ``scope`` ("auth" or "api")."""

    async def dependency(
        request: Request,
        settings: Settings = Depends(get_settings_dep),
        cache: RedisService = Depends(get_redis_service),
    ) -> None:
        limit = settings.rate_limit_auth if scope == "auth" else settings.rate_limit_api
        client_ip = request.client.host if request.client else "unknown"
        allowed, _ = await cache.check_rate_limit(
            f"{scope}:{client_ip}", limit, settings.rate_limit_window_seconds
        )
        if not allowed:
            logger.warning("rate_limit_exceeded", scope=scope, client_ip=client_ip)
            raise RateLimitError(
                "Too many requests. Please try again later.",
                details={"retryAfterSeconds": settings.rate_limit_window_seconds},
            )

    return dependency
