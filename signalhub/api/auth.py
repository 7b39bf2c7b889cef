"""Authentication API endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response, status

from signalhub.api.dependencies import (
    get_auth_service,
    get_current_user,
    get_settings_dep,
    rate_limit,
)
from signalhub.config import Settings
from signalhub.models.auth import (
    AuthData,
    LoginRequest,
    ProfileData,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    TokensData,
    UpdateProfileRequest,
)
from signalhub.models.response import ApiResponse
from signalhub.models.user import User, UserProfile
from signalhub.services.auth_service import AuthService
from signalhub.services.token_service import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    extract_refresh_token,
    extract_token,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])


def _set_token_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    """Set httpOnly, SameSite=strict token cookies (Secure in production)."""
    common = {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "strict",
    }
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=int(settings.access_token_ttl.total_seconds()),
        **common,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        **common,
    )


def _clear_token_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE)


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth"))],
)
async def register(
    body: RegisterRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> ApiResponse[AuthData]:
    """Register a new account with the ``user`` role.

    Raises:
        ConflictError 409: If the email is already registered
    """
    result = await auth.register(body.name, body.email, body.password)
    _set_token_cookies(response, result.tokens, settings)

    return ApiResponse[AuthData](
        message="User registered successfully",
        data=AuthData(user=UserProfile.from_user(result.user), tokens=result.tokens),
    )


@router.post("/login", dependencies=[Depends(rate_limit("auth"))])
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> ApiResponse[AuthData]:
    """Login with email and password.

    Raises:
        AuthenticationError 401: Generic message for any credential failure
    """
    result = await auth.login(body.email, body.password)
    _set_token_cookies(response, result.tokens, settings)

    return ApiResponse[AuthData](
        message="Login successful",
        data=AuthData(user=UserProfile.from_user(result.user), tokens=result.tokens),
    )


@router.post("/refresh", dependencies=[Depends(rate_limit("auth"))])
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dep),
) -> ApiResponse[TokensData]:
    """Exchange a refresh token (cookie or body) for a new token pair.

    The presented refresh token is consumed; reusing it fails.
    """
    refresh_token = extract_refresh_token(request, body.refresh_token if body else None)
    tokens = await auth.refresh(refresh_token)
    _set_token_cookies(response, tokens, settings)

    return ApiResponse[TokensData](
        message="Token refreshed successfully",
        data=TokensData(tokens=tokens),
    )


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    """Revoke the presented access token and drop the refresh token."""
    refresh_token = extract_refresh_token(request, body.refresh_token if body else None)
    await auth.logout(extract_token(request), refresh_token, current_user.id)
    _clear_token_cookies(response)

    return ApiResponse[None](message="Logout successful")


@router.post("/logout-all")
async def logout_all(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    """Invalidate every refresh token of the current user."""
    await auth.logout_all(current_user.id, extract_token(request))
    _clear_token_cookies(response)

    return ApiResponse[None](message="Logged out from all devices successfully")


@router.get("/me")
async def get_me(
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[ProfileData]:
    """Get the current user's profile."""
    user = await auth.get_profile(current_user.id)
    return ApiResponse[ProfileData](
        message="User profile retrieved successfully",
        data=ProfileData(user=UserProfile.from_user(user)),
    )


@router.put("/update-profile")
async def update_profile(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> ApiResponse[ProfileData]:
    """Update the current user's display name."""
    user = await auth.update_profile(current_user.id, body.name)
    return ApiResponse[ProfileData](
        message="Profile updated successfully",
        data=ProfileData(user=UserProfile.from_user(user)),
    )
