"""User management endpoints."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query

from signalhub.api.dependencies import (
    get_user_service,
    require_admin,
    require_owner_or_admin,
)
from signalhub.errors import NotFoundError, ValidationFailedError
from signalhub.models.auth import ProfileData, UserStatusRequest
from signalhub.models.response import ApiResponse, PaginatedResponse, Pagination
from signalhub.models.user import User, UserProfile
from signalhub.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> PaginatedResponse[UserProfile]:
    """List all users, newest first (admin only)."""
    total = await users.count_users()
    items = await users.list_users(limit=limit, offset=(page - 1) * limit)
    return PaginatedResponse[UserProfile](
        message="Users retrieved successfully",
        data=[UserProfile.from_user(u) for u in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{user_id}")
async def get_user(
    user_id: UUID,
    current_user: User = Depends(require_owner_or_admin("user_id")),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[ProfileData]:
    """Get a user's profile (the user themself or an admin)."""
    user = await users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")

    return ApiResponse[ProfileData](
        message="User retrieved successfully",
        data=ProfileData(user=UserProfile.from_user(user)),
    )


@router.patch("/{user_id}/status")
async def set_user_status(
    user_id: UUID,
    body: UserStatusRequest,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> ApiResponse[ProfileData]:
    """Deactivate or reactivate an account (admin only).

    Deactivation drops the account's refresh tokens; its outstanding access
    tokens are rejected by the authentication gate on the next request.
    """
    if user_id == admin.id and not body.is_active:
        raise ValidationFailedError("Admins cannot deactivate their own account")

    user = await users.set_active(user_id, body.is_active)
    if user is None:
        raise NotFoundError("User not found")

    logger.info(
        "admin_set_user_status",
        admin_id=str(admin.id),
        target_user_id=str(user_id),
        is_active=body.is_active,
    )
    return ApiResponse[ProfileData](
        message="User status updated successfully",
        data=ProfileData(user=UserProfile.from_user(user)),
    )
