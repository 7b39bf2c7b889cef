"""Trading signal API endpoints.

All routes require authentication; writes and analytics require the admin role.
"""

from typing import Literal, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status

from signalhub.api.dependencies import (
    get_current_user,
    get_signal_service,
    rate_limit,
    require_admin,
)
from signalhub.models.response import ApiResponse, PaginatedResponse
from signalhub.models.signal import (
    AnalyticsData,
    SignalCreate,
    SignalData,
    SignalFilters,
    SignalStatus,
    SignalType,
    SignalUpdate,
    TradingSignal,
)
from signalhub.models.user import User
from signalhub.services.signal_service import SignalService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/signals",
    tags=["Signals"],
    dependencies=[Depends(rate_limit("api")), Depends(get_current_user)],
)


def get_signal_filters(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    signal_type: Optional[SignalType] = Query(None, alias="signalType"),
    cryptocurrency: Optional[str] = Query(None, max_length=50),
    min_confidence: Optional[int] = Query(None, alias="minConfidence", ge=1, le=100),
    status_filter: SignalStatus = Query(SignalStatus.ACTIVE, alias="status"),
    sort_by: Literal["createdAt", "confidence", "targetPrice"] = Query("createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("desc"),
) -> SignalFilters:
    return SignalFilters(
        page=page,
        limit=limit,
        signal_type=signal_type,
        cryptocurrency=cryptocurrency,
        min_confidence=min_confidence,
        status=status_filter,
        sort_by=sort_by,
        order=order,
    )


@router.get("")
async def list_signals(
    filters: SignalFilters = Depends(get_signal_filters),
    signals: SignalService = Depends(get_signal_service),
) -> PaginatedResponse[TradingSignal]:
    """List signals with pagination, filters and sorting (cached)."""
    items, pagination, cached = await signals.list_signals(filters)
    message = "Signals retrieved successfully"
    return PaginatedResponse[TradingSignal](
        message=f"{message} (cached)" if cached else message,
        data=items,
        pagination=pagination,
    )


@router.get("/analytics/summary")
async def get_analytics(
    admin: User = Depends(require_admin),
    signals: SignalService = Depends(get_signal_service),
) -> ApiResponse[AnalyticsData]:
    """Aggregate statistics over all signals (admin only)."""
    analytics = await signals.get_analytics()
    return ApiResponse[AnalyticsData](
        message="Analytics retrieved successfully",
        data=AnalyticsData(analytics=analytics),
    )


@router.get("/{signal_id}")
async def get_signal(
    signal_id: UUID,
    signals: SignalService = Depends(get_signal_service),
) -> ApiResponse[SignalData]:
    """Get one signal by id (cached)."""
    signal, cached = await signals.get_signal(signal_id)
    message = "Signal retrieved successfully"
    return ApiResponse[SignalData](
        message=f"{message} (cached)" if cached else message,
        data=SignalData(signal=signal),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_signal(
    body: SignalCreate,
    admin: User = Depends(require_admin),
    signals: SignalService = Depends(get_signal_service),
) -> ApiResponse[SignalData]:
    """Publish a new signal (admin only)."""
    signal = await signals.create_signal(body, admin.id)
    return ApiResponse[SignalData](
        message="Signal created successfully",
        data=SignalData(signal=signal),
    )


@router.put("/{signal_id}")
async def update_signal(
    signal_id: UUID,
    body: SignalUpdate,
    admin: User = Depends(require_admin),
    signals: SignalService = Depends(get_signal_service),
) -> ApiResponse[SignalData]:
    """Update a signal (admin only)."""
    signal = await signals.update_signal(signal_id, body)
    return ApiResponse[SignalData](
        message="Signal updated successfully",
        data=SignalData(signal=signal),
    )


@router.delete("/{signal_id}")
async def delete_signal(
    signal_id: UUID,
    admin: User = Depends(require_admin),
    signals: SignalService = Depends(get_signal_service),
) -> ApiResponse[None]:
    """Delete a signal (admin only)."""
    await signals.delete_signal(signal_id)
    return ApiResponse[None](message="Signal deleted successfully")
