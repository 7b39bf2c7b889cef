"""Models package exports."""

from signalhub.models.auth import (
    AuthData,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    TokenPayload,
    UpdateProfileRequest,
)
from signalhub.models.response import ApiResponse, ErrorBody, PaginatedResponse, Pagination
from signalhub.models.signal import (
    SignalCreate,
    SignalFilters,
    SignalStatus,
    SignalType,
    SignalUpdate,
    TradingSignal,
)
from signalhub.models.user import Role, User, UserProfile

__all__ = [
    "ApiResponse",
    "AuthData",
    "ErrorBody",
    "LoginRequest",
    "PaginatedResponse",
    "Pagination",
    "RefreshRequest",
    "RegisterRequest",
    "Role",
    "SignalCreate",
    "SignalFilters",
    "SignalStatus",
    "SignalType",
    "SignalUpdate",
    "TokenPair",
    "TokenPayload",
    "TradingSignal",
    "UpdateProfileRequest",
    "User",
    "UserProfile",
]
