"""Trading signal models."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field, computed_field, field_validator

from signalhub.models.base import CamelModel

DEFAULT_SIGNAL_LIFETIME = timedelta(days=7)


def _assume_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are read as UTC."""
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class SignalType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class SignalStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class SignalCreator(CamelModel):
    """Subset of the creating user embedded in each signal."""

    id: UUID
    name: Optional[str] = None
    email: Optional[str] = None


class TradingSignal(CamelModel):
    """A published trading signal."""

    id: UUID
    title: str
    description: Optional[str] = None
    signal_type: SignalType
    cryptocurrency: str
    target_price: float
    confidence: int
    status: SignalStatus = SignalStatus.ACTIVE
    created_by: SignalCreator
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    expires_utc = field_validator("expires_at")(_assume_utc)

    @computed_field
    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) > self.expires_at

    @computed_field
    @property
    def time_to_expiry(self) -> Optional[int]:
        """Seconds until expiry, floored at zero."""
        if self.expires_at is None:
            return None
        remaining = (self.expires_at - datetime.now(timezone.utc)).total_seconds()
        return max(int(remaining), 0)


class SignalCreate(CamelModel):
    """Admin request to publish a signal."""

    title: str = Field(..., min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    signal_type: SignalType
    cryptocurrency: str = Field(..., min_length=2, max_length=50)
    target_price: float = Field(..., ge=0)
    confidence: int = Field(..., ge=1, le=100)
    expires_at: Optional[datetime] = None

    @field_validator("title", "cryptocurrency", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    expires_utc = field_validator("expires_at")(_assume_utc)


class SignalUpdate(CamelModel):
    """Partial update; only provided fields change."""

    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    signal_type: Optional[SignalType] = None
    cryptocurrency: Optional[str] = Field(default=None, min_length=2, max_length=50)
    target_price: Optional[float] = Field(default=None, ge=0)
    confidence: Optional[int] = Field(default=None, ge=1, le=100)
    status: Optional[SignalStatus] = None
    expires_at: Optional[datetime] = None

    @field_validator("title", "cryptocurrency", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    expires_utc = field_validator("expires_at")(_assume_utc)


class SignalFilters(CamelModel):
    """List query: pagination, filters and sort."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    signal_type: Optional[SignalType] = None
    cryptocurrency: Optional[str] = Field(default=None, max_length=50)
    min_confidence: Optional[int] = Field(default=None, ge=1, le=100)
    status: SignalStatus = SignalStatus.ACTIVE
    sort_by: Literal["createdAt", "confidence", "targetPrice"] = "createdAt"
    order: Literal["asc", "desc"] = "desc"


class TypeBreakdown(CamelModel):
    signal_type: SignalType
    count: int
    avg_confidence: float


class CryptoBreakdown(CamelModel):
    cryptocurrency: str
    count: int
    avg_confidence: float


class SignalAnalytics(CamelModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    avg_confidence: int = 0
    by_type: list[TypeBreakdown] = Field(default_factory=list)
    top_cryptocurrencies: list[CryptoBreakdown] = Field(default_factory=list)
    high_confidence_count: int = 0


class SignalData(CamelModel):
    signal: TradingSignal


class AnalyticsData(CamelModel):
    analytics: SignalAnalytics
