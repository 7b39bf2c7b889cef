"""Standard response envelope shared by every endpoint."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import Field

from signalhub.models.base import CamelModel

T = TypeVar("T")


class ErrorBody(CamelModel):
    """Machine-readable error detail.

    Attributes:
        code: Stable error code (e.g. TOKEN_EXPIRED)
        details: Extra context; omitted in production for server errors
    """

    code: str
    details: Any = None


class ApiResponse(CamelModel, Generic[T]):
    """Envelope: ``{success, message, data, error}``."""

    success: bool = True
    message: str = "Success"
    data: Optional[T] = None
    error: Optional[ErrorBody] = None


class Pagination(CamelModel):
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class PaginatedResponse(CamelModel, Generic[T]):
    success: bool = True
    message: str = "Success"
    data: list[T] = Field(default_factory=list)
    pagination: Pagination
    error: Optional[ErrorBody] = None
