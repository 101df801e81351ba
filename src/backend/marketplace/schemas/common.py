"""
Common schemas used across the API.
"""

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from marketplace.services.deadlines import DeadlineStatus, DeadlineUrgency


T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: list[T]
    total: int = Field(description="Total number of items")
    page: int = Field(description="Current page number")
    page_size: int = Field(description="Items per page")
    total_pages: int = Field(description="Total number of pages")
    has_next: bool = Field(description="Whether there is a next page")
    has_previous: bool = Field(description="Whether there is a previous page")

    @classmethod
    def create(
        cls,
        items: list[T],
        total: int,
        page: int,
        page_size: int,
    ) -> "PaginatedResponse[T]":
        """Create a paginated response."""
        total_pages = (total + page_size - 1) // page_size if page_size > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )


class DeadlineInfo(BaseModel):
    """Urgency of a deadline at response time."""

    urgency: DeadlineUrgency
    days_left: int | None = None
    is_urgent: bool
    is_expired: bool

    @classmethod
    def from_status(cls, status: DeadlineStatus) -> "DeadlineInfo":
        return cls(
            urgency=status.urgency,
            days_left=status.days_left,
            is_urgent=status.is_urgent,
            is_expired=status.is_expired,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str
    environment: str
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorDetail(BaseModel):
    """Error detail schema."""

    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str
    data: dict[str, Any] | None = None
