"""Generic response models for consistent API responses."""

from datetime import datetime, timezone
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SuccessResponse(BaseModel, Generic[T]):
    """Generic success response with data and a timestamp."""

    success: bool = Field(default=True)
    message: str = Field(default="Operation completed successfully")
    data: T
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "message": "Operation completed successfully",
                "data": {},
                "timestamp": "2025-11-03T15:58:36Z",
            }
        }
    }


class FieldError(BaseModel):
    """One failed input constraint."""

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response structure."""

    success: bool = Field(default=False)
    error: str
    detail: Optional[str] = None
    errors: Optional[List[FieldError]] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Validation failed",
                "detail": "One or more fields are invalid",
                "errors": [{"field": "reason", "message": "String should have at least 10 characters"}],
                "timestamp": "2025-11-03T15:58:36Z",
            }
        }
    }


class PaginationMeta(BaseModel):
    """Pagination metadata, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int = Field(ge=1, description="Current page number")
    limit: int = Field(ge=1, description="Items per page")
    total: int = Field(ge=0, description="Total number of items")
    total_pages: int = Field(ge=0, description="Total number of pages")
    has_next: bool = Field(description="Whether there is a next page")
    has_prev: bool = Field(description="Whether there is a previous page")


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated response with data and pagination metadata."""

    success: bool = Field(default=True)
    message: str = Field(default="Items retrieved successfully")
    data: List[T]
    pagination: PaginationMeta
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "message": "Items retrieved successfully",
                "data": [],
                "pagination": {
                    "page": 1,
                    "limit": 10,
                    "total": 100,
                    "totalPages": 10,
                    "hasNext": True,
                    "hasPrev": False,
                },
                "timestamp": "2025-11-03T15:58:36Z",
            }
        }
    }


def build_pagination(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = (total + limit - 1) // limit if total > 0 else 0
    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


# Helper functions to create responses
def success_response(
    data: T,
    message: str = "Operation completed successfully",
) -> SuccessResponse[T]:
    """Create a success response."""
    return SuccessResponse(success=True, message=message, data=data)


def error_response(
    error: str,
    detail: Optional[str] = None,
    errors: Optional[List[FieldError]] = None,
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(success=False, error=error, detail=detail, errors=errors)


def paginated_response(
    data: List[T],
    page: int,
    limit: int,
    total: int,
    message: str = "Items retrieved successfully",
) -> PaginatedResponse[T]:
    """Create a paginated response."""
    return PaginatedResponse(
        success=True,
        message=message,
        data=data,
        pagination=build_pagination(page, limit, total),
    )
