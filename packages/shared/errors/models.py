"""Error response models returned by every discovery endpoint."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Structured error details for API responses."""

    code: str = Field(..., description="Error code in format DSC_NUMBER")
    message: str = Field(..., description="Human-readable error message")
    category: str = Field(
        ...,
        description="Error category: transient, permanent, degraded, system",
    )
    details: Optional[dict[str, Any]] = Field(
        default=None,
        description="Additional context (session_id, retry_after, etc.)",
    )
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        description="Error timestamp in ISO 8601",
    )


class ErrorResponse(BaseModel):
    """Standardized error response schema."""

    error: ErrorDetail
    fallback_message: Optional[str] = Field(
        default=None,
        description="User-facing message to show instead of the raw error",
    )


def create_error_response(
    code: str,
    message: str,
    category: str = "system",
    details: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
    fallback_message: Optional[str] = None,
) -> ErrorResponse:
    """Create standardized error response."""
    error_detail = ErrorDetail(
        code=code,
        message=message,
        category=category,
        details=details,
        request_id=request_id,
    )
    return ErrorResponse(error=error_detail, fallback_message=fallback_message)
