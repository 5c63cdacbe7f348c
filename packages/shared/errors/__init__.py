"""Standardized error handling for the discovery service."""

from .models import (
    ErrorDetail,
    ErrorResponse,
    create_error_response,
)
from .exceptions import (
    DiscoveryException,
    AdmissionDenied,
    ClassificationDegraded,
    SourceUnavailable,
    ToolUnknown,
    ToolExecutionFailed,
    LoopTimeout,
    LoopExhausted,
    GenerationFailed,
    ValidationError,
    NotFoundError,
)

__all__ = [
    "ErrorDetail",
    "ErrorResponse",
    "create_error_response",
    "DiscoveryException",
    "AdmissionDenied",
    "ClassificationDegraded",
    "SourceUnavailable",
    "ToolUnknown",
    "ToolExecutionFailed",
    "LoopTimeout",
    "LoopExhausted",
    "GenerationFailed",
    "ValidationError",
    "NotFoundError",
]
