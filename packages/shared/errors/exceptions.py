"""Discovery error taxonomy. Each kind carries a stable code and category."""

from typing import Any, Optional


class DiscoveryException(Exception):
    """Base exception for the route discovery core."""

    code = "DSC_000"
    category = "system"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        category: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or type(self).code
        self.category = category or type(self).category
        self.details = details or {}
        super().__init__(message)


class AdmissionDenied(DiscoveryException):
    """Session exceeded its sliding-window request quota - 429."""

    code = "DSC_429"
    category = "transient"


class ClassificationDegraded(DiscoveryException):
    """Intent classification fell back to the general intent."""

    code = "DSC_101"
    category = "degraded"


class SourceUnavailable(DiscoveryException):
    """One search source failed; results come from the remaining sources."""

    code = "DSC_102"
    category = "degraded"


class ToolUnknown(DiscoveryException):
    """Model asked for a tool that is not in the registry."""

    code = "DSC_201"
    category = "permanent"


class ToolExecutionFailed(DiscoveryException):
    """A tool handler raised while executing."""

    code = "DSC_202"
    category = "transient"


class LoopTimeout(DiscoveryException):
    """handle_message exceeded its wall-clock timeout."""

    code = "DSC_504"
    category = "transient"


class LoopExhausted(DiscoveryException):
    """Agentic loop reached max iterations without a final answer."""

    code = "DSC_301"
    category = "degraded"


class GenerationFailed(DiscoveryException):
    """Model invocation failed (timeout, 5xx, 429, no provider)."""

    code = "DSC_302"
    category = "transient"


class ValidationError(DiscoveryException):
    """Request validation failures - 400 Bad Request."""

    code = "DSC_400"
    category = "permanent"


class NotFoundError(DiscoveryException):
    """Resource not found - 404."""

    code = "DSC_404"
    category = "permanent"
