"""Health probes and structured logging."""

from .health import HealthChecker, DependencyCheck, DependencyStatus, health_router
from .logging import StructuredFormatter, configure_logging

__all__ = [
    "HealthChecker",
    "DependencyCheck",
    "DependencyStatus",
    "health_router",
    "StructuredFormatter",
    "configure_logging",
]
