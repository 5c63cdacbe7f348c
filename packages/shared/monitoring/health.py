"""Liveness and readiness probes."""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from fastapi import APIRouter
from pydantic import BaseModel


class DependencyStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"


class DependencyCheck(BaseModel):
    name: str
    status: DependencyStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "unhealthy" | "degraded"
    service: str
    version: str
    uptime_sec: float
    dependencies: Optional[List[DependencyCheck]] = None


CheckFn = Callable[[], Awaitable[DependencyCheck]]


class HealthChecker:
    """Registers async dependency checks and folds them into one readiness status."""

    def __init__(self, service_name: str, version: str = "0.1.0", check_timeout_sec: float = 5.0):
        self.service_name = service_name
        self.version = version
        self.check_timeout_sec = check_timeout_sec
        self._started = time.monotonic()
        self._checks: List[Tuple[str, CheckFn]] = []

    def add_check(self, name: str, check: CheckFn) -> None:
        self._checks.append((name, check))

    async def _run_check(self, name: str, check_fn: CheckFn) -> DependencyCheck:
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(check_fn(), timeout=self.check_timeout_sec)
        except asyncio.TimeoutError:
            return DependencyCheck(
                name=name,
                status=DependencyStatus.UNHEALTHY,
                message=f"check timed out after {self.check_timeout_sec}s",
            )
        except Exception as e:
            return DependencyCheck(name=name, status=DependencyStatus.UNHEALTHY, message=str(e))
        if result.latency_ms is None:
            result.latency_ms = round((time.monotonic() - start) * 1000, 1)
        return result

    async def check_dependencies(self) -> List[DependencyCheck]:
        return list(
            await asyncio.gather(*(self._run_check(name, fn) for name, fn in self._checks))
        )

    async def readiness(self) -> HealthResponse:
        dependencies = await self.check_dependencies()
        statuses = {d.status for d in dependencies}
        if DependencyStatus.UNHEALTHY in statuses:
            overall = "unhealthy"
        elif statuses <= {DependencyStatus.HEALTHY}:
            overall = "healthy"
        else:
            overall = "degraded"
        return HealthResponse(
            status=overall,
            service=self.service_name,
            version=self.version,
            uptime_sec=round(time.monotonic() - self._started, 1),
            dependencies=dependencies,
        )


def health_router(health_checker: HealthChecker) -> APIRouter:
    """Router exposing /health (liveness) and /ready (dependency readiness)."""
    router = APIRouter(tags=["Health"])

    @router.get("/health")
    async def health():
        return {
            "status": "healthy",
            "service": health_checker.service_name,
            "version": health_checker.version,
        }

    @router.get("/ready", response_model=HealthResponse)
    async def ready():
        return await health_checker.readiness()

    return router
