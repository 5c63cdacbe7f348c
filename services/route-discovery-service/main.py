"""Route Discovery Service - conversational city discovery and route editing."""

import sys
from contextlib import asynccontextmanager
from pathlib import Path

_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(_root))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from packages.shared.errors import DiscoveryException
from packages.shared.errors.middleware import (
    request_id_middleware,
    discovery_exception_handler,
    generic_exception_handler,
)
from packages.shared.monitoring import HealthChecker, configure_logging, health_router
from packages.shared.monitoring.health import DependencyCheck, DependencyStatus

from config import settings
from api.discovery import router as discovery_router
from db import check_supabase_connection
from runtime import build_runtime

SERVICE_NAME = "route-discovery-service"
VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(SERVICE_NAME, level=settings.log_level, json_format=settings.is_production)
    if getattr(app.state, "runtime", None) is None:
        app.state.runtime = build_runtime(settings)
    app.state.runtime.clock.start()
    try:
        yield
    finally:
        await app.state.runtime.clock.stop()


app = FastAPI(
    title="Route Discovery Service",
    description="Voyager: intent-routed city search, tool-calling route agent, proactive suggestions.",
    version=VERSION,
    lifespan=lifespan,
)

app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(DiscoveryException, discovery_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.include_router(discovery_router)

health_checker = HealthChecker(SERVICE_NAME, VERSION)


async def check_llm() -> DependencyCheck:
    """LLM provider configured (narratives and the agent loop degrade to fallbacks without it)."""
    runtime = getattr(app.state, "runtime", None)
    llm = runtime.llm if runtime else None
    if llm is None or not llm.configured:
        return DependencyCheck(name="llm", status=DependencyStatus.DEGRADED, message="Not configured")
    return DependencyCheck(name="llm", status=DependencyStatus.HEALTHY, message="Configured")


async def check_supabase() -> DependencyCheck:
    """Check Supabase connectivity when configured; in-memory sessions otherwise."""
    if not settings.supabase_configured:
        return DependencyCheck(name="supabase", status=DependencyStatus.DEGRADED, message="In-memory sessions")
    ok = await check_supabase_connection()
    return DependencyCheck(
        name="supabase",
        status=DependencyStatus.HEALTHY if ok else DependencyStatus.UNHEALTHY,
        message="Connected" if ok else "Connection failed",
    )


async def check_external_search() -> DependencyCheck:
    if not settings.external_search_configured:
        return DependencyCheck(
            name="external_search", status=DependencyStatus.DEGRADED, message="Curated and geographic sources only"
        )
    return DependencyCheck(name="external_search", status=DependencyStatus.HEALTHY, message="Configured")


health_checker.add_check("llm", check_llm)
health_checker.add_check("supabase", check_supabase)
health_checker.add_check("external_search", check_external_search)
app.include_router(health_router(health_checker))


@app.get("/")
async def root():
    """Service info."""
    return {
        "service": SERVICE_NAME,
        "description": "Conversational route discovery (Voyager)",
        "version": VERSION,
        "endpoints": {
            "chat": "POST /api/v1/discovery/chat",
            "chat_sync": "POST /api/v1/discovery/chat/sync",
            "greeting": "POST /api/v1/discovery/greeting",
            "search": "POST /api/v1/discovery/search",
            "proactive": "POST /api/v1/discovery/proactive",
            "dismiss": "POST /api/v1/discovery/trigger/dismiss",
            "infer_preferences": "POST /api/v1/discovery/preferences/infer",
            "history": "GET /api/v1/discovery/history/{session_id}",
            "action": "POST /api/v1/discovery/action",
            "health": "GET /health",
            "ready": "GET /ready",
        },
    }
