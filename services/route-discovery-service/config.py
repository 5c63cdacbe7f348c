"""Configuration for the route discovery service."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_project_root = Path(__file__).resolve().parents[2]
load_dotenv(_project_root / ".env")


def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _int_env(key: str, default: int, low: int, high: int) -> int:
    try:
        return max(low, min(high, int(get_env(key) or default)))
    except ValueError:
        return default


def _float_env(key: str, default: float, low: float, high: float) -> float:
    try:
        return max(low, min(high, float(get_env(key) or default)))
    except ValueError:
        return default


class Settings:
    """Route discovery service settings."""

    # Admission control: per-session sliding window
    rate_limit_window_ms: int = _int_env("RATE_LIMIT_WINDOW_MS", 60_000, 1_000, 3_600_000)
    rate_limit_max_requests: int = _int_env("RATE_LIMIT_MAX_REQUESTS", 20, 1, 1_000)

    # Agentic loop
    max_iterations: int = _int_env("AGENT_MAX_ITERATIONS", 5, 1, 20)
    max_tokens: int = _int_env("AGENT_MAX_TOKENS", 1024, 128, 8192)
    message_timeout_sec: int = _int_env("AGENT_TIMEOUT_SEC", 60, 5, 600)
    history_window: int = _int_env("AGENT_HISTORY_WINDOW", 10, 0, 100)
    model_temperature: float = _float_env("AGENT_TEMPERATURE", 0.7, 0.0, 2.0)

    # Result cache
    cache_ttl_ms: int = _int_env("SEARCH_CACHE_TTL_MS", 24 * 60 * 60 * 1000, 1_000, 7 * 24 * 60 * 60 * 1000)
    cache_capacity: int = _int_env("SEARCH_CACHE_CAPACITY", 1000, 1, 100_000)
    source_timeout_sec: float = _float_env("SEARCH_SOURCE_TIMEOUT_SEC", 8.0, 0.5, 60.0)
    default_region: str = get_env("DEFAULT_REGION") or "Southern France and Northern Spain"

    # Proactive triggers
    trigger_retention_ms: int = _int_env("TRIGGER_RETENTION_MS", 60 * 60 * 1000, 60_000, 24 * 60 * 60 * 1000)

    # In-memory sessions idle longer than this are dropped by the sweep
    session_retention_ms: int = _int_env(
        "SESSION_RETENTION_MS", 24 * 60 * 60 * 1000, 60 * 60 * 1000, 30 * 24 * 60 * 60 * 1000
    )

    # Periodic sweep of rate-limit, cache, cooldown and session state
    sweep_interval_sec: int = _int_env("SESSION_SWEEP_INTERVAL_SEC", 300, 5, 3600)

    # External search (Perplexity, OpenAI-compatible chat completions)
    perplexity_api_key: str = get_env("PERPLEXITY_API_KEY") or ""
    perplexity_model: str = get_env("PERPLEXITY_MODEL") or "llama-3.1-sonar-small-128k-online"
    perplexity_url: str = (
        get_env("PERPLEXITY_URL") or "https://api.perplexity.ai/chat/completions"
    ).rstrip("/")
    perplexity_timeout_sec: float = _float_env("PERPLEXITY_TIMEOUT_SEC", 10.0, 1.0, 120.0)

    # Geocoding fallback for cities outside the curated dataset
    google_maps_api_key: str = get_env("GOOGLE_MAPS_API_KEY") or ""

    # Supabase (sessions, messages, actions, preferences)
    supabase_url: str = get_env("SUPABASE_URL") or ""
    supabase_key: str = get_env("SUPABASE_SERVICE_KEY") or get_env("SUPABASE_SECRET_KEY") or ""

    environment: str = get_env("ENVIRONMENT", "development")
    log_level: str = get_env("LOG_LEVEL", "INFO")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def external_search_configured(self) -> bool:
        return bool(self.perplexity_api_key)

    @property
    def geocoding_configured(self) -> bool:
        return bool(self.google_maps_api_key)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


settings = Settings()
