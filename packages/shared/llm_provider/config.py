"""LLM provider settings read from the environment."""

import os
from typing import Any, Dict


def _bounded_int(key: str, default: int, low: int, high: int) -> int:
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        return max(low, min(high, int(raw)))
    except ValueError:
        return default


def get_llm_provider_config() -> Dict[str, Any]:
    """
    - LLM_PRIMARY: "oss" | "openai" (default "oss" when OSS_ENDPOINT is set)
    - LLM_FALLBACK: "openai" | "oss" | ""
    - OSS_ENDPOINT / OSS_API_KEY / OSS_MODEL: self-hosted OpenAI-compatible endpoint
    - OPENAI_API_KEY / OPENAI_MODEL
    - LLM_TIMEOUT_SEC: per-request timeout, clamped to 5..120 (default 30)
    - LLM_MAX_RETRIES: primary retries before fallback, clamped to 0..3 (default 1)
    """
    primary = (os.getenv("LLM_PRIMARY") or "").strip().lower()
    fallback = (os.getenv("LLM_FALLBACK") or "").strip().lower()
    oss_endpoint = (os.getenv("OSS_ENDPOINT") or "").strip().rstrip("/")

    if primary not in ("oss", "openai"):
        primary = "oss" if oss_endpoint else "openai"
    if fallback not in ("oss", "openai"):
        fallback = ""

    return {
        "LLM_PRIMARY": primary,
        "LLM_FALLBACK": fallback or None,
        "OSS_ENDPOINT": oss_endpoint or None,
        "OSS_API_KEY": (os.getenv("OSS_API_KEY") or "").strip() or None,
        "OSS_MODEL": (os.getenv("OSS_MODEL") or "openai/gpt-oss-20b").strip(),
        "OPENAI_API_KEY": (os.getenv("OPENAI_API_KEY") or "").strip() or None,
        "OPENAI_MODEL": (os.getenv("OPENAI_MODEL") or "gpt-4o").strip(),
        "LLM_TIMEOUT_SEC": _bounded_int("LLM_TIMEOUT_SEC", 30, 5, 120),
        "LLM_MAX_RETRIES": _bounded_int("LLM_MAX_RETRIES", 1, 0, 3),
    }
