"""Facade: try the primary provider, fall back on failure, timeout or 429."""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .config import get_llm_provider_config
from .openai_compat import OpenAICompatibleProvider
from .provider import ModelTurn

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NoProviderConfigured(RuntimeError):
    pass


def _is_rate_limited(e: Exception) -> bool:
    return getattr(e, "status_code", None) == 429 or "429" in str(e) or "rate" in str(e).lower()


class LLMProviderFacade:
    """
    Single entry point for text and tool-calling completions.

    The primary gets LLM_MAX_RETRIES extra attempts unless it answers 429, in
    which case we go straight to the fallback.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._config = config or get_llm_provider_config()
        self._primary = self._build_provider(self._config["LLM_PRIMARY"])
        self._fallback = None
        if self._config.get("LLM_FALLBACK") and self._config["LLM_FALLBACK"] != self._config["LLM_PRIMARY"]:
            self._fallback = self._build_provider(self._config["LLM_FALLBACK"])
        if not self._primary and self._fallback:
            self._primary, self._fallback = self._fallback, None
        if not self._primary and self._config.get("OPENAI_API_KEY"):
            self._primary = self._build_provider("openai")
        self._max_retries = self._config.get("LLM_MAX_RETRIES", 1)

    def _build_provider(self, kind: str) -> Optional[OpenAICompatibleProvider]:
        timeout = self._config.get("LLM_TIMEOUT_SEC", 30)
        if kind == "oss":
            endpoint = self._config.get("OSS_ENDPOINT")
            if not endpoint:
                return None
            return OpenAICompatibleProvider(
                name="oss",
                api_key=self._config.get("OSS_API_KEY"),
                model=self._config.get("OSS_MODEL") or "openai/gpt-oss-20b",
                base_url=endpoint,
                timeout_sec=timeout,
            )
        if kind == "openai":
            key = self._config.get("OPENAI_API_KEY")
            if not key:
                return None
            return OpenAICompatibleProvider(
                name="openai",
                api_key=key,
                model=self._config.get("OPENAI_MODEL") or "gpt-4o",
                timeout_sec=timeout,
            )
        return None

    @property
    def configured(self) -> bool:
        return self._primary is not None

    def _with_fallback(self, call: Callable[[OpenAICompatibleProvider], T]) -> T:
        last_error: Optional[Exception] = None
        if self._primary:
            for attempt in range(self._max_retries + 1):
                try:
                    return call(self._primary)
                except Exception as e:
                    last_error = e
                    if _is_rate_limited(e) or attempt >= self._max_retries:
                        logger.info("Primary LLM %s failed (%s), trying fallback", self._primary.name, e)
                        break

        if self._fallback:
            try:
                return call(self._fallback)
            except Exception as e:
                logger.warning("Fallback LLM %s also failed: %s", self._fallback.name, e)
                last_error = e

        if last_error:
            raise last_error
        raise NoProviderConfigured("No LLM provider configured (set OSS_ENDPOINT or OPENAI_API_KEY)")

    def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> str:
        return self._with_fallback(
            lambda p: p.chat_completion(messages, model=model, temperature=temperature, max_tokens=max_tokens)
        )

    def tool_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ModelTurn:
        return self._with_fallback(
            lambda p: p.tool_completion(
                messages, tools, model=model, temperature=temperature, max_tokens=max_tokens
            )
        )

    def health_check(self) -> Dict[str, bool]:
        out = {"primary": False, "fallback": False}
        if self._primary:
            out["primary"] = self._primary.health_check()
        if self._fallback:
            out["fallback"] = self._fallback.health_check()
        return out


def get_llm_provider(config: Optional[Dict[str, Any]] = None) -> LLMProviderFacade:
    return LLMProviderFacade(config=config)
