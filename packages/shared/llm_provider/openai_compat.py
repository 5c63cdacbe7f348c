"""OpenAI-compatible provider: OpenAI itself or a self-hosted endpoint (Groq, vLLM, RunPod)."""

import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .provider import ModelTurn, normalize_completion

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    def __init__(
        self,
        name: str,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        timeout_sec: int = 30,
    ):
        self.name = name
        self.model = model
        self.timeout_sec = timeout_sec
        if base_url:
            base_url = base_url.rstrip("/")
            if not base_url.endswith("/v1"):
                base_url = f"{base_url}/v1"
        self.base_url = base_url
        self.api_key = api_key
        self._client: Any = None

    def get_client(self) -> OpenAI:
        if self._client is None:
            kwargs: Dict[str, Any] = {"api_key": self.api_key or "no-key", "max_retries": 0}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> str:
        resp = self.get_client().chat.completions.create(
            model=model or self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self.timeout_sec,
        )
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()

    def tool_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ModelTurn:
        resp = self.get_client().chat.completions.create(
            model=model or self.model,
            messages=messages,
            tools=[{"type": "function", "function": t} for t in tools],
            tool_choice="auto",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self.timeout_sec,
        )
        return normalize_completion(resp)

    def health_check(self) -> bool:
        try:
            self.get_client().models.list()
            return True
        except Exception as e:
            logger.debug("%s health_check failed: %s", self.name, e)
            return False
