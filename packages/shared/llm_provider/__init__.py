"""
LLM abstraction: OpenAI-compatible primary (self-hosted or OpenAI) with optional fallback.
Used for narratives, greetings, suggestion copy and the tool-calling loop.
"""

from .config import get_llm_provider_config
from .facade import LLMProviderFacade, NoProviderConfigured, get_llm_provider
from .provider import ModelTurn, StopReason, ToolCall, normalize_completion

__all__ = [
    "get_llm_provider_config",
    "get_llm_provider",
    "LLMProviderFacade",
    "NoProviderConfigured",
    "ModelTurn",
    "StopReason",
    "ToolCall",
    "normalize_completion",
]
