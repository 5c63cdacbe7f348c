"""Provider interface plus the normalized shape of one model turn."""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    OTHER = "other"


_FINISH_REASONS = {
    "stop": StopReason.END_TURN,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
}


@dataclass(frozen=True)
class ToolCall:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class ModelTurn:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool arguments are not valid JSON: %s", raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def normalize_completion(resp: Any) -> ModelTurn:
    """Map an OpenAI-style chat completion onto a ModelTurn."""
    if not getattr(resp, "choices", None):
        return ModelTurn(stop_reason=StopReason.OTHER)
    choice = resp.choices[0]
    msg = choice.message
    calls = [
        ToolCall(
            id=tc.id,
            name=tc.function.name,
            arguments=_parse_arguments(tc.function.arguments),
            raw_arguments=tc.function.arguments or "",
        )
        for tc in (getattr(msg, "tool_calls", None) or [])
    ]
    stop = _FINISH_REASONS.get(choice.finish_reason or "", StopReason.OTHER)
    # Some OSS endpoints report "stop" while still returning tool calls.
    if calls and stop == StopReason.END_TURN:
        stop = StopReason.TOOL_USE
    return ModelTurn(text=(msg.content or "").strip(), tool_calls=calls, stop_reason=stop)


@runtime_checkable
class LLMProvider(Protocol):
    """Interface for an OpenAI-compatible LLM backend."""

    name: str

    def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> str:
        """Return the assistant reply text. Raises on failure (timeout, 5xx, 429)."""
        ...

    def tool_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> ModelTurn:
        ...

    def health_check(self) -> bool:
        ...
