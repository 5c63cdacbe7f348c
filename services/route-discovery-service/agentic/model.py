"""Model adapter: renders turns and tools for an OpenAI-compatible tool-calling API."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from packages.shared.errors import GenerationFailed
from packages.shared.llm_provider import LLMProviderFacade, ModelTurn

from .turns import ConversationTurn, Role

logger = logging.getLogger(__name__)


class ToolCallingModel(Protocol):
    async def invoke(self, messages: List[Dict[str, Any]], tools: Sequence[Dict[str, Any]]) -> ModelTurn:
        """One model turn. Raises GenerationFailed on any provider error."""
        ...


def render_tools(tool_defs: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Tool contract → OpenAI function spec (the facade adds the {"type": "function"} wrapper)."""
    return [
        {"name": t["name"], "description": t["description"], "parameters": t["input_schema"]}
        for t in tool_defs
    ]


def render_turn(turn: ConversationTurn) -> List[Dict[str, Any]]:
    if turn.role == Role.TOOL:
        return [
            {
                "role": "tool",
                "tool_call_id": r.tool_call_id,
                "content": json.dumps(r.output, default=str),
            }
            for r in turn.tool_results
        ]
    if turn.role == Role.ASSISTANT and turn.tool_calls:
        return [
            {
                "role": "assistant",
                "content": turn.content or None,
                "tool_calls": [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.name, "arguments": json.dumps(c.arguments)},
                    }
                    for c in turn.tool_calls
                ],
            }
        ]
    return [{"role": turn.role.value, "content": turn.content}]


def render_messages(system_prompt: Optional[str], turns: Sequence[ConversationTurn]) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for turn in turns:
        messages.extend(render_turn(turn))
    return messages


class LLMToolModel:
    """Runs the sync facade in a worker thread so the event loop keeps streaming."""

    def __init__(self, llm: LLMProviderFacade, temperature: float = 0.7, max_tokens: int = 1024):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def invoke(self, messages: List[Dict[str, Any]], tools: Sequence[Dict[str, Any]]) -> ModelTurn:
        try:
            return await asyncio.to_thread(
                lambda: self.llm.tool_completion(
                    messages,
                    render_tools(tools),
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
            )
        except Exception as e:
            raise GenerationFailed(f"Model invocation failed: {e}", details={"cause": type(e).__name__}) from e
