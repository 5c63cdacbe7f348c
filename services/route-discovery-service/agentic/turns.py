"""Conversation turns exchanged between the loop, the model and the session store."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

from packages.shared.llm_provider import ToolCall


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    name: str
    output: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return "error" in self.output


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Tuple[ToolCall, ...] = ()) -> "ConversationTurn":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls)


def turns_from_history(history: List[Dict[str, Any]]) -> List[ConversationTurn]:
    """Stored {role, content} rows → user/assistant turns. Other roles and empty rows are skipped."""
    turns = []
    for row in history or []:
        role = row.get("role")
        content = row.get("content")
        if role in (Role.USER.value, Role.ASSISTANT.value) and isinstance(content, str) and content:
            turns.append(ConversationTurn(role=Role(role), content=content))
    return turns
