"""Agentic layer: tool registry, bounded tool-calling loop, streaming agent."""

from .agent import DiscoveryAgent
from .loop import AgenticLoop, LoopResult
from .tools import TOOL_DEFS, ToolName, execute_tool

__all__ = [
    "AgenticLoop",
    "DiscoveryAgent",
    "LoopResult",
    "TOOL_DEFS",
    "ToolName",
    "execute_tool",
]
