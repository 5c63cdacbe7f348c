"""Bounded tool-calling loop: Planning → Executing → Reflecting → (Planning | Responding) → Done."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from packages.shared.errors import GenerationFailed, LoopExhausted
from packages.shared.llm_provider import StopReason, ToolCall

from .events import EventType
from .model import ToolCallingModel, render_messages
from .tools import MUTATING_TOOLS, TOOL_DEFS, resolve_tool
from .turns import ConversationTurn, Role, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5
DEFAULT_HISTORY_WINDOW = 10

FALLBACK_RESPONSES = {
    "rate_limited": "I'm getting a lot of requests right now. Give me a moment and try again.",
    "api_error": "I'm having trouble connecting to my knowledge sources. Let me try a simpler approach.",
    "timeout": "That's taking longer than expected. Let me give you what I have so far.",
    "tool_error": "I ran into an issue while searching. Let me try a different approach.",
    "generic": "I encountered an unexpected issue. Could you try rephrasing your question?",
}
MAX_ITERATIONS_RESPONSE = "I've been thinking about this for a while. Let me give you what I have so far."
ANOMALOUS_STOP_RESPONSE = "I encountered an issue. Could you try again?"

EmitFn = Callable[[EventType, Dict[str, Any]], Awaitable[None]]
ExecuteFn = Callable[[ToolCall], Awaitable[Dict[str, Any]]]


class LoopState(str, Enum):
    PLANNING = "planning"
    EXECUTING = "executing"
    REFLECTING = "reflecting"
    RESPONDING = "responding"
    DONE = "done"


@dataclass
class LoopResult:
    response: str
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    iterations: int = 0
    exhausted: bool = False
    failure: Optional[str] = None
    turns: List[ConversationTurn] = field(default_factory=list)


async def _no_emit(event_type: EventType, data: Dict[str, Any]) -> None:
    return None


class AgenticLoop:
    """
    Drives one user message to a final answer.

    The loop does no I/O of its own beyond calling the model, the tool
    executor and the event emitter it is given.
    """

    def __init__(
        self,
        model: ToolCallingModel,
        execute: ExecuteFn,
        emit: Optional[EmitFn] = None,
        tool_defs: Sequence[Dict[str, Any]] = TOOL_DEFS,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.model = model
        self.execute = execute
        self.emit = emit or _no_emit
        self.tool_defs = list(tool_defs)
        self.max_iterations = max_iterations
        self.history_window = history_window
        self.state = LoopState.PLANNING

    def _transition(self, state: LoopState) -> None:
        logger.debug("Loop %s -> %s", self.state.value, state.value)
        self.state = state

    async def _run_tool(self, call: ToolCall) -> ToolResult:
        try:
            output = await self.execute(call)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Tool executor raised for %s", call.name)
            output = {"error": str(e), "error_kind": "tool_execution_failed"}
        return ToolResult(tool_call_id=call.id, name=call.name, output=output)

    async def _complete_event(self, call: ToolCall, result: ToolResult) -> None:
        await self.emit(
            EventType.TOOL_COMPLETE,
            {"id": call.id, "name": call.name, "result": result.output, "error": result.is_error},
        )

    async def _execute_calls(self, calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Results come back in request order. Route-changing batches run one at a time."""
        if any(resolve_tool(c.name) in MUTATING_TOOLS for c in calls):
            results = []
            for call in calls:
                await self.emit(EventType.TOOL_START, {"id": call.id, "name": call.name, "input": call.arguments})
                result = await self._run_tool(call)
                await self._complete_event(call, result)
                results.append(result)
            return results

        for call in calls:
            await self.emit(EventType.TOOL_START, {"id": call.id, "name": call.name, "input": call.arguments})
        results = list(await asyncio.gather(*(self._run_tool(c) for c in calls)))
        for call, result in zip(calls, results):
            await self._complete_event(call, result)
        return results

    async def run(
        self,
        user_message: str,
        history: Sequence[ConversationTurn] = (),
        system_prompt: Optional[str] = None,
    ) -> LoopResult:
        self._transition(LoopState.PLANNING)
        window = list(history)[-self.history_window :] if self.history_window else []
        new_turns: List[ConversationTurn] = [ConversationTurn.user(user_message)]
        calls_made: List[Dict[str, Any]] = []

        for iteration in range(1, self.max_iterations + 1):
            messages = render_messages(system_prompt, [*window, *new_turns])
            try:
                turn = await self.model.invoke(messages, self.tool_defs)
            except GenerationFailed as e:
                logger.warning("Model call failed on iteration %d: %s", iteration, e.message)
                self._transition(LoopState.DONE)
                return LoopResult(
                    response=FALLBACK_RESPONSES["api_error"],
                    tool_calls=calls_made,
                    iterations=iteration,
                    failure="generation_failed",
                    turns=new_turns,
                )

            if turn.stop_reason == StopReason.END_TURN:
                self._transition(LoopState.RESPONDING)
                new_turns.append(ConversationTurn.assistant(turn.text))
                self._transition(LoopState.DONE)
                return LoopResult(
                    response=turn.text, tool_calls=calls_made, iterations=iteration, turns=new_turns
                )

            if turn.stop_reason != StopReason.TOOL_USE or not turn.tool_calls:
                logger.warning("Unexpected stop reason %s on iteration %d", turn.stop_reason.value, iteration)
                self._transition(LoopState.DONE)
                return LoopResult(
                    response=ANOMALOUS_STOP_RESPONSE,
                    tool_calls=calls_made,
                    iterations=iteration,
                    failure="anomalous_stop",
                    turns=new_turns,
                )

            self._transition(LoopState.EXECUTING)
            if turn.text:
                await self.emit(EventType.TEXT, {"text": turn.text})
            calls = list(turn.tool_calls)
            results = await self._execute_calls(calls)

            self._transition(LoopState.REFLECTING)
            for call, result in zip(calls, results):
                calls_made.append(
                    {"id": call.id, "name": call.name, "input": call.arguments, "result": result.output}
                )
            new_turns.append(ConversationTurn.assistant(turn.text, tuple(calls)))
            new_turns.append(ConversationTurn(role=Role.TOOL, tool_results=tuple(results)))
            self._transition(LoopState.PLANNING)

        exhausted = LoopExhausted(
            "Loop reached max iterations without a final answer",
            details={"max_iterations": self.max_iterations, "tool_calls": len(calls_made)},
        )
        logger.warning(exhausted.message, extra={"context": {"error_code": exhausted.code, **exhausted.details}})
        self._transition(LoopState.DONE)
        return LoopResult(
            response=MAX_ITERATIONS_RESPONSE,
            tool_calls=calls_made,
            iterations=self.max_iterations,
            exhausted=True,
            turns=new_turns,
        )
