"""
Discovery agent: one user message in, a stream of events out.

Admission → context → bounded tool-calling loop under a wall-clock timeout →
persistence → terminal event. Route actions applied before a timeout stay
applied.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Union

from packages.shared.errors import AdmissionDenied, LoopTimeout
from packages.shared.llm_provider import LLMProviderFacade, ToolCall
from packages.shared.rate_limit import RateLimiter

from context_builder import build_context
from prompts import GREETING_PROMPT, build_system_prompt
from route_state import RouteState
from search.cities import CityDataset

from .events import DEFAULT_CHANNEL_SIZE, EventChannel, EventType
from .loop import DEFAULT_HISTORY_WINDOW, DEFAULT_MAX_ITERATIONS, FALLBACK_RESPONSES, AgenticLoop
from .model import ToolCallingModel
from .tools import ToolExecutionContext, execute_tool
from .turns import turns_from_history

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 60.0
PREFERENCE_PERSIST_THRESHOLD = 0.6
GREETING_FALLBACK = "Hello! I'm Voyager, your travel companion. Tell me about the kind of trip you're dreaming of."


class DiscoveryAgent:
    def __init__(
        self,
        model: ToolCallingModel,
        store,
        rate_limiter: RateLimiter,
        dataset: CityDataset,
        search=None,
        geocoder=None,
        llm: Optional[LLMProviderFacade] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        channel_size: int = DEFAULT_CHANNEL_SIZE,
    ):
        self.model = model
        self.store = store
        self.rate_limiter = rate_limiter
        self.dataset = dataset
        self.search = search
        self.geocoder = geocoder
        self.llm = llm
        self.max_iterations = max_iterations
        self.history_window = history_window
        self.timeout_sec = timeout_sec
        self.channel_size = channel_size

    async def _store_call(self, op: str, *args, default=None, **kwargs):
        try:
            return await getattr(self.store, op)(*args, **kwargs)
        except Exception as e:
            logger.warning("Session store %s failed: %s", op, e)
            return default

    def handle_message(
        self,
        message: str,
        session_id: str,
        route: Union[RouteState, Dict[str, Any], None] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> EventChannel:
        """
        Start processing and return the event channel. Iterate it for events;
        the last one is ``complete`` or ``error``. Call ``aclose()`` if the
        consumer goes away early.
        """
        state = route if isinstance(route, RouteState) else RouteState.from_dict(route)
        channel = EventChannel(self.channel_size)
        channel.attach(asyncio.create_task(self._produce(channel, message, session_id, state, history)))
        return channel

    async def _produce(
        self,
        channel: EventChannel,
        message: str,
        session_id: str,
        route: RouteState,
        history: Optional[List[Dict[str, Any]]],
    ) -> None:
        try:
            await self._process(channel, message, session_id, route, history)
        except asyncio.CancelledError:
            logger.info("Message handling cancelled", extra={"session_id": session_id})
            raise
        except Exception as e:
            logger.exception("Discovery agent failed", extra={"session_id": session_id})
            await self._store_call("save_message", session_id, "assistant", FALLBACK_RESPONSES["generic"])
            await channel.send(
                EventType.ERROR,
                {"type": "generic", "message": FALLBACK_RESPONSES["generic"], "detail": type(e).__name__},
            )
        await channel.close()

    async def _process(
        self,
        channel: EventChannel,
        message: str,
        session_id: str,
        route: RouteState,
        history: Optional[List[Dict[str, Any]]],
    ) -> None:
        started = time.monotonic()
        emit = channel.send

        admission = self.rate_limiter.admit(session_id)
        if not admission.allowed:
            denied = AdmissionDenied(
                "Session rate limit exceeded", details={"retry_after_ms": admission.retry_after_ms}
            )
            logger.warning(
                denied.message,
                extra={"session_id": session_id, "context": {"error_code": denied.code, **denied.details}},
            )
            await emit(
                EventType.ERROR,
                {
                    "type": "rate_limited",
                    "message": FALLBACK_RESPONSES["rate_limited"],
                    "retry_after_ms": admission.retry_after_ms,
                },
            )
            return

        await emit(EventType.THINKING, {"text": "Processing your request..."})

        await self._store_call("get_or_create_session", session_id, route.to_dict())
        context = await build_context(self.store, session_id, route)
        system_prompt = build_system_prompt(context)
        turns = turns_from_history(history if history is not None else context["conversation"]["messages"])

        await self._store_call("save_message", session_id, "user", message)
        await self._store_call("increment_message_count", session_id)

        async def on_route_update(action: Dict[str, Any]) -> None:
            route.apply(action)
            await emit(EventType.ROUTE_ACTION, action)

        tool_ctx = ToolExecutionContext(
            session_id=session_id,
            route=route,
            dataset=self.dataset,
            on_route_update=on_route_update,
            store=self.store,
            search=self.search,
            geocoder=self.geocoder,
        )

        async def execute(call: ToolCall) -> Dict[str, Any]:
            return await execute_tool(call.name, call.arguments, tool_ctx)

        loop = AgenticLoop(
            self.model,
            execute,
            emit,
            max_iterations=self.max_iterations,
            history_window=self.history_window,
        )
        try:
            result = await asyncio.wait_for(loop.run(message, turns, system_prompt), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            timeout = LoopTimeout(
                f"Message handling exceeded {self.timeout_sec}s",
                details={"actions_applied": len(tool_ctx.actions)},
            )
            logger.warning(
                timeout.message,
                extra={"session_id": session_id, "context": {"error_code": timeout.code, **timeout.details}},
            )
            await self._store_call("save_message", session_id, "assistant", FALLBACK_RESPONSES["timeout"])
            await emit(
                EventType.ERROR,
                {"type": "timeout", "message": FALLBACK_RESPONSES["timeout"], "actions": list(tool_ctx.actions)},
            )
            return

        await self._store_call(
            "save_message", session_id, "assistant", result.response, result.tool_calls or None
        )
        preferences = context.get("preferences") or {}
        if (preferences.get("confidence") or 0) > PREFERENCE_PERSIST_THRESHOLD:
            await self._store_call("update_preferences", session_id, preferences)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Discovery message handled",
            extra={
                "session_id": session_id,
                "context": {
                    "iterations": result.iterations,
                    "tool_calls": len(result.tool_calls),
                    "duration_ms": duration_ms,
                    "exhausted": result.exhausted,
                },
            },
        )
        await emit(
            EventType.COMPLETE,
            {
                "response": result.response,
                "actions": list(tool_ctx.actions),
                "tool_calls": result.tool_calls,
                "iterations": result.iterations,
                "duration_ms": duration_ms,
                "exhausted": result.exhausted,
                "route": route.to_dict(),
            },
        )

    async def run_message(
        self,
        message: str,
        session_id: str,
        route: Union[RouteState, Dict[str, Any], None] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Non-streaming variant: drain the event stream into one result."""
        out: Dict[str, Any] = {
            "response": "",
            "actions": [],
            "tool_calls": [],
            "iterations": 0,
            "events": [],
        }
        channel = self.handle_message(message, session_id, route, history)
        try:
            async for event in channel:
                out["events"].append(event.type.value)
                if event.type == EventType.COMPLETE:
                    out.update(event.data)
                elif event.type == EventType.ERROR:
                    out["response"] = event.data.get("message", FALLBACK_RESPONSES["generic"])
                    out["error"] = event.data.get("type")
                    out["actions"] = event.data.get("actions") or []
                    if "retry_after_ms" in event.data:
                        out["retry_after_ms"] = event.data["retry_after_ms"]
        finally:
            await channel.aclose()
        return out

    async def generate_greeting(
        self, session_id: str, route: Union[RouteState, Dict[str, Any], None] = None
    ) -> Dict[str, Any]:
        state = route if isinstance(route, RouteState) else RouteState.from_dict(route)
        if self.llm is None or not self.llm.configured:
            return {"message": GREETING_FALLBACK, "type": "greeting", "fallback": True}

        context = await build_context(self.store, session_id, state)
        stops = context["route"]["selected_cities"]
        trip = context["trip"]
        if stops:
            situation = (
                f"Welcome them back: they already have {len(stops)} stops planned. "
                "Mention you can help refine the route."
            )
        else:
            situation = (
                f"They're planning a road trip from {trip.get('origin') or 'their starting point'} "
                f"to {trip.get('destination') or 'their destination'}. Ask what kind of experience "
                "they're hoping for: relaxed, cultural, foodie adventures."
            )
        messages = [
            {"role": "system", "content": build_system_prompt(context)},
            {"role": "user", "content": GREETING_PROMPT.format(situation=situation)},
        ]
        try:
            text = await asyncio.to_thread(
                lambda: self.llm.chat_completion(messages, temperature=0.7, max_tokens=200)
            )
        except Exception as e:
            logger.warning("Greeting generation failed: %s", e, extra={"session_id": session_id})
            return {"message": GREETING_FALLBACK, "type": "greeting", "fallback": True}
        return {"message": (text or "").strip() or GREETING_FALLBACK, "type": "greeting"}

    async def get_conversation_history(self, session_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        messages = await self._store_call("get_messages", session_id, limit=limit, default=[])
        return [{"role": m.get("role"), "content": m.get("content")} for m in messages][-limit:]
