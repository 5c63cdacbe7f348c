"""Discovery endpoints - streaming chat with Voyager, city search, proactive suggestions."""

import asyncio
import re
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from packages.shared.errors import AdmissionDenied, ValidationError
from packages.shared.utils.api_response import discovery_response, request_id_from_request

from agentic.events import EventChannel
from agentic.loop import FALLBACK_RESPONSES
from route_state import RouteState
from runtime import DiscoveryRuntime

router = APIRouter(prefix="/api/v1/discovery", tags=["Discovery"])

HEARTBEAT_INTERVAL_SEC = 15.0
MAX_MESSAGE_LEN = 4000


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_CamelModel):
    """Request body for chat (natural language)."""

    message: Optional[str] = Field(None, max_length=MAX_MESSAGE_LEN, description="User message")
    session_id: Optional[str] = Field(None, alias="sessionId", description="Session id; generated when omitted")
    route_data: Optional[Dict[str, Any]] = Field(
        None, alias="routeData", description="Current route: {origin, destination, waypoints[]}"
    )
    conversation_history: Optional[List[Dict[str, Any]]] = Field(
        None, alias="conversationHistory", description="Prior turns [{role, content}]; stored history when omitted"
    )


class GreetingRequest(_CamelModel):
    session_id: Optional[str] = Field(None, alias="sessionId")
    route_data: Optional[Dict[str, Any]] = Field(None, alias="routeData")


class SearchRequestBody(_CamelModel):
    query: str = Field(..., min_length=1, max_length=500)
    intent: Optional[str] = Field(None, description="Skip classification and use this intent")
    region: Optional[str] = None
    near_city: Optional[str] = Field(None, alias="nearCity")
    max_distance_km: Optional[float] = Field(None, alias="maxDistanceKm", gt=0, le=2000)
    exclude_cities: List[str] = Field(default_factory=list, alias="excludeCities")
    max_results: int = Field(5, alias="maxResults", ge=1, le=20)
    skip_cache: bool = Field(False, alias="skipCache")


class ProactiveRequest(_CamelModel):
    trigger: Optional[str] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict, alias="triggerData")
    session_id: Optional[str] = Field(None, alias="sessionId")
    route_data: Optional[Dict[str, Any]] = Field(None, alias="routeData")
    preferences: Optional[Dict[str, Any]] = None
    recent_actions: Optional[List[Dict[str, Any]]] = Field(None, alias="recentActions")


class DismissRequest(_CamelModel):
    suggestion_id: Optional[str] = Field(None, alias="suggestionId")
    session_id: Optional[str] = Field(None, alias="sessionId")


class InferRequest(_CamelModel):
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    route_data: Optional[Dict[str, Any]] = Field(None, alias="routeData")


class ActionRequest(_CamelModel):
    session_id: Optional[str] = Field(None, alias="sessionId")
    action_type: Optional[str] = Field(None, alias="actionType")
    data: Dict[str, Any] = Field(default_factory=dict)


def _runtime(request: Request) -> DiscoveryRuntime:
    return request.app.state.runtime


_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level camelCase keys → snake_case (cityName → city_name)."""
    return {_CAMEL.sub("_", k).lower(): v for k, v in (data or {}).items()}


def _normalize_action(action: Dict[str, Any]) -> Dict[str, Any]:
    out = snake_keys(action)
    if "action_type" not in out and "type" in out:
        out["action_type"] = out["type"]
    data = out.get("data")
    out["data"] = snake_keys(data) if isinstance(data, dict) else {}
    return out


async def _sse_events(channel: EventChannel, heartbeat_sec: float = HEARTBEAT_INTERVAL_SEC):
    """Async generator yielding SSE frames, with heartbeat comments while the agent works."""
    try:
        while True:
            try:
                event = await asyncio.wait_for(channel.get(), timeout=heartbeat_sec)
            except asyncio.TimeoutError:
                yield ": ping\n\n"
                continue
            if event is None:
                break
            yield event.to_sse()
    finally:
        await channel.aclose()


@router.post("/chat")
async def chat(request: Request, body: ChatRequest):
    """
    Streaming chat with Voyager.

    Emits thinking, text, tool_start, tool_complete, route_action events and
    ends with complete or error.
    """
    if not body.message or not body.message.strip():
        raise ValidationError("Message is required")
    session_id = body.session_id or str(uuid.uuid4())
    channel = _runtime(request).agent.handle_message(
        body.message.strip(), session_id, body.route_data, body.conversation_history
    )
    return StreamingResponse(
        _sse_events(channel),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Session-ID": session_id,
        },
    )


@router.post("/chat/sync")
async def chat_sync(request: Request, body: ChatRequest):
    """Non-streaming chat for simpler integrations."""
    if not body.message or not body.message.strip():
        raise ValidationError("Message is required")
    session_id = body.session_id or str(uuid.uuid4())
    result = await _runtime(request).agent.run_message(
        body.message.strip(), session_id, body.route_data, body.conversation_history
    )
    if result.get("error") == "rate_limited":
        raise AdmissionDenied(
            "Session rate limit exceeded",
            details={
                "fallback_message": FALLBACK_RESPONSES["rate_limited"],
                "retry_after": max(1, int((result.get("retry_after_ms") or 0) / 1000)),
            },
        )
    return discovery_response(
        {
            "response": result["response"],
            "actions": result.get("actions") or [],
            "tool_calls": result.get("tool_calls") or [],
            "iterations": result.get("iterations", 0),
            "exhausted": result.get("exhausted", False),
            "error": result.get("error"),
        },
        request_id=request_id_from_request(request),
        session_id=session_id,
    )


@router.post("/greeting")
async def greeting(request: Request, body: GreetingRequest):
    session_id = body.session_id or str(uuid.uuid4())
    result = await _runtime(request).agent.generate_greeting(session_id, body.route_data)
    return discovery_response(result, request_id=request_id_from_request(request), session_id=session_id)


@router.post("/search")
async def search(request: Request, body: SearchRequestBody):
    """Intent-routed multi-source city search with fused ranking."""
    result = await _runtime(request).search.search(
        body.query,
        intent=body.intent,
        region=body.region,
        near_city=body.near_city,
        max_distance_km=body.max_distance_km,
        exclude_cities=body.exclude_cities,
        max_results=body.max_results,
        skip_cache=body.skip_cache,
    )
    return discovery_response(
        result,
        request_id=request_id_from_request(request),
        summary=result["narrative"],
    )


@router.post("/proactive")
async def proactive(request: Request, body: ProactiveRequest):
    """Evaluate a trigger and, when it fires, return a suggestion."""
    if not body.trigger:
        raise ValidationError("Trigger is required")
    runtime = _runtime(request)
    session_id = body.session_id or str(uuid.uuid4())
    if body.recent_actions is not None:
        actions = [_normalize_action(a) for a in body.recent_actions]
    else:
        actions = await runtime.store.get_recent_actions(session_id, limit=20)
    context = {
        "session_id": session_id,
        "route": RouteState.from_dict(body.route_data).to_dict(),
        "preferences": body.preferences,
        "recent_actions": actions,
    }
    suggestion = await runtime.triggers.generate_suggestion(
        body.trigger, session_id, snake_keys(body.trigger_data), context
    )
    return discovery_response(
        suggestion,
        request_id=request_id_from_request(request),
        session_id=session_id,
    )


@router.post("/trigger/dismiss")
async def dismiss_trigger(request: Request, body: DismissRequest):
    if not body.suggestion_id or not body.session_id:
        raise ValidationError("suggestionId and sessionId required")
    _runtime(request).triggers.record_dismissal(body.suggestion_id, body.session_id)
    return discovery_response(
        {"dismissed": body.suggestion_id},
        request_id=request_id_from_request(request),
        session_id=body.session_id,
    )


@router.post("/preferences/infer")
async def infer_preferences(request: Request, body: InferRequest):
    triggers = _runtime(request).triggers
    actions = [_normalize_action(a) for a in body.actions]
    return discovery_response(
        {
            "preferences": triggers.infer_preferences(actions),
            "route_analysis": triggers.analyze_route(body.route_data or {}),
        },
        request_id=request_id_from_request(request),
    )


@router.get("/history/{session_id}")
async def history(request: Request, session_id: str, limit: int = 20):
    messages = await _runtime(request).agent.get_conversation_history(session_id, limit=max(1, min(limit, 100)))
    return discovery_response(
        {"messages": messages},
        request_id=request_id_from_request(request),
        session_id=session_id,
    )


@router.post("/action")
async def record_action(request: Request, body: ActionRequest):
    """Record a user action (city added/removed, place favorited...) for preference inference."""
    if not body.session_id or not body.action_type:
        raise ValidationError("sessionId and actionType are required")
    await _runtime(request).store.record_action(body.session_id, body.action_type, snake_keys(body.data))
    return discovery_response(
        {"recorded": body.action_type},
        request_id=request_id_from_request(request),
        session_id=body.session_id,
    )
