"""
Session persistence: conversation history, session rows, user actions and inferred preferences.

Two implementations share one async interface. The in-memory store is the
default and what tests use; the Supabase store is picked when SUPABASE_URL and
a service key are set. Store errors are logged and degrade to empty results.
"""

import asyncio
import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from packages.shared.rate_limit import Clock, wall_clock_ms

from db import get_supabase

logger = logging.getLogger(__name__)

MAX_MESSAGES_PER_SESSION = 200
MAX_ACTIONS_PER_SESSION = 500
DEFAULT_SESSION_RETENTION_MS = 24 * 60 * 60 * 1000


class SessionStore(Protocol):
    async def get_or_create_session(
        self, session_id: str, route: Optional[Dict[str, Any]] = None, user_id: Optional[str] = None
    ) -> Dict[str, Any]: ...

    async def save_message(
        self, session_id: str, role: str, content: str, tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> None: ...

    async def get_messages(self, session_id: str, limit: int = 20) -> List[Dict[str, Any]]: ...

    async def increment_message_count(self, session_id: str) -> None: ...

    async def record_action(self, session_id: str, action_type: str, data: Dict[str, Any]) -> None: ...

    async def get_recent_actions(self, session_id: str, limit: int = 10) -> List[Dict[str, Any]]: ...

    async def update_preferences(self, session_id: str, preferences: Dict[str, Any]) -> None: ...

    async def get_preferences(self, session_id: str) -> Optional[Dict[str, Any]]: ...


def _iso(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


class InMemorySessionStore:
    """
    Process-local store. Messages and actions are capped per session; whole
    sessions idle longer than ``retention_ms`` are dropped by ``cleanup()``.
    """

    def __init__(self, clock: Optional[Clock] = None, retention_ms: int = DEFAULT_SESSION_RETENTION_MS):
        self._clock = clock or wall_clock_ms
        self.retention_ms = retention_ms
        self._last_seen: Dict[str, float] = {}
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._messages: Dict[str, Deque[Dict[str, Any]]] = defaultdict(
            lambda: deque(maxlen=MAX_MESSAGES_PER_SESSION)
        )
        self._actions: Dict[str, Deque[Dict[str, Any]]] = defaultdict(
            lambda: deque(maxlen=MAX_ACTIONS_PER_SESSION)
        )

    async def get_or_create_session(
        self, session_id: str, route: Optional[Dict[str, Any]] = None, user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        self._touch(session_id)
        now = _iso(self._clock())
        session = self._sessions.get(session_id)
        if session is None:
            session = {
                "session_id": session_id,
                "user_id": user_id,
                "route_data": route,
                "message_count": 0,
                "preferences": None,
                "created_at": now,
                "updated_at": now,
            }
            self._sessions[session_id] = session
        elif route is not None:
            session["route_data"] = route
            session["updated_at"] = now
        return dict(session)

    async def save_message(
        self, session_id: str, role: str, content: str, tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        self._touch(session_id)
        self._messages[session_id].append(
            {
                "role": role,
                "content": content,
                "tool_calls": tool_calls or None,
                "created_at": _iso(self._clock()),
            }
        )

    async def get_messages(self, session_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        if session_id not in self._messages:
            return []
        return [dict(m) for m in list(self._messages[session_id])[-limit:]]

    async def increment_message_count(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session_id)
            session["message_count"] += 1
            session["updated_at"] = _iso(self._clock())

    async def record_action(self, session_id: str, action_type: str, data: Dict[str, Any]) -> None:
        self._touch(session_id)
        self._actions[session_id].append(
            {"action_type": action_type, "data": dict(data or {}), "timestamp": self._clock()}
        )

    async def get_recent_actions(self, session_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Newest first."""
        if session_id not in self._actions:
            return []
        actions = list(self._actions[session_id])[-limit:]
        return [dict(a) for a in reversed(actions)]

    async def update_preferences(self, session_id: str, preferences: Dict[str, Any]) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session_id)
            session["preferences"] = dict(preferences)
            session["updated_at"] = _iso(self._clock())

    async def get_preferences(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(session_id)
        return dict(session["preferences"]) if session and session.get("preferences") else None

    def session_count(self) -> int:
        return len(self._sessions)

    def _touch(self, session_id: str) -> None:
        self._last_seen[session_id] = self._clock()

    def cleanup(self) -> int:
        """Drop sessions with no writes inside the retention window. Returns how many were dropped."""
        now = self._clock()
        stale = [sid for sid, ts in self._last_seen.items() if now - ts > self.retention_ms]
        for sid in stale:
            del self._last_seen[sid]
            self._sessions.pop(sid, None)
            self._messages.pop(sid, None)
            self._actions.pop(sid, None)
        return len(stale)


class SupabaseSessionStore:
    """Supabase-backed store. The sync client runs in a worker thread."""

    def __init__(self, client):
        self.client = client

    async def _run(self, op: str, fn, default=None):
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            logger.warning("Session store %s failed: %s", op, e)
            return default

    async def get_or_create_session(
        self, session_id: str, route: Optional[Dict[str, Any]] = None, user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        row = {"session_id": session_id, "updated_at": datetime.now(timezone.utc).isoformat()}
        if route is not None:
            row["route_data"] = route
        if user_id:
            row["user_id"] = user_id

        def _upsert():
            r = self.client.table("discovery_sessions").upsert(row, on_conflict="session_id").execute()
            return r.data[0] if r.data else row

        return await self._run("get_or_create_session", _upsert, default=row)

    async def save_message(
        self, session_id: str, role: str, content: str, tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        await self._run(
            "save_message",
            lambda: self.client.table("discovery_conversations")
            .insert({"session_id": session_id, "role": role, "content": content, "tool_calls": tool_calls or None})
            .execute(),
        )

    async def get_messages(self, session_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        def _select():
            r = (
                self.client.table("discovery_conversations")
                .select("role, content, tool_calls, created_at")
                .eq("session_id", session_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return list(reversed(r.data or []))

        return await self._run("get_messages", _select, default=[])

    async def increment_message_count(self, session_id: str) -> None:
        await self._run(
            "increment_message_count",
            lambda: self.client.rpc("increment_discovery_message_count", {"p_session_id": session_id}).execute(),
        )

    async def record_action(self, session_id: str, action_type: str, data: Dict[str, Any]) -> None:
        await self._run(
            "record_action",
            lambda: self.client.table("discovery_actions")
            .insert({"session_id": session_id, "action_type": action_type, "data": data or {}})
            .execute(),
        )

    async def get_recent_actions(self, session_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        def _select():
            r = (
                self.client.table("discovery_actions")
                .select("action_type, data, created_at")
                .eq("session_id", session_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return [
                {"action_type": a["action_type"], "data": a.get("data") or {}, "timestamp": a.get("created_at")}
                for a in r.data or []
            ]

        return await self._run("get_recent_actions", _select, default=[])

    async def update_preferences(self, session_id: str, preferences: Dict[str, Any]) -> None:
        await self._run(
            "update_preferences",
            lambda: self.client.table("discovery_sessions")
            .update({"preferences": preferences, "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("session_id", session_id)
            .execute(),
        )

    async def get_preferences(self, session_id: str) -> Optional[Dict[str, Any]]:
        def _select():
            r = (
                self.client.table("discovery_sessions")
                .select("preferences")
                .eq("session_id", session_id)
                .limit(1)
                .execute()
            )
            return (r.data[0].get("preferences") if r.data else None) or None

        return await self._run("get_preferences", _select)


def get_session_store(
    clock: Optional[Clock] = None, retention_ms: int = DEFAULT_SESSION_RETENTION_MS
) -> SessionStore:
    """Supabase when configured, otherwise in-memory."""
    client = get_supabase()
    if client is None:
        logger.info("Supabase not configured, using in-memory session store")
        return InMemorySessionStore(clock=clock, retention_ms=retention_ms)
    return SupabaseSessionStore(client)
