"""
Proactive trigger engine.

Decides when to interrupt the user with a suggestion. A trigger fires when its
condition holds and its per-(session, trigger) cooldown has elapsed; the
firing is recorded only when the suggestion is actually shown. Dismissals are
tracked by suggestion id so an explicit "no" stays distinguishable from a
cooldown suppression.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from packages.shared.json_extract import extract_json
from packages.shared.llm_provider import LLMProviderFacade
from packages.shared.rate_limit import Clock, wall_clock_ms

from prompts import SUGGESTION_PROMPT
from route_state import normalize_waypoints

from .triggers import TRIGGERS, describe_trigger, fallback_suggestion

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MS = 60 * 60 * 1000
MAX_QUICK_ACTIONS = 2
MAX_MESSAGE_LEN = 200
PRIORITIES = ("low", "medium", "high")
NIGHT_VARIANCE_THRESHOLD = 2


class ProactiveTriggerEngine:
    def __init__(
        self,
        llm: Optional[LLMProviderFacade] = None,
        clock: Optional[Clock] = None,
        retention_ms: int = DEFAULT_RETENTION_MS,
    ):
        self.llm = llm
        self._clock = clock or wall_clock_ms
        self.retention_ms = retention_ms
        self._cooldowns: Dict[Tuple[str, str], float] = {}
        self._dismissals: Dict[Tuple[str, str], float] = {}

    def should_trigger(
        self, trigger_id: str, session_id: str, data: Dict[str, Any], context: Dict[str, Any]
    ) -> bool:
        trigger = TRIGGERS.get(trigger_id)
        if trigger is None:
            return False
        now = self._clock()
        try:
            if not trigger.condition(data or {}, context or {}, now):
                return False
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("Trigger %s condition failed on malformed data: %s", trigger_id, e)
            return False
        last = self._cooldowns.get((session_id, trigger_id))
        if last is not None and now - last < trigger.cooldown_ms:
            return False
        return True

    def record_trigger(self, trigger_id: str, session_id: str) -> None:
        self._cooldowns[(session_id, trigger_id)] = self._clock()

    def record_dismissal(self, suggestion_id: str, session_id: str) -> None:
        self._dismissals[(session_id, suggestion_id)] = self._clock()

    def is_dismissed(self, suggestion_id: str, session_id: str) -> bool:
        return (session_id, suggestion_id) in self._dismissals

    async def generate_suggestion(
        self,
        trigger_id: str,
        session_id: str,
        trigger_data: Dict[str, Any],
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        if not self.should_trigger(trigger_id, session_id, trigger_data, context):
            return {"shouldShow": False, "triggerId": trigger_id}

        trigger = TRIGGERS[trigger_id]
        suggestion = await self._model_suggestion(trigger_id, trigger_data, context)
        if suggestion is None:
            suggestion = {**fallback_suggestion(trigger_id, trigger_data), "shouldShow": True, "fallback": True}
        if not suggestion["shouldShow"]:
            return {"shouldShow": False, "triggerId": trigger_id}

        self.record_trigger(trigger_id, session_id)
        logger.info(
            "Proactive suggestion fired",
            extra={"session_id": session_id, "context": {"trigger_id": trigger_id}},
        )
        return {
            "shouldShow": True,
            "suggestionId": str(uuid.uuid4()),
            "message": suggestion["message"],
            "quickActions": suggestion.get("quickActions") or [],
            "priority": suggestion.get("priority") if suggestion.get("priority") in PRIORITIES else trigger.priority,
            "triggerId": trigger_id,
            "fallback": bool(suggestion.get("fallback")),
        }

    async def _model_suggestion(
        self, trigger_id: str, trigger_data: Dict[str, Any], context: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Parsed model suggestion, or None when the model is unavailable or its output unusable."""
        if self.llm is None or not self.llm.configured:
            return None
        prompt = SUGGESTION_PROMPT.format(
            trigger_id=trigger_id,
            description=describe_trigger(trigger_id, trigger_data),
            trigger_data=json.dumps(trigger_data, default=str)[:1000],
            route_summary=_route_summary(context),
        )
        try:
            text = await asyncio.to_thread(
                lambda: self.llm.chat_completion(
                    [{"role": "user", "content": prompt}], temperature=0.4, max_tokens=300
                )
            )
        except Exception as e:
            logger.warning("Suggestion generation failed for %s: %s", trigger_id, e)
            return None

        parsed = extract_json(text, expect=dict)
        if not parsed.ok:
            logger.warning("Unparseable suggestion for %s: %s", trigger_id, parsed.error)
            return None
        value = parsed.value
        if value.get("shouldShow") is False:
            return {"shouldShow": False}
        message = value.get("message")
        if not isinstance(message, str) or not message.strip():
            return None
        actions = [
            {"label": str(a["label"]), "action": str(a["action"])}
            for a in value.get("quickActions") or []
            if isinstance(a, dict) and a.get("label") and a.get("action")
        ]
        return {
            "shouldShow": True,
            "message": message.strip()[:MAX_MESSAGE_LEN],
            "quickActions": actions[:MAX_QUICK_ACTIONS],
            "priority": value.get("priority"),
        }

    def cleanup(self) -> int:
        """Drop cooldown and dismissal records older than the retention window."""
        now = self._clock()
        removed = 0
        for records in (self._cooldowns, self._dismissals):
            stale = [k for k, ts in records.items() if now - ts > self.retention_ms]
            for k in stale:
                del records[k]
            removed += len(stale)
        return removed

    def snapshot(self) -> Dict[str, Dict[Tuple[str, str], float]]:
        return {"cooldowns": dict(self._cooldowns), "dismissals": dict(self._dismissals)}

    def infer_preferences(self, actions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Tally place types and tags from recent actions into a top preference."""
        preferences: Dict[str, Any] = {"types": {}, "behaviors": {}, "top_preference": None, "confidence": 0.0}
        if not actions:
            return preferences
        types: Dict[str, int] = preferences["types"]
        for a in actions:
            kind = a.get("action_type") or a.get("type")
            data = a.get("data") or {}
            if kind == "place_favorited" and data.get("place_type"):
                types[data["place_type"]] = types.get(data["place_type"], 0) + 1
            if kind == "city_added":
                for tag in data.get("tags") or []:
                    types[tag] = types.get(tag, 0) + 1

        removals = sum(1 for a in actions if (a.get("action_type") or a.get("type")) == "city_removed")
        additions = sum(1 for a in actions if (a.get("action_type") or a.get("type")) == "city_added")
        if removals > additions:
            preferences["behaviors"]["simplifying"] = True

        ranked = sorted(types.items(), key=lambda kv: (-kv[1], kv[0]))
        if ranked and ranked[0][1] >= 3:
            preferences["top_preference"] = ranked[0][0]
            preferences["confidence"] = min(ranked[0][1] / 5, 1.0)
        return preferences

    def analyze_route(self, route: Dict[str, Any]) -> Dict[str, Any]:
        waypoints = normalize_waypoints((route or {}).get("waypoints"))
        if len(waypoints) < 2:
            return {"issues": [], "healthy": True}
        nights = [w.get("nights") or 1 for w in waypoints]
        total = sum(nights)
        avg = total / len(nights)
        variance = sum((n - avg) ** 2 for n in nights) / len(nights)
        issues = []
        if variance > NIGHT_VARIANCE_THRESHOLD:
            issues.append(
                {"type": "night_imbalance", "severity": "medium", "message": "Nights are unevenly distributed"}
            )
        return {
            "issues": issues,
            "healthy": not issues,
            "stats": {"total_nights": total, "avg_nights": round(avg, 2), "stop_count": len(waypoints)},
        }


def _route_summary(context: Dict[str, Any]) -> str:
    route = (context or {}).get("route") or {}
    waypoints = [w for w in route.get("waypoints") or [] if isinstance(w, dict)]
    if not waypoints:
        return "No route yet"
    stops = ", ".join(f"{w.get('name')} ({w.get('nights') or 1}n)" for w in waypoints)
    prefs = (context or {}).get("preferences")
    summary = f"{len(waypoints)} stops: {stops}"
    if prefs:
        summary += f". Preferences: {json.dumps(prefs, default=str)[:300]}"
    return summary
