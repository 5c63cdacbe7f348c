"""Static trigger definitions and their fallback suggestions."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

RECENT_REMOVAL_WINDOW_MS = 60_000
IDLE_THRESHOLD_MS = 120_000
PREFERENCE_CONFIDENCE_THRESHOLD = 0.7
HIDDEN_GEM_MAX_DISTANCE_KM = 50

Condition = Callable[[Dict[str, Any], Dict[str, Any], float], bool]


@dataclass(frozen=True)
class Trigger:
    id: str
    cooldown_ms: int
    priority: str
    description: str
    condition: Condition


def _waypoints(context: Dict[str, Any]) -> List[Dict[str, Any]]:
    return (context.get("route") or {}).get("waypoints") or []


def _total_nights(context: Dict[str, Any]) -> int:
    route = context.get("route") or {}
    if route.get("total_nights"):
        return int(route["total_nights"])
    return sum(w.get("nights") or 1 for w in _waypoints(context))


def action_timestamp_ms(value: Any) -> Optional[float]:
    """Epoch milliseconds or an ISO-8601 string."""
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000
        except ValueError:
            return None
    return None


def _city_added(data, context, now):
    return bool(data.get("city_name")) and len(_waypoints(context)) > 0


def _cities_removed(data, context, now):
    recent = 0
    for a in context.get("recent_actions") or []:
        if (a.get("action_type") or a.get("type")) != "city_removed":
            continue
        ts = action_timestamp_ms(a.get("timestamp"))
        if ts is not None and now - ts < RECENT_REMOVAL_WINDOW_MS:
            recent += 1
    return recent >= 2


def _idle_exploring(data, context, now):
    return (data.get("idle_duration_ms") or 0) >= IDLE_THRESHOLD_MS and bool(data.get("map_center"))


def _route_imbalance(data, context, now):
    waypoints = _waypoints(context)
    if len(waypoints) < 3:
        return False
    nights = [w.get("nights") or 1 for w in waypoints]
    return max(nights) > min(nights) * 3


def _preference_detected(data, context, now):
    return bool(data.get("preference_type")) and (data.get("confidence") or 0) >= PREFERENCE_CONFIDENCE_THRESHOLD


def _trip_ready(data, context, now):
    return len(_waypoints(context)) >= 3 and _total_nights(context) >= 3


def _hidden_gem_nearby(data, context, now):
    distance = data.get("distance_from_route")
    return bool(data.get("hidden_gem")) and distance is not None and distance < HIDDEN_GEM_MAX_DISTANCE_KM


TRIGGERS: Dict[str, Trigger] = {
    t.id: t
    for t in (
        Trigger("city_added", 30_000, "medium", "User added a city to route", _city_added),
        Trigger("cities_removed", 120_000, "low", "Multiple cities removed recently", _cities_removed),
        Trigger("idle_exploring", 300_000, "low", "User idle on map for 2+ minutes", _idle_exploring),
        Trigger("route_imbalance", 600_000, "medium", "Route has uneven nights", _route_imbalance),
        Trigger("preference_detected", 180_000, "high", "Clear preference pattern detected", _preference_detected),
        Trigger("trip_ready", 300_000, "high", "Route looks complete, ready for itinerary", _trip_ready),
        Trigger("hidden_gem_nearby", 120_000, "medium", "Hidden gem near current route", _hidden_gem_nearby),
    )
}


def describe_trigger(trigger_id: str, data: Dict[str, Any]) -> str:
    if trigger_id == "city_added":
        return f"User just added {data.get('city_name')} to their route"
    if trigger_id == "cities_removed":
        return "User removed multiple cities, may be simplifying"
    if trigger_id == "idle_exploring":
        center = data.get("map_center") or {}
        return f"User has been exploring the map near {center.get('lat')}, {center.get('lng')}"
    if trigger_id == "preference_detected":
        return f"User shows preference for {data.get('preference_type')} (confidence: {data.get('confidence')})"
    if trigger_id == "hidden_gem_nearby":
        gem = data.get("hidden_gem")
        name = gem.get("name") if isinstance(gem, dict) else gem
        return f'Hidden gem "{name}" is near the route'
    trigger = TRIGGERS.get(trigger_id)
    return trigger.description if trigger else f"Trigger: {trigger_id}"


def fallback_suggestion(trigger_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Static suggestion used when the model is unavailable or its answer can't be parsed."""
    if trigger_id == "city_added":
        return {
            "message": f"{data.get('city_name')} is a great choice! Want me to find similar cities nearby?",
            "quickActions": [
                {"label": "Find similar", "action": "search_similar"},
                {"label": "City highlights", "action": "get_highlights"},
            ],
        }
    if trigger_id == "cities_removed":
        return {
            "message": "Trimming things down? I can suggest a simpler route that still hits the highlights.",
            "quickActions": [
                {"label": "Simplify route", "action": "simplify_route"},
                {"label": "Not now", "action": "dismiss"},
            ],
        }
    if trigger_id == "idle_exploring":
        return {
            "message": "Exploring this area? I can point out a few places worth a stop nearby.",
            "quickActions": [
                {"label": "Show nearby", "action": "search_nearby"},
                {"label": "Not now", "action": "dismiss"},
            ],
        }
    if trigger_id == "route_imbalance":
        return {
            "message": "Your route might benefit from some rebalancing. Shall I help?",
            "quickActions": [
                {"label": "Rebalance", "action": "auto_rebalance"},
                {"label": "Not now", "action": "dismiss"},
            ],
        }
    if trigger_id == "preference_detected":
        return {
            "message": f"I notice you love {data.get('preference_type')} destinations. Want more like these?",
            "quickActions": [
                {"label": "Show me more", "action": "search_preference"},
                {"label": "Noted!", "action": "dismiss"},
            ],
        }
    if trigger_id == "trip_ready":
        return {
            "message": "Your route is looking great! Ready to generate a detailed itinerary?",
            "quickActions": [
                {"label": "Generate itinerary", "action": "generate_itinerary"},
                {"label": "Keep exploring", "action": "dismiss"},
            ],
        }
    gem = data.get("hidden_gem")
    name = gem.get("name") if isinstance(gem, dict) else gem
    return {
        "message": f"{name or 'A hidden gem'} is just off your route. Worth a detour?",
        "quickActions": [
            {"label": "Add to route", "action": "add_hidden_gem"},
            {"label": "Tell me more", "action": "get_highlights"},
        ],
    }
