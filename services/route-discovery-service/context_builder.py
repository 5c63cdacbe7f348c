"""Assembles per-call context: trip, route, inferred preferences, recent actions, conversation, geography."""

import logging
import re
from typing import Any, Dict, List, Optional

from packages.shared.geo import route_distance_km

from route_state import RouteState

logger = logging.getLogger(__name__)

POPULAR_CITIES = frozenset(
    {"paris", "barcelona", "nice", "rome", "florence", "venice", "milan", "lyon", "marseille"}
)
BASE_PREFERENCE_CONFIDENCE = 0.5
MAX_PREFERENCE_CONFIDENCE = 0.9
MAX_INSIGHTS = 5

INSIGHT_PATTERNS = [
    (re.compile(r"food|restaurant|culinary|gastronom|eat|cuisine|michelin"), "Interested in food/culinary experiences"),
    (re.compile(r"hidden|secret|off.?beat|unusual|undiscovered|local"), "Prefers off-the-beaten-path destinations"),
    (re.compile(r"coast|beach|sea|ocean|seaside|harbour|harbor|port"), "Drawn to coastal destinations"),
    (re.compile(r"histor|ancient|medieval|roman|castle|cathedral|monument"), "Interested in history and heritage"),
    (re.compile(r"nature|hiking|mountain|forest|park|outdoor|scenic"), "Values nature and outdoor experiences"),
    (re.compile(r"art|museum|gallery|paint|sculpt|architect"), "Appreciates art and culture"),
]


def _place_name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("name") or value.get("city")
    return value or None


def extract_key_insights(messages: List[Dict[str, Any]]) -> List[str]:
    insights: List[str] = []
    for m in messages:
        if m.get("role") != "user":
            continue
        content = (m.get("content") or "").lower()
        for pattern, insight in INSIGHT_PATTERNS:
            if insight not in insights and pattern.search(content):
                insights.append(insight)
    return insights[:MAX_INSIGHTS]


def infer_session_preferences(actions: List[Dict[str, Any]], route: RouteState) -> Dict[str, Any]:
    evidence: List[str] = []
    confidence = BASE_PREFERENCE_CONFIDENCE

    favorites = [a for a in actions if a.get("action_type") == "place_favorited"]
    place_types: Dict[str, int] = {}
    for f in favorites:
        kind = (f.get("data") or {}).get("place_type") or "unknown"
        place_types[kind] = place_types.get(kind, 0) + 1
    top_types = [t for t, n in sorted(place_types.items(), key=lambda kv: -kv[1]) if n >= 2][:3]
    if top_types:
        evidence.append(f"Favorited {len(favorites)} places, mostly {top_types[0]}")
        confidence += 0.1

    removed = [a for a in actions if a.get("action_type") == "city_removed"]
    popular_removed = [
        a for a in removed if ((a.get("data") or {}).get("city_name") or "").lower() in POPULAR_CITIES
    ]
    prefers_hidden_gems = len(popular_removed) >= 2
    if prefers_hidden_gems:
        evidence.append(f"Removed {len(popular_removed)} popular cities")
        confidence += 0.15

    avg_nights = None
    if route.waypoints:
        avg_nights = round(route.total_nights / len(route.waypoints), 1)

    return {
        "interests": top_types,
        "prefers_hidden_gems": prefers_hidden_gems,
        "avoids_crowds": prefers_hidden_gems or len(removed) > 3,
        "average_nights_per_city": avg_nights,
        "confidence": min(confidence, MAX_PREFERENCE_CONFIDENCE),
        "evidence": evidence,
    }


async def build_context(store, session_id: str, route: RouteState) -> Dict[str, Any]:
    """Never raises; a failing store yields empty actions and conversation."""
    try:
        actions = await store.get_recent_actions(session_id, limit=50)
    except Exception as e:
        logger.warning("Could not load actions for %s: %s", session_id, e)
        actions = []
    try:
        messages = await store.get_messages(session_id, limit=20)
    except Exception as e:
        logger.warning("Could not load messages for %s: %s", session_id, e)
        messages = []

    waypoints = route.waypoints
    removed = list(
        dict.fromkeys(
            (a.get("data") or {}).get("city_name")
            for a in actions
            if a.get("action_type") == "city_removed" and (a.get("data") or {}).get("city_name")
        )
    )
    return {
        "trip": {
            "origin": _place_name(route.origin) or (waypoints[0]["name"] if waypoints else None),
            "destination": _place_name(route.destination) or (waypoints[-1]["name"] if waypoints else None),
            "total_nights": route.total_nights,
        },
        "route": {
            "selected_cities": [{"name": w["name"], "nights": w.get("nights") or 1} for w in waypoints],
            "removed_cities": removed,
            "total_stops": len(waypoints),
        },
        "preferences": infer_session_preferences(actions, route),
        "recent_actions": actions[:10],
        "conversation": {
            "messages": [{"role": m.get("role"), "content": m.get("content")} for m in messages],
            "key_insights": extract_key_insights(messages),
        },
        "geography": {"total_distance_km": round(route_distance_km(waypoints))},
    }
