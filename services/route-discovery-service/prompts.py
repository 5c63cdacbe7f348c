"""Prompt text for the discovery agent, narratives, greetings and suggestions."""

from typing import Any, Dict, List

VOYAGER_SYSTEM_PROMPT = """You are Voyager, a warm and knowledgeable road-trip companion.
You help the user discover cities and shape a multi-city route.

Use the tools to search for cities and to change the route. Never claim to have
changed the route without calling a tool. Keep replies to 2-4 sentences, with
specific details about places rather than brochure language.
{context}"""

NARRATIVE_PROMPT = """You are Voyager, a sophisticated travel companion. Based on a search for "{intent}" cities, summarize these top matches in 2-3 sentences. Be warm but concise, with specific details. Speak naturally, not like a brochure.

Top matches:
{matches}

Write a brief, conversational recommendation."""

GREETING_PROMPT = """You are Voyager, a travel companion. Write a one or two sentence greeting for a user planning a road trip.
{situation}
Be warm and specific. Ask one question that moves the planning forward."""

SUGGESTION_PROMPT = """You decide whether to proactively suggest something to a user planning a road trip.

Trigger: {trigger_id} ({description})
Event data: {trigger_data}
Route: {route_summary}

Reply with ONLY a JSON object:
{{"shouldShow": true|false, "message": "<one short sentence>", "quickActions": [{{"label": "<2-3 words>", "action": "<snake_case_action>"}}], "priority": "low"|"medium"|"high"}}"""


def render_context(context: Dict[str, Any]) -> str:
    """Compact, prompt-friendly view of the session context."""
    if not context:
        return ""
    lines: List[str] = ["", "Current trip:"]
    trip = context.get("trip") or {}
    if trip.get("origin") or trip.get("destination"):
        lines.append(f"- From {trip.get('origin') or '?'} to {trip.get('destination') or '?'}")
    route = context.get("route") or {}
    if route.get("selected_cities"):
        stops = ", ".join(f"{c['name']} ({c.get('nights', 1)}n)" for c in route["selected_cities"])
        lines.append(f"- Stops: {stops}")
    if route.get("removed_cities"):
        lines.append(f"- Removed earlier: {', '.join(route['removed_cities'])}")
    prefs = context.get("preferences") or {}
    if prefs.get("interests"):
        lines.append(f"- Interests: {', '.join(prefs['interests'])}")
    if prefs.get("prefers_hidden_gems"):
        lines.append("- Prefers hidden gems over famous cities")
    insights = (context.get("conversation") or {}).get("key_insights") or []
    if insights:
        lines.append(f"- Mentioned: {', '.join(insights)}")
    geo = context.get("geography") or {}
    if geo.get("total_distance_km"):
        lines.append(f"- Total distance: {geo['total_distance_km']} km")
    return "\n".join(lines) if len(lines) > 2 else ""


def build_system_prompt(context: Dict[str, Any]) -> str:
    return VOYAGER_SYSTEM_PROMPT.format(context=render_context(context))
