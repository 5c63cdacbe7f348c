"""Tool definitions for the discovery agent - route actions the model can take."""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from packages.shared.errors import ToolExecutionFailed, ToolUnknown
from packages.shared.geo import (
    haversine_km,
    leg_distances_km,
    nearest_neighbour_order,
    optimal_insert_position,
    point_of,
    route_distance_km,
)

from route_state import RouteState, normalize_waypoint
from search.cities import CityDataset, fold
from search.fusion import DEFAULT_LIMIT, TOOL_MAX_RESULTS

logger = logging.getLogger(__name__)

# Guardrail limits
MAX_CRITERIA_LEN = 500
MAX_NAME_LEN = 120
MAX_REASON_LEN = 300
MAX_EXCLUDE = 50
NIGHTS_MIN = 1
NIGHTS_MAX = 5
LONG_DRIVE_KM = 300


class ToolName(str, Enum):
    SEARCH_CITIES = "search_cities"
    ADD_CITY_TO_ROUTE = "add_city_to_route"
    REMOVE_CITY_FROM_ROUTE = "remove_city_from_route"
    REPLACE_CITY = "replace_city"
    REORDER_CITIES = "reorder_cities"
    ADJUST_NIGHTS = "adjust_nights"
    ANALYZE_ROUTE = "analyze_route"
    GET_CITY_HIGHLIGHTS = "get_city_highlights"


# Tools that change the route; one turn's calls run in order when any of these is present.
MUTATING_TOOLS = frozenset(
    {
        ToolName.ADD_CITY_TO_ROUTE,
        ToolName.REMOVE_CITY_FROM_ROUTE,
        ToolName.REPLACE_CITY,
        ToolName.REORDER_CITIES,
        ToolName.ADJUST_NIGHTS,
    }
)

_COORDINATES_SCHEMA = {
    "type": "object",
    "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}},
    "required": ["lat", "lng"],
}

TOOL_DEFS = [
    {
        "name": ToolName.SEARCH_CITIES.value,
        "description": "Search for cities matching the user's interests (food, hidden gems, coast, history, art, nature...). Use before suggesting new stops.",
        "input_schema": {
            "type": "object",
            "properties": {
                "criteria": {"type": "string", "description": "What the user is looking for, in natural language"},
                "near_city": {"type": "string", "description": "Optional city to search around"},
                "exclude_cities": {"type": "array", "items": {"type": "string"}, "description": "Cities to leave out"},
                "max_results": {"type": "integer", "description": "Max cities to return (1-5)", "default": 3},
            },
            "required": ["criteria"],
        },
    },
    {
        "name": ToolName.ADD_CITY_TO_ROUTE.value,
        "description": "Add a city to the route. Without insert_after the city goes where it adds the least driving.",
        "input_schema": {
            "type": "object",
            "properties": {
                "city_name": {"type": "string"},
                "nights": {"type": "integer", "description": "Nights to stay (1-5)", "default": 1},
                "insert_after": {"type": "string", "description": "Existing stop to insert after"},
                "coordinates": _COORDINATES_SCHEMA,
                "reason": {"type": "string", "description": "Why this city fits the trip"},
            },
            "required": ["city_name"],
        },
    },
    {
        "name": ToolName.REMOVE_CITY_FROM_ROUTE.value,
        "description": "Remove a city from the route.",
        "input_schema": {
            "type": "object",
            "properties": {
                "city_name": {"type": "string"},
                "reason": {"type": "string"},
            },
            "required": ["city_name"],
        },
    },
    {
        "name": ToolName.REPLACE_CITY.value,
        "description": "Swap one stop for another, keeping its nights.",
        "input_schema": {
            "type": "object",
            "properties": {
                "old_city": {"type": "string"},
                "new_city": {"type": "string"},
                "new_city_coordinates": _COORDINATES_SCHEMA,
                "reason": {"type": "string"},
            },
            "required": ["old_city", "new_city"],
        },
    },
    {
        "name": ToolName.REORDER_CITIES.value,
        "description": "Reorder the stops: geographic (shortest greedy path, endpoints fixed), thematic, or a custom order.",
        "input_schema": {
            "type": "object",
            "properties": {
                "strategy": {"type": "string", "enum": ["geographic", "thematic", "custom"]},
                "custom_order": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["strategy"],
        },
    },
    {
        "name": ToolName.ADJUST_NIGHTS.value,
        "description": "Change how many nights the trip spends in a city (1-5).",
        "input_schema": {
            "type": "object",
            "properties": {
                "city_name": {"type": "string"},
                "nights": {"type": "integer", "minimum": NIGHTS_MIN, "maximum": NIGHTS_MAX},
            },
            "required": ["city_name", "nights"],
        },
    },
    {
        "name": ToolName.ANALYZE_ROUTE.value,
        "description": "Check the route for pacing, long drives and night balance.",
        "input_schema": {
            "type": "object",
            "properties": {
                "focus": {"type": "string", "enum": ["overall", "driving", "variety", "pacing"], "default": "overall"},
            },
            "required": [],
        },
    },
    {
        "name": ToolName.GET_CITY_HIGHLIGHTS.value,
        "description": "Get highlights and the vibe of a city.",
        "input_schema": {
            "type": "object",
            "properties": {
                "city_name": {"type": "string"},
                "focus": {"type": "string", "description": "Optional angle: food, history, art..."},
            },
            "required": ["city_name"],
        },
    },
]

TOOLS = {t["name"]: t for t in TOOL_DEFS}

RouteUpdateFn = Callable[[Dict[str, Any]], Any]


@dataclass
class ToolExecutionContext:
    """Collaborators a handler may use. ``route`` is read-only for handlers."""

    session_id: str
    route: RouteState
    dataset: CityDataset
    on_route_update: Optional[RouteUpdateFn] = None
    store: Any = None
    search: Any = None
    geocoder: Any = None
    actions: List[Dict[str, Any]] = field(default_factory=list)

    async def emit_route_update(self, action: Dict[str, Any]) -> None:
        self.actions.append(action)
        if self.on_route_update is None:
            return
        result = self.on_route_update(action)
        if inspect.isawaitable(result):
            await result

    async def record_action(self, action_type: str, data: Dict[str, Any]) -> None:
        if self.store is None:
            return
        try:
            await self.store.record_action(self.session_id, action_type, data)
        except Exception as e:
            logger.warning("Failed to record %s for session %s: %s", action_type, self.session_id, e)


def _clean_str(value: Any, limit: int) -> str:
    return (value if isinstance(value, str) else "").strip()[:limit]


def _clamp_int(value: Any, default: int, low: int, high: int) -> int:
    try:
        value = int(value) if value is not None else default
    except (TypeError, ValueError):
        value = default
    return max(low, min(high, value))


def _coords(value: Any) -> Optional[Dict[str, float]]:
    if not isinstance(value, dict):
        return None
    try:
        lat, lng = float(value["lat"]), float(value["lng"])
    except (KeyError, TypeError, ValueError):
        return None
    if lat == 0 and lng == 0:
        return None
    return {"lat": lat, "lng": lng}


def apply_guardrails(name: ToolName, params: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Validate and sanitize tool parameters before execution.
    Returns (sanitized_params, error_message). If error_message is set, do not execute.
    """
    p = dict(params) if params else {}
    schema = TOOLS[name.value]["input_schema"]
    for key in schema.get("required", []):
        value = p.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, "", []):
            return {}, f"{name.value} requires {key}"

    for key in ("city_name", "old_city", "new_city", "insert_after", "near_city"):
        if key in p:
            p[key] = _clean_str(p[key], MAX_NAME_LEN) or None
    if "reason" in p:
        p["reason"] = _clean_str(p["reason"], MAX_REASON_LEN) or None

    if name == ToolName.SEARCH_CITIES:
        p["criteria"] = _clean_str(p["criteria"], MAX_CRITERIA_LEN)
        if not p["criteria"]:
            return {}, "search_cities requires non-empty criteria"
        p["max_results"] = _clamp_int(p.get("max_results"), DEFAULT_LIMIT, 1, TOOL_MAX_RESULTS)
        excl = p.get("exclude_cities") or []
        p["exclude_cities"] = [_clean_str(c, MAX_NAME_LEN) for c in excl if isinstance(c, str)][:MAX_EXCLUDE]

    elif name == ToolName.ADD_CITY_TO_ROUTE:
        p["nights"] = _clamp_int(p.get("nights"), 1, NIGHTS_MIN, NIGHTS_MAX)
        p["coordinates"] = _coords(p.get("coordinates"))

    elif name == ToolName.REPLACE_CITY:
        p["new_city_coordinates"] = _coords(p.get("new_city_coordinates"))

    elif name == ToolName.REORDER_CITIES:
        if p.get("strategy") not in ("geographic", "thematic", "custom"):
            return {}, "reorder_cities strategy must be geographic, thematic or custom"
        order = p.get("custom_order") or []
        p["custom_order"] = [c for c in order if isinstance(c, str)]
        if p["strategy"] == "custom" and not p["custom_order"]:
            return {}, "reorder_cities with custom strategy requires custom_order"

    elif name == ToolName.ADJUST_NIGHTS:
        try:
            nights = int(p["nights"])
        except (TypeError, ValueError):
            return {}, "adjust_nights requires an integer nights value"
        if not NIGHTS_MIN <= nights <= NIGHTS_MAX:
            return {}, f"nights must be between {NIGHTS_MIN} and {NIGHTS_MAX}"
        p["nights"] = nights

    elif name == ToolName.ANALYZE_ROUTE:
        if p.get("focus") not in ("overall", "driving", "variety", "pacing"):
            p["focus"] = "overall"

    return p, None


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


# ----- handlers -----


def _basic_search(params: Dict[str, Any], ctx: ToolExecutionContext, excluded: set) -> List[Dict[str, Any]]:
    criteria = params["criteria"].lower()
    hits = [
        c
        for c in ctx.dataset.all()
        if fold(c["name"]) not in excluded
        and (any(t.replace("_", " ") in criteria for t in c.get("tags") or ()) or criteria in c.get("description", "").lower())
    ]
    hits.sort(key=lambda c: -(c.get("rating") or 0))
    return hits[: params["max_results"]]


def _tool_city(city: Dict[str, Any]) -> Dict[str, Any]:
    reasons = city.get("reasons") or []
    return {
        "name": city.get("name"),
        "country": city.get("country"),
        "coordinates": {"lat": city.get("lat"), "lng": city.get("lng")} if city.get("lat") is not None else None,
        "reason": reasons[0] if reasons else (city.get("description") or "")[:150],
        "highlights": (city.get("highlights") or [])[:3],
        "nights_recommended": city.get("nights_recommended") or 1,
        "hidden_gem": bool(city.get("hidden_gem")),
        "score": city.get("score"),
    }


async def search_cities(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    exclude = list(dict.fromkeys([*params["exclude_cities"], *ctx.route.city_names]))
    if ctx.search is None:
        raise RuntimeError("City search is not configured")
    try:
        result = await ctx.search.search(
            params["criteria"],
            near_city=params.get("near_city"),
            exclude_cities=exclude,
            max_results=params["max_results"],
        )
    except Exception as e:
        logger.warning("City search failed, using basic dataset match: %s", e)
        cities = _basic_search(params, ctx, {fold(c) for c in exclude})
        return {
            "cities": [_tool_city(c) for c in cities],
            "total_found": len(cities),
            "search_criteria": params["criteria"],
            "fallback": True,
        }
    return {
        "cities": [_tool_city(c) for c in result["cities"]],
        "total_found": len(result["cities"]),
        "search_criteria": params["criteria"],
        "intent": result["intent"]["name"],
        "confidence": result["confidence"],
        "narrative": result["narrative"],
    }


async def _locate(name: str, ctx: ToolExecutionContext, given: Optional[Dict[str, float]]) -> Optional[Dict[str, Any]]:
    known = ctx.dataset.find(name)
    if given:
        return {**given, "country": known.get("country") if known else None}
    if known:
        return {"lat": known["lat"], "lng": known["lng"], "country": known.get("country")}
    if ctx.geocoder is not None:
        return await ctx.geocoder.geocode(name)
    return None


async def add_city_to_route(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    name, nights = params["city_name"], params["nights"]
    location = await _locate(name, ctx, params.get("coordinates"))
    if not location:
        logger.warning("Could not geocode city: %s", name)
        return {"success": False, "error": f"Could not find location for {name}"}

    waypoints = list(ctx.route.waypoints)
    index = len(waypoints)
    after = ctx.route.index_of(params.get("insert_after")) if params.get("insert_after") else -1
    if after >= 0:
        index = after + 1
    else:
        index = optimal_insert_position(waypoints, (location["lat"], location["lng"]))

    waypoint = normalize_waypoint(
        {"name": name, "country": location.get("country"), "nights": nights, "lat": location["lat"], "lng": location["lng"]}
    )
    waypoints.insert(index, waypoint)
    await ctx.emit_route_update({"type": "add_city", "city": waypoint, "index": index, "waypoints": waypoints})
    await ctx.record_action("city_added", {"city_name": name, "nights": nights, "position": index})
    return {
        "success": True,
        "action": "add_city_to_route",
        "city": {**waypoint, "description": params.get("reason") or "Added by your travel companion"},
        "index": index,
        "message": f"Added {name} ({_plural(nights, 'night')}) at position {index + 1}",
    }


async def remove_city_from_route(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    name = params["city_name"]
    index = ctx.route.index_of(name)
    if index < 0:
        return {"success": False, "error": f'City "{name}" not found on route'}
    waypoints = list(ctx.route.waypoints)
    removed = waypoints.pop(index)
    await ctx.emit_route_update({"type": "remove_city", "city": removed, "index": index, "waypoints": waypoints})
    await ctx.record_action("city_removed", {"city_name": removed["name"], "reason": params.get("reason")})
    return {
        "success": True,
        "action": "removed",
        "city": removed["name"],
        "remaining_stops": len(waypoints),
        "message": f"Removed {removed['name']} from your route",
    }


async def replace_city(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    old, new = params["old_city"], params["new_city"]
    index = ctx.route.index_of(old)
    if index < 0:
        return {"success": False, "error": f'City "{old}" not found on route'}
    location = await _locate(new, ctx, params.get("new_city_coordinates"))
    if not location:
        return {"success": False, "error": f"Could not find location for {new}"}
    waypoints = list(ctx.route.waypoints)
    previous = waypoints[index]
    waypoint = normalize_waypoint(
        {
            "name": new,
            "country": location.get("country"),
            "nights": previous.get("nights") or 1,
            "lat": location["lat"],
            "lng": location["lng"],
        }
    )
    waypoints[index] = waypoint
    await ctx.emit_route_update(
        {"type": "replace_city", "old_city": previous, "new_city": waypoint, "index": index, "waypoints": waypoints}
    )
    await ctx.record_action("city_replaced", {"old_city": old, "new_city": new})
    return {
        "success": True,
        "action": "replaced",
        "old_city": old,
        "new_city": new,
        "nights_preserved": waypoint["nights"],
        "message": f"Replaced {old} with {new}",
    }


async def reorder_cities(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    waypoints = list(ctx.route.waypoints)
    if len(waypoints) < 2:
        return {"success": False, "error": "Not enough cities to reorder"}
    strategy = params["strategy"]
    if strategy == "geographic":
        ordered = nearest_neighbour_order(waypoints)
    elif strategy == "custom":
        by_key = {fold(w["name"]): w for w in waypoints}
        ordered = [by_key[fold(n)] for n in params["custom_order"] if fold(n) in by_key]
        seen = {fold(w["name"]) for w in ordered}
        ordered += [w for w in waypoints if fold(w["name"]) not in seen]
    else:
        ordered = waypoints
    await ctx.emit_route_update({"type": "reorder", "strategy": strategy, "waypoints": ordered})
    await ctx.record_action("route_reordered", {"strategy": strategy, "order": [w["name"] for w in ordered]})
    return {
        "success": True,
        "action": "reordered",
        "strategy": strategy,
        "new_order": [w["name"] for w in ordered],
        "total_distance_km": round(route_distance_km(ordered)),
        "message": f"Reordered route using {strategy} strategy",
    }


async def adjust_nights(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    name, nights = params["city_name"], params["nights"]
    index = ctx.route.index_of(name)
    if index < 0:
        return {"success": False, "error": f'City "{name}" not found on route'}
    waypoints = list(ctx.route.waypoints)
    old_nights = waypoints[index].get("nights") or 1
    waypoints[index] = {**waypoints[index], "nights": nights}
    await ctx.emit_route_update(
        {"type": "adjust_nights", "city": name, "old_nights": old_nights, "new_nights": nights, "waypoints": waypoints}
    )
    await ctx.record_action("nights_adjusted", {"city_name": name, "from": old_nights, "to": nights})
    return {
        "success": True,
        "action": "adjusted",
        "city": name,
        "old_nights": old_nights,
        "new_nights": nights,
        "message": f"Changed {name} from {old_nights} to {_plural(nights, 'night')}",
    }


def analyze_waypoints(waypoints: List[Dict[str, Any]]) -> Dict[str, Any]:
    nights = [w.get("nights") or 1 for w in waypoints]
    total_nights = sum(nights)
    legs = leg_distances_km(waypoints)
    issues: List[str] = []
    suggestions: List[str] = []

    if max(nights) > min(nights) * 3:
        issues.append("Nights are unevenly distributed")
        suggestions.append("Consider rebalancing time between cities")
    if len(waypoints) > total_nights * 0.8:
        issues.append("Route might be too rushed")
        suggestions.append("Consider removing a stop or adding nights")

    long_drives = [
        {"from": waypoints[i]["name"], "to": waypoints[i + 1]["name"], "distance": round(d)}
        for i, d in enumerate(legs)
        if d > LONG_DRIVE_KM
    ]
    if long_drives:
        issues.append(f"{len(long_drives)} drive(s) over {LONG_DRIVE_KM}km")
        suggestions.append("Consider adding a stop to break up long drives")

    return {
        "total_stops": len(waypoints),
        "total_nights": total_nights,
        "total_distance_km": round(sum(legs)),
        "average_nights_per_city": round(total_nights / len(waypoints), 1),
        "cities": [{"name": w["name"], "nights": w.get("nights") or 1} for w in waypoints],
        "issues": issues,
        "suggestions": suggestions,
        "long_drives": long_drives,
        "overall_assessment": "Route looks well-balanced!" if not issues else f"Found {len(issues)} issue(s) to consider",
    }


async def analyze_route(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    waypoints = ctx.route.waypoints
    if len(waypoints) < 2:
        return {"success": False, "error": "Not enough cities to analyze"}
    analysis = analyze_waypoints(waypoints)
    analysis["focus"] = params["focus"]
    return {"success": True, "analysis": analysis}


async def get_city_highlights(params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    city = ctx.dataset.find(params["city_name"])
    if city is None:
        return {
            "success": True,
            "city": params["city_name"],
            "vibe": "A destination worth exploring",
            "highlights": ["Local attractions", "Regional cuisine", "Cultural sites"],
            "nights_recommended": 1,
            "curated": False,
        }
    out = {
        "success": True,
        "city": city["name"],
        "country": city.get("country"),
        "vibe": city.get("description"),
        "highlights": city.get("highlights") or [],
        "tags": city.get("tags") or [],
        "nights_recommended": city.get("nights_recommended") or 1,
        "hidden_gem": bool(city.get("hidden_gem")),
        "curated": True,
    }
    here = point_of(city)
    if here and ctx.route.waypoints:
        nearest = min(
            (w for w in ctx.route.waypoints if point_of(w) and fold(w["name"]) != fold(city["name"])),
            key=lambda w: haversine_km(here, point_of(w)),
            default=None,
        )
        if nearest is not None:
            out["nearest_stop"] = {"name": nearest["name"], "distance_km": round(haversine_km(here, point_of(nearest)))}
    return out


Handler = Callable[[Dict[str, Any], ToolExecutionContext], Awaitable[Dict[str, Any]]]

HANDLERS: Dict[ToolName, Handler] = {
    ToolName.SEARCH_CITIES: search_cities,
    ToolName.ADD_CITY_TO_ROUTE: add_city_to_route,
    ToolName.REMOVE_CITY_FROM_ROUTE: remove_city_from_route,
    ToolName.REPLACE_CITY: replace_city,
    ToolName.REORDER_CITIES: reorder_cities,
    ToolName.ADJUST_NIGHTS: adjust_nights,
    ToolName.ANALYZE_ROUTE: analyze_route,
    ToolName.GET_CITY_HIGHLIGHTS: get_city_highlights,
}


def resolve_tool(name: str) -> Optional[ToolName]:
    try:
        return ToolName(name)
    except ValueError:
        return None


async def execute_tool(name: str, params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
    """
    Execute a tool by name. Never raises: unknown names, guardrail rejections
    and handler failures all come back as {"error": ..., "error_kind": ...}.
    """
    tool = resolve_tool(name)
    if tool is None:
        err = ToolUnknown(f"Unknown tool: {name}", details={"tool": name})
        logger.warning(err.message, extra={"session_id": ctx.session_id, "context": {"error_code": err.code}})
        return {"error": err.message, "error_kind": "tool_unknown"}

    sanitized, err_msg = apply_guardrails(tool, params)
    if err_msg:
        logger.warning("Tool guardrail rejected %s: %s", name, err_msg)
        return {"error": err_msg, "error_kind": "invalid_input"}

    try:
        return await HANDLERS[tool](sanitized, ctx)
    except Exception as e:
        failure = ToolExecutionFailed(f"{name} failed: {e}", details={"tool": name})
        logger.exception(
            failure.message,
            extra={"session_id": ctx.session_id, "context": {"error_code": failure.code, "tool": name}},
        )
        return {"error": failure.message, "error_kind": "tool_execution_failed"}
