"""Great-circle helpers for route building."""

import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0

LatLng = Tuple[float, float]


def haversine_km(a: LatLng, b: LatLng) -> float:
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def point_of(item: Dict[str, Any]) -> Optional[LatLng]:
    """(lat, lng) from a waypoint/city dict using either flat or nested coordinates."""
    coords = item.get("coordinates") or item
    lat = coords.get("lat", coords.get("latitude"))
    lng = coords.get("lng", coords.get("longitude"))
    if lat is None or lng is None:
        return None
    return float(lat), float(lng)


def leg_distances_km(waypoints: Sequence[Dict[str, Any]]) -> List[float]:
    legs = []
    for prev, cur in zip(waypoints, waypoints[1:]):
        a, b = point_of(prev), point_of(cur)
        legs.append(haversine_km(a, b) if a and b else 0.0)
    return legs


def route_distance_km(waypoints: Sequence[Dict[str, Any]]) -> float:
    return sum(leg_distances_km(waypoints))


def optimal_insert_position(waypoints: Sequence[Dict[str, Any]], point: LatLng) -> int:
    """Insertion index that adds the least driving distance. Appends when fewer than two stops."""
    if len(waypoints) < 2:
        return len(waypoints)
    best_index = len(waypoints)
    best_cost = math.inf
    for i in range(len(waypoints) - 1):
        a, b = point_of(waypoints[i]), point_of(waypoints[i + 1])
        if not a or not b:
            continue
        cost = haversine_km(a, point) + haversine_km(point, b) - haversine_km(a, b)
        if cost < best_cost:
            best_cost = cost
            best_index = i + 1
    return best_index


def nearest_neighbour_order(waypoints: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Greedy reorder of the middle stops; first and last stay fixed."""
    if len(waypoints) < 3:
        return list(waypoints)
    first, last = waypoints[0], waypoints[-1]
    remaining = list(waypoints[1:-1])
    ordered = [first]
    while remaining:
        here = point_of(ordered[-1])
        if here is None:
            ordered.extend(remaining)
            break
        nxt = min(
            remaining,
            key=lambda w: haversine_km(here, point_of(w)) if point_of(w) else math.inf,
        )
        remaining.remove(nxt)
        ordered.append(nxt)
    ordered.append(last)
    return ordered
