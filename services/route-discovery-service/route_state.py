"""Route snapshot passed with each request and updated by route actions."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from search.cities import fold


def _nights(value: Any) -> int:
    try:
        return max(1, int(value)) if value is not None else 1
    except (TypeError, ValueError):
        return 1


def _coordinate(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def normalize_waypoint(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Client waypoints are loosely shaped; unparsable nights become 1, bad coordinates None."""
    coords = raw.get("coordinates")
    if not isinstance(coords, dict):
        coords = {}
    name = raw.get("name") or raw.get("city") or ""
    return {
        "name": name if isinstance(name, str) else str(name),
        "country": raw.get("country"),
        "nights": _nights(raw.get("nights")),
        "lat": _coordinate(raw.get("lat", coords.get("lat"))),
        "lng": _coordinate(raw.get("lng", coords.get("lng"))),
    }


def normalize_waypoints(items: Any) -> List[Dict[str, Any]]:
    if not isinstance(items, list):
        return []
    return [normalize_waypoint(w) for w in items if isinstance(w, dict)]


@dataclass
class RouteState:
    origin: Optional[Dict[str, Any]] = None
    destination: Optional[Dict[str, Any]] = None
    waypoints: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RouteState":
        data = data if isinstance(data, dict) else {}
        return cls(
            origin=data.get("origin"),
            destination=data.get("destination"),
            waypoints=normalize_waypoints(data.get("waypoints")),
        )

    @property
    def total_nights(self) -> int:
        return sum(w.get("nights") or 1 for w in self.waypoints)

    @property
    def city_names(self) -> List[str]:
        return [w["name"] for w in self.waypoints]

    def index_of(self, name: Optional[str]) -> int:
        key = fold(name)
        for i, w in enumerate(self.waypoints):
            if fold(w["name"]) == key:
                return i
        return -1

    def apply(self, action: Dict[str, Any]) -> None:
        """Adopt the waypoint list carried by a route action."""
        if "waypoints" in action:
            self.waypoints = normalize_waypoints(action["waypoints"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "destination": self.destination,
            "waypoints": [dict(w) for w in self.waypoints],
            "total_nights": self.total_nights,
        }
