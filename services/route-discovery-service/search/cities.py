"""Curated reference dataset and the name folding used for identity keys."""

import json
import unicodedata
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from packages.shared.geo import LatLng, haversine_km

DATA_PATH = Path(__file__).resolve().parents[1] / "data" / "curated_cities.json"


def fold(text: Optional[str]) -> str:
    """Accent-folded, lower-cased, whitespace-collapsed form of a name."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.lower().split())


class CityDataset:
    def __init__(self, cities: Iterable[Dict[str, Any]]):
        self._cities: Tuple[Dict[str, Any], ...] = tuple(cities)
        self._by_key = {fold(c["name"]): c for c in self._cities}

    @classmethod
    def from_file(cls, path: Path = DATA_PATH) -> "CityDataset":
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f))

    def all(self) -> Tuple[Dict[str, Any], ...]:
        return self._cities

    def find(self, name: Optional[str]) -> Optional[Dict[str, Any]]:
        return self._by_key.get(fold(name))

    def point(self, name: Optional[str]) -> Optional[LatLng]:
        city = self.find(name)
        if city is None:
            return None
        return city["lat"], city["lng"]

    def within(self, center: LatLng, radius_km: float) -> List[Dict[str, Any]]:
        return [c for c in self._cities if haversine_km(center, (c["lat"], c["lng"])) <= radius_km]

    def __len__(self) -> int:
        return len(self._cities)


@lru_cache(maxsize=1)
def default_dataset() -> CityDataset:
    return CityDataset.from_file()
