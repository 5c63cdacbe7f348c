"""Search sources: curated dataset filter, geographic filter, external search provider."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from packages.shared.geo import LatLng, haversine_km

from .cities import CityDataset, fold
from .strategies import SourceSpec, SourceType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchRequest:
    query: str
    region: str
    near_city: Optional[str] = None
    near_point: Optional[LatLng] = None
    max_distance_km: Optional[float] = None
    exclude_cities: Tuple[str, ...] = ()

    @property
    def excluded_keys(self) -> frozenset:
        return frozenset(fold(c) for c in self.exclude_cities)


@dataclass(frozen=True)
class Candidate:
    name_key: str
    country_key: str
    attributes: Dict[str, Any] = field(hash=False, compare=False)
    source_name: str = ""
    match_reason: str = ""

    @classmethod
    def from_city(cls, city: Dict[str, Any], source_name: str, match_reason: str) -> "Candidate":
        return cls(
            name_key=fold(city.get("name")),
            country_key=fold(city.get("country")),
            attributes=dict(city),
            source_name=source_name,
            match_reason=match_reason,
        )

    @property
    def identity(self) -> Tuple[str, str]:
        return self.name_key, self.country_key


class SearchSource(Protocol):
    async def search(self, spec: SourceSpec, request: SearchRequest) -> List[Candidate]:
        ...


class CuratedSource:
    def __init__(self, dataset: CityDataset):
        self.dataset = dataset

    def _reference_point(self, request: SearchRequest) -> Optional[LatLng]:
        if request.near_point is not None:
            return request.near_point
        return self.dataset.point(request.near_city)

    async def search(self, spec: SourceSpec, request: SearchRequest) -> List[Candidate]:
        excluded = request.excluded_keys
        center = self._reference_point(request) if request.max_distance_km else None
        matches = []
        for city in self.dataset.all():
            if fold(city["name"]) in excluded:
                continue
            if spec.predicate is not None and not spec.predicate(city):
                continue
            if center is not None and haversine_km(center, (city["lat"], city["lng"])) > request.max_distance_km:
                continue
            matches.append(Candidate.from_city(city, spec.name, "Matched curated filter"))
        return matches


class GeographicSource:
    """Static proximity filter; the dataset only knows whether a city sits on the water."""

    def __init__(self, dataset: CityDataset):
        self.dataset = dataset

    async def search(self, spec: SourceSpec, request: SearchRequest) -> List[Candidate]:
        if spec.max_distance_from_coast_km is None:
            return []
        excluded = request.excluded_keys
        return [
            Candidate.from_city(city, spec.name, "Near water/coast")
            for city in self.dataset.all()
            if city.get("near_water") and fold(city["name"]) not in excluded
        ]


class ExternalSource:
    def __init__(self, client, dataset: CityDataset):
        self.client = client
        self.dataset = dataset

    async def search(self, spec: SourceSpec, request: SearchRequest) -> List[Candidate]:
        if not spec.query_template:
            return []
        query = spec.query_template.replace("{region}", request.region)
        results = await self.client.search_cities(query)
        excluded = request.excluded_keys
        candidates = []
        for item in results:
            if fold(item["name"]) in excluded:
                continue
            known = self.dataset.find(item["name"])
            attributes = dict(known) if known else {"name": item["name"]}
            if item.get("country") and not attributes.get("country"):
                attributes["country"] = item["country"]
            candidates.append(
                Candidate.from_city(attributes, spec.name, item.get("reason") or "Recommended by search")
            )
        return candidates


def build_sources(dataset: CityDataset, external_client=None) -> Dict[SourceType, SearchSource]:
    sources: Dict[SourceType, SearchSource] = {
        SourceType.CURATED: CuratedSource(dataset),
        SourceType.GEOGRAPHIC: GeographicSource(dataset),
    }
    if external_client is not None:
        sources[SourceType.EXTERNAL] = ExternalSource(external_client, dataset)
    return sources
