"""Declarative search strategies keyed by intent name."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

CityPredicate = Callable[[Dict[str, Any]], bool]


class SourceType(str, Enum):
    CURATED = "curated"
    GEOGRAPHIC = "geographic"
    EXTERNAL = "external"


@dataclass(frozen=True)
class SourceSpec:
    type: SourceType
    weight: float
    predicate: Optional[CityPredicate] = None
    query_template: Optional[str] = None
    max_distance_from_coast_km: Optional[float] = None

    @property
    def name(self) -> str:
        return self.type.value


@dataclass(frozen=True)
class RankingSignal:
    signal: str
    weight: float


@dataclass(frozen=True)
class SearchStrategy:
    name: str
    description: str
    sources: Tuple[SourceSpec, ...]
    ranking_signals: Tuple[RankingSignal, ...] = ()
    boost_terms: Tuple[str, ...] = ()
    penalty_terms: Tuple[str, ...] = ()
    bonus_attribute: Optional[str] = None

    def source(self, source_type: SourceType) -> Optional[SourceSpec]:
        for spec in self.sources:
            if spec.type == source_type:
                return spec
        return None

    def weight_for(self, source_name: str) -> float:
        for spec in self.sources:
            if spec.name == source_name:
                return spec.weight
        return 0.0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "sources": [{"type": s.name, "weight": s.weight} for s in self.sources],
            "ranking_signals": [{"signal": r.signal, "weight": r.weight} for r in self.ranking_signals],
            "boost_terms": list(self.boost_terms),
            "penalty_terms": list(self.penalty_terms),
        }


def has_any_tag(*tags: str) -> CityPredicate:
    wanted = set(tags)
    return lambda city: bool(wanted.intersection(city.get("tags") or ()))


def _signals(*pairs: Tuple[str, float]) -> Tuple[RankingSignal, ...]:
    return tuple(RankingSignal(s, w) for s, w in pairs)


def _external(weight: float, template: str) -> SourceSpec:
    return SourceSpec(type=SourceType.EXTERNAL, weight=weight, query_template=template)


def _curated(weight: float, predicate: CityPredicate) -> SourceSpec:
    return SourceSpec(type=SourceType.CURATED, weight=weight, predicate=predicate)


def _low_key_and_well_rated(city: Dict[str, Any]) -> bool:
    return bool(city.get("hidden_gem")) or (
        city.get("tourist_level") == "low" and (city.get("rating") or 0) >= 4
    )


def _by_the_water(city: Dict[str, Any]) -> bool:
    return has_any_tag("coastal", "beach", "port", "mediterranean", "seaside")(city) or bool(
        city.get("near_water")
    )


def _quiet(city: Dict[str, Any]) -> bool:
    return has_any_tag("relaxation", "spa", "peaceful", "quiet", "wellness")(city) or city.get(
        "tourist_level"
    ) == "low"


STRATEGIES: Dict[str, SearchStrategy] = {
    s.name: s
    for s in (
        SearchStrategy(
            name="foodie",
            description="Culinary destinations: markets, Michelin tables, wine country",
            sources=(
                _curated(1.5, has_any_tag("gastronomy", "food", "wine", "michelin", "culinary")),
                _external(1.2, "Best food and culinary cities near {region} for travelers"),
            ),
            ranking_signals=_signals(
                ("michelin_stars", 3.0),
                ("food_market_count", 2.0),
                ("restaurant_density", 1.5),
                ("regional_cuisine_reputation", 2.0),
            ),
            boost_terms=("michelin", "gastronomy", "bouchon", "market", "vineyard"),
        ),
        SearchStrategy(
            name="hidden_gem",
            description="Lesser-known towns locals love",
            sources=(
                _curated(2.0, _low_key_and_well_rated),
                _external(1.5, "Hidden gem towns and lesser-known destinations near {region} that locals love"),
            ),
            ranking_signals=_signals(
                ("low_tourist_density", 3.0),
                ("local_rating", 2.5),
                ("authenticity", 2.0),
            ),
            boost_terms=("secret", "local", "authentic", "undiscovered", "charming"),
            penalty_terms=("tourist", "crowded", "famous", "popular"),
            bonus_attribute="hidden_gem",
        ),
        SearchStrategy(
            name="coastal",
            description="Seaside towns, harbors and beaches",
            sources=(
                _curated(1.5, _by_the_water),
                SourceSpec(type=SourceType.GEOGRAPHIC, weight=2.0, max_distance_from_coast_km=20),
                _external(1.0, "Beautiful coastal towns and seaside destinations near {region}"),
            ),
            ranking_signals=_signals(("beach_quality", 2.5), ("harbor_charm", 2.0), ("sea_view", 1.5)),
            boost_terms=("harbor", "beach", "cove", "fishing", "marina", "promenade"),
        ),
        SearchStrategy(
            name="historic",
            description="Medieval old towns, Roman sites and UNESCO heritage",
            sources=(
                _curated(1.5, has_any_tag("historic", "medieval", "roman", "unesco", "heritage")),
                _external(1.2, "Historic cities with medieval old towns and UNESCO sites near {region}"),
            ),
            ranking_signals=_signals(("unesco_sites", 3.0), ("preservation", 2.0), ("monument_count", 1.5)),
            boost_terms=("unesco", "medieval", "roman", "castle", "cathedral", "heritage"),
        ),
        SearchStrategy(
            name="artistic",
            description="Museums, galleries and creative scenes",
            sources=(
                _curated(1.5, has_any_tag("art", "artistic", "culture", "museums", "architecture", "creative")),
                _external(1.2, "Cities with great art museums and cultural attractions near {region}"),
            ),
            ranking_signals=_signals(("museum_quality", 3.0), ("gallery_count", 2.0), ("artist_history", 2.0)),
            boost_terms=("museum", "gallery", "artist", "architecture", "design"),
        ),
        SearchStrategy(
            name="nature",
            description="Parks, gorges, mountains and outdoor scenery",
            sources=(
                _curated(1.5, has_any_tag("nature", "hiking", "mountains", "national_park", "scenic")),
                _external(1.3, "Towns near natural parks and scenic landscapes in {region} for outdoor lovers"),
            ),
            ranking_signals=_signals(("park_proximity", 3.0), ("trail_count", 2.0), ("scenery", 2.0)),
            boost_terms=("park", "gorge", "mountain", "trail", "lake", "forest"),
        ),
        SearchStrategy(
            name="nightlife",
            description="Bars, clubs and lively evenings",
            sources=(
                _curated(1.5, has_any_tag("nightlife", "party", "young", "student", "vibrant")),
                _external(1.2, "Cities with best nightlife and entertainment near {region}"),
            ),
            ranking_signals=_signals(("venue_density", 3.0), ("student_population", 1.5), ("festival_calendar", 1.5)),
            boost_terms=("bar", "club", "festival", "music", "entertainment"),
        ),
        SearchStrategy(
            name="relaxation",
            description="Quiet, slow places to unwind",
            sources=(
                _curated(1.5, _quiet),
                _external(1.2, "Peaceful quiet towns for relaxation and wellness near {region}"),
            ),
            ranking_signals=_signals(("quietness", 3.0), ("spa_count", 2.0), ("low_tourist_density", 2.0)),
            boost_terms=("spa", "wellness", "quiet", "peaceful", "retreat"),
            penalty_terms=("busy", "crowded", "party", "nightlife"),
        ),
        SearchStrategy(
            name="romantic",
            description="Charming, picturesque places for couples",
            sources=(
                _curated(1.5, has_any_tag("romantic", "charming", "picturesque", "beautiful")),
                _external(1.3, "Most romantic and charming towns for couples near {region}"),
            ),
            ranking_signals=_signals(("charm", 3.0), ("sunset_views", 2.0), ("boutique_stays", 1.5)),
            boost_terms=("charming", "beautiful", "romantic", "sunset", "intimate"),
        ),
        SearchStrategy(
            name="adventure",
            description="Outdoor sport and active travel",
            sources=(
                _curated(1.5, has_any_tag("adventure", "sports", "active", "outdoor", "extreme")),
                _external(1.3, "Best adventure and outdoor activity destinations near {region}"),
            ),
            ranking_signals=_signals(("activity_variety", 3.0), ("outfitter_count", 1.5), ("terrain", 2.0)),
            boost_terms=("adventure", "sports", "climbing", "kayak", "surf", "cycling"),
        ),
        SearchStrategy(
            name="general",
            description="Well-rated cities and towns worth a stop",
            sources=(
                _curated(1.0, lambda city: True),
                _external(1.0, "Best cities and towns to visit near {region}"),
            ),
            ranking_signals=_signals(("rating", 2.0), ("popularity", 1.0)),
        ),
    )
}


class StrategyRegistry:
    def __init__(self, strategies: Optional[Iterable[SearchStrategy]] = None):
        self._strategies = (
            {s.name: s for s in strategies} if strategies is not None else dict(STRATEGIES)
        )
        if "general" not in self._strategies:
            self._strategies["general"] = STRATEGIES["general"]

    def get_strategy(self, intent_name: Optional[str]) -> SearchStrategy:
        return self._strategies.get(intent_name or "general") or self._strategies["general"]

    def names(self) -> Tuple[str, ...]:
        return tuple(self._strategies)


def build_external_query(strategy: SearchStrategy, region: str) -> Optional[str]:
    spec = strategy.source(SourceType.EXTERNAL)
    if spec is None or not spec.query_template:
        return None
    return spec.query_template.replace("{region}", region)


default_registry = StrategyRegistry()
