"""City search: intent → strategy → sources → fusion → cache, plus narrative and confidence."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from packages.shared.errors import ClassificationDegraded
from packages.shared.geo import LatLng
from packages.shared.llm_provider import LLMProviderFacade

from prompts import NARRATIVE_PROMPT

from .aggregator import MultiSourceSearchAggregator
from .cache import ResultCache
from .cities import CityDataset, fold
from .fusion import RankFusion, RankedResult
from .intent import GENERAL, Intent, classify_intent
from .sources import SearchRequest
from .strategies import StrategyRegistry

logger = logging.getLogger(__name__)

DEFAULT_REGION = "Southern France and Northern Spain"
DEFAULT_MAX_RESULTS = 5
NO_RESULTS_NARRATIVE = (
    "I couldn't find cities matching your criteria. "
    "Could you try describing what you're looking for differently?"
)


def compute_confidence(ranked: Sequence[RankedResult], intent: Intent) -> float:
    """Top score, top corroboration and intent confidence, equally weighted. Failed sources are not counted."""
    if not ranked:
        return 0.0
    top = ranked[0]
    score_conf = min(top.fused_score / 10, 1.0)
    source_conf = min(len(top.contributing_sources) / 2, 1.0)
    return round((score_conf + source_conf + intent.confidence) / 3, 4)


class CitySearchService:
    def __init__(
        self,
        dataset: CityDataset,
        aggregator: MultiSourceSearchAggregator,
        cache: ResultCache,
        registry: Optional[StrategyRegistry] = None,
        llm: Optional[LLMProviderFacade] = None,
        default_region: str = DEFAULT_REGION,
    ):
        self.dataset = dataset
        self.aggregator = aggregator
        self.cache = cache
        self.registry = registry or StrategyRegistry()
        self.llm = llm
        self.default_region = default_region

    def _resolve_intent(self, query: str, intent_override: Optional[str]) -> Intent:
        intents = classify_intent(query)
        if intent_override:
            for candidate in intents:
                if candidate.name == intent_override:
                    return candidate
            return Intent(name=intent_override, score=1.0, confidence=0.5)
        primary = intents[0]
        if primary is GENERAL and query:
            degraded = ClassificationDegraded("No intent signals matched", details={"query": query[:100]})
            logger.info(degraded.message, extra={"context": {"error_code": degraded.code, **degraded.details}})
        return primary

    async def narrate(self, ranked: Sequence[RankedResult], intent: Intent) -> str:
        if not ranked:
            return NO_RESULTS_NARRATIVE
        fallback = f"I found some great {intent.name.replace('_', ' ')} destinations for you."
        if self.llm is None or not self.llm.configured:
            return fallback
        matches = "\n".join(
            f"{r.name} ({r.attributes.get('country') or 'unknown'}): "
            f"{r.attributes.get('description') or (r.reasons[0] if r.reasons else '')}"
            for r in ranked[:3]
        )
        prompt = NARRATIVE_PROMPT.format(intent=intent.name, matches=matches)
        try:
            text = await asyncio.to_thread(
                lambda: self.llm.chat_completion(
                    [{"role": "user", "content": prompt}], temperature=0.7, max_tokens=200
                )
            )
        except Exception as e:
            logger.warning("Narrative generation failed: %s", e)
            return fallback
        return text or fallback

    async def search(
        self,
        query: str,
        *,
        intent: Optional[str] = None,
        region: Optional[str] = None,
        near_city: Optional[str] = None,
        near_point: Optional[LatLng] = None,
        max_distance_km: Optional[float] = None,
        exclude_cities: Optional[List[str]] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        skip_cache: bool = False,
    ) -> Dict[str, Any]:
        """
        Returns {intent, strategy, cities, narrative, confidence, cached, failed_sources}.
        Cities are RankedResult.to_dict() rows, at most max_results.
        """
        resolved = self._resolve_intent(query, intent)
        region_key = near_city or region or self.default_region
        if max_distance_km:
            region_key = f"{region_key}@{max_distance_km:g}km"
        excluded = {fold(c) for c in exclude_cities or ()}

        if not skip_cache:
            entry = self.cache.get(query, resolved.name, region_key)
            if entry is not None:
                cities = [r for r in entry.ranked_results if r.identity[0] not in excluded]
                return {
                    "intent": resolved.to_dict(),
                    "strategy": "cached",
                    "cities": [r.to_dict() for r in cities[:max_results]],
                    "narrative": entry.narrative,
                    "confidence": entry.confidence,
                    "cached": True,
                    "failed_sources": [],
                }

        strategy = self.registry.get_strategy(resolved.name)
        request = SearchRequest(
            query=query,
            region=near_city or region or self.default_region,
            near_city=near_city,
            near_point=near_point,
            max_distance_km=max_distance_km,
            exclude_cities=tuple(exclude_cities or ()),
        )
        aggregate = await self.aggregator.search(strategy, request)
        ranked = RankFusion(strategy).fuse(aggregate.candidates, limit=None)
        narrative = await self.narrate(ranked, resolved)
        confidence = compute_confidence(ranked, resolved)

        if ranked:
            self.cache.set(query, resolved.name, region_key, ranked, narrative, confidence)

        logger.info(
            "City search complete",
            extra={
                "context": {
                    "intent": resolved.name,
                    "strategy": strategy.name,
                    "results": len(ranked),
                    "failed_sources": aggregate.failed,
                }
            },
        )
        return {
            "intent": resolved.to_dict(),
            "strategy": strategy.name,
            "cities": [r.to_dict() for r in ranked[:max_results]],
            "narrative": narrative,
            "confidence": confidence,
            "cached": False,
            "failed_sources": list(aggregate.failed),
        }
