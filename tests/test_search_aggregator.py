"""Tests for multi-source aggregation and the city search pipeline."""

import asyncio

import pytest

from conftest import ManualClock

CITIES = [
    {
        "name": "Uzès",
        "country": "France",
        "lat": 44.01,
        "lng": 4.42,
        "hidden_gem": True,
        "tourist_level": "low",
        "rating": 4.5,
        "description": "Charming market town with a ducal castle",
        "tags": ["historic", "market"],
    },
    {
        "name": "Nice",
        "country": "France",
        "lat": 43.70,
        "lng": 7.27,
        "hidden_gem": False,
        "tourist_level": "high",
        "rating": 4.4,
        "description": "Famous promenade on the Riviera",
        "tags": ["coastal", "beach"],
        "near_water": True,
    },
]


class FailingSource:
    async def search(self, spec, request):
        raise ConnectionError("upstream down")


class SlowSource:
    async def search(self, spec, request):
        await asyncio.sleep(5)
        return []


class FakeExternalClient:
    def __init__(self, results):
        self.results = results
        self.queries = []

    async def search_cities(self, query):
        self.queries.append(query)
        return self.results


def _dataset():
    from search.cities import CityDataset

    return CityDataset(CITIES)


def _service(sources, clock=None, timeout=1.0):
    from search.aggregator import MultiSourceSearchAggregator
    from search.cache import ResultCache
    from search.city_search import CitySearchService

    return CitySearchService(
        dataset=_dataset(),
        aggregator=MultiSourceSearchAggregator(sources, source_timeout_sec=timeout),
        cache=ResultCache(clock=clock or ManualClock()),
    )


@pytest.mark.asyncio
async def test_failed_source_is_isolated():
    """A dead external source leaves curated results and a confidence from the survivor."""
    from search.sources import CuratedSource
    from search.strategies import SourceType

    service = _service({SourceType.CURATED: CuratedSource(_dataset()), SourceType.EXTERNAL: FailingSource()})
    result = await service.search("hidden gem")

    assert result["intent"]["name"] == "hidden_gem"
    assert result["failed_sources"] == ["external"]
    assert [c["name"] for c in result["cities"]] == ["Uzès"]
    assert result["cities"][0]["sources"] == ["curated"]
    # 2.0 weight + "charming" + rating 4.5 + hidden_gem bonus = 7.8
    assert result["cities"][0]["score"] == pytest.approx(7.8)
    assert result["confidence"] == pytest.approx((0.78 + 0.5 + 0.6) / 3, abs=1e-4)
    assert result["narrative"] == "I found some great hidden gem destinations for you."


@pytest.mark.asyncio
async def test_all_sources_failed_returns_empty_and_is_not_cached():
    from search.city_search import NO_RESULTS_NARRATIVE
    from search.strategies import SourceType

    service = _service({SourceType.CURATED: FailingSource(), SourceType.EXTERNAL: FailingSource()})
    result = await service.search("hidden gem")

    assert result["cities"] == []
    assert result["confidence"] == 0.0
    assert result["narrative"] == NO_RESULTS_NARRATIVE
    assert sorted(result["failed_sources"]) == ["curated", "external"]
    assert len(service.cache) == 0


@pytest.mark.asyncio
async def test_slow_source_times_out():
    from search.aggregator import MultiSourceSearchAggregator
    from search.sources import CuratedSource, SearchRequest
    from search.strategies import SourceType, StrategyRegistry

    aggregator = MultiSourceSearchAggregator(
        {SourceType.CURATED: CuratedSource(_dataset()), SourceType.EXTERNAL: SlowSource()},
        source_timeout_sec=0.05,
    )
    strategy = StrategyRegistry().get_strategy("hidden_gem")
    result = await aggregator.search(strategy, SearchRequest(query="q", region="Provence"))

    assert result.failed == ["external"]
    assert result.succeeded == ["curated"]
    assert not result.all_failed


@pytest.mark.asyncio
async def test_missing_source_is_skipped_not_failed():
    from search.aggregator import MultiSourceSearchAggregator
    from search.sources import build_sources, SearchRequest
    from search.strategies import StrategyRegistry

    aggregator = MultiSourceSearchAggregator(build_sources(_dataset()))
    strategy = StrategyRegistry().get_strategy("coastal")
    result = await aggregator.search(strategy, SearchRequest(query="beach", region="Riviera"))

    assert result.skipped == ["external"]
    assert result.failed == []
    assert set(result.succeeded) == {"curated", "geographic"}


@pytest.mark.asyncio
async def test_external_results_enriched_from_dataset_and_corroborate():
    from search.sources import build_sources
    from search.strategies import SourceType

    client = FakeExternalClient(
        [
            {"name": "Uzes", "country": "France", "reason": "Locals love it"},
            {"name": "Pézenas", "country": "France"},
        ]
    )
    service = _service(build_sources(_dataset(), client))
    result = await service.search("hidden gem", region="Occitanie")

    assert "Occitanie" in client.queries[0]
    top = result["cities"][0]
    assert top["name"] == "Uzès"
    assert top["sources"] == ["curated", "external"]
    assert "Pézenas" in [c["name"] for c in result["cities"]]
    assert result["failed_sources"] == []
    assert SourceType.EXTERNAL in service.aggregator.sources


@pytest.mark.asyncio
async def test_second_search_served_from_cache_with_exclusions():
    from search.sources import CuratedSource
    from search.strategies import SourceType

    service = _service({SourceType.CURATED: CuratedSource(_dataset())})
    first = await service.search("beach by the sea")
    assert not first["cached"]
    assert first["cities"]

    second = await service.search("Beach by the  SEA", exclude_cities=["Nice"])
    assert second["cached"]
    assert "Nice" not in [c["name"] for c in second["cities"]]

    fresh = await service.search("beach by the sea", skip_cache=True)
    assert not fresh["cached"]


@pytest.mark.asyncio
async def test_intent_override_and_distance_filter():
    from search.sources import CuratedSource
    from search.strategies import SourceType

    service = _service({SourceType.CURATED: CuratedSource(_dataset())})
    result = await service.search("anything", intent="general", near_city="Uzès", max_distance_km=50)

    assert result["strategy"] == "general"
    assert [c["name"] for c in result["cities"]] == ["Uzès"]
