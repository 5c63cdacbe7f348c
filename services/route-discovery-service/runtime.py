"""Process-wide service objects, wired once at startup and shared by the routes."""

import logging
from dataclasses import dataclass
from typing import Optional

from packages.shared.llm_provider import LLMProviderFacade, get_llm_provider
from packages.shared.rate_limit import RateLimiter
from packages.shared.session_clock import SessionClock

from agentic.agent import DiscoveryAgent
from agentic.model import LLMToolModel, ToolCallingModel
from clients import get_geocoding_client, get_perplexity_client
from config import Settings, settings as default_settings
from proactive import ProactiveTriggerEngine
from search.aggregator import MultiSourceSearchAggregator
from search.cache import ResultCache
from search.cities import CityDataset, default_dataset
from search.city_search import CitySearchService
from search.sources import build_sources
from session_store import InMemorySessionStore, SessionStore, get_session_store

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryRuntime:
    clock: SessionClock
    rate_limiter: RateLimiter
    cache: ResultCache
    search: CitySearchService
    triggers: ProactiveTriggerEngine
    agent: DiscoveryAgent
    store: SessionStore
    dataset: CityDataset
    llm: Optional[LLMProviderFacade] = None


def build_runtime(
    cfg: Optional[Settings] = None,
    *,
    llm: Optional[LLMProviderFacade] = None,
    model: Optional[ToolCallingModel] = None,
    store: Optional[SessionStore] = None,
    external_client=None,
    geocoder=None,
    dataset: Optional[CityDataset] = None,
    clock: Optional[SessionClock] = None,
    use_configured_clients: bool = True,
) -> DiscoveryRuntime:
    """
    Wire the services. Anything not passed in is built from settings; tests
    pass fakes and set ``use_configured_clients=False`` to stay offline.
    """
    cfg = cfg or default_settings
    clock = clock or SessionClock(interval_sec=cfg.sweep_interval_sec)
    dataset = dataset or default_dataset()
    if use_configured_clients:
        llm = llm or get_llm_provider()
        external_client = external_client or get_perplexity_client()
        geocoder = geocoder or get_geocoding_client()
        store = store or get_session_store(clock=clock.now, retention_ms=cfg.session_retention_ms)
    if store is None:
        store = InMemorySessionStore(clock=clock.now, retention_ms=cfg.session_retention_ms)
    if llm is not None and not llm.configured:
        logger.warning("No LLM provider configured; narratives, greetings and suggestions use fallbacks")

    rate_limiter = RateLimiter(cfg.rate_limit_window_ms, cfg.rate_limit_max_requests, clock=clock.now)
    cache = ResultCache(cfg.cache_ttl_ms, cfg.cache_capacity, clock=clock.now)
    aggregator = MultiSourceSearchAggregator(
        build_sources(dataset, external_client=external_client), source_timeout_sec=cfg.source_timeout_sec
    )
    search = CitySearchService(dataset, aggregator, cache, llm=llm, default_region=cfg.default_region)
    triggers = ProactiveTriggerEngine(llm=llm, clock=clock.now, retention_ms=cfg.trigger_retention_ms)

    if model is None and llm is not None:
        model = LLMToolModel(llm, temperature=cfg.model_temperature, max_tokens=cfg.max_tokens)
    agent = DiscoveryAgent(
        model,
        store,
        rate_limiter,
        dataset,
        search=search,
        geocoder=geocoder,
        llm=llm,
        max_iterations=cfg.max_iterations,
        history_window=cfg.history_window,
        timeout_sec=cfg.message_timeout_sec,
    )

    clock.register("rate_limiter", rate_limiter.cleanup)
    clock.register("result_cache", cache.cleanup)
    clock.register("trigger_engine", triggers.cleanup)
    if isinstance(store, InMemorySessionStore):
        clock.register("session_store", store.cleanup)

    return DiscoveryRuntime(
        clock=clock,
        rate_limiter=rate_limiter,
        cache=cache,
        search=search,
        triggers=triggers,
        agent=agent,
        store=store,
        dataset=dataset,
        llm=llm,
    )
