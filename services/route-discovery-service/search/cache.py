"""TTL + LRU cache of ranked search results keyed by (query, intent, region)."""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

from packages.shared.rate_limit import Clock, wall_clock_ms

from .cities import fold
from .fusion import RankedResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
DEFAULT_CAPACITY = 1000

CacheKey = Tuple[str, str, str]


def cache_key(query: str, intent: str, region: Optional[str]) -> CacheKey:
    return fold(query), intent, fold(region)


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    ranked_results: Tuple[RankedResult, ...]
    narrative: str
    confidence: float
    created_at: float
    expires_at: float


class ResultCache:
    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Optional[Clock] = None,
    ):
        self.ttl_ms = ttl_ms
        self.capacity = capacity
        self._clock = clock or wall_clock_ms
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, query: str, intent: str, region: Optional[str]) -> Optional[CacheEntry]:
        key = cache_key(query, intent, region)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def set(
        self,
        query: str,
        intent: str,
        region: Optional[str],
        ranked_results,
        narrative: str,
        confidence: float,
    ) -> CacheEntry:
        key = cache_key(query, intent, region)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            ranked_results=tuple(ranked_results),
            narrative=narrative,
            confidence=confidence,
            created_at=now,
            expires_at=now + self.ttl_ms,
        )
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)
        self._entries[key] = entry
        return entry

    def cleanup(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for k in expired:
            self._entries.pop(k, None)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {"size": len(self._entries), "capacity": self.capacity, "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)
