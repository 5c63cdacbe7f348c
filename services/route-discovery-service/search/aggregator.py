"""Fan a strategy out across its sources, isolating per-source failures."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from packages.shared.errors import SourceUnavailable

from .sources import Candidate, SearchRequest, SearchSource
from .strategies import SearchStrategy, SourceSpec, SourceType

logger = logging.getLogger(__name__)


@dataclass
class AggregateResult:
    candidates: List[Candidate] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return bool(self.failed) and not self.succeeded


class MultiSourceSearchAggregator:
    def __init__(self, sources: Dict[SourceType, SearchSource], source_timeout_sec: float = 8.0):
        self.sources = sources
        self.source_timeout_sec = source_timeout_sec

    async def _run(self, source: SearchSource, spec: SourceSpec, request: SearchRequest) -> List[Candidate]:
        return await asyncio.wait_for(source.search(spec, request), timeout=self.source_timeout_sec)

    async def search(self, strategy: SearchStrategy, request: SearchRequest) -> AggregateResult:
        result = AggregateResult()
        planned: List[Tuple[SourceSpec, SearchSource]] = []
        for spec in strategy.sources:
            source = self.sources.get(spec.type)
            if source is None:
                result.skipped.append(spec.name)
                continue
            planned.append((spec, source))

        outcomes = await asyncio.gather(
            *(self._run(source, spec, request) for spec, source in planned),
            return_exceptions=True,
        )
        for (spec, _), outcome in zip(planned, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                err = SourceUnavailable(
                    f"Search source {spec.name} failed",
                    details={"source": spec.name, "strategy": strategy.name, "cause": repr(outcome)},
                )
                logger.warning(
                    "Search source failed: %s",
                    outcome,
                    extra={"context": {"error_code": err.code, **err.details}},
                )
                result.failed.append(spec.name)
                continue
            result.succeeded.append(spec.name)
            result.candidates.extend(outcome)

        if result.all_failed:
            logger.warning(
                "All search sources failed",
                extra={"context": {"strategy": strategy.name, "failed": result.failed}},
            )
        return result
