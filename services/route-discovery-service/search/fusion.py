"""
Rank fusion: merge candidates from several sources into one ranked list.

Each source contributes at most once per identity, with
``max(0, source_weight + strategy_score)``, so adding a corroborating source
can only raise a city's fused score. Candidates are processed in a canonical
order, which makes the output independent of source arrival order.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .sources import Candidate
from .strategies import SearchStrategy

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3
TOOL_MAX_RESULTS = 5

BOOST_INCREMENT = 1.0
PENALTY_DECREMENT = 0.5
RATING_SCALE = 2.0
BONUS_ATTRIBUTE_SCORE = 3.0

Identity = Tuple[str, str]


@dataclass(frozen=True)
class RankedResult:
    identity: Identity
    attributes: Dict[str, Any]
    fused_score: float
    contributing_sources: FrozenSet[str]
    reasons: Tuple[str, ...]

    @property
    def name(self) -> str:
        return self.attributes.get("name") or self.identity[0]

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.attributes)
        out["score"] = round(self.fused_score, 2)
        out["sources"] = sorted(self.contributing_sources)
        out["reasons"] = list(self.reasons)
        return out


def _mentions(term: str, attributes: Dict[str, Any]) -> bool:
    if term in (attributes.get("description") or "").lower():
        return True
    if any(term in str(t).lower() for t in attributes.get("tags") or ()):
        return True
    return any(term in str(h).lower() for h in attributes.get("highlights") or ())


def strategy_score(attributes: Dict[str, Any], strategy: SearchStrategy) -> Tuple[float, List[str]]:
    """Boost/penalty term hits, rating quality and the strategy's bonus attribute."""
    score = 0.0
    reasons: List[str] = []
    for term in strategy.boost_terms:
        if _mentions(term, attributes):
            score += BOOST_INCREMENT
            reasons.append(f'Matches "{term}"')
    for term in strategy.penalty_terms:
        if _mentions(term, attributes):
            score -= PENALTY_DECREMENT
            reasons.append(f'Penalized for "{term}"')
    rating = attributes.get("rating")
    if rating:
        score += float(rating) / 5 * RATING_SCALE
        reasons.append(f"Rating: {rating}")
    if strategy.bonus_attribute and attributes.get(strategy.bonus_attribute):
        score += BONUS_ATTRIBUTE_SCORE
        reasons.append(f"Marked as {strategy.bonus_attribute.replace('_', ' ')}")
    return score, reasons


def resolve_identities(candidates: Iterable[Candidate]) -> List[Tuple[Candidate, Identity]]:
    """
    Same folded name and same known country is one place. A candidate with no
    country joins the named place only when exactly one country is known for
    that name; otherwise it stays on its own.
    """
    countries: Dict[str, set] = defaultdict(set)
    cands = list(candidates)
    for c in cands:
        if c.country_key:
            countries[c.name_key].add(c.country_key)
    resolved: List[Tuple[Candidate, Identity]] = []
    for c in cands:
        if c.country_key:
            resolved.append((c, c.identity))
        elif len(countries[c.name_key]) == 1:
            resolved.append((c, (c.name_key, next(iter(countries[c.name_key])))))
        else:
            resolved.append((c, (c.name_key, "")))
    return resolved


class RankFusion:
    def __init__(self, strategy: SearchStrategy):
        self.strategy = strategy

    def contribution(self, candidate: Candidate) -> Tuple[float, List[str]]:
        score, reasons = strategy_score(candidate.attributes, self.strategy)
        return max(0.0, self.strategy.weight_for(candidate.source_name) + score), reasons

    def fuse(self, candidates: Iterable[Candidate], limit: Optional[int] = DEFAULT_LIMIT) -> List[RankedResult]:
        scored = []
        for cand, identity in resolve_identities(candidates):
            value, reasons = self.contribution(cand)
            order = (
                cand.source_name,
                identity,
                -value,
                cand.match_reason,
                json.dumps(cand.attributes, sort_keys=True, default=str),
            )
            scored.append((order, identity, cand, value, reasons))
        scored.sort(key=lambda row: row[0])

        groups: Dict[Identity, Dict[str, Any]] = {}
        for (source_name, *_), identity, cand, value, reasons in scored:
            group = groups.setdefault(
                identity, {"score": 0.0, "sources": set(), "reasons": [], "members": []}
            )
            if source_name in group["sources"]:
                continue
            group["sources"].add(source_name)
            group["score"] += value
            group["members"].append(cand)
            for reason in [cand.match_reason, *reasons]:
                if reason and reason not in group["reasons"]:
                    group["reasons"].append(reason)

        ranked = [
            RankedResult(
                identity=identity,
                attributes=self._merge_attributes(group["members"]),
                fused_score=group["score"],
                contributing_sources=frozenset(group["sources"]),
                reasons=tuple(group["reasons"]),
            )
            for identity, group in groups.items()
        ]
        ranked.sort(key=lambda r: (-r.fused_score, -len(r.contributing_sources), r.identity))
        return ranked if limit is None else ranked[:limit]

    @staticmethod
    def _merge_attributes(members: List[Candidate]) -> Dict[str, Any]:
        ordered = sorted(members, key=lambda c: (-len(c.attributes), c.source_name))
        merged: Dict[str, Any] = {}
        for cand in ordered:
            for key, value in cand.attributes.items():
                if merged.get(key) in (None, "", [], ()):
                    merged[key] = value
        return merged


def fuse(
    candidates: Iterable[Candidate],
    strategy: SearchStrategy,
    limit: Optional[int] = DEFAULT_LIMIT,
) -> List[RankedResult]:
    return RankFusion(strategy).fuse(candidates, limit=limit)
