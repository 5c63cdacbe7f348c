"""Tests for rank fusion: scoring, corroboration, order independence."""

import random

import pytest


def _strategy():
    from search.strategies import SearchStrategy, SourceSpec, SourceType

    return SearchStrategy(
        name="test_coastal_gems",
        description="hidden coastal towns",
        sources=(
            SourceSpec(type=SourceType.CURATED, weight=1.5),
            SourceSpec(type=SourceType.EXTERNAL, weight=1.0),
        ),
        boost_terms=("hidden", "coastal"),
    )


def _candidate(name, country, source, **attrs):
    from search.sources import Candidate

    return Candidate.from_city({"name": name, "country": country, **attrs}, source, f"from {source}")


def test_scenario_hidden_gem_coastal_town_score():
    """Curated weight 1.5 + two boosts + rating 4.5/5*2 = 5.3."""
    from search.fusion import fuse

    cand = _candidate(
        "Sète",
        "France",
        "curated",
        description="A hidden fishing port on a coastal lagoon",
        rating=4.5,
    )
    ranked = fuse([cand], _strategy())
    assert len(ranked) == 1
    assert ranked[0].fused_score == pytest.approx(5.3)
    assert ranked[0].contributing_sources == frozenset({"curated"})


def test_penalty_and_bonus_attribute():
    from search.fusion import strategy_score
    from search.strategies import SearchStrategy, SourceSpec, SourceType

    strategy = SearchStrategy(
        name="gems",
        description="",
        sources=(SourceSpec(type=SourceType.CURATED, weight=2.0),),
        penalty_terms=("crowded",),
        bonus_attribute="hidden_gem",
    )
    score, reasons = strategy_score({"description": "Crowded in August", "hidden_gem": True}, strategy)
    assert score == pytest.approx(-0.5 + 3.0)
    assert any("hidden gem" in r for r in reasons)


def test_contribution_never_negative():
    from search.fusion import RankFusion
    from search.strategies import SearchStrategy, SourceSpec, SourceType

    strategy = SearchStrategy(
        name="strict",
        description="",
        sources=(SourceSpec(type=SourceType.CURATED, weight=0.1),),
        penalty_terms=("tourist", "crowded", "famous"),
    )
    cand = _candidate("Nice", "France", "curated", description="famous crowded tourist hub")
    value, _ = RankFusion(strategy).contribution(cand)
    assert value == 0.0


def test_corroboration_adds_each_source_once():
    """Two sources agreeing add up; duplicates from one source do not."""
    from search.fusion import fuse

    strategy = _strategy()
    curated = _candidate("Collioure", "France", "curated", rating=5)
    curated_dup = _candidate("Collioure", "France", "curated", rating=5)
    external = _candidate("Collioure", "France", "external")

    single = fuse([curated], strategy)[0].fused_score
    doubled_same_source = fuse([curated, curated_dup], strategy)[0].fused_score
    corroborated = fuse([curated, curated_dup, external], strategy)[0]

    assert doubled_same_source == pytest.approx(single)
    assert corroborated.fused_score == pytest.approx(single + 1.0)
    assert corroborated.contributing_sources == frozenset({"curated", "external"})


def test_adding_a_source_never_lowers_score():
    from search.fusion import fuse

    strategy = _strategy()
    base = [_candidate("Cadaqués", "Spain", "curated", rating=4.0)]
    more = base + [_candidate("Cadaqués", "Spain", "external", description="a hidden coastal village")]
    assert fuse(more, strategy)[0].fused_score >= fuse(base, strategy)[0].fused_score


def test_output_independent_of_arrival_order():
    from search.fusion import fuse

    strategy = _strategy()
    candidates = [
        _candidate("Sète", "France", "curated", rating=4.5, description="hidden coastal port"),
        _candidate("Sete", "France", "external", rating=4.0),
        _candidate("Collioure", "France", "curated", rating=4.7, tags=["coastal"]),
        _candidate("Collioure", "France", "external"),
        _candidate("Cadaqués", "Spain", "external", description="coastal"),
        _candidate("Uzès", "France", "curated", rating=4.4),
        _candidate("Uzès", "France", "curated", rating=4.4, highlights=["market"]),
    ]
    expected = [r.to_dict() for r in fuse(candidates, strategy, limit=None)]
    rng = random.Random(7)
    for _ in range(25):
        shuffled = candidates[:]
        rng.shuffle(shuffled)
        assert [r.to_dict() for r in fuse(shuffled, strategy, limit=None)] == expected


def test_accents_and_case_fold_to_one_identity():
    from search.fusion import fuse

    ranked = fuse(
        [_candidate("Sète", "France", "curated"), _candidate("SETE", "france", "external")],
        _strategy(),
        limit=None,
    )
    assert len(ranked) == 1
    assert ranked[0].identity == ("sete", "france")


def test_missing_country_joins_unique_match_only():
    from search.fusion import fuse

    strategy = _strategy()
    unique = fuse(
        [_candidate("Girona", "Spain", "curated"), _candidate("Girona", None, "external")],
        strategy,
        limit=None,
    )
    assert len(unique) == 1

    ambiguous = fuse(
        [
            _candidate("Valencia", "Spain", "curated"),
            _candidate("Valencia", "Venezuela", "curated"),
            _candidate("Valencia", None, "external"),
        ],
        strategy,
        limit=None,
    )
    assert len(ambiguous) == 3


def test_ties_break_on_source_count_then_identity():
    from search.fusion import fuse

    ranked = fuse(
        [
            _candidate("Gamma", "France", "curated"),
            _candidate("Delta", "France", "curated"),
            _candidate("Beta", "France", "curated", rating=2.5),
            _candidate("Alpha", "France", "curated"),
            _candidate("Alpha", "France", "external"),
        ],
        _strategy(),
        limit=None,
    )
    assert [r.fused_score for r in ranked] == [2.5, 2.5, 1.5, 1.5]
    assert [r.name for r in ranked] == ["Alpha", "Beta", "Delta", "Gamma"]


def test_default_limit_is_three():
    from search.fusion import DEFAULT_LIMIT, fuse

    candidates = [_candidate(f"Town {i}", "France", "curated", rating=i % 5) for i in range(10)]
    assert DEFAULT_LIMIT == 3
    assert len(fuse(candidates, _strategy())) == 3
