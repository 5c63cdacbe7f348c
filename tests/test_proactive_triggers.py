"""Tests for proactive triggers: conditions, cooldowns, dismissals and suggestion parsing."""

import pytest

from conftest import ManualClock

CONTEXT = {
    "route": {
        "waypoints": [
            {"name": "Lyon", "nights": 2},
            {"name": "Avignon", "nights": 1},
            {"name": "Barcelona", "nights": 3},
        ]
    },
    "recent_actions": [],
}


class FakeLLM:
    configured = True

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.prompts = []

    def chat_completion(self, messages, temperature=0.7, max_tokens=300):
        self.prompts.append(messages[-1]["content"])
        if self.error:
            raise self.error
        return self.text


@pytest.mark.asyncio
async def test_city_added_respects_cooldown():
    """Fires at t=0, suppressed at t=20s, eligible again after the 30s cooldown."""
    from proactive import ProactiveTriggerEngine

    clock = ManualClock(0)
    engine = ProactiveTriggerEngine(clock=clock)
    data = {"city_name": "Uzès"}

    first = await engine.generate_suggestion("city_added", "s1", data, CONTEXT)
    assert first["shouldShow"] is True
    assert first["message"] == "Uzès is a great choice! Want me to find similar cities nearby?"
    assert first["priority"] == "medium"
    assert first["fallback"] is True

    clock.set(20_000)
    second = await engine.generate_suggestion("city_added", "s1", data, CONTEXT)
    assert second == {"shouldShow": False, "triggerId": "city_added"}

    clock.set(31_000)
    assert engine.should_trigger("city_added", "s1", data, CONTEXT)


@pytest.mark.asyncio
async def test_cooldown_is_per_session():
    from proactive import ProactiveTriggerEngine

    engine = ProactiveTriggerEngine(clock=ManualClock(0))
    await engine.generate_suggestion("city_added", "s1", {"city_name": "Uzès"}, CONTEXT)
    assert engine.should_trigger("city_added", "s2", {"city_name": "Uzès"}, CONTEXT)
    assert not engine.should_trigger("city_added", "s1", {"city_name": "Uzès"}, CONTEXT)


def test_unknown_trigger_never_fires():
    from proactive import ProactiveTriggerEngine

    assert not ProactiveTriggerEngine().should_trigger("weather_changed", "s1", {}, CONTEXT)


def test_trigger_conditions():
    from proactive import TRIGGERS

    now = 1_000_000
    removals = {
        "recent_actions": [
            {"action_type": "city_removed", "timestamp": now - 10_000},
            {"action_type": "city_removed", "timestamp": now - 30_000},
        ]
    }
    stale = {"recent_actions": [{"type": "city_removed", "timestamp": now - 90_000}] * 2}
    assert TRIGGERS["cities_removed"].condition({}, removals, now)
    assert not TRIGGERS["cities_removed"].condition({}, stale, now)

    assert TRIGGERS["idle_exploring"].condition(
        {"idle_duration_ms": 120_000, "map_center": {"lat": 43.6, "lng": 3.9}}, {}, now
    )
    assert not TRIGGERS["idle_exploring"].condition({"idle_duration_ms": 60_000, "map_center": {}}, {}, now)

    uneven = {"route": {"waypoints": [{"nights": 1}, {"nights": 1}, {"nights": 4}]}}
    assert TRIGGERS["route_imbalance"].condition({}, uneven, now)
    assert not TRIGGERS["route_imbalance"].condition({}, CONTEXT, now)

    assert TRIGGERS["preference_detected"].condition({"preference_type": "coastal", "confidence": 0.7}, {}, now)
    assert not TRIGGERS["preference_detected"].condition({"preference_type": "coastal", "confidence": 0.5}, {}, now)

    assert TRIGGERS["trip_ready"].condition({}, CONTEXT, now)
    assert TRIGGERS["hidden_gem_nearby"].condition({"hidden_gem": "Uzès", "distance_from_route": 12}, {}, now)
    assert not TRIGGERS["hidden_gem_nearby"].condition({"hidden_gem": "Uzès", "distance_from_route": 80}, {}, now)


def test_iso_timestamps_are_understood():
    from proactive.triggers import action_timestamp_ms

    assert action_timestamp_ms("1970-01-01T00:00:01Z") == 1000
    assert action_timestamp_ms(1500) == 1500
    assert action_timestamp_ms("yesterday") is None


@pytest.mark.asyncio
async def test_model_suggestion_is_trimmed():
    from proactive import ProactiveTriggerEngine

    llm = FakeLLM(
        'Sure! ```json\n{"shouldShow": true, "message": "' + "x" * 300 + '", "priority": "high", '
        '"quickActions": [{"label": "A", "action": "a"}, {"label": "B", "action": "b"}, '
        '{"label": "C", "action": "c"}]}\n```'
    )
    engine = ProactiveTriggerEngine(llm=llm, clock=ManualClock(0))
    result = await engine.generate_suggestion("trip_ready", "s1", {}, CONTEXT)

    assert result["shouldShow"] is True
    assert len(result["message"]) == 200
    assert len(result["quickActions"]) == 2
    assert result["priority"] == "high"
    assert result["fallback"] is False
    assert "Lyon (2n)" in llm.prompts[0]


@pytest.mark.asyncio
async def test_model_declines_without_starting_cooldown():
    from proactive import ProactiveTriggerEngine

    engine = ProactiveTriggerEngine(llm=FakeLLM('{"shouldShow": false}'), clock=ManualClock(0))
    result = await engine.generate_suggestion("trip_ready", "s1", {}, CONTEXT)

    assert result == {"shouldShow": False, "triggerId": "trip_ready"}
    assert engine.should_trigger("trip_ready", "s1", {}, CONTEXT)


@pytest.mark.asyncio
async def test_bad_model_output_falls_back_to_template():
    from proactive import ProactiveTriggerEngine

    for llm in (FakeLLM("I think you should go to Nice!"), FakeLLM(error=RuntimeError("quota"))):
        engine = ProactiveTriggerEngine(llm=llm, clock=ManualClock(0))
        result = await engine.generate_suggestion("trip_ready", "s1", {}, CONTEXT)
        assert result["shouldShow"] is True
        assert result["fallback"] is True
        assert result["message"].startswith("Your route is looking great!")


def test_dismissal_is_tracked_by_suggestion_id():
    from proactive import ProactiveTriggerEngine

    engine = ProactiveTriggerEngine(clock=ManualClock(0))
    engine.record_dismissal("sug-1", "s1")
    assert engine.is_dismissed("sug-1", "s1")
    assert not engine.is_dismissed("sug-1", "s2")


def test_cleanup_drops_old_records_and_is_idempotent():
    from proactive import ProactiveTriggerEngine

    clock = ManualClock(0)
    engine = ProactiveTriggerEngine(clock=clock, retention_ms=60_000)
    engine.record_trigger("city_added", "s1")
    engine.record_dismissal("sug-1", "s1")
    clock.set(50_000)
    engine.record_trigger("trip_ready", "s1")
    clock.set(70_000)

    assert engine.cleanup() == 2
    after_first = engine.snapshot()
    assert engine.cleanup() == 0
    assert engine.snapshot() == after_first
    assert list(after_first["cooldowns"]) == [("s1", "trip_ready")]


def test_infer_preferences_and_route_analysis():
    from proactive import ProactiveTriggerEngine

    engine = ProactiveTriggerEngine()
    actions = [{"action_type": "place_favorited", "data": {"place_type": "vineyard"}}] * 3 + [
        {"action_type": "city_removed", "data": {}}
    ]
    prefs = engine.infer_preferences(actions)
    assert prefs["top_preference"] == "vineyard"
    assert prefs["confidence"] == pytest.approx(0.6)
    assert prefs["behaviors"] == {"simplifying": True}

    analysis = engine.analyze_route({"waypoints": [{"nights": 1}, {"nights": 1}, {"nights": 5}]})
    assert not analysis["healthy"]
    assert analysis["issues"][0]["type"] == "night_imbalance"
    assert engine.analyze_route({"waypoints": [{"nights": 2}]}) == {"issues": [], "healthy": True}


def test_malformed_route_items_do_not_fire():
    from proactive import ProactiveTriggerEngine

    engine = ProactiveTriggerEngine(clock=ManualClock(0))
    context = {"route": {"waypoints": ["Lyon", "Nice", "Arles"]}, "recent_actions": ["city_removed"]}
    assert not engine.should_trigger("route_imbalance", "s1", {}, context)
    assert not engine.should_trigger("cities_removed", "s1", {}, context)
    assert engine.analyze_route({"waypoints": ["Lyon", {"name": "Nice", "nights": "x"}]}) == {
        "issues": [],
        "healthy": True,
    }
