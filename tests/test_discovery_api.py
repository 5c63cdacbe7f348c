"""In-process tests for the discovery API contract (no network, scripted model)."""

import pytest
from fastapi.testclient import TestClient

from conftest import ManualClock, ScriptedModel, final_turn, tool_turn

ROUTE = {
    "origin": {"name": "Lyon"},
    "destination": {"name": "Barcelona"},
    "waypoints": [
        {"name": "Lyon", "nights": 2, "coordinates": {"lat": 45.764, "lng": 4.836}},
        {"name": "Avignon", "nights": 1, "coordinates": {"lat": 43.949, "lng": 4.806}},
        {"name": "Barcelona", "nights": 3, "coordinates": {"lat": 41.385, "lng": 2.173}},
    ],
}


def _script(i):
    if i % 2 == 0:
        return tool_turn(("analyze_route", {"focus": "pacing"}), text="Let me check your route.")
    return final_turn("Your route looks good. Barcelona deserves its three nights.")


@pytest.fixture
def runtime(dataset):
    import main
    from packages.shared.session_clock import SessionClock
    from runtime import build_runtime

    rt = build_runtime(
        model=ScriptedModel(_script),
        dataset=dataset,
        clock=SessionClock(clock=ManualClock(1_700_000_000_000)),
        use_configured_clients=False,
    )
    main.app.state.runtime = rt
    yield rt
    main.app.state.runtime = None


@pytest.fixture
def client(runtime):
    import main

    return TestClient(main.app)


def test_chat_sync_returns_envelope(client):
    """POST /chat/sync runs the loop and wraps the answer in the standard envelope."""
    r = client.post(
        "/api/v1/discovery/chat/sync",
        json={"message": "Is my route balanced?", "sessionId": "sess-1", "routeData": ROUTE},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["metadata"]["session_id"] == "sess-1"
    assert body["data"]["response"].startswith("Your route looks good")
    assert body["data"]["iterations"] == 2
    assert body["data"]["tool_calls"][0]["name"] == "analyze_route"
    assert "X-Request-ID" in r.headers


def test_chat_requires_message(client):
    r = client.post("/api/v1/discovery/chat/sync", json={"message": "   "})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "DSC_400"


def test_chat_sync_rate_limited(client, runtime):
    runtime.rate_limiter.max_requests = 1
    payload = {"message": "hello", "sessionId": "sess-rl", "routeData": ROUTE}
    assert client.post("/api/v1/discovery/chat/sync", json=payload).status_code == 200

    r = client.post("/api/v1/discovery/chat/sync", json=payload)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    body = r.json()
    assert body["error"]["code"] == "DSC_429"
    assert body["fallback_message"].startswith("I'm getting a lot of requests")


def test_chat_streams_sse_events(client):
    """POST /chat streams events ending in complete."""
    r = client.post(
        "/api/v1/discovery/chat",
        json={"message": "Check my pacing", "sessionId": "sess-sse", "routeData": ROUTE},
    )
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["X-Session-ID"] == "sess-sse"
    events = [line.split(": ", 1)[1] for line in r.text.splitlines() if line.startswith("event: ")]
    assert events == ["thinking", "text", "tool_start", "tool_complete", "complete"]


def test_history_after_chat(client):
    client.post("/api/v1/discovery/chat/sync", json={"message": "Plan it", "sessionId": "sess-h", "routeData": ROUTE})
    r = client.get("/api/v1/discovery/history/sess-h")
    assert r.status_code == 200
    messages = r.json()["data"]["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "Plan it"


def test_greeting_fallback_without_llm(client):
    r = client.post("/api/v1/discovery/greeting", json={"sessionId": "sess-g"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["type"] == "greeting"
    assert data["fallback"] is True


def test_search_returns_ranked_cities(client):
    r = client.post("/api/v1/discovery/search", json={"query": "hidden gem villages", "maxResults": 2})
    assert r.status_code == 200
    body = r.json()
    data = body["data"]
    assert data["intent"]["name"] == "hidden_gem"
    assert 1 <= len(data["cities"]) <= 2
    assert data["failed_sources"] == []
    assert body["summary"] == data["narrative"]

    again = client.post("/api/v1/discovery/search", json={"query": "hidden gem villages", "maxResults": 2})
    assert again.json()["data"]["cached"] is True


def test_search_validates_body(client):
    assert client.post("/api/v1/discovery/search", json={"query": "coast", "maxResults": 50}).status_code == 422
    assert client.post("/api/v1/discovery/search", json={"query": ""}).status_code == 422


def test_proactive_city_added_then_cooldown(client):
    payload = {
        "trigger": "city_added",
        "triggerData": {"cityName": "Uzès"},
        "sessionId": "sess-p",
        "routeData": ROUTE,
    }
    first = client.post("/api/v1/discovery/proactive", json=payload).json()["data"]
    assert first["shouldShow"] is True
    assert first["message"].startswith("Uzès is a great choice")
    assert first["suggestionId"]

    second = client.post("/api/v1/discovery/proactive", json=payload).json()["data"]
    assert second == {"shouldShow": False, "triggerId": "city_added"}


def test_proactive_requires_trigger(client):
    r = client.post("/api/v1/discovery/proactive", json={"sessionId": "s"})
    assert r.status_code == 400


def test_recorded_actions_feed_removal_trigger(client):
    for city in ("Nice", "Cannes"):
        r = client.post(
            "/api/v1/discovery/action",
            json={"sessionId": "sess-a", "actionType": "city_removed", "data": {"cityName": city}},
        )
        assert r.status_code == 200

    r = client.post(
        "/api/v1/discovery/proactive",
        json={"trigger": "cities_removed", "sessionId": "sess-a", "routeData": ROUTE},
    )
    assert r.json()["data"]["shouldShow"] is True


def test_dismiss_suggestion(client, runtime):
    assert client.post("/api/v1/discovery/trigger/dismiss", json={"sessionId": "s"}).status_code == 400

    r = client.post("/api/v1/discovery/trigger/dismiss", json={"suggestionId": "sug-9", "sessionId": "s"})
    assert r.status_code == 200
    assert runtime.triggers.is_dismissed("sug-9", "s")


def test_infer_preferences_accepts_camel_case(client):
    actions = [{"type": "place_favorited", "data": {"placeType": "vineyard"}}] * 3
    r = client.post(
        "/api/v1/discovery/preferences/infer",
        json={"actions": actions, "routeData": {"waypoints": [{"nights": 1}, {"nights": 1}, {"nights": 5}]}},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["preferences"]["top_preference"] == "vineyard"
    assert data["route_analysis"]["healthy"] is False


def test_health_and_readiness(client):
    assert client.get("/health").json()["status"] == "healthy"
    ready = client.get("/ready").json()
    assert ready["status"] in ("healthy", "degraded", "unhealthy")
    assert {d["name"] for d in ready["dependencies"]} == {"llm", "supabase", "external_search"}


def test_root_lists_endpoints(client):
    data = client.get("/").json()
    assert data["service"] == "route-discovery-service"
    assert "chat" in data["endpoints"]


def test_chat_sync_tolerates_malformed_waypoints(client):
    """Unparsable nights, bad coordinates and non-object waypoints degrade instead of failing."""
    route = {
        "waypoints": [
            {"name": "Lyon", "nights": "two"},
            "Nice",
            {"name": "Arles", "coordinates": {"lat": "north", "lng": 4.63}},
        ]
    }
    r = client.post(
        "/api/v1/discovery/chat/sync",
        json={"message": "Is my route balanced?", "sessionId": "sess-bad", "routeData": route},
    )
    assert r.status_code == 200
    assert r.json()["data"]["response"].startswith("Your route looks good")


def test_proactive_tolerates_non_object_waypoints(client):
    r = client.post(
        "/api/v1/discovery/proactive",
        json={
            "trigger": "route_imbalance",
            "sessionId": "sess-bad",
            "routeData": {"waypoints": ["Lyon", "Nice", "Arles"]},
        },
    )
    assert r.status_code == 200
    assert r.json()["data"] == {"shouldShow": False, "triggerId": "route_imbalance"}


def test_store_sessions_are_swept(runtime):
    assert "session_store" in runtime.clock.sweep()
