"""Tests for the external search and geocoding clients (HTTP layer stubbed)."""

import httpx
import pytest


@pytest.mark.asyncio
async def test_external_search_parses_narrated_json(monkeypatch):
    from clients import PerplexityClient

    client = PerplexityClient(api_key="test")

    async def fake_complete(query):
        return (
            "Here are some ideas:\n```json\n"
            '[{"name": " Pézenas ", "country": "France", "reason": "Molière\'s town"},'
            ' {"country": "Spain"}, {"name": "Besalú"}]\n```'
        )

    monkeypatch.setattr(client, "_complete", fake_complete)
    cities = await client.search_cities("hidden gems near Montpellier")
    assert cities == [
        {"name": "Pézenas", "country": "France", "reason": "Molière's town"},
        {"name": "Besalú", "country": None, "reason": ""},
    ]


@pytest.mark.asyncio
async def test_external_search_unparseable_answer_is_empty(monkeypatch):
    from clients import PerplexityClient

    client = PerplexityClient(api_key="test")

    async def fake_complete(query):
        return "Sorry, I can't help with that."

    monkeypatch.setattr(client, "_complete", fake_complete)
    assert await client.search_cities("anything") == []


@pytest.mark.asyncio
async def test_geocode_extracts_location_and_country(monkeypatch):
    from clients import GeocodingClient

    client = GeocodingClient(api_key="test")

    async def fake_lookup(address):
        return {
            "status": "OK",
            "results": [
                {
                    "geometry": {"location": {"lat": 43.46, "lng": 3.42}},
                    "address_components": [
                        {"long_name": "Pézenas", "types": ["locality"]},
                        {"long_name": "France", "types": ["country", "political"]},
                    ],
                }
            ],
        }

    monkeypatch.setattr(client, "_lookup", fake_lookup)
    assert await client.geocode("Pézenas") == {"lat": 43.46, "lng": 3.42, "country": "France"}


@pytest.mark.asyncio
async def test_geocode_failure_and_no_match_return_none(monkeypatch):
    from clients import GeocodingClient

    client = GeocodingClient(api_key="test")

    async def zero_results(address):
        return {"status": "ZERO_RESULTS", "results": []}

    async def unreachable(address):
        raise httpx.ConnectError("no route to host")

    monkeypatch.setattr(client, "_lookup", zero_results)
    assert await client.geocode("Atlantis") is None
    monkeypatch.setattr(client, "_lookup", unreachable)
    assert await client.geocode("Atlantis") is None


def test_retry_predicate_only_retries_transient_http_errors():
    from packages.shared.retry import is_retryable_http_error

    request = httpx.Request("GET", "https://example.test")

    def status_error(code):
        return httpx.HTTPStatusError("err", request=request, response=httpx.Response(code, request=request))

    assert is_retryable_http_error(httpx.ReadTimeout("slow", request=request))
    assert is_retryable_http_error(status_error(503))
    assert is_retryable_http_error(status_error(429))
    assert not is_retryable_http_error(status_error(401))
    assert not is_retryable_http_error(ValueError("bad json"))


@pytest.mark.asyncio
async def test_external_search_ignores_non_string_fields(monkeypatch):
    from clients import PerplexityClient

    client = PerplexityClient(api_key="test")

    async def fake_complete(query):
        return (
            '[{"name": "Sete", "country": "France"},'
            ' {"name": "Collioure", "country": 7, "reason": ["x"]}, {"name": 42}]'
        )

    monkeypatch.setattr(client, "_complete", fake_complete)
    assert await client.search_cities("coastal towns") == [
        {"name": "Sete", "country": "France", "reason": ""},
        {"name": "Collioure", "country": None, "reason": ""},
    ]
