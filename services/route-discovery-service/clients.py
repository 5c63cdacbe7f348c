"""HTTP clients for the external search provider and the geocoder."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from packages.shared.json_extract import extract_json
from packages.shared.retry import create_retry_decorator

logger = logging.getLogger(__name__)

EXTERNAL_SEARCH_SYSTEM_PROMPT = (
    "You are a travel expert. Return ONLY a JSON array of city recommendations. "
    "Each city should have: name, country, reason (1 sentence why it matches). "
    "Maximum 5 cities. No markdown, just JSON."
)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class PerplexityClient:
    """Chat-completions call that returns [{name, country, reason}] parsed out of free text."""

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.1-sonar-small-128k-online",
        url: str = "https://api.perplexity.ai/chat/completions",
        timeout_sec: float = 10.0,
    ):
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout_sec = timeout_sec

    @create_retry_decorator("external_search")
    async def _complete(self, query: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": EXTERNAL_SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            "max_tokens": 500,
            "temperature": 0.3,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
            r = await client.post(self.url, json=payload, headers=headers)
            r.raise_for_status()
            data = r.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def search_cities(self, query: str) -> List[Dict[str, Any]]:
        """Raises on transport/HTTP failure; an unparseable answer is an empty list."""
        content = await self._complete(query)
        parsed = extract_json(content, expect=list)
        if not parsed.ok:
            logger.warning("External search returned no JSON array: %s", parsed.error)
            return []
        return [
            {
                "name": item["name"].strip(),
                "country": _text(item.get("country")) or None,
                "reason": _text(item.get("reason")),
            }
            for item in parsed.value
            if isinstance(item, dict) and _text(item.get("name"))
        ][:5]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class GeocodingClient:
    def __init__(self, api_key: str, timeout_sec: float = 5.0):
        self.api_key = api_key
        self.timeout_sec = timeout_sec

    @create_retry_decorator("geocoding")
    async def _lookup(self, address: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
            r = await client.get(GEOCODE_URL, params={"address": address, "key": self.api_key})
            r.raise_for_status()
            return r.json()

    async def geocode(self, city_name: str) -> Optional[Dict[str, Any]]:
        """{lat, lng, country} for a place name, or None when the geocoder has no match."""
        try:
            data = await self._lookup(city_name)
        except httpx.HTTPError as e:
            logger.warning("Geocoding failed for %s: %s", city_name, e)
            return None
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            return None
        top = results[0]
        location = (top.get("geometry") or {}).get("location") or {}
        if "lat" not in location or "lng" not in location:
            return None
        country = next(
            (
                c.get("long_name")
                for c in top.get("address_components") or []
                if "country" in (c.get("types") or [])
            ),
            None,
        )
        return {"lat": location["lat"], "lng": location["lng"], "country": country}


def get_perplexity_client() -> Optional[PerplexityClient]:
    if not settings.external_search_configured:
        return None
    return PerplexityClient(
        api_key=settings.perplexity_api_key,
        model=settings.perplexity_model,
        url=settings.perplexity_url,
        timeout_sec=settings.perplexity_timeout_sec,
    )


def get_geocoding_client() -> Optional[GeocodingClient]:
    if not settings.geocoding_configured:
        return None
    return GeocodingClient(api_key=settings.google_maps_api_key)
