"""
Unit tests for the Google geocoder.
"""

import httpx
import pytest

from festival_ingest.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from festival_ingest.services.geocoding import (
    GeocodeRequest,
    GoogleGeocoder,
    calculate_confidence,
    parse_address_components,
)

COMPONENTS = [
    {"long_name": "1", "types": ["street_number"]},
    {"long_name": "Resort Drive", "types": ["route"]},
    {"long_name": "Asheville", "types": ["locality", "political"]},
    {"long_name": "North Carolina", "types": ["administrative_area_level_1", "political"]},
    {"long_name": "United States", "types": ["country", "political"]},
    {"long_name": "28806", "types": ["postal_code"]},
]

OK_PAYLOAD = {
    "status": "OK",
    "results": [{
        "formatted_address": "1 Resort Dr, Asheville, NC 28806, USA",
        "geometry": {"location": {"lat": 35.5951, "lng": -82.5515}, "location_type": "ROOFTOP"},
        "address_components": COMPONENTS,
    }],
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _geocoder(handler, api_key: str | None = "maps-key", **kwargs) -> GoogleGeocoder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleGeocoder(client, api_key, **kwargs)


class TestGeocodeHelpers:

    def test_confidence_rooftop_full_address(self):
        """Test rooftop precision plus route/locality/country components."""
        assert calculate_confidence(OK_PAYLOAD["results"][0]) == pytest.approx(1.0)

    def test_confidence_approximate(self):
        result = {"geometry": {"location_type": "APPROXIMATE"}, "address_components": []}
        assert calculate_confidence(result) == 0.5

    def test_parse_address_components(self):
        parts = parse_address_components(COMPONENTS)

        assert parts.street == "1 Resort Drive"
        assert parts.city == "Asheville"
        assert parts.state == "North Carolina"
        assert parts.country == "United States"
        assert parts.postal_code == "28806"


@pytest.mark.asyncio
class TestGoogleGeocoder:

    async def test_geocode_success(self):
        """Test coordinates, formatted address and request parameters."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=OK_PAYLOAD)

        result = await _geocoder(handler).geocode_address("1 Resort Dr", "Asheville", "USA")

        assert result.success is True
        assert (result.latitude, result.longitude) == (35.5951, -82.5515)
        assert result.formatted_address.startswith("1 Resort Dr")
        assert seen[0].url.params["address"] == "1 Resort Dr, Asheville, USA"
        assert seen[0].url.params["key"] == "maps-key"

    async def test_missing_api_key(self):
        """Test no request is made without an API key."""
        def handler(request):
            raise AssertionError("no request expected")

        result = await _geocoder(handler, api_key=None).geocode_address("Somewhere")

        assert result.success is False
        assert "not configured" in result.error

    async def test_zero_results(self):
        geocoder = _geocoder(lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))

        result = await geocoder.geocode_address("Nowhere 1")

        assert result.success is False
        assert "ZERO_RESULTS" in result.error

    async def test_http_error_is_a_result(self):
        """Test transport failures are returned, not raised."""
        geocoder = _geocoder(lambda r: httpx.Response(503))

        result = await geocoder.geocode_address("1 Resort Dr", "Asheville")

        assert result.success is False
        assert result.error

    async def test_cache_hit_and_expiry(self):
        """Test repeated lookups hit the cache until the TTL passes."""
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=OK_PAYLOAD)

        clock = FakeClock()
        geocoder = _geocoder(handler, cache_ttl=60, clock=clock)

        await geocoder.geocode_address("1 Resort Dr", "Asheville")
        await geocoder.geocode_address("1 resort dr ", "ASHEVILLE")
        assert calls == 1

        clock.now = 61
        await geocoder.geocode_address("1 Resort Dr", "Asheville")
        assert calls == 2

        geocoder.clear_cache()
        assert geocoder.cache_stats()["size"] == 0

    async def test_failures_not_cached(self):
        """Test a failed lookup is retried on the next call."""
        responses = [
            httpx.Response(200, json={"status": "OVER_QUERY_LIMIT", "results": []}),
            httpx.Response(200, json=OK_PAYLOAD),
        ]
        geocoder = _geocoder(lambda r: responses.pop(0))

        assert (await geocoder.geocode_address("1 Resort Dr")).success is False
        assert (await geocoder.geocode_address("1 Resort Dr")).success is True

    async def test_open_breaker_returns_failure(self):
        """Test an open breaker yields a failure result without a request."""
        def handler(request):
            raise AssertionError("no request expected")

        breaker = CircuitBreaker("geocoding", CircuitBreakerConfig())
        breaker.force_open()

        result = await _geocoder(handler, breaker=breaker).geocode_address("1 Resort Dr")

        assert result.success is False
        assert "Circuit breaker open" in result.error

    async def test_reverse_geocode(self):
        geocoder = _geocoder(lambda r: httpx.Response(200, json=OK_PAYLOAD))

        result = await geocoder.reverse_geocode(35.5951, -82.5515)

        assert result.success is True
        assert result.address.city == "Asheville"

    async def test_batch_geocode_in_chunks(self):
        """Test batch results keep input order across chunks."""
        def handler(request):
            return httpx.Response(200, json=OK_PAYLOAD)

        geocoder = _geocoder(handler, batch_size=2, batch_delay=0)
        items = [GeocodeRequest(address=f"{i} Main St", city="Asheville") for i in range(5)]

        results = await geocoder.batch_geocode(items)

        assert [r.input.address for r in results] == [i.address for i in items]
        assert all(r.result.success for r in results)
