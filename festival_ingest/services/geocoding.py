"""
Geocoding for venues.

Geocoder is the contract used by the importer. GoogleGeocoder talks to the
Google Geocoding REST API over httpx, caches results for a configurable
TTL and never raises: every failure is a ``success=False`` result.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from festival_ingest.services.circuit_breaker import CircuitBreaker

logger = structlog.get_logger()

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

BASE_CONFIDENCE = 0.5
LOCATION_TYPE_BONUS = {
    "ROOFTOP": 0.3,
    "RANGE_INTERPOLATED": 0.2,
    "GEOMETRIC_CENTER": 0.1,
}
COMPONENT_BONUS = {
    "route": 0.1,
    "locality": 0.05,
    "country": 0.05,
}


# =============================================================================
# Result types
# =============================================================================


@dataclass
class GeocodeResult:
    success: bool
    latitude: float | None = None
    longitude: float | None = None
    formatted_address: str | None = None
    confidence: float | None = None
    error: str | None = None


@dataclass
class AddressParts:
    street: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None


@dataclass
class ReverseGeocodeResult:
    success: bool
    address: AddressParts | None = None
    error: str | None = None


@dataclass
class GeocodeRequest:
    address: str
    city: str | None = None
    country: str | None = None


@dataclass
class BatchGeocodeItem:
    input: GeocodeRequest
    result: GeocodeResult


class Geocoder(ABC):
    """Contract for address <-> coordinate lookups."""

    @abstractmethod
    async def geocode_address(
        self,
        address: str,
        city: str | None = None,
        country: str | None = None,
    ) -> GeocodeResult:
        pass

    @abstractmethod
    async def reverse_geocode(self, latitude: float, longitude: float) -> ReverseGeocodeResult:
        pass

    async def batch_geocode(self, items: list[GeocodeRequest]) -> list[BatchGeocodeItem]:
        results = []
        for item in items:
            results.append(BatchGeocodeItem(
                item, await self.geocode_address(item.address, item.city, item.country)
            ))
        return results


# =============================================================================
# Google implementation
# =============================================================================


def calculate_confidence(result: dict[str, Any]) -> float:
    """Confidence of a Google result from location precision and components."""
    confidence = BASE_CONFIDENCE
    location_type = result.get("geometry", {}).get("location_type")
    confidence += LOCATION_TYPE_BONUS.get(location_type, 0.0)

    component_types = {t for c in result.get("address_components", []) for t in c.get("types", [])}
    for component, bonus in COMPONENT_BONUS.items():
        if component in component_types:
            confidence += bonus

    return min(confidence, 1.0)


def parse_address_components(components: list[dict[str, Any]]) -> AddressParts:
    by_type: dict[str, str] = {}
    for component in components:
        for component_type in component.get("types", []):
            by_type.setdefault(component_type, component.get("long_name", ""))

    street = " ".join(p for p in (by_type.get("street_number"), by_type.get("route")) if p) or None
    return AddressParts(
        street=street,
        city=by_type.get("locality") or by_type.get("postal_town"),
        state=by_type.get("administrative_area_level_1"),
        country=by_type.get("country"),
        postal_code=by_type.get("postal_code"),
    )


class GoogleGeocoder(Geocoder):
    """Google Geocoding API client with TTL cache and batching."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str | None,
        breaker: CircuitBreaker | None = None,
        cache_ttl: float = 24 * 60 * 60,
        batch_size: int = 10,
        batch_delay: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.api_key = api_key
        self.breaker = breaker
        self.cache_ttl = cache_ttl
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}
        self.log = logger.bind(component="GoogleGeocoder")

        if not api_key:
            self.log.warning("geocoding_api_key_missing")

    # =========================================================================
    # Cache
    # =========================================================================

    @staticmethod
    def cache_key(address: str, city: str | None, country: str | None) -> str:
        parts = (address, city or "", country or "")
        return "geocode_" + "_".join(p.strip().lower() for p in parts)

    def _cache_get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return None
        return value

    def _cache_set(self, key: str, value: Any) -> None:
        self._cache[key] = (self._clock() + self.cache_ttl, value)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, int]:
        now = self._clock()
        live = sum(1 for expires_at, _ in self._cache.values() if expires_at > now)
        return {"size": len(self._cache), "live": live}

    # =========================================================================
    # API calls
    # =========================================================================

    async def _request(self, params: dict[str, str]) -> dict[str, Any]:
        async def _get() -> dict[str, Any]:
            response = await self.client.get(GEOCODE_URL, params={**params, "key": self.api_key})
            response.raise_for_status()
            return response.json()

        if self.breaker is None:
            return await _get()
        return await self.breaker.call(_get)

    async def geocode_address(
        self,
        address: str,
        city: str | None = None,
        country: str | None = None,
    ) -> GeocodeResult:
        if not self.api_key:
            return GeocodeResult(success=False, error="Google Maps API key not configured")

        key = self.cache_key(address, city, country)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        full_address = ", ".join(p for p in (address, city, country) if p)
        try:
            payload = await self._request({"address": full_address})
        except Exception as e:
            self.log.error("geocoding_error", address=full_address, error=str(e))
            return GeocodeResult(success=False, error=str(e) or type(e).__name__)

        results = payload.get("results") or []
        if payload.get("status") != "OK" or not results:
            error = payload.get("error_message") or f"Geocoding failed: {payload.get('status')}"
            self.log.warning("geocoding_failed", address=full_address, error=error)
            return GeocodeResult(success=False, error=error)

        top = results[0]
        location = top["geometry"]["location"]
        result = GeocodeResult(
            success=True,
            latitude=location["lat"],
            longitude=location["lng"],
            formatted_address=top.get("formatted_address"),
            confidence=calculate_confidence(top),
        )
        self._cache_set(key, result)
        self.log.info(
            "geocoding_success",
            address=full_address,
            latitude=result.latitude,
            longitude=result.longitude,
            confidence=result.confidence,
        )
        return result

    async def reverse_geocode(self, latitude: float, longitude: float) -> ReverseGeocodeResult:
        if not self.api_key:
            return ReverseGeocodeResult(success=False, error="Google Maps API key not configured")

        key = f"reverse_{latitude}_{longitude}"
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        try:
            payload = await self._request({"latlng": f"{latitude},{longitude}"})
        except Exception as e:
            self.log.error("reverse_geocoding_error", latitude=latitude, longitude=longitude, error=str(e))
            return ReverseGeocodeResult(success=False, error=str(e) or type(e).__name__)

        results = payload.get("results") or []
        if payload.get("status") != "OK" or not results:
            error = payload.get("error_message") or f"Reverse geocoding failed: {payload.get('status')}"
            return ReverseGeocodeResult(success=False, error=error)

        result = ReverseGeocodeResult(
            success=True,
            address=parse_address_components(results[0].get("address_components", [])),
        )
        self._cache_set(key, result)
        return result

    async def batch_geocode(self, items: list[GeocodeRequest]) -> list[BatchGeocodeItem]:
        """Geocode in concurrent chunks with a short pause between chunks."""
        output: list[BatchGeocodeItem] = []
        for start in range(0, len(items), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_delay)
            chunk = items[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.geocode_address(i.address, i.city, i.country) for i in chunk)
            )
            output.extend(BatchGeocodeItem(i, r) for i, r in zip(chunk, results))
        return output
