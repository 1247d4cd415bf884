"""
Location verification against the Google Geocoding and Places APIs.

Free-text locations from the reporter are biased toward the configured
default region, then resolved to zero, one or several candidate addresses.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import httpx

from detective.config import settings
from detective.models.schemas import LocationCandidate
from detective.services.cache import Cache, cache

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
PLACES_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"


class VerificationStatus(str, Enum):
    NONE = "none"
    SINGLE = "single"
    MULTIPLE = "multiple"


@dataclass
class LocationVerification:
    status: VerificationStatus
    result: Optional[LocationCandidate] = None
    candidates: List[LocationCandidate] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "result": self.result.model_dump(by_alias=True) if self.result else None,
            "candidates": [c.model_dump(by_alias=True) for c in self.candidates],
            "error": self.error,
        }


def _parse_candidates(results: list) -> List[LocationCandidate]:
    candidates = []
    for item in results or []:
        try:
            location = item["geometry"]["location"]
            candidates.append(LocationCandidate(
                formatted_address=item.get("formatted_address") or item.get("name") or "",
                lat=location["lat"],
                lng=location["lng"],
            ))
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Skipping malformed geocode result: {item!r}")
    return candidates


class GeocodingService:
    """Resolve free-text locations to verified addresses and coordinates."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_region: Optional[str] = None,
        region_keywords: Optional[List[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        result_cache: Optional[Cache] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.google_maps_api_key
        self.default_region = default_region if default_region is not None else settings.geocode_default_region
        self.region_keywords = region_keywords if region_keywords is not None else settings.region_keywords
        self._transport = transport
        self._cache = result_cache or cache

    def apply_region(self, text: str) -> str:
        """Append the default region unless the text already names it."""
        adjusted = text.strip()
        lowered = adjusted.lower()
        if not self.default_region or any(keyword in lowered for keyword in self.region_keywords):
            return adjusted
        return f"{adjusted}, {self.default_region}"

    async def _search(self, client: httpx.AsyncClient, url: str, param: str, query: str) -> list:
        response = await client.get(url, params={param: query, "key": self.api_key})
        response.raise_for_status()
        data = response.json()
        status = data.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            logger.warning(f"Google {url.rsplit('/', 2)[-2]} returned status {status}: {data.get('error_message', '')}")
        return data.get("results") or []

    async def lookup(self, address: str) -> List[LocationCandidate]:
        """Geocode an address, falling back to Places text search on no results."""
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            results = await self._search(client, GEOCODE_URL, "address", address)
            if not results:
                logger.info(f"Geocoding found nothing for '{address}', trying Places")
                results = await self._search(client, PLACES_URL, "query", address)
        return _parse_candidates(results)

    async def verify_location(self, text: Optional[str]) -> LocationVerification:
        """Verify a free-text location. Never raises."""
        if not text or not text.strip():
            return LocationVerification(status=VerificationStatus.NONE, error="No place name provided")
        if not self.api_key:
            return LocationVerification(status=VerificationStatus.NONE, error="Geocoding is not configured")

        address = self.apply_region(text)
        cache_key = f"geocode:{address.lower()}"
        candidates = await self._cache.get(cache_key)

        if candidates is None:
            try:
                candidates = await self.lookup(address)
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Location lookup failed for '{address}': {e}")
                return LocationVerification(status=VerificationStatus.NONE, error="Location lookup failed")
            await self._cache.set(cache_key, candidates, settings.geocode_cache_ttl_seconds)

        if not candidates:
            return LocationVerification(status=VerificationStatus.NONE, error="No matches found")
        if len(candidates) == 1:
            logger.info(f"Verified location '{text}' -> {candidates[0].formatted_address}")
            return LocationVerification(status=VerificationStatus.SINGLE, result=candidates[0])

        logger.info(f"Location '{text}' is ambiguous ({len(candidates)} matches)")
        return LocationVerification(status=VerificationStatus.MULTIPLE, candidates=list(candidates))


# Global instance
geocoding_service = GeocodingService()
