from __future__ import annotations

import logging
from typing import Protocol

import httpx

from tourguide.exceptions import LookupFailure
from tourguide.models import PlaceDetails, PointOfInterest

logger = logging.getLogger(__name__)

PLACES_API_URL = "https://places.googleapis.com/v1"

NEARBY_FIELDS = [
    "places.id",
    "places.displayName",
    "places.primaryType",
    "places.types",
    "places.location",
    "places.editorialSummary",
    "places.rating",
]

DETAIL_FIELDS = ["displayName", "primaryType", "types", "editorialSummary", "rating"]


class PlacesLookup(Protocol):
    async def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_m: float,
        included_types: list[str] | None = None,
        max_results: int = 10,
    ) -> list[PointOfInterest]: ...

    async def details(self, poi_id: str, fields: list[str] | None = None) -> PlaceDetails: ...


def _category(place: dict) -> str:
    if place.get("primaryType"):
        return place["primaryType"]
    types = place.get("types") or []
    return types[0] if types else "point_of_interest"


def _text(value: object) -> str | None:
    if isinstance(value, dict):
        return value.get("text") or None
    return None


class GooglePlacesClient:
    """Places API (New) adapter for nearby search and place details."""

    def __init__(self, http_client: httpx.AsyncClient, api_key: str):
        self._http = http_client
        self._api_key = api_key
        if not api_key:
            logger.warning("Google Places API key not configured, lookups will fail")

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _headers(self, fields: list[str]) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": ",".join(fields),
        }

    async def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_m: float,
        included_types: list[str] | None = None,
        max_results: int = 10,
    ) -> list[PointOfInterest]:
        if not self.is_available():
            raise LookupFailure("Places API key not configured")

        body: dict = {
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": latitude, "longitude": longitude},
                    "radius": float(radius_m),
                }
            },
            "maxResultCount": max_results,
            "rankPreference": "DISTANCE",
        }
        if included_types:
            body["includedTypes"] = included_types

        try:
            resp = await self._http.post(
                f"{PLACES_API_URL}/places:searchNearby",
                json=body,
                headers=self._headers(NEARBY_FIELDS),
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise LookupFailure(f"Nearby search failed: {e}") from e
        except ValueError as e:
            raise LookupFailure(f"Nearby search returned invalid JSON: {e}") from e

        pois = []
        for place in data.get("places", []):
            location = place.get("location") or {}
            lat, lon = location.get("latitude"), location.get("longitude")
            if not place.get("id") or lat is None or lon is None:
                logger.debug("Skipping malformed place: %s", place)
                continue
            pois.append(
                PointOfInterest(
                    id=place["id"],
                    name=_text(place.get("displayName")) or place["id"],
                    category=_category(place),
                    latitude=lat,
                    longitude=lon,
                    summary=_text(place.get("editorialSummary")),
                    rating=place.get("rating"),
                )
            )
        logger.info("Found %d nearby places at (%.5f, %.5f)", len(pois), latitude, longitude)
        return pois

    async def details(self, poi_id: str, fields: list[str] | None = None) -> PlaceDetails:
        if not self.is_available():
            raise LookupFailure("Places API key not configured")

        try:
            resp = await self._http.get(
                f"{PLACES_API_URL}/places/{poi_id}",
                headers=self._headers(fields or DETAIL_FIELDS),
            )
            resp.raise_for_status()
            place = resp.json()
        except httpx.HTTPError as e:
            raise LookupFailure(f"Place details failed for {poi_id}: {e}") from e
        except ValueError as e:
            raise LookupFailure(f"Place details returned invalid JSON: {e}") from e

        name = _text(place.get("displayName"))
        if not name:
            raise LookupFailure(f"Place details for {poi_id} missing a name")
        return PlaceDetails(
            name=name,
            category=_category(place),
            editorial_summary=_text(place.get("editorialSummary")),
            rating=place.get("rating"),
        )
