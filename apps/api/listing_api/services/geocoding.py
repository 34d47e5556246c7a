from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..settings import settings
from .provider_errors import classify_error, map_provider_error

logger = logging.getLogger(__name__)

GEOCODIO_URL = "https://api.geocod.io/v1.7/geocode"
DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
EARTH_RADIUS_MILES = 3959.0
METERS_PER_MILE = 1609.34
DEFAULT_LATITUDE = 32.7765
DEFAULT_LONGITUDE = -79.9311
ZIP_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b")


@dataclass(frozen=True)
class Landmark:
    name: str
    latitude: float
    longitude: float


LANDMARKS: tuple[Landmark, ...] = (
    Landmark("Shem Creek", 32.8014, -79.8625),
    Landmark("Downtown/King Street", 32.7876, -79.9403),
    Landmark("Sullivan's Island Beach", 32.7633, -79.8367),
    Landmark("Isle of Palms Beach", 32.7867, -79.7875),
    Landmark("Folly Beach", 32.6552, -79.9403),
    Landmark("Ravenel Bridge", 32.7944, -79.9011),
    Landmark("Angel Oak", 32.7156, -80.0811),
    Landmark("Magnolia Plantation", 32.8611, -80.0708),
)


@dataclass
class LandmarkDistance:
    name: str
    distance_miles: float
    drive_time_minutes: int


@dataclass
class GeoResult:
    latitude: float
    longitude: float
    formatted_address: str
    zip_code: str | None = None
    distances_to_landmarks: list[LandmarkDistance] = field(default_factory=list)


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _estimated(latitude: float, longitude: float, landmark: Landmark) -> LandmarkDistance:
    distance = haversine_miles(latitude, longitude, landmark.latitude, landmark.longitude)
    return LandmarkDistance(
        name=landmark.name,
        distance_miles=round(distance, 1),
        drive_time_minutes=round(distance * 2.5),
    )


def estimate_distances(latitude: float, longitude: float) -> list[LandmarkDistance]:
    return [_estimated(latitude, longitude, landmark) for landmark in LANDMARKS]


def driving_distances(
    latitude: float,
    longitude: float,
    transport: httpx.BaseTransport | None = None,
) -> list[LandmarkDistance]:
    """Traffic-aware drive times to each landmark, falling back to straight-line estimates."""
    if not settings.google_maps_api_key:
        return estimate_distances(latitude, longitude)

    params = {
        "origins": f"{latitude},{longitude}",
        "destinations": "|".join(f"{item.latitude},{item.longitude}" for item in LANDMARKS),
        "units": "imperial",
        "departure_time": "now",
        "traffic_model": "best_guess",
        "key": settings.google_maps_api_key,
    }
    try:
        with httpx.Client(timeout=settings.http_timeout_seconds, transport=transport) as client:
            response = client.get(DISTANCE_MATRIX_URL, params=params)
        if response.status_code >= 400:
            raise map_provider_error(response.status_code, "distance matrix request failed", provider="google")
        payload = response.json()
        if payload.get("status") != "OK":
            raise map_provider_error(None, f"distance matrix status {payload.get('status')}", provider="google")
        elements = payload["rows"][0]["elements"]
    except Exception as exc:
        logger.warning("distance matrix unavailable, using estimates: %s", classify_error(exc, provider="google"))
        return estimate_distances(latitude, longitude)

    results: list[LandmarkDistance] = []
    for landmark, element in zip(LANDMARKS, elements):
        if element.get("status") != "OK":
            results.append(_estimated(latitude, longitude, landmark))
            continue
        duration = element.get("duration_in_traffic") or element.get("duration") or {}
        results.append(
            LandmarkDistance(
                name=landmark.name,
                distance_miles=round(element["distance"]["value"] / METERS_PER_MILE, 1),
                drive_time_minutes=round(duration.get("value", 0) / 60),
            )
        )
    for landmark in LANDMARKS[len(results):]:
        results.append(_estimated(latitude, longitude, landmark))
    return results


def extract_zip(result: dict[str, Any]) -> str | None:
    components = result.get("address_components") or {}
    zip_code = components.get("zip") or components.get("postal_code")
    if zip_code:
        return str(zip_code)
    match = ZIP_PATTERN.search(result.get("formatted_address") or "")
    return match.group(1) if match else None


def fallback_geo(address: str) -> GeoResult:
    return GeoResult(latitude=DEFAULT_LATITUDE, longitude=DEFAULT_LONGITUDE, formatted_address=address)


def geocode_address(address: str, transport: httpx.BaseTransport | None = None) -> GeoResult:
    if not settings.geocodio_api_key:
        return fallback_geo(address)
    try:
        with httpx.Client(timeout=settings.http_timeout_seconds, transport=transport) as client:
            response = client.get(GEOCODIO_URL, params={"q": address, "api_key": settings.geocodio_api_key})
        if response.status_code >= 400:
            raise map_provider_error(response.status_code, f"geocoding failed: {response.status_code}", provider="geocodio")
        results = response.json().get("results") or []
        if not results:
            logger.info("no geocoding match for address")
            return fallback_geo(address)
        best = results[0]
        location = best["location"]
        latitude = float(location["lat"])
        longitude = float(location["lng"])
    except Exception as exc:
        logger.warning("geocoding unavailable, using default coordinates: %s", classify_error(exc, provider="geocodio"))
        return fallback_geo(address)

    return GeoResult(
        latitude=latitude,
        longitude=longitude,
        formatted_address=best.get("formatted_address") or address,
        zip_code=extract_zip(best),
        distances_to_landmarks=driving_distances(latitude, longitude, transport=transport),
    )
