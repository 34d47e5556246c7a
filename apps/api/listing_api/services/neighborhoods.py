from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from pathlib import Path
from typing import Any

from .geocoding import GeoResult

logger = logging.getLogger(__name__)

DATA_PATH = Path(__file__).resolve().parents[1] / "data" / "neighborhoods.json"
CACHE_TTL_SECONDS = 60 * 60
DEFAULT_NEIGHBORHOOD = "Charleston Area"
PARK_KEYWORDS = ("park", "trail", "garden", "greenway", "beach")
SCHOOL_KEYWORDS = ("school", "academy", "college")

_cache: dict[str, tuple[float, dict[str, Any]]] = {}


@lru_cache(maxsize=1)
def load_neighborhoods() -> tuple[dict[str, Any], ...]:
    with DATA_PATH.open("r", encoding="utf-8") as handle:
        return tuple(json.load(handle))


def cache_key(geo: GeoResult) -> str:
    if geo.zip_code:
        return f"zip:{geo.zip_code}"
    if geo.latitude and geo.longitude:
        return f"coord:{round(geo.latitude, 2)},{round(geo.longitude, 2)}"
    return f"addr:{(geo.formatted_address or '').lower().strip()[:50]}"


def get_cached(geo: GeoResult, now: float | None = None) -> dict[str, Any] | None:
    entry = _cache.get(cache_key(geo))
    if entry is None:
        return None
    stored_at, data = entry
    if (now or time.time()) - stored_at >= CACHE_TTL_SECONDS:
        return None
    return data


def set_cached(geo: GeoResult, data: dict[str, Any], now: float | None = None) -> None:
    _cache[cache_key(geo)] = (now or time.time(), data)


def clear_expired_cache(now: float | None = None) -> int:
    now = now or time.time()
    expired = [key for key, (stored_at, _) in _cache.items() if now - stored_at >= CACHE_TTL_SECONDS]
    for key in expired:
        del _cache[key]
    if expired:
        logger.debug("cleared %s expired neighborhood cache entries", len(expired))
    return len(expired)


def _within(bounds: dict[str, float], latitude: float, longitude: float) -> bool:
    return bounds["south"] <= latitude <= bounds["north"] and bounds["west"] <= longitude <= bounds["east"]


def match_neighborhood(geo: GeoResult) -> dict[str, Any] | None:
    neighborhoods = load_neighborhoods()
    if geo.zip_code:
        for item in neighborhoods:
            if geo.zip_code in item.get("zip_codes", []):
                return item
    for item in neighborhoods:
        bounds = item.get("bounds")
        if bounds and _within(bounds, geo.latitude, geo.longitude):
            return item
    address = (geo.formatted_address or "").lower()
    for item in neighborhoods:
        names = [item["name"], *item.get("aliases", [])]
        if any(name.lower() in address for name in names):
            return item
    return None


def _matching(values: list[str], keywords: tuple[str, ...]) -> list[str]:
    return [value for value in values if any(keyword in value.lower() for keyword in keywords)]


def format_neighborhood(item: dict[str, Any] | None) -> dict[str, Any]:
    if item is None:
        return {
            "name": DEFAULT_NEIGHBORHOOD,
            "description": "",
            "vibe": "",
            "landmarks": [],
            "parks": [],
            "schools": [],
            "selling_points": [],
            "vocabulary": [],
            "typical_amenities": [],
        }
    places = [*item.get("landmarks", []), *item.get("attractions", [])]
    return {
        "name": item["name"],
        "description": item.get("description", ""),
        "vibe": item.get("vibe", ""),
        "landmarks": item.get("landmarks", []),
        "parks": _matching(places, PARK_KEYWORDS),
        "schools": _matching(places, SCHOOL_KEYWORDS),
        "proximities": item.get("proximities", {}),
        "selling_points": item.get("selling_points", []),
        "vocabulary": item.get("vocabulary", []),
        "typical_amenities": item.get("typical_amenities", []),
    }


def find_neighborhood(geo: GeoResult) -> dict[str, Any]:
    cached = get_cached(geo)
    if cached is not None:
        return cached
    data = format_neighborhood(match_neighborhood(geo))
    set_cached(geo, data)
    return data
