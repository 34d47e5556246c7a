from __future__ import annotations

import httpx
import pytest

from listing_api.services import neighborhoods, vision
from listing_api.services.ai import (
    MLS_MIN_WORDS,
    PropertyDetails,
    fact_check,
    generate_descriptions,
    market_narrative,
    parse_score,
    parse_social_captions,
    word_count,
)
from listing_api.services.generation import combine_confidence, confidence_level, run_pipeline
from listing_api.services.geocoding import (
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    LANDMARKS,
    GeoResult,
    driving_distances,
    extract_zip,
    geocode_address,
    haversine_miles,
)
from listing_api.services.vision import analyze_photo_for_staging, extract_property_features
from listing_api.settings import settings

DETAILS = PropertyDetails(address="14 Pitt St, Mount Pleasant, SC 29464", bedrooms=3, bathrooms=2.5, square_feet=2100)


@pytest.fixture(autouse=True)
def empty_neighborhood_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(neighborhoods, "_cache", {})


def test_haversine_known_distance() -> None:
    assert haversine_miles(32.7765, -79.9311, 32.7765, -79.9311) == 0
    # Downtown to Shem Creek is a little over four miles.
    assert 4.0 < haversine_miles(32.7765, -79.9311, 32.8014, -79.8625) < 5.0


def test_extract_zip_prefers_components() -> None:
    assert extract_zip({"address_components": {"zip": "29401"}, "formatted_address": "x 29464"}) == "29401"
    assert extract_zip({"formatted_address": "1 King St, Charleston, SC 29401-1234"}) == "29401"
    assert extract_zip({"formatted_address": "no zip here"}) is None


def test_geocode_without_key_uses_default_coordinates() -> None:
    geo = geocode_address("1 Meeting St")
    assert (geo.latitude, geo.longitude) == (DEFAULT_LATITUDE, DEFAULT_LONGITUDE)
    assert geo.formatted_address == "1 Meeting St"
    assert geo.distances_to_landmarks == []


def test_geocode_with_key_reads_first_result(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "geocodio_api_key", "geo-key")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["api_key"] == "geo-key"
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "formatted_address": "14 Pitt St, Mount Pleasant, SC 29464",
                        "location": {"lat": 32.79, "lng": -79.86},
                        "address_components": {"zip": "29464"},
                    }
                ]
            },
        )

    geo = geocode_address(DETAILS.address, transport=httpx.MockTransport(handler))
    assert geo.zip_code == "29464"
    assert geo.latitude == 32.79
    assert len(geo.distances_to_landmarks) == len(LANDMARKS)


def test_geocode_failure_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "geocodio_api_key", "geo-key")
    geo = geocode_address("1 Meeting St", transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    assert geo.latitude == DEFAULT_LATITUDE


def test_distance_matrix_rows_and_fallbacks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "google_maps_api_key", "maps-key")
    elements = [{"status": "OK", "distance": {"value": 16093.4}, "duration_in_traffic": {"value": 900}}]
    elements.append({"status": "ZERO_RESULTS"})
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, json={"status": "OK", "rows": [{"elements": elements}]})
    )
    distances = driving_distances(32.7765, -79.9311, transport=transport)
    assert len(distances) == len(LANDMARKS)
    assert distances[0].distance_miles == 10.0
    assert distances[0].drive_time_minutes == 15
    assert distances[1].name == LANDMARKS[1].name


def test_neighborhood_match_by_zip_bounds_and_default() -> None:
    by_zip = neighborhoods.find_neighborhood(GeoResult(latitude=0, longitude=0, formatted_address="", zip_code="29464"))
    assert by_zip["name"] == "Mount Pleasant"

    by_bounds = neighborhoods.match_neighborhood(GeoResult(latitude=32.79, longitude=-79.94, formatted_address=""))
    assert by_bounds["name"] == "Downtown Charleston"

    nowhere = neighborhoods.find_neighborhood(GeoResult(latitude=10.0, longitude=10.0, formatted_address="Somewhere else"))
    assert nowhere["name"] == "Charleston Area"
    assert nowhere["landmarks"] == []


def test_neighborhood_cache_keys_and_expiry() -> None:
    assert neighborhoods.cache_key(GeoResult(1.0, 2.0, "x", zip_code="29401")) == "zip:29401"
    assert neighborhoods.cache_key(GeoResult(32.7765, -79.9311, "x")) == "coord:32.78,-79.93"
    assert neighborhoods.cache_key(GeoResult(0, 0, "  1 King St  ")) == "addr:1 king st"

    geo = GeoResult(0, 0, "", zip_code="29401")
    neighborhoods.set_cached(geo, {"name": "cached"}, now=1000.0)
    assert neighborhoods.get_cached(geo, now=1000.0 + 60) == {"name": "cached"}
    assert neighborhoods.get_cached(geo, now=1000.0 + neighborhoods.CACHE_TTL_SECONDS) is None
    assert neighborhoods.clear_expired_cache(now=1000.0 + neighborhoods.CACHE_TTL_SECONDS) == 1


def test_vision_mock_rules() -> None:
    exterior = analyze_photo_for_staging("https://cdn.example.com/drone-shot.jpg")
    assert exterior.is_suitable is False
    assert exterior.reason == "Exterior photo"

    kitchen = analyze_photo_for_staging("https://cdn.example.com/empty-kitchen.jpg")
    assert kitchen.is_suitable is True
    assert kitchen.room_type == "kitchen"

    assert extract_property_features([]) == ([], 0)
    features, confidence = extract_property_features(["https://cdn.example.com/pool-and-deck.jpg"])
    assert features == ["pool", "deck"]
    assert confidence == 80
    assert extract_property_features(["https://cdn.example.com/img1.jpg"]) == ([], 50)


def test_live_vision_malformed_reply_is_not_suitable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ai_mode", "live")
    monkeypatch.setattr(vision, "_vision_chat", lambda prompt, urls: '{"is_suitable": true, "confidence": "high"}')

    analysis = analyze_photo_for_staging("https://cdn.example.com/empty-bedroom.jpg")
    assert analysis.is_suitable is False
    assert analysis.confidence == 0
    assert analysis.reason == "Error analyzing photo"

    assert extract_property_features(["https://cdn.example.com/kitchen.jpg"]) == ([], 0)


def test_live_vision_parses_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ai_mode", "live")
    monkeypatch.setattr(
        vision,
        "_vision_chat",
        lambda prompt, urls: 'Sure: {"is_suitable": true, "room_type": "bedroom", "confidence": "85", "features": "porch"}',
    )

    analysis = analyze_photo_for_staging("https://cdn.example.com/empty-bedroom.jpg")
    assert analysis.is_suitable is True
    assert analysis.confidence == 85
    assert analysis.room_type == "bedroom"

    assert extract_property_features(["https://cdn.example.com/front.jpg"]) == (["porch"], 85)


def test_mock_copy_meets_mls_length() -> None:
    geo = GeoResult(DEFAULT_LATITUDE, DEFAULT_LONGITUDE, DETAILS.address)
    copy = generate_descriptions(DETAILS, geo, {"name": "Mount Pleasant"}, [], include_airbnb=True, include_social=True)
    assert word_count(copy.mls_description) >= MLS_MIN_WORDS
    assert copy.airbnb_description
    assert 1 <= len(copy.social_captions) <= 3
    assert fact_check(copy.mls_description, DETAILS, []) == 92


def test_caption_and_score_parsing() -> None:
    numbered = "1. Morning coffee on the porch\n2. Three bedrooms, two baths\n3. Book a tour today\n4. Extra"
    assert parse_social_captions(numbered) == [
        "Morning coffee on the porch",
        "Three bedrooms, two baths",
        "Book a tour today",
    ]
    lines = "Caption ideas for the listing:\nSunsets over the marsh every single evening\nWalk to the beach in minutes from your door"
    assert parse_social_captions(lines) == [
        "Sunsets over the marsh every single evening",
        "Walk to the beach in minutes from your door",
    ]
    assert parse_score("Confidence: 88") == 88
    assert parse_score("150") == 100
    assert parse_score("no number") == 75


def test_confidence_is_weakest_piece() -> None:
    assert combine_confidence(92, 70, [80, 90]) == 70
    assert combine_confidence(92) == 92
    assert confidence_level(80) == "high"
    assert confidence_level(79) == "medium"


def test_market_narrative_fallback() -> None:
    text = market_narrative("Mount Pleasant", 725000, 31.6, 350.0)
    assert text == "The Mount Pleasant shows a median sold price of $725,000 with an average of 32 days on market."


def test_pipeline_fills_amenities_from_neighborhood() -> None:
    details = PropertyDetails(address="9 Church St, Charleston, SC", bedrooms=2, bathrooms=2, square_feet=1400)
    result = run_pipeline(details, photo_urls=["https://cdn.example.com/fireplace.jpg"])
    assert result.neighborhood["name"] == "Downtown Charleston"
    assert "Piazza" in result.amenities
    assert result.features == ["fireplace"]
    assert result.confidence_score == 92
    assert result.confidence_level == "high"
