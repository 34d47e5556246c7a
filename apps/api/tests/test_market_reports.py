from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from listing_api.auth import RequestContext
from listing_api.models import ComparableDataSource, MarketReportType, PropertyType, SubscriptionTier
from listing_api.services.comps import add_comparable, comparable_payload, search_comparables
from listing_api.services.market_reports import compute_stats, generate_report, get_report


@pytest.fixture()
def seeded_comps(sqlite_session, make_profile):
    curator = make_profile(SubscriptionTier.PRO)
    rows = [
        {"address": "10 Pitt St", "zip_code": "29464", "neighborhood": "Mount Pleasant", "beds": 3, "sqft": 2000,
         "sold_price": 500000, "days_on_market": 10, "sold_date": date(2026, 3, 1)},
        {"address": "12 Pitt St", "zip_code": "29464", "neighborhood": "Old Village, Mount Pleasant", "beds": 4,
         "sqft": 2000, "sold_price": 700000, "days_on_market": 20, "sold_date": date(2026, 5, 1)},
        {"address": "14 Pitt St", "zip_code": "29464", "neighborhood": "Mount Pleasant", "beds": 5, "sqft": 3000,
         "sold_price": 900000, "days_on_market": 30, "sold_date": date(2026, 4, 1)},
        {"address": "16 Pitt St", "zip_code": "29464", "neighborhood": "Mount Pleasant", "beds": 3, "sqft": 1800,
         "list_price": 650000},
        {"address": "2 Folly Rd", "zip_code": "29439", "neighborhood": "Folly Beach", "beds": 2, "sqft": 1100,
         "sold_price": 610000, "days_on_market": 5, "sold_date": date(2026, 6, 1),
         "property_type": PropertyType.CONDO},
    ]
    return [add_comparable(sqlite_session, curator.id, row) for row in rows]


def test_add_comparable_marks_manual_source(seeded_comps) -> None:
    payload = comparable_payload(seeded_comps[0])
    assert payload["data_source"] == ComparableDataSource.MANUAL.value
    assert payload["sold_date"] == "2026-03-01"
    assert payload["property_type"] == "single_family"


def test_search_filters_and_orders_by_sold_date(sqlite_session, seeded_comps) -> None:
    results = search_comparables(sqlite_session, neighborhood="mount pleasant")
    assert [comp.address for comp in results] == ["12 Pitt St", "14 Pitt St", "10 Pitt St", "16 Pitt St"]

    assert [comp.address for comp in search_comparables(sqlite_session, zip_code="29464", min_beds=4)] == [
        "12 Pitt St",
        "14 Pitt St",
    ]
    assert [comp.address for comp in search_comparables(sqlite_session, property_type=PropertyType.CONDO)] == ["2 Folly Rd"]
    assert [comp.address for comp in search_comparables(sqlite_session, max_sqft=1900, zip_code="29464")] == ["16 Pitt St"]


def test_compute_stats_uses_sold_listings_only(seeded_comps) -> None:
    stats = compute_stats(seeded_comps[:4])
    assert stats.median_price == 700000
    assert stats.price_per_sqft == pytest.approx(300.0)
    assert stats.days_on_market_avg == pytest.approx(20.0)
    assert len(stats.sold) == 3

    empty = compute_stats(seeded_comps[3:4])
    assert empty.median_price == 0
    assert empty.sold == []


def test_generate_neighborhood_report(sqlite_session, make_profile, seeded_comps) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    context = RequestContext(current_user_id=profile.id)
    report = generate_report(sqlite_session, context, profile, MarketReportType.NEIGHBORHOOD, neighborhood="Mount Pleasant")

    data = report.report_data
    assert data["median_price"] == 700000
    assert data["price_per_sqft"] == 300.0
    assert data["days_on_market_avg"] == 20.0
    assert data["inventory_levels"] == 4
    assert len(data["recent_sales"]) == 3
    assert len(data["comparable_properties"]) == 4
    assert data["trends"]["price_trend"] == "stable"
    assert data["market_narrative"] == (
        "The Mount Pleasant shows a median sold price of $700,000 with an average of 20 days on market."
    )
    assert get_report(sqlite_session, context, report.id) is report


def test_report_requires_pro_tier(sqlite_session, make_profile, seeded_comps) -> None:
    starter = make_profile(SubscriptionTier.STARTER)
    with pytest.raises(HTTPException) as exc:
        generate_report(
            sqlite_session, RequestContext(current_user_id=starter.id), starter, MarketReportType.ZIP, zip_code="29464"
        )
    assert exc.value.status_code == 403
    assert exc.value.detail["code"] == "UPGRADE_REQUIRED"


def test_report_without_comps_is_insufficient(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    with pytest.raises(HTTPException) as exc:
        generate_report(
            sqlite_session, RequestContext(current_user_id=profile.id), profile, MarketReportType.ZIP, zip_code="90210"
        )
    assert exc.value.status_code == 400
    assert exc.value.detail["code"] == "INSUFFICIENT_DATA"


def test_report_access_is_owner_scoped(sqlite_session, make_profile, seeded_comps) -> None:
    owner = make_profile(SubscriptionTier.PRO)
    stranger = make_profile(SubscriptionTier.PRO)
    report = generate_report(
        sqlite_session, RequestContext(current_user_id=owner.id), owner, MarketReportType.ZIP, zip_code="29439"
    )
    with pytest.raises(HTTPException) as exc:
        get_report(sqlite_session, RequestContext(current_user_id=stranger.id), report.id)
    assert exc.value.detail == "Access denied"
