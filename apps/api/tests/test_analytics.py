from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from listing_api.auth import RequestContext
from listing_api.clock import utcnow
from listing_api.models import (
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsSource,
    Generation,
    SubscriptionTier,
    TeamRole,
)
from listing_api.services.analytics import (
    dashboard,
    generation_stats,
    get_accessible_generation,
    record_event,
    record_tracking_pixel,
    source_from_referrer,
    team_stats,
)
from listing_api.services.teams import create_team, invite_member


def _generation(db, user_id, tracking_id=None, team_id=None, address="7 Legare St, Charleston, SC"):
    generation = Generation(
        user_id=user_id,
        address=address,
        mls_description="Classic single house.",
        tracking_id=tracking_id,
        team_id=team_id,
        is_shared=team_id is not None,
    )
    db.add(generation)
    db.flush()
    return generation


@pytest.mark.parametrize(
    ("referrer", "expected"),
    [
        ("https://matrix.ctmls.com/listing/1", AnalyticsSource.MLS),
        ("https://www.zillow.com/homedetails/1", AnalyticsSource.ZILLOW),
        ("https://www.realtor.com/realestateandhomes-detail/1", AnalyticsSource.REALTOR),
        ("https://mail.google.com/", AnalyticsSource.EMAIL),
        (None, AnalyticsSource.OTHER),
    ],
)
def test_source_from_referrer(referrer, expected) -> None:
    assert source_from_referrer(referrer) == expected


def test_tracking_pixel_records_external_view(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    generation = _generation(sqlite_session, profile.id, tracking_id="trk_abc")

    event = record_tracking_pixel(sqlite_session, "trk_abc", "https://www.zillow.com/x", "Mozilla/5.0", "203.0.113.9")
    assert event.event_type == AnalyticsEventType.EXTERNAL_VIEW
    assert event.source == AnalyticsSource.ZILLOW
    assert event.generation_id == generation.id
    assert event.metadata_json["ip_address"] == "203.0.113.9"

    assert record_tracking_pixel(sqlite_session, "trk_unknown", None, None, None) is None


def test_access_to_shared_team_generation(sqlite_session, make_profile) -> None:
    owner = make_profile(SubscriptionTier.TEAM, email="lead@example.com")
    teammate = make_profile(SubscriptionTier.PRO, email="mate@example.com")
    outsider = make_profile(SubscriptionTier.PRO)
    owner_ctx = RequestContext(current_user_id=owner.id)
    team = create_team(sqlite_session, owner_ctx, owner, "Tidewater", None)
    invite_member(sqlite_session, owner_ctx, team.id, "mate@example.com", TeamRole.AGENT)

    shared = _generation(sqlite_session, owner.id, team_id=team.id)
    private = _generation(sqlite_session, owner.id)

    assert get_accessible_generation(sqlite_session, RequestContext(current_user_id=teammate.id), shared.id) is shared
    with pytest.raises(HTTPException) as exc:
        get_accessible_generation(sqlite_session, RequestContext(current_user_id=teammate.id), private.id)
    assert exc.value.status_code == 403
    with pytest.raises(HTTPException) as exc:
        get_accessible_generation(sqlite_session, RequestContext(current_user_id=outsider.id), shared.id)
    assert exc.value.status_code == 403


def test_dashboard_totals_and_trends(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    context = RequestContext(current_user_id=profile.id)
    assert dashboard(sqlite_session, context)["total_generations"] == 0

    popular = _generation(sqlite_session, profile.id, address="1 Popular Ln")
    quiet = _generation(sqlite_session, profile.id, address="2 Quiet Ct")
    for _ in range(3):
        record_event(sqlite_session, popular, AnalyticsEventType.VIEW)
    record_event(sqlite_session, popular, AnalyticsEventType.EXTERNAL_VIEW, source=AnalyticsSource.MLS)
    record_event(sqlite_session, quiet, AnalyticsEventType.VIEW)
    record_event(sqlite_session, quiet, AnalyticsEventType.COPY)

    result = dashboard(sqlite_session, context, days=7)
    assert result["total_generations"] == 2
    assert result["total_views"] == 5
    assert result["total_copies"] == 1
    assert result["total_external_views"] == 1
    assert result["top_generations"][0] == {"generation_id": popular.id, "address": "1 Popular Ln", "views": 4}
    assert result["sources"]["app"] == 5
    assert result["sources"]["mls"] == 1
    assert len(result["trends"]) == 7
    assert result["trends"][-1]["date"] == utcnow().date().isoformat()
    assert result["trends"][-1]["views"] == 5


def test_dashboard_ignores_events_outside_window(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    generation = _generation(sqlite_session, profile.id)
    old = AnalyticsEvent(
        generation_id=generation.id,
        event_type=AnalyticsEventType.VIEW,
        source=AnalyticsSource.APP,
        created_at=utcnow() - timedelta(days=40),
    )
    sqlite_session.add(old)
    sqlite_session.flush()
    result = dashboard(sqlite_session, RequestContext(current_user_id=profile.id), days=30)
    assert result["total_views"] == 0


def test_generation_stats_counts_by_type(sqlite_session, make_profile) -> None:
    profile = make_profile(SubscriptionTier.PRO)
    generation = _generation(sqlite_session, profile.id)
    record_event(sqlite_session, generation, AnalyticsEventType.VIEW)
    record_event(sqlite_session, generation, AnalyticsEventType.EXTERNAL_VIEW, source=AnalyticsSource.ZILLOW)
    record_event(sqlite_session, generation, AnalyticsEventType.REGENERATE)
    record_event(sqlite_session, generation, AnalyticsEventType.CLICK, metadata_json={"target": "phone"})

    stats = generation_stats(sqlite_session, generation)
    assert stats["total_views"] == 2
    assert stats["internal_views"] == 1
    assert stats["external_views"] == 1
    assert stats["regenerates"] == 1
    assert stats["clicks"] == 1
    assert stats["sources"]["zillow"] == 1
    assert len(stats["events"]) == 4


def test_team_stats_per_member(sqlite_session, make_profile) -> None:
    owner = make_profile(SubscriptionTier.TEAM, email="lead@example.com")
    agent = make_profile(SubscriptionTier.PRO, email="agent@example.com")
    owner_ctx = RequestContext(current_user_id=owner.id)
    team = create_team(sqlite_session, owner_ctx, owner, "Tidewater", None)
    invite_member(sqlite_session, owner_ctx, team.id, "agent@example.com", TeamRole.AGENT)

    owner_listing = _generation(sqlite_session, owner.id, team_id=team.id)
    agent_listing = _generation(sqlite_session, agent.id, team_id=team.id)
    record_event(sqlite_session, owner_listing, AnalyticsEventType.VIEW)
    record_event(sqlite_session, agent_listing, AnalyticsEventType.COPY)
    record_event(sqlite_session, agent_listing, AnalyticsEventType.EXTERNAL_VIEW)

    stats = team_stats(sqlite_session, owner_ctx, team.id)
    assert stats["total_generations"] == 2
    assert stats["total_views"] == 2
    assert stats["total_copies"] == 1
    by_email = {member["email"]: member for member in stats["members"]}
    assert by_email["agent@example.com"]["copies"] == 1
    assert by_email["lead@example.com"]["views"] == 1

    with pytest.raises(HTTPException) as exc:
        team_stats(sqlite_session, RequestContext(current_user_id=agent.id), team.id)
    assert exc.value.detail == "Only team admins and managers can view team analytics"
