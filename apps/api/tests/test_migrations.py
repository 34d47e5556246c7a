import uuid

import pytest
from sqlalchemy import inspect, select

from listing_api.clock import utcnow
from listing_api.models import SubscriptionTier, UserProfile

pytestmark = pytest.mark.integration


def test_migrated_schema_has_core_tables(db_session) -> None:
    tables = set(inspect(db_session.get_bind()).get_table_names())
    assert {
        "user_profiles",
        "generations",
        "anonymous_generations",
        "staging_queue",
        "staging_rate_limits",
        "bulk_jobs",
        "bulk_job_items",
        "teams",
        "team_members",
        "analytics_events",
        "comparable_listings",
        "market_reports",
        "mls_connections",
        "audit_logs",
    } <= tables


def test_profile_tier_is_stored_by_value(db_session) -> None:
    profile_id = uuid.uuid4()
    db_session.add(
        UserProfile(
            id=profile_id,
            email="agent@example.com",
            subscription_tier=SubscriptionTier.PRO_PLUS,
            last_reset_date=utcnow(),
        )
    )
    db_session.commit()
    stored = db_session.scalar(select(UserProfile).where(UserProfile.id == profile_id))
    assert stored is not None
    assert stored.subscription_tier == SubscriptionTier.PRO_PLUS
    assert stored.generations_this_month == 0
