"""listing core schema

Revision ID: 0001_listing_core_schema
Revises:
Create Date: 2026-10-01 00:00:00
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_listing_core_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS: dict[str, tuple[str, ...]] = {
    "subscription_tier_enum": ("free", "starter", "pro", "pro_plus", "team"),
    "property_type_enum": ("single_family", "townhouse", "condo", "multi_family", "land", "other"),
    "staging_status_enum": ("pending", "processing", "completed", "failed"),
    "team_role_enum": ("admin", "manager", "agent"),
    "bulk_job_status_enum": ("pending", "processing", "completed", "failed"),
    "analytics_event_type_enum": ("view", "copy", "external_view", "click", "regenerate"),
    "analytics_source_enum": ("app", "mls", "zillow", "email", "realtor", "other"),
    "comparable_data_source_enum": ("manual", "mls_api", "public_records"),
    "market_report_type_enum": ("neighborhood", "zip", "custom_area"),
    "mls_provider_enum": ("reso_web_api", "bright_mls", "matrix", "other"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    for name, values in ENUMS.items():
        labels = ", ".join(f"'{value}'" for value in values)
        op.execute(
            f"""
            DO $$
            BEGIN
                IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{name}') THEN
                    CREATE TYPE {name} AS ENUM ({labels});
                END IF;
            END $$;
            """
        )

    op.create_table(
        "teams",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("branding", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("subscription_tier", _enum("subscription_tier_enum"), nullable=False, server_default="team"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_teams_slug"),
    )
    op.create_index("ix_teams_owner_id", "teams", ["owner_id"])

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("subscription_tier", _enum("subscription_tier_enum"), nullable=False, server_default="free"),
        sa.Column("generations_this_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("staging_credits_used_this_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_staging_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_stagings_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("billing_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(length=255), nullable=True),
        sa.Column("current_team_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["current_team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_user_profiles_email"),
    )
    op.create_index("ix_user_profiles_stripe_customer_id", "user_profiles", ["stripe_customer_id"])
    op.create_index("ix_user_profiles_last_reset_date", "user_profiles", ["last_reset_date"])

    op.create_table(
        "team_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role", _enum("team_role_enum"), nullable=False, server_default="agent"),
        sa.Column("invited_by", sa.Uuid(), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    op.create_table(
        "bulk_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_rows", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_rows", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", _enum("bulk_job_status_enum"), nullable=False, server_default="pending"),
        sa.Column("results_url", sa.String(length=2048), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bulk_jobs_user_created_at", "bulk_jobs", ["user_id", "created_at"])
    op.create_index("ix_bulk_jobs_status_created_at", "bulk_jobs", ["status", "created_at"])

    op.create_table(
        "generations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bathrooms", sa.Float(), nullable=False, server_default="0"),
        sa.Column("square_feet", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("property_type", _enum("property_type_enum"), nullable=False, server_default="single_family"),
        sa.Column("amenities", sa.JSON(), nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("photo_urls", sa.JSON(), nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("include_airbnb", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("include_social", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("mls_description", sa.Text(), nullable=False),
        sa.Column("airbnb_description", sa.Text(), nullable=True),
        sa.Column("social_captions", sa.JSON(), nullable=True),
        sa.Column("confidence_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confidence_level", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("neighborhood", sa.String(length=255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("staged_images", sa.JSON(), nullable=False, server_default=sa.text("'[]'::json")),
        sa.Column("tracking_id", sa.String(length=64), nullable=True),
        sa.Column("team_id", sa.Uuid(), nullable=True),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("bulk_job_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.ForeignKeyConstraint(["bulk_job_id"], ["bulk_jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tracking_id", name="uq_generations_tracking_id"),
    )
    op.create_index("ix_generations_user_created_at", "generations", ["user_id", "created_at"])
    op.create_index("ix_generations_team_id", "generations", ["team_id"])
    op.create_index("ix_generations_bulk_job_id", "generations", ["bulk_job_id"])

    op.create_table(
        "bulk_job_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("bulk_job_id", sa.Uuid(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("input_data", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("generation_id", sa.Uuid(), nullable=True),
        sa.Column("status", _enum("bulk_job_status_enum"), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["bulk_job_id"], ["bulk_jobs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bulk_job_id", "row_number", name="uq_bulk_job_items_job_row"),
    )
    op.create_index("ix_bulk_job_items_job_status", "bulk_job_items", ["bulk_job_id", "status"])

    op.create_table(
        "anonymous_generations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("ip_hash", sa.String(length=64), nullable=False),
        sa.Column("device_fingerprint", sa.String(length=64), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bathrooms", sa.Float(), nullable=False, server_default="0"),
        sa.Column("square_feet", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mls_description", sa.Text(), nullable=False),
        sa.Column("confidence_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("confidence_level", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("linked_user_id", sa.Uuid(), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["linked_user_id"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_anonymous_generations_ip_fingerprint",
        "anonymous_generations",
        ["ip_hash", "device_fingerprint", "created_at"],
    )
    op.create_index("ix_anonymous_generations_session_id", "anonymous_generations", ["session_id"])
    op.create_index("ix_anonymous_generations_expires_at", "anonymous_generations", ["expires_at"])

    op.create_table(
        "staging_queue",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("generation_id", sa.Uuid(), nullable=True),
        sa.Column("photo_url", sa.String(length=2048), nullable=False),
        sa.Column("room_type", sa.String(length=32), nullable=False),
        sa.Column("style", sa.String(length=32), nullable=False),
        sa.Column("status", _enum("staging_status_enum"), nullable=False, server_default="pending"),
        sa.Column("staged_url", sa.String(length=2048), nullable=True),
        sa.Column("provider", sa.String(length=32), nullable=True),
        sa.Column("provider_job_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processing_time_seconds", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_staging_queue_status_created_at", "staging_queue", ["status", "created_at"])
    op.create_index("ix_staging_queue_user_id", "staging_queue", ["user_id"])

    op.create_table(
        "staging_rate_limits",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("requests_last_hour", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_request_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("failed_attempts_today", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("suspension_until", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("generation_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("event_type", _enum("analytics_event_type_enum"), nullable=False),
        sa.Column("source", _enum("analytics_source_enum"), nullable=False, server_default="app"),
        sa.Column("tracking_id", sa.String(length=64), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["generation_id"], ["generations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_analytics_events_generation_created_at", "analytics_events", ["generation_id", "created_at"]
    )
    op.create_index("ix_analytics_events_tracking_id", "analytics_events", ["tracking_id"])

    op.create_table(
        "comparable_listings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False),
        sa.Column("zip_code", sa.String(length=10), nullable=True),
        sa.Column("neighborhood", sa.String(length=255), nullable=True),
        sa.Column("property_type", _enum("property_type_enum"), nullable=False, server_default="single_family"),
        sa.Column("beds", sa.Integer(), nullable=True),
        sa.Column("baths", sa.Float(), nullable=True),
        sa.Column("sqft", sa.Integer(), nullable=True),
        sa.Column("list_price", sa.Float(), nullable=True),
        sa.Column("sold_price", sa.Float(), nullable=True),
        sa.Column("days_on_market", sa.Integer(), nullable=True),
        sa.Column("sold_date", sa.Date(), nullable=True),
        sa.Column("data_source", _enum("comparable_data_source_enum"), nullable=False, server_default="manual"),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_comparable_listings_zip_code", "comparable_listings", ["zip_code"])
    op.create_index("ix_comparable_listings_neighborhood", "comparable_listings", ["neighborhood"])
    op.create_index("ix_comparable_listings_sold_date", "comparable_listings", ["sold_date"])

    op.create_table(
        "market_reports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("team_id", sa.Uuid(), nullable=True),
        sa.Column("report_type", _enum("market_report_type_enum"), nullable=False),
        sa.Column("neighborhood", sa.String(length=255), nullable=True),
        sa.Column("zip_code", sa.String(length=10), nullable=True),
        sa.Column("report_data", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_market_reports_user_id", "market_reports", ["user_id"])
    op.create_index("ix_market_reports_team_id", "market_reports", ["team_id"])

    op.create_table(
        "mls_connections",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("team_id", sa.Uuid(), nullable=True),
        sa.Column("provider", _enum("mls_provider_enum"), nullable=False),
        sa.Column("mls_name", sa.String(length=255), nullable=False),
        sa.Column("api_base_url", sa.String(length=2048), nullable=True),
        sa.Column("access_token_enc", sa.Text(), nullable=True),
        sa.Column("refresh_token_enc", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("metadata_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user_profiles.id"]),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("(user_id IS NULL) <> (team_id IS NULL)", name="ck_mls_connections_single_owner"),
    )
    op.create_index("ix_mls_connections_user_id", "mls_connections", ["user_id"])
    op.create_index("ix_mls_connections_team_id", "mls_connections", ["team_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.String(length=255), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_target", "audit_logs", ["target_type", "target_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "mls_connections",
        "market_reports",
        "comparable_listings",
        "analytics_events",
        "staging_rate_limits",
        "staging_queue",
        "anonymous_generations",
        "bulk_job_items",
        "generations",
        "bulk_jobs",
        "team_members",
        "user_profiles",
        "teams",
    ):
        op.drop_table(table)
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
