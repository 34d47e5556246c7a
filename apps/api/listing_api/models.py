from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy import JSON as JsonType
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    PRO_PLUS = "pro_plus"
    TEAM = "team"


class PropertyType(str, enum.Enum):
    SINGLE_FAMILY = "single_family"
    TOWNHOUSE = "townhouse"
    CONDO = "condo"
    MULTI_FAMILY = "multi_family"
    LAND = "land"
    OTHER = "other"


class RoomType(str, enum.Enum):
    LIVING_ROOM = "living_room"
    BEDROOM = "bedroom"
    KITCHEN = "kitchen"
    DINING_ROOM = "dining_room"
    BATHROOM = "bathroom"
    OFFICE = "office"
    EXTERIOR = "exterior"
    OTHER = "other"


class StagingStyle(str, enum.Enum):
    COASTAL_MODERN = "coastal_modern"
    LOWCOUNTRY_TRADITIONAL = "lowcountry_traditional"
    CONTEMPORARY = "contemporary"
    TRANSITIONAL = "transitional"
    FARMHOUSE = "farmhouse"
    LUXURY = "luxury"


class StagingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TeamRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"


class BulkJobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalyticsEventType(str, enum.Enum):
    VIEW = "view"
    COPY = "copy"
    EXTERNAL_VIEW = "external_view"
    CLICK = "click"
    REGENERATE = "regenerate"


class AnalyticsSource(str, enum.Enum):
    APP = "app"
    MLS = "mls"
    ZILLOW = "zillow"
    EMAIL = "email"
    REALTOR = "realtor"
    OTHER = "other"


class ComparableDataSource(str, enum.Enum):
    MANUAL = "manual"
    MLS_API = "mls_api"
    PUBLIC_RECORDS = "public_records"


class MarketReportType(str, enum.Enum):
    NEIGHBORHOOD = "neighborhood"
    ZIP = "zip"
    CUSTOM_AREA = "custom_area"


class MLSProvider(str, enum.Enum):
    RESO_WEB_API = "reso_web_api"
    BRIGHT_MLS = "bright_mls"
    MATRIX = "matrix"
    OTHER = "other"


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow, onupdate=_utcnow
    )


class UserProfile(Base, TimestampMixin):
    __tablename__ = "user_profiles"
    __table_args__ = (
        UniqueConstraint("email", name="uq_user_profiles_email"),
        Index("ix_user_profiles_stripe_customer_id", "stripe_customer_id"),
        Index("ix_user_profiles_last_reset_date", "last_reset_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        _enum(SubscriptionTier, "subscription_tier_enum"), nullable=False, default=SubscriptionTier.FREE
    )
    generations_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    staging_credits_used_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_staging_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_stagings_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reset_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow
    )
    billing_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_team_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teams.id"), nullable=True)


class Team(Base, IdMixin, TimestampMixin):
    __tablename__ = "teams"
    __table_args__ = (UniqueConstraint("slug", name="uq_teams_slug"), Index("ix_teams_owner_id", "owner_id"))

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    branding: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        _enum(SubscriptionTier, "subscription_tier_enum"), nullable=False, default=SubscriptionTier.TEAM
    )


class TeamMember(Base, IdMixin):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        Index("ix_team_members_user_id", "user_id"),
    )

    team_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[TeamRole] = mapped_column(_enum(TeamRole, "team_role_enum"), nullable=False, default=TeamRole.AGENT)
    invited_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)


class Generation(Base, IdMixin, TimestampMixin):
    __tablename__ = "generations"
    __table_args__ = (
        UniqueConstraint("tracking_id", name="uq_generations_tracking_id"),
        Index("ix_generations_user_created_at", "user_id", "created_at"),
        Index("ix_generations_team_id", "team_id"),
        Index("ix_generations_bulk_job_id", "bulk_job_id"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id"), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bathrooms: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    square_feet: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    property_type: Mapped[PropertyType] = mapped_column(
        _enum(PropertyType, "property_type_enum"), nullable=False, default=PropertyType.SINGLE_FAMILY
    )
    amenities: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    photo_urls: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    include_airbnb: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    include_social: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mls_description: Mapped[str] = mapped_column(Text, nullable=False)
    airbnb_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    social_captions: Mapped[list[str] | None] = mapped_column(JsonType, nullable=True)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_level: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    neighborhood: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    staged_images: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, nullable=False, default=list)
    tracking_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bulk_job_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("bulk_jobs.id"), nullable=True)


class AnonymousGeneration(Base, IdMixin):
    __tablename__ = "anonymous_generations"
    __table_args__ = (
        Index("ix_anonymous_generations_ip_fingerprint", "ip_hash", "device_fingerprint", "created_at"),
        Index("ix_anonymous_generations_session_id", "session_id"),
        Index("ix_anonymous_generations_expires_at", "expires_at"),
    )

    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ip_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    device_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bathrooms: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    square_feet: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mls_description: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence_level: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    linked_user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("user_profiles.id"), nullable=True)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)


class StagingQueueEntry(Base, IdMixin):
    __tablename__ = "staging_queue"
    __table_args__ = (
        Index("ix_staging_queue_status_created_at", "status", "created_at"),
        Index("ix_staging_queue_user_id", "user_id"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id"), nullable=False)
    generation_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("generations.id"), nullable=True)
    photo_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    room_type: Mapped[str] = mapped_column(String(32), nullable=False)
    style: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[StagingStatus] = mapped_column(
        _enum(StagingStatus, "staging_status_enum"), nullable=False, default=StagingStatus.PENDING
    )
    staged_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    provider_job_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_time_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class StagingRateLimit(Base):
    __tablename__ = "staging_rate_limits"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id"), primary_key=True)
    requests_last_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_request_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    failed_attempts_today: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suspension_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BulkJob(Base, IdMixin):
    __tablename__ = "bulk_jobs"
    __table_args__ = (
        Index("ix_bulk_jobs_user_created_at", "user_id", "created_at"),
        Index("ix_bulk_jobs_status_created_at", "status", "created_at"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id"), nullable=False)
    team_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[BulkJobStatus] = mapped_column(
        _enum(BulkJobStatus, "bulk_job_status_enum"), nullable=False, default=BulkJobStatus.PENDING
    )
    results_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BulkJobItem(Base, IdMixin):
    __tablename__ = "bulk_job_items"
    __table_args__ = (
        UniqueConstraint("bulk_job_id", "row_number", name="uq_bulk_job_items_job_row"),
        Index("ix_bulk_job_items_job_status", "bulk_job_id", "status"),
    )

    bulk_job_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("bulk_jobs.id", ondelete="CASCADE"), nullable=False)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    input_data: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    generation_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("generations.id"), nullable=True)
    status: Mapped[BulkJobStatus] = mapped_column(
        _enum(BulkJobStatus, "bulk_job_status_enum"), nullable=False, default=BulkJobStatus.PENDING
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class AnalyticsEvent(Base, IdMixin):
    __tablename__ = "analytics_events"
    __table_args__ = (
        Index("ix_analytics_events_generation_created_at", "generation_id", "created_at"),
        Index("ix_analytics_events_tracking_id", "tracking_id"),
    )

    generation_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("generations.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    event_type: Mapped[AnalyticsEventType] = mapped_column(
        _enum(AnalyticsEventType, "analytics_event_type_enum"), nullable=False
    )
    source: Mapped[AnalyticsSource] = mapped_column(
        _enum(AnalyticsSource, "analytics_source_enum"), nullable=False, default=AnalyticsSource.APP
    )
    tracking_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)


class ComparableListing(Base, IdMixin, TimestampMixin):
    __tablename__ = "comparable_listings"
    __table_args__ = (
        Index("ix_comparable_listings_zip_code", "zip_code"),
        Index("ix_comparable_listings_neighborhood", "neighborhood"),
        Index("ix_comparable_listings_sold_date", "sold_date"),
    )

    address: Mapped[str] = mapped_column(String(500), nullable=False)
    zip_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    neighborhood: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_type: Mapped[PropertyType] = mapped_column(
        _enum(PropertyType, "property_type_enum"), nullable=False, default=PropertyType.SINGLE_FAMILY
    )
    beds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baths: Mapped[float | None] = mapped_column(Float, nullable=True)
    sqft: Mapped[int | None] = mapped_column(Integer, nullable=True)
    list_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    sold_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    days_on_market: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sold_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    data_source: Mapped[ComparableDataSource] = mapped_column(
        _enum(ComparableDataSource, "comparable_data_source_enum"),
        nullable=False,
        default=ComparableDataSource.MANUAL,
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)


class MarketReport(Base, IdMixin):
    __tablename__ = "market_reports"
    __table_args__ = (Index("ix_market_reports_user_id", "user_id"), Index("ix_market_reports_team_id", "team_id"))

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("user_profiles.id"), nullable=False)
    team_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    report_type: Mapped[MarketReportType] = mapped_column(
        _enum(MarketReportType, "market_report_type_enum"), nullable=False
    )
    neighborhood: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    report_data: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)


class MLSConnection(Base, IdMixin, TimestampMixin):
    __tablename__ = "mls_connections"
    __table_args__ = (
        Index("ix_mls_connections_user_id", "user_id"),
        Index("ix_mls_connections_team_id", "team_id"),
        CheckConstraint("(user_id IS NULL) <> (team_id IS NULL)", name="ck_mls_connections_single_owner"),
    )

    user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("user_profiles.id"), nullable=True)
    team_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("teams.id"), nullable=True)
    provider: Mapped[MLSProvider] = mapped_column(_enum(MLSProvider, "mls_provider_enum"), nullable=False)
    mls_name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_base_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    access_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)


class AuditLog(Base, IdMixin):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_created_at", "created_at"), Index("ix_audit_logs_target", "target_type", "target_id"))

    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), default=_utcnow)
