from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, HttpUrl

from .models import (
    AnalyticsEventType,
    BulkJobStatus,
    MarketReportType,
    MLSProvider,
    PropertyType,
    RoomType,
    StagingStyle,
    TeamRole,
)


class GenerateListingRequest(BaseModel):
    address: str = Field(min_length=1, max_length=500)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0, ge=0)
    square_feet: int = Field(default=0, ge=0)
    property_type: PropertyType = PropertyType.SINGLE_FAMILY
    amenities: list[str] = Field(default_factory=list)
    photo_urls: list[HttpUrl] = Field(default_factory=list)
    include_airbnb: bool = False
    include_social: bool = False
    team_id: uuid.UUID | None = None


class GenerationCreatedResponse(BaseModel):
    id: uuid.UUID
    mls_description: str
    airbnb_description: str | None = None
    social_captions: list[str] | None = None
    confidence_score: int
    confidence_level: str
    tracking_id: str | None = None


class GenerationResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID | None = None
    address: str
    bedrooms: int
    bathrooms: float
    square_feet: int
    property_type: PropertyType
    amenities: list[str]
    photo_urls: list[str]
    include_airbnb: bool
    include_social: bool
    mls_description: str
    airbnb_description: str | None = None
    social_captions: list[str] | None = None
    confidence_score: int
    confidence_level: str
    neighborhood: str | None = None
    staged_images: list[dict[str, Any]] = Field(default_factory=list)
    tracking_id: str | None = None
    team_id: uuid.UUID | None = None
    is_shared: bool = False
    created_at: datetime


class AnonymousGenerateRequest(BaseModel):
    address: str = Field(min_length=1, max_length=500)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0, ge=0)
    square_feet: int = Field(default=0, ge=0)
    property_type: PropertyType = PropertyType.SINGLE_FAMILY
    amenities: list[str] = Field(default_factory=list)


class AnonymousGenerationResponse(BaseModel):
    id: uuid.UUID
    session_id: str
    mls_description: str
    preview_snippet: str
    confidence_score: int
    confidence_level: str
    remaining_generations: int


class AnonymousLinkRequest(BaseModel):
    session_id: str | None = Field(default=None, max_length=64)


class AnonymousLinkResponse(BaseModel):
    linked_count: int
    message: str


class QuotaResponse(BaseModel):
    subscription_tier: str
    generations_this_month: int
    generations_limit: int
    generations_remaining: int
    staging_credits_used_this_month: int
    staging_credits_limit: int
    bonus_staging_credits: int
    staging_credits_remaining: int
    last_reset_date: datetime


class StagePhotoRequest(BaseModel):
    photo_url: HttpUrl
    room_type: RoomType
    style: StagingStyle
    generation_id: uuid.UUID | None = None


class StagePhotoResponse(BaseModel):
    queue_id: uuid.UUID
    status: str
    estimated_time_seconds: int


class StagingStatusResponse(BaseModel):
    status: str
    staged_url: str | None = None
    processing_time_seconds: int | None = None
    error_message: str | None = None


class BulkRow(BaseModel):
    address: str = Field(min_length=1, max_length=500)
    beds: int | None = Field(default=None, gt=0)
    baths: float | None = Field(default=None, gt=0)
    sqft: int | None = Field(default=None, gt=0)
    property_type: PropertyType | None = None
    amenities: list[str] = Field(default_factory=list)


class BulkJobCreateRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=255)
    rows: list[BulkRow] = Field(min_length=1)
    team_id: uuid.UUID | None = None


class BulkJobCreatedResponse(BaseModel):
    job_id: uuid.UUID
    status: BulkJobStatus
    total_rows: int


class BulkJobResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    team_id: uuid.UUID | None = None
    file_name: str
    total_rows: int
    processed_rows: int
    failed_rows: int
    status: BulkJobStatus
    results_url: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class BulkJobDetailResponse(BulkJobResponse):
    status_breakdown: dict[str, int]
    progress_percent: int


class AnalyticsEventRequest(BaseModel):
    generation_id: uuid.UUID
    event_type: AnalyticsEventType
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnalyticsEventResponse(BaseModel):
    id: uuid.UUID
    generation_id: uuid.UUID
    event_type: AnalyticsEventType
    source: str
    created_at: datetime


class TopGeneration(BaseModel):
    generation_id: uuid.UUID
    address: str
    views: int


class TrendPoint(BaseModel):
    date: str
    views: int
    copies: int


class DashboardResponse(BaseModel):
    total_generations: int
    total_views: int
    total_copies: int
    total_external_views: int
    top_generations: list[TopGeneration]
    sources: dict[str, int]
    trends: list[TrendPoint]


class GenerationEvent(BaseModel):
    id: uuid.UUID
    event_type: str
    source: str
    metadata: dict[str, Any]
    created_at: datetime


class GenerationStatsResponse(BaseModel):
    generation_id: uuid.UUID
    total_views: int
    internal_views: int
    external_views: int
    copies: int
    regenerates: int
    clicks: int
    sources: dict[str, int]
    events: list[GenerationEvent]


class MemberStats(BaseModel):
    user_id: uuid.UUID
    email: str | None = None
    generations: int
    views: int
    copies: int


class TeamStatsResponse(BaseModel):
    team_id: uuid.UUID
    total_generations: int
    total_views: int
    total_copies: int
    members: list[MemberStats]


class TeamBranding(BaseModel):
    logo_url: HttpUrl | None = None
    primary_color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    tagline: str | None = Field(default=None, max_length=200)


class TeamCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    branding: TeamBranding | None = None


class TeamResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    owner_id: uuid.UUID
    branding: dict[str, Any]
    subscription_tier: str
    created_at: datetime


class TeamInviteRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: TeamRole = TeamRole.AGENT


class TeamRoleUpdateRequest(BaseModel):
    role: TeamRole


class TeamMemberResponse(BaseModel):
    id: uuid.UUID
    team_id: uuid.UUID
    user_id: uuid.UUID
    email: str | None = None
    role: TeamRole
    invited_by: uuid.UUID | None = None
    joined_at: datetime


class ComparableCreateRequest(BaseModel):
    address: str = Field(min_length=1, max_length=500)
    zip_code: str | None = Field(default=None, max_length=10)
    neighborhood: str | None = Field(default=None, max_length=255)
    property_type: PropertyType = PropertyType.SINGLE_FAMILY
    beds: int | None = Field(default=None, ge=0)
    baths: float | None = Field(default=None, ge=0)
    sqft: int | None = Field(default=None, gt=0)
    list_price: float | None = Field(default=None, ge=0)
    sold_price: float | None = Field(default=None, ge=0)
    days_on_market: int | None = Field(default=None, ge=0)
    sold_date: date | None = None


class ComparableResponse(BaseModel):
    id: uuid.UUID
    address: str
    zip_code: str | None = None
    neighborhood: str | None = None
    property_type: PropertyType
    beds: int | None = None
    baths: float | None = None
    sqft: int | None = None
    list_price: float | None = None
    sold_price: float | None = None
    days_on_market: int | None = None
    sold_date: date | None = None
    data_source: str


class MarketReportRequest(BaseModel):
    report_type: MarketReportType
    neighborhood: str | None = Field(default=None, max_length=255)
    zip_code: str | None = Field(default=None, max_length=10)
    team_id: uuid.UUID | None = None


class MarketReportResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    team_id: uuid.UUID | None = None
    report_type: MarketReportType
    neighborhood: str | None = None
    zip_code: str | None = None
    report_data: dict[str, Any]
    generated_at: datetime


class MLSConnectRequest(BaseModel):
    provider: MLSProvider
    mls_name: str = Field(min_length=1, max_length=255)
    api_base_url: HttpUrl
    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    team_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MLSConnectResponse(BaseModel):
    connection_id: uuid.UUID
    provider: MLSProvider
    mls_name: str
    is_active: bool


class MLSPullRequest(BaseModel):
    connection_id: uuid.UUID
    mls_number: str = Field(min_length=1, max_length=64)
    team_id: uuid.UUID | None = None


class MLSPropertyResponse(BaseModel):
    mls_number: str | int | None = None
    address: str | None = None
    beds: float | None = None
    baths: float | None = None
    sqft: float | None = None
    property_type: str | None = None
    list_price: float | None = None
    year_built: int | None = None
    lot_size: float | None = None
    description: str = ""
    photos: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    raw_data: dict[str, Any] = Field(default_factory=dict)


class BillingWebhookRequest(BaseModel):
    event_type: str = Field(min_length=1, max_length=128)
    data: dict[str, Any] = Field(default_factory=dict)


class BillingWebhookResponse(BaseModel):
    received: bool
    processed: bool


class CronSummaryResponse(BaseModel):
    success: bool = True
    summary: dict[str, Any]
