from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..clock import as_utc, utcnow
from ..models import BulkJob, StagingRateLimit, SubscriptionTier, UserProfile
from .tiers import UNLIMITED, get_tier

logger = logging.getLogger(__name__)

RESET_PERIOD_DAYS = 30
STAGING_REQUESTS_PER_HOUR = 5


@dataclass
class QuotaDecision:
    allowed: bool
    reason: str | None = None
    available: int | None = None


def _quota_error(code: str, decision: QuotaDecision, status_code: int = status.HTTP_403_FORBIDDEN) -> HTTPException:
    detail: dict[str, object] = {"code": code, "message": decision.reason}
    if decision.available is not None:
        detail["available_credits"] = decision.available
    return HTTPException(status_code=status_code, detail=detail)


def _reset_counters(profile: UserProfile, now: datetime) -> None:
    profile.generations_this_month = 0
    profile.staging_credits_used_this_month = 0
    profile.last_reset_date = now


def check_and_reset_quota(profile: UserProfile, now: datetime | None = None) -> bool:
    """Zero the monthly counters once a full 30-day cycle has elapsed.

    Returns True when a reset happened.
    """
    now = now or utcnow()
    elapsed_days = (now - as_utc(profile.last_reset_date)).days
    if elapsed_days < RESET_PERIOD_DAYS:
        return False
    _reset_counters(profile, now)
    return True


def can_generate(profile: UserProfile) -> QuotaDecision:
    tier = get_tier(profile.subscription_tier)
    if tier is None:
        return QuotaDecision(allowed=False, reason="Invalid subscription tier")
    if tier.generations_per_month == UNLIMITED:
        return QuotaDecision(allowed=True)
    if profile.generations_this_month >= tier.generations_per_month:
        return QuotaDecision(
            allowed=False,
            reason=f"Monthly generation limit reached ({tier.generations_per_month}). Upgrade to generate more.",
        )
    return QuotaDecision(allowed=True, available=tier.generations_per_month - profile.generations_this_month)


def available_staging_credits(profile: UserProfile) -> int:
    tier = get_tier(profile.subscription_tier)
    if tier is None:
        return 0
    if tier.staging_credits_per_month == UNLIMITED:
        return UNLIMITED
    return tier.staging_credits_per_month - profile.staging_credits_used_this_month + profile.bonus_staging_credits


def can_stage(profile: UserProfile, requested: int = 1) -> QuotaDecision:
    tier = get_tier(profile.subscription_tier)
    if tier is None:
        return QuotaDecision(allowed=False, reason="Invalid subscription tier", available=0)
    available = available_staging_credits(profile)
    if available == UNLIMITED:
        return QuotaDecision(allowed=True, available=UNLIMITED)
    if available < requested:
        return QuotaDecision(
            allowed=False,
            reason=f"Insufficient staging credits. You have {max(available, 0)} remaining.",
            available=max(available, 0),
        )
    return QuotaDecision(allowed=True, available=available)


def increment_generation_count(profile: UserProfile) -> None:
    profile.generations_this_month = (profile.generations_this_month or 0) + 1


def increment_staging_count(profile: UserProfile, credits: int = 1) -> None:
    from_bonus = min(profile.bonus_staging_credits or 0, credits)
    profile.bonus_staging_credits = (profile.bonus_staging_credits or 0) - from_bonus
    profile.staging_credits_used_this_month = (profile.staging_credits_used_this_month or 0) + credits - from_bonus
    profile.total_stagings_generated = (profile.total_stagings_generated or 0) + credits


def can_bulk_generate(profile: UserProfile, row_count: int) -> QuotaDecision:
    tier = get_tier(profile.subscription_tier)
    if tier is None or not tier.has_bulk_generation:
        return QuotaDecision(allowed=False, reason="Bulk generation requires a Starter plan or higher")
    if row_count > tier.bulk_job_max_rows:
        return QuotaDecision(
            allowed=False,
            reason=f"Bulk jobs on the {tier.name} plan are limited to {tier.bulk_job_max_rows} rows",
        )
    return QuotaDecision(allowed=True)


def can_create_bulk_job(db: Session, profile: UserProfile, now: datetime | None = None) -> QuotaDecision:
    tier = get_tier(profile.subscription_tier)
    if tier is None:
        return QuotaDecision(allowed=False, reason="Invalid subscription tier")
    if tier.bulk_jobs_per_day == UNLIMITED:
        return QuotaDecision(allowed=True)
    since = (now or utcnow()) - timedelta(hours=24)
    created_today = db.scalar(
        select(func.count()).select_from(BulkJob).where(BulkJob.user_id == profile.id, BulkJob.created_at >= since)
    ) or 0
    if created_today >= tier.bulk_jobs_per_day:
        return QuotaDecision(
            allowed=False,
            reason=f"Daily bulk job limit reached ({tier.bulk_jobs_per_day}). Try again tomorrow.",
        )
    return QuotaDecision(allowed=True, available=tier.bulk_jobs_per_day - created_today)


def check_staging_rate_limit(db: Session, user_id: uuid.UUID, now: datetime | None = None) -> QuotaDecision:
    now = now or utcnow()
    row = db.get(StagingRateLimit, user_id)
    if row is None:
        db.add(StagingRateLimit(user_id=user_id, requests_last_hour=1, last_request_at=now))
        db.flush()
        return QuotaDecision(allowed=True)

    if row.is_suspended and row.suspension_until is not None and now < as_utc(row.suspension_until):
        return QuotaDecision(
            allowed=False,
            reason=f"Account temporarily suspended until {as_utc(row.suspension_until).isoformat()}",
        )

    if now - as_utc(row.last_request_at) >= timedelta(hours=1):
        row.requests_last_hour = 0

    if row.requests_last_hour >= STAGING_REQUESTS_PER_HOUR:
        return QuotaDecision(
            allowed=False,
            reason=f"Rate limit exceeded. Maximum {STAGING_REQUESTS_PER_HOUR} staging requests per hour.",
        )

    row.requests_last_hour += 1
    row.last_request_at = now
    row.is_suspended = False
    row.suspension_until = None
    db.flush()
    return QuotaDecision(allowed=True)


def enforce_generation_quota(profile: UserProfile) -> None:
    check_and_reset_quota(profile)
    decision = can_generate(profile)
    if not decision.allowed:
        raise _quota_error("QUOTA_EXCEEDED", decision)


def enforce_staging_allowed(db: Session, profile: UserProfile) -> None:
    if profile.subscription_tier == SubscriptionTier.FREE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "UPGRADE_REQUIRED", "message": "Virtual staging requires a paid subscription"},
        )
    limit = check_staging_rate_limit(db, profile.id)
    # Attempts count against the hourly window even when a later check rejects them.
    db.commit()
    if not limit.allowed:
        raise _quota_error("RATE_LIMIT_EXCEEDED", limit, status_code=status.HTTP_429_TOO_MANY_REQUESTS)
    credits = can_stage(profile, 1)
    if not credits.allowed:
        raise _quota_error("STAGING_QUOTA_EXCEEDED", credits)


def enforce_bulk_allowed(db: Session, profile: UserProfile, row_count: int) -> None:
    for decision in (can_bulk_generate(profile, row_count), can_create_bulk_job(db, profile)):
        if not decision.allowed:
            raise _quota_error("QUOTA_EXCEEDED", decision)


def quota_summary(profile: UserProfile) -> dict[str, object]:
    tier = get_tier(profile.subscription_tier)
    generations_limit = tier.generations_per_month if tier else 0
    staging_available = available_staging_credits(profile)
    return {
        "subscription_tier": SubscriptionTier(profile.subscription_tier).value,
        "generations_this_month": profile.generations_this_month,
        "generations_limit": generations_limit,
        "generations_remaining": (
            UNLIMITED if generations_limit == UNLIMITED else max(generations_limit - profile.generations_this_month, 0)
        ),
        "staging_credits_used_this_month": profile.staging_credits_used_this_month,
        "staging_credits_limit": tier.staging_credits_per_month if tier else 0,
        "bonus_staging_credits": profile.bonus_staging_credits,
        "staging_credits_remaining": staging_available if staging_available == UNLIMITED else max(staging_available, 0),
        "last_reset_date": as_utc(profile.last_reset_date),
    }


def reset_monthly_quotas(db: Session, now: datetime | None = None) -> int:
    now = now or utcnow()
    cutoff = now - timedelta(days=RESET_PERIOD_DAYS)
    profiles = db.scalars(select(UserProfile).where(UserProfile.last_reset_date < cutoff)).all()
    for profile in profiles:
        _reset_counters(profile, now)
    db.flush()
    logger.info("monthly quota reset applied to %s profiles", len(profiles))
    return len(profiles)
