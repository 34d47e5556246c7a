from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ..models import SubscriptionTier

UNLIMITED = -1


@dataclass(frozen=True)
class TierLimits:
    name: str
    generations_per_month: int
    staging_credits_per_month: int
    price_monthly: int
    price_annual: int
    can_purchase_staging_packs: bool
    bulk_job_max_rows: int
    bulk_jobs_per_day: int
    has_bulk_generation: bool
    has_analytics: Literal["basic", "full"]
    has_team_features: bool
    has_market_reports: bool
    overage_rate_generations: float | None = None
    overage_rate_staging: float | None = None


SUBSCRIPTION_TIERS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        name="Free",
        generations_per_month=10,
        staging_credits_per_month=0,
        price_monthly=0,
        price_annual=0,
        can_purchase_staging_packs=False,
        bulk_job_max_rows=0,
        bulk_jobs_per_day=0,
        has_bulk_generation=False,
        has_analytics="basic",
        has_team_features=False,
        has_market_reports=False,
    ),
    SubscriptionTier.STARTER: TierLimits(
        name="Starter",
        generations_per_month=100,
        staging_credits_per_month=10,
        price_monthly=15,
        price_annual=144,
        can_purchase_staging_packs=False,
        bulk_job_max_rows=10,
        bulk_jobs_per_day=2,
        has_bulk_generation=True,
        has_analytics="basic",
        has_team_features=False,
        has_market_reports=False,
        overage_rate_generations=0.75,
        overage_rate_staging=0.75,
    ),
    SubscriptionTier.PRO: TierLimits(
        name="Pro",
        generations_per_month=UNLIMITED,
        staging_credits_per_month=30,
        price_monthly=29,
        price_annual=278,
        can_purchase_staging_packs=False,
        bulk_job_max_rows=50,
        bulk_jobs_per_day=10,
        has_bulk_generation=True,
        has_analytics="full",
        has_team_features=False,
        has_market_reports=True,
        overage_rate_staging=5,
    ),
    SubscriptionTier.PRO_PLUS: TierLimits(
        name="Pro+",
        generations_per_month=UNLIMITED,
        staging_credits_per_month=100,
        price_monthly=49,
        price_annual=470,
        can_purchase_staging_packs=True,
        bulk_job_max_rows=200,
        bulk_jobs_per_day=UNLIMITED,
        has_bulk_generation=True,
        has_analytics="full",
        has_team_features=True,
        has_market_reports=True,
        overage_rate_staging=5,
    ),
    SubscriptionTier.TEAM: TierLimits(
        name="Team",
        generations_per_month=UNLIMITED,
        staging_credits_per_month=150,
        price_monthly=99,
        price_annual=950,
        can_purchase_staging_packs=True,
        bulk_job_max_rows=200,
        bulk_jobs_per_day=UNLIMITED,
        has_bulk_generation=True,
        has_analytics="full",
        has_team_features=True,
        has_market_reports=True,
        overage_rate_staging=5,
    ),
}


def get_tier(tier: SubscriptionTier | str) -> TierLimits | None:
    try:
        return SUBSCRIPTION_TIERS[SubscriptionTier(tier)]
    except ValueError:
        return None
