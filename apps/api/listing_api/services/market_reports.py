from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_membership, require_team_member
from ..models import ComparableListing, MarketReport, MarketReportType, UserProfile
from .ai import market_narrative
from .comps import comparable_payload
from .tiers import get_tier

logger = logging.getLogger(__name__)

MAX_REPORT_COMPS = 100
RECENT_SALES_LIMIT = 10
COMPARABLE_PROPERTIES_LIMIT = 20
STABLE_TRENDS = {"price_trend": "stable", "inventory_trend": "stable", "days_on_market_trend": "stable"}


@dataclass
class MarketStats:
    median_price: float
    price_per_sqft: float
    days_on_market_avg: float
    sold: list[ComparableListing]


def compute_stats(comps: list[ComparableListing]) -> MarketStats:
    sold = sorted((comp for comp in comps if comp.sold_price and comp.sold_date), key=lambda comp: comp.sold_price or 0)
    if not sold:
        return MarketStats(median_price=0, price_per_sqft=0, days_on_market_avg=0, sold=[])
    median = sold[len(sold) // 2].sold_price or 0
    per_sqft = sum((comp.sold_price or 0) / (comp.sqft or 1) for comp in sold) / len(sold)
    dom = sum(comp.days_on_market or 0 for comp in sold) / len(sold)
    return MarketStats(median_price=median, price_per_sqft=per_sqft, days_on_market_avg=dom, sold=sold)


def _report_comps(db: Session, report_type: MarketReportType, neighborhood: str | None, zip_code: str | None) -> list[ComparableListing]:
    stmt = select(ComparableListing)
    if report_type == MarketReportType.NEIGHBORHOOD and neighborhood:
        stmt = stmt.where(ComparableListing.neighborhood.ilike(f"%{neighborhood}%"))
    elif report_type == MarketReportType.ZIP and zip_code:
        stmt = stmt.where(ComparableListing.zip_code == zip_code)
    stmt = stmt.order_by(ComparableListing.sold_date.desc().nulls_last()).limit(MAX_REPORT_COMPS)
    return list(db.scalars(stmt).all())


def generate_report(
    db: Session,
    context: RequestContext,
    profile: UserProfile,
    report_type: MarketReportType,
    neighborhood: str | None = None,
    zip_code: str | None = None,
    team_id: uuid.UUID | None = None,
) -> MarketReport:
    if team_id is not None:
        require_team_member(db, team_id, context)
    tier = get_tier(profile.subscription_tier)
    if tier is None or not tier.has_market_reports:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "UPGRADE_REQUIRED", "message": "Market reports require a Pro plan or higher"},
        )

    comps = _report_comps(db, report_type, neighborhood, zip_code)
    if not comps:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INSUFFICIENT_DATA", "message": "Not enough comparable listings found for this area."},
        )

    stats = compute_stats(comps)
    area = neighborhood or zip_code or "Charleston area"
    report_data: dict[str, Any] = {
        "median_price": stats.median_price,
        "price_per_sqft": round(stats.price_per_sqft, 2),
        "days_on_market_avg": round(stats.days_on_market_avg, 1),
        "inventory_levels": len(comps),
        "recent_sales": [comparable_payload(comp) for comp in stats.sold[:RECENT_SALES_LIMIT]],
        "market_narrative": market_narrative(area, stats.median_price, stats.days_on_market_avg, stats.price_per_sqft),
        "comparable_properties": [comparable_payload(comp) for comp in comps[:COMPARABLE_PROPERTIES_LIMIT]],
        "trends": dict(STABLE_TRENDS),
    }
    report = MarketReport(
        user_id=context.current_user_id,
        team_id=team_id,
        report_type=report_type,
        neighborhood=neighborhood,
        zip_code=zip_code,
        report_data=report_data,
    )
    db.add(report)
    db.flush()
    logger.info("market report %s generated from %s comps", report.id, len(comps))
    return report


def get_report(db: Session, context: RequestContext, report_id: uuid.UUID) -> MarketReport:
    report = db.get(MarketReport, report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    if report.user_id == context.current_user_id:
        return report
    if report.team_id is not None and get_membership(db, report.team_id, context.current_user_id) is not None:
        return report
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
