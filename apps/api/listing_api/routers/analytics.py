from __future__ import annotations

import base64
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context
from ..clock import as_utc
from ..db import get_db
from ..models import AnalyticsSource
from ..schemas import (
    AnalyticsEventRequest,
    AnalyticsEventResponse,
    DashboardResponse,
    GenerationStatsResponse,
    TeamStatsResponse,
)
from ..services.analytics import dashboard, generation_stats, get_accessible_generation, record_event, record_tracking_pixel, team_stats
from ..services.anonymous import client_ip, hash_ip
from ..services.rate_limit import enforce_burst_limit
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analytics"])

TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")
PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@router.post("/analytics/events", response_model=AnalyticsEventResponse, status_code=status.HTTP_201_CREATED)
def track_event(
    payload: AnalyticsEventRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> AnalyticsEventResponse:
    generation = get_accessible_generation(db, context, payload.generation_id)
    event = record_event(
        db,
        generation,
        payload.event_type,
        source=AnalyticsSource.APP,
        user_id=context.current_user_id,
        metadata_json=payload.metadata,
    )
    db.commit()
    return AnalyticsEventResponse(
        id=event.id,
        generation_id=event.generation_id,
        event_type=event.event_type,
        source=AnalyticsSource(event.source).value,
        created_at=as_utc(event.created_at),
    )


@router.get("/analytics/dashboard", response_model=DashboardResponse)
def analytics_dashboard(
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> DashboardResponse:
    return DashboardResponse(**dashboard(db, context, days=days))


@router.get("/analytics/generations/{generation_id}", response_model=GenerationStatsResponse)
def analytics_for_generation(
    generation_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> GenerationStatsResponse:
    generation = get_accessible_generation(db, context, generation_id)
    return GenerationStatsResponse(**generation_stats(db, generation))


@router.get("/analytics/teams/{team_id}", response_model=TeamStatsResponse)
def analytics_for_team(
    team_id: uuid.UUID,
    days: int = Query(default=30, ge=1, le=365),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamStatsResponse:
    return TeamStatsResponse(**team_stats(db, context, team_id, days=days))


@router.get("/track/{tracking_id}")
def tracking_pixel(tracking_id: str, request: Request, db: Session = Depends(get_db)) -> Response:
    headers = request.headers
    ip_address = client_ip(headers, request.client.host if request.client else None)
    try:
        enforce_burst_limit(hash_ip(ip_address), "tracking_pixel", settings.tracking_burst_per_minute)
        record_tracking_pixel(
            db,
            tracking_id,
            referrer=headers.get("referer") or headers.get("referrer"),
            user_agent=headers.get("user-agent"),
            ip_address=ip_address,
        )
        db.commit()
    except (HTTPException, SQLAlchemyError):
        db.rollback()
        logger.warning("tracking pixel event not recorded for %s", tracking_id, exc_info=True)
    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=PIXEL_HEADERS)
