from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..clock import as_utc
from ..db import get_db
from ..models import MarketReport
from ..schemas import MarketReportRequest, MarketReportResponse
from ..services.market_reports import generate_report, get_report

router = APIRouter(prefix="/market-reports", tags=["market-reports"])


def _report_response(report: MarketReport) -> MarketReportResponse:
    return MarketReportResponse(
        id=report.id,
        user_id=report.user_id,
        team_id=report.team_id,
        report_type=report.report_type,
        neighborhood=report.neighborhood,
        zip_code=report.zip_code,
        report_data=report.report_data,
        generated_at=as_utc(report.generated_at),
    )


@router.post("", response_model=MarketReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: MarketReportRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> MarketReportResponse:
    profile = require_profile(db, context)
    report = generate_report(
        db,
        context,
        profile,
        payload.report_type,
        neighborhood=payload.neighborhood,
        zip_code=payload.zip_code,
        team_id=payload.team_id,
    )
    db.commit()
    return _report_response(report)


@router.get("/{report_id}", response_model=MarketReportResponse)
def read_report(
    report_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> MarketReportResponse:
    return _report_response(get_report(db, context, report_id))
