from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import CronSummaryResponse
from ..services.anonymous import cleanup_expired
from ..services.audit import write_system_audit_log
from ..services.bulk import process_bulk_queue
from ..services.quota import reset_monthly_quotas
from ..services.staging_queue import process_staging_queue
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(
    secret: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    if not settings.cron_secret:
        return
    supplied = secret
    if supplied is None and authorization and authorization.startswith("Bearer "):
        supplied = authorization.removeprefix("Bearer ")
    if not supplied or not hmac.compare_digest(supplied, settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _finish(db: Session, action: str, summary: dict[str, object]) -> CronSummaryResponse:
    write_system_audit_log(db, action, "cron", action, summary)
    db.commit()
    return CronSummaryResponse(summary=summary)


@router.api_route("/process-staging-queue", methods=["GET", "POST"], response_model=CronSummaryResponse)
def cron_process_staging_queue(
    _: None = Depends(require_cron_secret),
    db: Session = Depends(get_db),
) -> CronSummaryResponse:
    return _finish(db, "cron.staging_queue_processed", process_staging_queue(db))


@router.api_route("/reset-monthly-quotas", methods=["GET", "POST"], response_model=CronSummaryResponse)
def cron_reset_monthly_quotas(
    _: None = Depends(require_cron_secret),
    db: Session = Depends(get_db),
) -> CronSummaryResponse:
    return _finish(db, "cron.monthly_quotas_reset", {"reset_count": reset_monthly_quotas(db)})


@router.api_route("/cleanup-expired-anonymous", methods=["GET", "POST"], response_model=CronSummaryResponse)
def cron_cleanup_expired_anonymous(
    _: None = Depends(require_cron_secret),
    db: Session = Depends(get_db),
) -> CronSummaryResponse:
    return _finish(db, "cron.anonymous_cleaned", {"deleted_count": cleanup_expired(db)})


@router.api_route("/process-bulk-queue", methods=["GET", "POST"], response_model=CronSummaryResponse)
def cron_process_bulk_queue(
    _: None = Depends(require_cron_secret),
    db: Session = Depends(get_db),
) -> CronSummaryResponse:
    return _finish(db, "cron.bulk_queue_processed", process_bulk_queue(db))
