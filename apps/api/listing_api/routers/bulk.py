from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..clock import as_utc
from ..db import get_db
from ..models import BulkJob
from ..schemas import BulkJobCreatedResponse, BulkJobCreateRequest, BulkJobDetailResponse, BulkJobResponse
from ..services.bulk import (
    create_bulk_job,
    get_accessible_job,
    job_history,
    progress_percent,
    results_csv,
    status_breakdown,
)

router = APIRouter(prefix="/bulk", tags=["bulk"])


def _job_fields(job: BulkJob) -> dict[str, object]:
    return {
        "id": job.id,
        "user_id": job.user_id,
        "team_id": job.team_id,
        "file_name": job.file_name,
        "total_rows": job.total_rows,
        "processed_rows": job.processed_rows,
        "failed_rows": job.failed_rows,
        "status": job.status,
        "results_url": job.results_url,
        "created_at": as_utc(job.created_at),
        "completed_at": as_utc(job.completed_at) if job.completed_at else None,
    }


@router.post("/jobs", response_model=BulkJobCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_job(
    payload: BulkJobCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BulkJobCreatedResponse:
    profile = require_profile(db, context)
    rows = [row.model_dump(mode="json", exclude_none=True) for row in payload.rows]
    job = create_bulk_job(db, context, profile, payload.file_name, rows, team_id=payload.team_id)
    db.commit()
    return BulkJobCreatedResponse(job_id=job.id, status=job.status, total_rows=job.total_rows)


@router.get("/jobs", response_model=list[BulkJobResponse])
def list_jobs(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[BulkJobResponse]:
    return [BulkJobResponse(**_job_fields(job)) for job in job_history(db, context)]


@router.get("/jobs/{job_id}", response_model=BulkJobDetailResponse)
def get_job(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> BulkJobDetailResponse:
    job = get_accessible_job(db, context, job_id)
    return BulkJobDetailResponse(
        **_job_fields(job),
        status_breakdown=status_breakdown(db, job.id),
        progress_percent=progress_percent(job),
    )


@router.get("/jobs/{job_id}/download")
def download_results(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    job = get_accessible_job(db, context, job_id)
    return Response(
        content=results_csv(db, job),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="bulk_results_{job.id}.csv"'},
    )
