from __future__ import annotations

import csv
import io
import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_membership, require_team_member, user_team_ids
from ..clock import utcnow
from ..models import BulkJob, BulkJobItem, BulkJobStatus, Generation, PropertyType, UserProfile
from .ai import PropertyDetails
from .generation import create_generation
from .quota import enforce_bulk_allowed

logger = logging.getLogger(__name__)

PROCESS_BATCH_SIZE = 5
HISTORY_LIMIT = 50
CSV_HEADER = "address,mls_description,confidence,neighborhood,status,error"


def create_bulk_job(
    db: Session,
    context: RequestContext,
    profile: UserProfile,
    file_name: str,
    rows: list[dict[str, Any]],
    team_id: uuid.UUID | None = None,
) -> BulkJob:
    enforce_bulk_allowed(db, profile, len(rows))
    if team_id is not None:
        require_team_member(db, team_id, context)

    job = BulkJob(
        user_id=profile.id,
        team_id=team_id,
        file_name=file_name,
        total_rows=len(rows),
        status=BulkJobStatus.PENDING,
    )
    db.add(job)
    db.flush()
    db.add_all(
        BulkJobItem(bulk_job_id=job.id, row_number=index, input_data=row, status=BulkJobStatus.PENDING)
        for index, row in enumerate(rows, start=1)
    )
    db.flush()
    return job


def get_accessible_job(db: Session, context: RequestContext, job_id: uuid.UUID) -> BulkJob:
    job = db.get(BulkJob, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bulk job not found")
    if job.user_id == context.current_user_id:
        return job
    if job.team_id is not None and get_membership(db, job.team_id, context.current_user_id) is not None:
        return job
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


def status_breakdown(db: Session, job_id: uuid.UUID) -> dict[str, int]:
    counts = {item.value: 0 for item in BulkJobStatus}
    rows = db.execute(
        select(BulkJobItem.status, func.count()).where(BulkJobItem.bulk_job_id == job_id).group_by(BulkJobItem.status)
    ).all()
    for item_status, count in rows:
        counts[BulkJobStatus(item_status).value] = count
    return counts


def progress_percent(job: BulkJob) -> int:
    if job.total_rows <= 0:
        return 0
    return round((job.processed_rows + job.failed_rows) / job.total_rows * 100)


def job_history(db: Session, context: RequestContext) -> list[BulkJob]:
    team_ids = user_team_ids(db, context.current_user_id)
    scope = BulkJob.user_id == context.current_user_id
    if team_ids:
        scope = or_(scope, BulkJob.team_id.in_(team_ids))
    return list(db.scalars(select(BulkJob).where(scope).order_by(BulkJob.created_at.desc()).limit(HISTORY_LIMIT)).all())


def _details_from_row(row: dict[str, Any]) -> PropertyDetails:
    property_type = row.get("property_type") or PropertyType.SINGLE_FAMILY.value
    if property_type not in {item.value for item in PropertyType}:
        property_type = PropertyType.OTHER.value
    return PropertyDetails(
        address=str(row.get("address") or "").strip(),
        bedrooms=int(row.get("beds") or 0),
        bathrooms=float(row.get("baths") or 0),
        square_feet=int(row.get("sqft") or 0),
        property_type=property_type,
        amenities=[str(item) for item in row.get("amenities") or []],
    )


def _error_message(exc: Exception) -> str:
    if isinstance(exc, HTTPException):
        detail = exc.detail
        if isinstance(detail, dict):
            return str(detail.get("message") or detail.get("code"))
        return str(detail)
    return str(exc) or exc.__class__.__name__


def process_item(db: Session, job: BulkJob, owner: UserProfile, item: BulkJobItem) -> bool:
    item.status = BulkJobStatus.PROCESSING
    db.flush()
    try:
        details = _details_from_row(item.input_data or {})
        if not details.address:
            raise ValueError("Row is missing an address")
        generation = create_generation(
            db,
            owner,
            details,
            photo_urls=[],
            team_id=job.team_id,
            bulk_job_id=job.id,
        )
    except Exception as exc:
        item.status = BulkJobStatus.FAILED
        item.error_message = _error_message(exc)
        job.failed_rows += 1
        db.flush()
        logger.warning("bulk job %s row %s failed: %s", job.id, item.row_number, item.error_message)
        return False

    item.generation_id = generation.id
    item.status = BulkJobStatus.COMPLETED
    job.processed_rows += 1
    db.flush()
    return True


def process_bulk_queue(db: Session) -> dict[str, Any]:
    """Advance the oldest open bulk job by one batch of rows."""
    job = db.scalar(
        select(BulkJob)
        .where(BulkJob.status.in_([BulkJobStatus.PENDING, BulkJobStatus.PROCESSING]))
        .order_by(BulkJob.created_at.asc())
        .limit(1)
    )
    if job is None:
        return {"job_id": None, "processed": 0, "failed": 0}

    job.status = BulkJobStatus.PROCESSING
    db.flush()

    items = db.scalars(
        select(BulkJobItem)
        .where(BulkJobItem.bulk_job_id == job.id, BulkJobItem.status == BulkJobStatus.PENDING)
        .order_by(BulkJobItem.row_number.asc())
        .limit(PROCESS_BATCH_SIZE)
    ).all()

    processed = 0
    failed = 0
    owner = db.get(UserProfile, job.user_id)
    for item in items:
        if owner is None:
            item.status = BulkJobStatus.FAILED
            item.error_message = "Job owner not found"
            job.failed_rows += 1
            failed += 1
            continue
        if process_item(db, job, owner, item):
            processed += 1
        else:
            failed += 1

    if not items or job.processed_rows + job.failed_rows >= job.total_rows:
        job.status = BulkJobStatus.COMPLETED
        job.completed_at = utcnow()
    db.flush()
    logger.info("bulk job %s batch processed=%s failed=%s status=%s", job.id, processed, failed, job.status.value)
    return {"job_id": str(job.id), "processed": processed, "failed": failed, "status": job.status.value}


def results_csv(db: Session, job: BulkJob) -> str:
    if job.status != BulkJobStatus.COMPLETED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job not completed yet")
    rows = db.execute(
        select(BulkJobItem, Generation)
        .outerjoin(Generation, Generation.id == BulkJobItem.generation_id)
        .where(BulkJobItem.bulk_job_id == job.id)
        .order_by(BulkJobItem.row_number.asc())
    ).all()

    buffer = io.StringIO()
    buffer.write(CSV_HEADER + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for item, generation in rows:
        item_status = BulkJobStatus(item.status)
        writer.writerow(
            [
                (item.input_data or {}).get("address", ""),
                generation.mls_description if generation else "",
                generation.confidence_level if generation else "medium",
                (generation.neighborhood or "") if generation else "",
                "success" if item_status == BulkJobStatus.COMPLETED else item_status.value,
                item.error_message or "",
            ]
        )
    return buffer.getvalue()
