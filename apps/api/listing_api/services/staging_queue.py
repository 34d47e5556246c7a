"""Virtual staging job lifecycle.

Entries move pending -> processing -> completed | failed. New entries are handed to the
worker at request time, and the periodic tick submits whatever is still pending and polls
vendors for entries that already have a provider job id.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

import httpx
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..clock import as_utc, utcnow
from ..models import Generation, StagingQueueEntry, StagingStatus, UserProfile
from .quota import check_and_reset_quota, enforce_staging_allowed, increment_staging_count
from .staging_providers import StagingRequest, check_staging_status, request_staging
from .vision import analyze_photo_for_staging

logger = logging.getLogger(__name__)

SUBMIT_BATCH_SIZE = 10
POLL_BATCH_SIZE = 20
ESTIMATED_TIME_SECONDS = 90
MIN_SUITABILITY_CONFIDENCE = 60
ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
SUBMIT_TASK_NAME = "worker.staging.submit"


def validate_image_url(url: str) -> str | None:
    path = urlparse(url).path.lower()
    if not path.endswith(ALLOWED_IMAGE_EXTENSIONS):
        return "Image must be in JPG, PNG, or WebP format"
    return None


def _fail(entry: StagingQueueEntry, message: str, now: datetime | None = None) -> None:
    entry.status = StagingStatus.FAILED
    entry.error_message = message
    entry.completed_at = now or utcnow()


def dispatch_submit(entry_id: uuid.UUID) -> bool:
    """Hand the entry to the worker without waiting; the tick picks it up if this fails."""
    try:
        from listing_worker.main import app as worker_app

        worker_app.send_task(SUBMIT_TASK_NAME, args=[str(entry_id)])
    except Exception:
        logger.warning("staging dispatch failed for %s; leaving for the queue tick", entry_id, exc_info=True)
        return False
    return True


def stage_photo(
    db: Session,
    profile: UserProfile,
    photo_url: str,
    room_type: str,
    style: str,
    generation_id: uuid.UUID | None = None,
) -> StagingQueueEntry:
    url_error = validate_image_url(photo_url)
    if url_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"code": "INVALID_IMAGE", "message": url_error})

    if generation_id is not None:
        generation = db.get(Generation, generation_id)
        if generation is None or generation.user_id != profile.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    check_and_reset_quota(profile)
    enforce_staging_allowed(db, profile)

    analysis = analyze_photo_for_staging(photo_url)
    if not analysis.is_suitable or analysis.confidence < MIN_SUITABILITY_CONFIDENCE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "UNSUITABLE_PHOTO",
                "message": analysis.reason or "Photo is not suitable for virtual staging",
                "details": {"confidence": analysis.confidence, "suggested_room_type": analysis.room_type},
            },
        )

    entry = StagingQueueEntry(
        user_id=profile.id,
        generation_id=generation_id,
        photo_url=photo_url,
        room_type=room_type,
        style=style,
        status=StagingStatus.PENDING,
    )
    db.add(entry)
    increment_staging_count(profile, 1)
    db.flush()
    return entry


def submit_entry(db: Session, entry: StagingQueueEntry, transport: httpx.BaseTransport | None = None) -> bool:
    """Send a pending entry to a vendor. Returns False when the entry ends up failed."""
    if entry.status != StagingStatus.PENDING:
        return entry.status != StagingStatus.FAILED
    entry.status = StagingStatus.PROCESSING
    db.flush()

    response = request_staging(
        StagingRequest(image_url=entry.photo_url, room_type=entry.room_type, style=entry.style),
        transport=transport,
    )
    if not response.success or not response.job_id:
        _fail(entry, response.error or "Staging request failed")
        db.flush()
        logger.warning("staging submit failed for %s: %s", entry.id, entry.error_message)
        return False

    entry.provider = response.provider
    entry.provider_job_id = response.job_id
    db.flush()
    return True


def _append_staged_image(db: Session, entry: StagingQueueEntry, staged_url: str, now: datetime) -> None:
    if entry.generation_id is None:
        return
    generation = db.get(Generation, entry.generation_id)
    if generation is None:
        logger.warning("staging entry %s references missing generation %s", entry.id, entry.generation_id)
        return
    # Reassign so the JSON column is marked dirty.
    generation.staged_images = [
        *(generation.staged_images or []),
        {
            "original_url": entry.photo_url,
            "staged_url": staged_url,
            "style": entry.style,
            "room_type": entry.room_type,
            "created_at": now.isoformat(),
        },
    ]


def reconcile_entry(db: Session, entry: StagingQueueEntry, transport: httpx.BaseTransport | None = None) -> StagingQueueEntry:
    if entry.status != StagingStatus.PROCESSING or not entry.provider_job_id:
        return entry

    response = check_staging_status(entry.provider_job_id, entry.provider, transport=transport)
    now = utcnow()
    if not response.success:
        _fail(entry, response.error or "Status check failed", now)
    elif response.status == "completed" and response.result_url:
        entry.status = StagingStatus.COMPLETED
        entry.staged_url = response.result_url
        entry.processing_time_seconds = round((now - as_utc(entry.created_at)).total_seconds())
        entry.completed_at = now
        _append_staged_image(db, entry, response.result_url, now)
    elif response.status == "failed":
        _fail(entry, response.error or "Staging provider reported failure", now)
    db.flush()
    return entry


def process_staging_queue(db: Session, transport: httpx.BaseTransport | None = None) -> dict[str, int]:
    pending = db.scalars(
        select(StagingQueueEntry)
        .where(StagingQueueEntry.status == StagingStatus.PENDING)
        .order_by(StagingQueueEntry.created_at.asc())
        .limit(SUBMIT_BATCH_SIZE)
    ).all()

    processed = 0
    failed = 0
    for entry in pending:
        try:
            if submit_entry(db, entry, transport=transport):
                processed += 1
            else:
                failed += 1
        except Exception as exc:
            logger.exception("unexpected error submitting staging entry %s", entry.id)
            _fail(entry, str(exc) or "Unknown error")
            db.flush()
            failed += 1

    in_flight = db.scalars(
        select(StagingQueueEntry)
        .where(
            StagingQueueEntry.status == StagingStatus.PROCESSING,
            StagingQueueEntry.provider_job_id.is_not(None),
        )
        .order_by(StagingQueueEntry.created_at.asc())
        .limit(POLL_BATCH_SIZE)
    ).all()

    reconciled = 0
    completed = 0
    for entry in in_flight:
        try:
            reconcile_entry(db, entry, transport=transport)
        except Exception:
            logger.exception("unexpected error reconciling staging entry %s", entry.id)
            continue
        reconciled += 1
        if entry.status == StagingStatus.COMPLETED:
            completed += 1

    summary = {"processed": processed, "failed": failed, "reconciled": reconciled, "completed": completed}
    logger.info("staging queue tick %s", summary)
    return summary


def staging_status_view(entry: StagingQueueEntry) -> dict[str, Any]:
    if entry.status == StagingStatus.COMPLETED:
        return {
            "status": entry.status.value,
            "staged_url": entry.staged_url,
            "processing_time_seconds": entry.processing_time_seconds,
        }
    if entry.status == StagingStatus.FAILED:
        return {"status": entry.status.value, "error_message": entry.error_message}
    return {"status": entry.status.value}


def get_staging_status(
    db: Session,
    queue_id: uuid.UUID,
    user_id: uuid.UUID,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    entry = db.scalar(
        select(StagingQueueEntry).where(StagingQueueEntry.id == queue_id, StagingQueueEntry.user_id == user_id)
    )
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Staging job not found")
    if entry.status == StagingStatus.PROCESSING and entry.provider_job_id:
        reconcile_entry(db, entry, transport=transport)
    return staging_status_view(entry)
