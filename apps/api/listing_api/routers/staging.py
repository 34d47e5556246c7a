from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..db import get_db
from ..schemas import StagePhotoRequest, StagePhotoResponse, StagingStatusResponse
from ..services.staging_queue import ESTIMATED_TIME_SECONDS, dispatch_submit, get_staging_status, stage_photo

router = APIRouter(prefix="/staging", tags=["staging"])


@router.post("/photos", response_model=StagePhotoResponse, status_code=status.HTTP_202_ACCEPTED)
def stage_listing_photo(
    payload: StagePhotoRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> StagePhotoResponse:
    profile = require_profile(db, context)
    entry = stage_photo(
        db,
        profile,
        photo_url=str(payload.photo_url),
        room_type=payload.room_type.value,
        style=payload.style.value,
        generation_id=payload.generation_id,
    )
    db.commit()
    dispatch_submit(entry.id)
    return StagePhotoResponse(queue_id=entry.id, status=entry.status.value, estimated_time_seconds=ESTIMATED_TIME_SECONDS)


@router.get("/status/{queue_id}", response_model=StagingStatusResponse)
def staging_status(
    queue_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> StagingStatusResponse:
    view = get_staging_status(db, queue_id, context.current_user_id)
    db.commit()
    return StagingStatusResponse(**view)
