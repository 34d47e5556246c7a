from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..db import get_db
from ..schemas import MLSConnectRequest, MLSConnectResponse, MLSPropertyResponse, MLSPullRequest
from ..services.mls import connect, pull

router = APIRouter(prefix="/mls", tags=["mls"])


@router.post("/connect", response_model=MLSConnectResponse, status_code=status.HTTP_201_CREATED)
def connect_mls(
    payload: MLSConnectRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> MLSConnectResponse:
    require_profile(db, context)
    connection = connect(
        db,
        context,
        provider=payload.provider,
        mls_name=payload.mls_name,
        api_base_url=str(payload.api_base_url),
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        token_expires_at=payload.token_expires_at,
        team_id=payload.team_id,
        metadata_json=payload.metadata,
    )
    db.commit()
    return MLSConnectResponse(
        connection_id=connection.id,
        provider=connection.provider,
        mls_name=connection.mls_name,
        is_active=connection.is_active,
    )


@router.post("/pull", response_model=MLSPropertyResponse)
def pull_mls_property(
    payload: MLSPullRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> MLSPropertyResponse:
    return MLSPropertyResponse(**pull(db, context, payload.connection_id, payload.mls_number, team_id=payload.team_id))
