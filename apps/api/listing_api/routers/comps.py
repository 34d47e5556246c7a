from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..db import get_db
from ..models import PropertyType
from ..schemas import ComparableCreateRequest, ComparableResponse
from ..services.comps import add_comparable, comparable_payload, search_comparables

router = APIRouter(prefix="/comps", tags=["comps"])


@router.post("", response_model=ComparableResponse, status_code=status.HTTP_201_CREATED)
def create_comparable(
    payload: ComparableCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> ComparableResponse:
    require_profile(db, context)
    comp = add_comparable(db, context.current_user_id, payload.model_dump())
    db.commit()
    return ComparableResponse(**comparable_payload(comp))


@router.get("", response_model=list[ComparableResponse])
def list_comparables(
    zip_code: str | None = Query(default=None, max_length=10),
    neighborhood: str | None = Query(default=None, max_length=255),
    property_type: PropertyType | None = None,
    min_beds: int | None = Query(default=None, ge=0),
    max_beds: int | None = Query(default=None, ge=0),
    min_sqft: int | None = Query(default=None, ge=0),
    max_sqft: int | None = Query(default=None, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[ComparableResponse]:
    rows = search_comparables(
        db,
        zip_code=zip_code,
        neighborhood=neighborhood,
        property_type=property_type,
        min_beds=min_beds,
        max_beds=max_beds,
        min_sqft=min_sqft,
        max_sqft=max_sqft,
        limit=limit,
    )
    return [ComparableResponse(**comparable_payload(comp)) for comp in rows]
