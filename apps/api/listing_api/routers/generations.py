from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile, require_team_member
from ..clock import as_utc, utcnow
from ..db import get_db
from ..models import AnonymousGeneration, Generation, PropertyType
from ..schemas import (
    AnonymousGenerateRequest,
    AnonymousGenerationResponse,
    AnonymousLinkRequest,
    AnonymousLinkResponse,
    GenerateListingRequest,
    GenerationCreatedResponse,
    GenerationResponse,
    QuotaResponse,
)
from ..services.ai import PropertyDetails
from ..services.analytics import can_access_generation
from ..services.anonymous import (
    ANONYMOUS_WINDOW,
    MAX_ANONYMOUS_GENERATIONS,
    SESSION_COOKIE,
    client_ip,
    device_fingerprint,
    hash_ip,
    link_sessions,
    preview_snippet,
    recent_count,
    session_cookie,
    session_id_from_cookies,
)
from ..services.generation import create_generation, run_pipeline
from ..services.quota import check_and_reset_quota, enforce_generation_quota, quota_summary
from ..services.rate_limit import enforce_burst_limit
from ..settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generations"])


def _generation_response(row: Generation) -> GenerationResponse:
    return GenerationResponse(
        id=row.id,
        user_id=row.user_id,
        address=row.address,
        bedrooms=row.bedrooms,
        bathrooms=row.bathrooms,
        square_feet=row.square_feet,
        property_type=row.property_type,
        amenities=row.amenities or [],
        photo_urls=row.photo_urls or [],
        include_airbnb=row.include_airbnb,
        include_social=row.include_social,
        mls_description=row.mls_description,
        airbnb_description=row.airbnb_description,
        social_captions=row.social_captions,
        confidence_score=row.confidence_score,
        confidence_level=row.confidence_level,
        neighborhood=row.neighborhood,
        staged_images=row.staged_images or [],
        tracking_id=row.tracking_id,
        team_id=row.team_id,
        is_shared=row.is_shared,
        created_at=as_utc(row.created_at),
    )


def _anonymous_as_generation(row: AnonymousGeneration) -> GenerationResponse:
    return GenerationResponse(
        id=row.id,
        user_id=row.linked_user_id,
        address=row.address,
        bedrooms=row.bedrooms,
        bathrooms=row.bathrooms,
        square_feet=row.square_feet,
        property_type=PropertyType.SINGLE_FAMILY,
        amenities=[],
        photo_urls=[],
        include_airbnb=False,
        include_social=False,
        mls_description=row.mls_description,
        confidence_score=row.confidence_score,
        confidence_level=row.confidence_level,
        created_at=as_utc(row.created_at),
    )


@router.post("/generations", response_model=GenerationCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_listing_generation(
    payload: GenerateListingRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> GenerationCreatedResponse:
    profile = require_profile(db, context)
    enforce_generation_quota(profile)
    if payload.team_id is not None:
        require_team_member(db, payload.team_id, context)

    details = PropertyDetails(
        address=payload.address,
        bedrooms=payload.bedrooms,
        bathrooms=payload.bathrooms,
        square_feet=payload.square_feet,
        property_type=payload.property_type.value,
        amenities=list(payload.amenities),
    )
    generation = create_generation(
        db,
        profile,
        details,
        photo_urls=[str(url) for url in payload.photo_urls],
        include_airbnb=payload.include_airbnb,
        include_social=payload.include_social,
        team_id=payload.team_id,
    )
    db.commit()
    return GenerationCreatedResponse(
        id=generation.id,
        mls_description=generation.mls_description,
        airbnb_description=generation.airbnb_description,
        social_captions=generation.social_captions,
        confidence_score=generation.confidence_score,
        confidence_level=generation.confidence_level,
        tracking_id=generation.tracking_id,
    )


@router.get("/generations/{generation_id}", response_model=GenerationResponse)
def get_generation(
    generation_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> GenerationResponse:
    generation = db.get(Generation, generation_id)
    if generation is not None and can_access_generation(db, generation, context.current_user_id):
        return _generation_response(generation)

    anonymous = db.scalar(
        select(AnonymousGeneration).where(
            AnonymousGeneration.id == generation_id,
            AnonymousGeneration.linked_user_id == context.current_user_id,
        )
    )
    if anonymous is not None:
        return _anonymous_as_generation(anonymous)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")


@router.post("/quota/check", response_model=QuotaResponse)
def check_quota(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> QuotaResponse:
    profile = require_profile(db, context)
    if check_and_reset_quota(profile):
        db.commit()
    return QuotaResponse(**quota_summary(profile))


def _anonymous_limit_error(count: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Free generation limit reached. Sign up to keep generating listings.",
            "count": count,
            "remaining": 0,
        },
    )


@router.post("/generations/anonymous", response_model=AnonymousGenerationResponse, status_code=status.HTTP_201_CREATED)
def create_anonymous_generation(
    payload: AnonymousGenerateRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> AnonymousGenerationResponse:
    headers = request.headers
    ip_hash = hash_ip(client_ip(headers, request.client.host if request.client else None))
    enforce_burst_limit(ip_hash, "anonymous_generation", settings.anonymous_burst_per_minute)

    fingerprint = device_fingerprint(headers)
    count = recent_count(db, ip_hash, fingerprint)
    if count >= MAX_ANONYMOUS_GENERATIONS:
        raise _anonymous_limit_error(count)

    details = PropertyDetails(
        address=payload.address,
        bedrooms=payload.bedrooms,
        bathrooms=payload.bathrooms,
        square_feet=payload.square_feet,
        property_type=payload.property_type.value,
        amenities=list(payload.amenities),
    )
    result = run_pipeline(details, photo_urls=[])

    session_id = session_id_from_cookies(request.cookies)
    now = utcnow()
    row = AnonymousGeneration(
        session_id=session_id,
        ip_hash=ip_hash,
        device_fingerprint=fingerprint,
        address=payload.address,
        bedrooms=payload.bedrooms,
        bathrooms=payload.bathrooms,
        square_feet=payload.square_feet,
        mls_description=result.copy.mls_description,
        confidence_score=result.confidence_score,
        confidence_level=result.confidence_level,
        expires_at=now + ANONYMOUS_WINDOW,
        created_at=now,
    )
    db.add(row)
    db.commit()

    # Concurrent requests can both pass the first count.
    recount = recent_count(db, ip_hash, fingerprint)
    if recount > MAX_ANONYMOUS_GENERATIONS:
        db.execute(delete(AnonymousGeneration).where(AnonymousGeneration.id == row.id))
        db.commit()
        logger.info("anonymous generation rolled back after concurrent overrun")
        raise _anonymous_limit_error(recount)

    response.headers["Set-Cookie"] = session_cookie(session_id, secure=settings.app_env == "production")
    return AnonymousGenerationResponse(
        id=row.id,
        session_id=session_id,
        mls_description=row.mls_description,
        preview_snippet=preview_snippet(row.mls_description),
        confidence_score=row.confidence_score,
        confidence_level=row.confidence_level,
        remaining_generations=max(MAX_ANONYMOUS_GENERATIONS - recount, 0),
    )


@router.post("/generations/anonymous/link", response_model=AnonymousLinkResponse)
def link_anonymous_generations(
    payload: AnonymousLinkRequest,
    request: Request,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> AnonymousLinkResponse:
    require_profile(db, context)
    session_id = payload.session_id or request.cookies.get(SESSION_COOKIE)
    if not session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No anonymous session to link")
    linked = link_sessions(db, session_id, context.current_user_id)
    db.commit()
    return AnonymousLinkResponse(
        linked_count=linked,
        message=f"Linked {linked} anonymous generation{'s' if linked != 1 else ''} to your account",
    )
