from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from ..models import Generation, PropertyType, UserProfile
from .ai import ListingCopy, PropertyDetails, fact_check, generate_descriptions
from .geocoding import GeoResult, geocode_address
from .neighborhoods import find_neighborhood
from .quota import enforce_generation_quota, increment_generation_count
from .vision import extract_property_features

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 80


@dataclass
class PipelineResult:
    copy: ListingCopy
    confidence_score: int
    confidence_level: str
    geo: GeoResult
    neighborhood: dict[str, Any]
    features: list[str] = field(default_factory=list)
    amenities: list[str] = field(default_factory=list)


def new_tracking_id() -> str:
    return f"trk_{secrets.token_hex(8)}"


def confidence_level(score: int) -> str:
    return "high" if score >= HIGH_CONFIDENCE_THRESHOLD else "medium"


def combine_confidence(mls_score: int, airbnb_score: int | None = None, social_scores: list[int] | None = None) -> int:
    scores = [mls_score]
    if airbnb_score is not None:
        scores.append(airbnb_score)
    if social_scores:
        scores.append(round(sum(social_scores) / len(social_scores)))
    return min(scores)


def run_pipeline(
    details: PropertyDetails,
    photo_urls: list[str],
    include_airbnb: bool = False,
    include_social: bool = False,
) -> PipelineResult:
    """Geocode, enrich and write listing copy, then score it against the known facts."""
    geo = geocode_address(details.address)
    features, _ = extract_property_features(photo_urls)
    neighborhood = find_neighborhood(geo)

    if not details.amenities and neighborhood.get("typical_amenities"):
        logger.info("no amenities supplied; using typical amenities for %s", neighborhood["name"])
        details.amenities = list(neighborhood["typical_amenities"])

    copy = generate_descriptions(details, geo, neighborhood, features, include_airbnb, include_social)

    mls_score = fact_check(copy.mls_description, details, features, geo)
    airbnb_score = fact_check(copy.airbnb_description, details, features, geo) if copy.airbnb_description else None
    social_scores = [fact_check(caption, details, features, geo) for caption in copy.social_captions or []]
    score = combine_confidence(mls_score, airbnb_score, social_scores)

    return PipelineResult(
        copy=copy,
        confidence_score=score,
        confidence_level=confidence_level(score),
        geo=geo,
        neighborhood=neighborhood,
        features=features,
        amenities=details.amenities,
    )


def create_generation(
    db: Session,
    profile: UserProfile,
    details: PropertyDetails,
    photo_urls: list[str],
    include_airbnb: bool = False,
    include_social: bool = False,
    team_id: uuid.UUID | None = None,
    bulk_job_id: uuid.UUID | None = None,
) -> Generation:
    enforce_generation_quota(profile)
    result = run_pipeline(details, photo_urls, include_airbnb, include_social)

    generation = Generation(
        user_id=profile.id,
        address=details.address,
        bedrooms=details.bedrooms,
        bathrooms=details.bathrooms,
        square_feet=details.square_feet,
        property_type=PropertyType(details.property_type),
        amenities=result.amenities,
        photo_urls=photo_urls,
        include_airbnb=include_airbnb,
        include_social=include_social,
        mls_description=result.copy.mls_description,
        airbnb_description=result.copy.airbnb_description,
        social_captions=result.copy.social_captions,
        confidence_score=result.confidence_score,
        confidence_level=result.confidence_level,
        neighborhood=result.neighborhood.get("name"),
        latitude=result.geo.latitude,
        longitude=result.geo.longitude,
        staged_images=[],
        tracking_id=new_tracking_id(),
        team_id=team_id,
        is_shared=team_id is not None,
        bulk_job_id=bulk_job_id,
    )
    db.add(generation)
    increment_generation_count(profile)
    db.flush()
    logger.info("generation %s created confidence=%s", generation.id, generation.confidence_score)
    return generation
