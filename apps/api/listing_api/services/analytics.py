from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_membership, require_team_member, user_team_ids
from ..clock import as_utc, utcnow
from ..models import (
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsSource,
    Generation,
    TeamMember,
    TeamRole,
    UserProfile,
)

logger = logging.getLogger(__name__)

VIEW_TYPES = {AnalyticsEventType.VIEW, AnalyticsEventType.EXTERNAL_VIEW}
TOP_GENERATIONS_LIMIT = 10


def empty_sources() -> dict[str, int]:
    return {source.value: 0 for source in (
        AnalyticsSource.MLS,
        AnalyticsSource.ZILLOW,
        AnalyticsSource.REALTOR,
        AnalyticsSource.EMAIL,
        AnalyticsSource.APP,
        AnalyticsSource.OTHER,
    )}


def source_from_referrer(referrer: str | None) -> AnalyticsSource:
    lowered = (referrer or "").lower()
    if "mls" in lowered or "matrix" in lowered:
        return AnalyticsSource.MLS
    if "zillow" in lowered:
        return AnalyticsSource.ZILLOW
    if "realtor.com" in lowered:
        return AnalyticsSource.REALTOR
    if "mail" in lowered or "email" in lowered:
        return AnalyticsSource.EMAIL
    return AnalyticsSource.OTHER


def can_access_generation(db: Session, generation: Generation, user_id: uuid.UUID) -> bool:
    if generation.user_id == user_id:
        return True
    if generation.team_id is not None and generation.is_shared:
        return get_membership(db, generation.team_id, user_id) is not None
    return False


def get_accessible_generation(db: Session, context: RequestContext, generation_id: uuid.UUID) -> Generation:
    generation = db.get(Generation, generation_id)
    if generation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
    if not can_access_generation(db, generation, context.current_user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return generation


def record_event(
    db: Session,
    generation: Generation,
    event_type: AnalyticsEventType,
    source: AnalyticsSource = AnalyticsSource.APP,
    user_id: uuid.UUID | None = None,
    metadata_json: dict[str, Any] | None = None,
    tracking_id: str | None = None,
) -> AnalyticsEvent:
    event = AnalyticsEvent(
        generation_id=generation.id,
        user_id=user_id,
        event_type=event_type,
        source=source,
        tracking_id=tracking_id,
        metadata_json=metadata_json or {},
    )
    db.add(event)
    db.flush()
    return event


def record_tracking_pixel(
    db: Session,
    tracking_id: str,
    referrer: str | None,
    user_agent: str | None,
    ip_address: str | None,
) -> AnalyticsEvent | None:
    generation = db.scalar(select(Generation).where(Generation.tracking_id == tracking_id))
    if generation is None:
        return None
    return record_event(
        db,
        generation,
        AnalyticsEventType.EXTERNAL_VIEW,
        source=source_from_referrer(referrer),
        metadata_json={
            "referrer": referrer,
            "user_agent": user_agent,
            "ip_address": ip_address,
            "timestamp": utcnow().isoformat(),
        },
        tracking_id=tracking_id,
    )


def _visible_generations(db: Session, user_id: uuid.UUID, since: datetime) -> list[Generation]:
    team_ids = user_team_ids(db, user_id)
    scope = Generation.user_id == user_id
    if team_ids:
        scope = or_(scope, and_(Generation.team_id.in_(team_ids), Generation.is_shared.is_(True)))
    return list(db.scalars(select(Generation).where(scope, Generation.created_at >= since)).all())


def _events_for(db: Session, generation_ids: list[uuid.UUID], since: datetime | None = None) -> list[AnalyticsEvent]:
    if not generation_ids:
        return []
    stmt = select(AnalyticsEvent).where(AnalyticsEvent.generation_id.in_(generation_ids))
    if since is not None:
        stmt = stmt.where(AnalyticsEvent.created_at >= since)
    return list(db.scalars(stmt).all())


def _is_view(event: AnalyticsEvent) -> bool:
    return event.event_type in VIEW_TYPES


def dashboard(db: Session, context: RequestContext, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    since = now - timedelta(days=days)
    generations = _visible_generations(db, context.current_user_id, since)
    if not generations:
        return {
            "total_generations": 0,
            "total_views": 0,
            "total_copies": 0,
            "total_external_views": 0,
            "top_generations": [],
            "sources": {},
            "trends": [],
        }

    by_id = {generation.id: generation for generation in generations}
    events = _events_for(db, list(by_id), since)

    views = Counter(event.generation_id for event in events if _is_view(event))
    top = [
        {"generation_id": generation_id, "address": by_id[generation_id].address, "views": count}
        for generation_id, count in views.most_common(TOP_GENERATIONS_LIMIT)
    ]

    sources = empty_sources()
    for event in events:
        sources[AnalyticsSource(event.source).value] += 1

    today = now.date()
    trends = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_events = [event for event in events if as_utc(event.created_at).date() == day]
        trends.append(
            {
                "date": day.isoformat(),
                "views": sum(1 for event in day_events if _is_view(event)),
                "copies": sum(1 for event in day_events if event.event_type == AnalyticsEventType.COPY),
            }
        )

    return {
        "total_generations": len(generations),
        "total_views": sum(views.values()),
        "total_copies": sum(1 for event in events if event.event_type == AnalyticsEventType.COPY),
        "total_external_views": sum(1 for event in events if event.event_type == AnalyticsEventType.EXTERNAL_VIEW),
        "top_generations": top,
        "sources": sources,
        "trends": trends,
    }


def generation_stats(db: Session, generation: Generation) -> dict[str, Any]:
    events = sorted(_events_for(db, [generation.id]), key=lambda event: as_utc(event.created_at), reverse=True)
    counts = Counter(AnalyticsEventType(event.event_type) for event in events)
    sources = empty_sources()
    for event in events:
        sources[AnalyticsSource(event.source).value] += 1
    return {
        "generation_id": generation.id,
        "total_views": counts[AnalyticsEventType.VIEW] + counts[AnalyticsEventType.EXTERNAL_VIEW],
        "internal_views": counts[AnalyticsEventType.VIEW],
        "external_views": counts[AnalyticsEventType.EXTERNAL_VIEW],
        "copies": counts[AnalyticsEventType.COPY],
        "regenerates": counts[AnalyticsEventType.REGENERATE],
        "clicks": counts[AnalyticsEventType.CLICK],
        "sources": sources,
        "events": [
            {
                "id": event.id,
                "event_type": AnalyticsEventType(event.event_type).value,
                "source": AnalyticsSource(event.source).value,
                "metadata": event.metadata_json,
                "created_at": as_utc(event.created_at),
            }
            for event in events
        ],
    }


def team_stats(db: Session, context: RequestContext, team_id: uuid.UUID, days: int = 30, now: datetime | None = None) -> dict[str, Any]:
    require_team_member(
        db, team_id, context, roles={TeamRole.ADMIN, TeamRole.MANAGER}, detail="Only team admins and managers can view team analytics"
    )
    since = (now or utcnow()) - timedelta(days=days)
    members = db.execute(
        select(TeamMember.user_id, UserProfile.email)
        .join(UserProfile, UserProfile.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at.asc())
    ).all()
    generations = list(
        db.scalars(select(Generation).where(Generation.team_id == team_id, Generation.created_at >= since)).all()
    )
    owner_of = {generation.id: generation.user_id for generation in generations}
    events = _events_for(db, list(owner_of), since)

    stats: dict[uuid.UUID, dict[str, Any]] = {
        user_id: {"user_id": user_id, "email": email, "generations": 0, "views": 0, "copies": 0}
        for user_id, email in members
    }
    for generation in generations:
        if generation.user_id in stats:
            stats[generation.user_id]["generations"] += 1
    for event in events:
        member = stats.get(owner_of[event.generation_id])
        if member is None:
            continue
        if _is_view(event):
            member["views"] += 1
        elif event.event_type == AnalyticsEventType.COPY:
            member["copies"] += 1

    member_stats = list(stats.values())
    return {
        "team_id": team_id,
        "total_generations": len(generations),
        "total_views": sum(item["views"] for item in member_stats),
        "total_copies": sum(item["copies"] for item in member_stats),
        "members": member_stats,
    }
