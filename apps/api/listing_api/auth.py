from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import TeamMember, TeamRole, UserProfile
from .settings import settings


@dataclass(frozen=True)
class RequestContext:
    current_user_id: uuid.UUID


def get_request_context(
    x_listing_user_id: str | None = Header(default=None),
) -> RequestContext:
    if settings.dev_auth_bypass:
        return RequestContext(current_user_id=uuid.UUID(settings.dev_user_id))

    if not x_listing_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing auth context headers")
    try:
        user_id = uuid.UUID(x_listing_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid auth context headers") from exc
    return RequestContext(current_user_id=user_id)


def require_profile(db: Session, context: RequestContext) -> UserProfile:
    profile = db.get(UserProfile, context.current_user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")
    return profile


def get_membership(db: Session, team_id: uuid.UUID, user_id: uuid.UUID) -> TeamMember | None:
    return db.scalar(select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id))


def require_team_member(
    db: Session,
    team_id: uuid.UUID,
    context: RequestContext,
    roles: set[TeamRole] | None = None,
    detail: str = "Not a team member",
) -> TeamMember:
    membership = get_membership(db, team_id, context.current_user_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    if roles is not None and membership.role not in roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    return membership


def user_team_ids(db: Session, user_id: uuid.UUID) -> list[uuid.UUID]:
    return list(db.scalars(select(TeamMember.team_id).where(TeamMember.user_id == user_id)).all())
