from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_request_context, require_profile
from ..clock import as_utc
from ..db import get_db
from ..models import Team, TeamMember
from ..schemas import (
    TeamBranding,
    TeamCreateRequest,
    TeamInviteRequest,
    TeamMemberResponse,
    TeamResponse,
    TeamRoleUpdateRequest,
)
from ..services.teams import (
    create_team,
    invite_member,
    join_team,
    list_members,
    remove_member,
    update_branding,
    update_member_role,
)

router = APIRouter(prefix="/teams", tags=["teams"])


def _team_response(team: Team) -> TeamResponse:
    return TeamResponse(
        id=team.id,
        name=team.name,
        slug=team.slug,
        owner_id=team.owner_id,
        branding=team.branding or {},
        subscription_tier=team.subscription_tier.value,
        created_at=as_utc(team.created_at),
    )


def _member_response(member: TeamMember, email: str | None = None) -> TeamMemberResponse:
    return TeamMemberResponse(
        id=member.id,
        team_id=member.team_id,
        user_id=member.user_id,
        email=email,
        role=member.role,
        invited_by=member.invited_by,
        joined_at=as_utc(member.joined_at),
    )


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
def create(
    payload: TeamCreateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamResponse:
    profile = require_profile(db, context)
    branding = payload.branding.model_dump(mode="json", exclude_none=True) if payload.branding else None
    team = create_team(db, context, profile, payload.name, branding)
    db.commit()
    return _team_response(team)


@router.post("/{team_id}/invite", response_model=TeamMemberResponse, status_code=status.HTTP_201_CREATED)
def invite(
    team_id: uuid.UUID,
    payload: TeamInviteRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamMemberResponse:
    member = invite_member(db, context, team_id, payload.email, payload.role)
    db.commit()
    return _member_response(member, payload.email)


@router.post("/{team_id}/join", response_model=TeamMemberResponse, status_code=status.HTTP_201_CREATED)
def join(
    team_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamMemberResponse:
    profile = require_profile(db, context)
    member = join_team(db, context, profile, team_id)
    db.commit()
    return _member_response(member, profile.email)


@router.get("/{team_id}/members", response_model=list[TeamMemberResponse])
def members(
    team_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> list[TeamMemberResponse]:
    return [_member_response(member, email) for member, email in list_members(db, context, team_id)]


@router.patch("/members/{member_id}", response_model=TeamMemberResponse)
def change_role(
    member_id: uuid.UUID,
    payload: TeamRoleUpdateRequest,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamMemberResponse:
    member = update_member_role(db, context, member_id, payload.role)
    db.commit()
    return _member_response(member)


@router.delete("/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove(
    member_id: uuid.UUID,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> None:
    remove_member(db, context, member_id)
    db.commit()


@router.patch("/{team_id}/branding", response_model=TeamResponse)
def branding(
    team_id: uuid.UUID,
    payload: TeamBranding,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
) -> TeamResponse:
    team = update_branding(db, context, team_id, payload.model_dump(mode="json", exclude_unset=True))
    db.commit()
    return _team_response(team)
