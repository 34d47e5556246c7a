from __future__ import annotations

import re
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth import RequestContext, get_membership, require_team_member
from ..models import SubscriptionTier, Team, TeamMember, TeamRole, UserProfile
from .audit import write_audit_log

INVITER_ROLES = {TeamRole.ADMIN, TeamRole.MANAGER}
SLUG_SEPARATOR = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return SLUG_SEPARATOR.sub("-", name.lower()).strip("-")


def unique_slug(db: Session, name: str) -> str:
    base = slugify(name) or "team"
    slug = base
    suffix = 1
    while db.scalar(select(Team.id).where(Team.slug == slug)) is not None:
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def create_team(db: Session, context: RequestContext, profile: UserProfile, name: str, branding: dict[str, Any] | None) -> Team:
    team = Team(
        name=name,
        slug=unique_slug(db, name),
        owner_id=context.current_user_id,
        branding=branding or {},
        subscription_tier=SubscriptionTier.TEAM,
    )
    db.add(team)
    db.flush()
    db.add(
        TeamMember(
            team_id=team.id,
            user_id=context.current_user_id,
            role=TeamRole.ADMIN,
            invited_by=context.current_user_id,
        )
    )
    profile.current_team_id = team.id
    db.flush()
    write_audit_log(db, context, "team.created", "team", team.id, {"slug": team.slug})
    return team


def _get_team(db: Session, team_id: uuid.UUID) -> Team:
    team = db.get(Team, team_id)
    if team is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    return team


def invite_member(db: Session, context: RequestContext, team_id: uuid.UUID, email: str, role: TeamRole) -> TeamMember:
    inviter = require_team_member(
        db, team_id, context, roles=INVITER_ROLES, detail="Insufficient permissions to invite members"
    )
    if inviter.role == TeamRole.MANAGER and role == TeamRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Managers cannot invite admins")

    invitee = db.scalar(select(UserProfile).where(func.lower(UserProfile.email) == email.lower()))
    if invitee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if get_membership(db, team_id, invitee.id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already a team member")

    member = TeamMember(team_id=team_id, user_id=invitee.id, role=role, invited_by=context.current_user_id)
    db.add(member)
    db.flush()
    write_audit_log(db, context, "team.member_invited", "team_member", member.id, {"team_id": str(team_id), "role": role.value})
    return member


def join_team(db: Session, context: RequestContext, profile: UserProfile, team_id: uuid.UUID) -> TeamMember:
    if get_membership(db, team_id, context.current_user_id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already a team member")
    _get_team(db, team_id)
    member = TeamMember(team_id=team_id, user_id=context.current_user_id, role=TeamRole.AGENT)
    db.add(member)
    profile.current_team_id = team_id
    db.flush()
    write_audit_log(db, context, "team.member_joined", "team_member", member.id, {"team_id": str(team_id)})
    return member


def list_members(db: Session, context: RequestContext, team_id: uuid.UUID) -> list[tuple[TeamMember, str | None]]:
    require_team_member(db, team_id, context)
    rows = db.execute(
        select(TeamMember, UserProfile.email)
        .join(UserProfile, UserProfile.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at.asc())
    ).all()
    return [(member, email) for member, email in rows]


def _member_for_admin(db: Session, context: RequestContext, member_id: uuid.UUID) -> TeamMember:
    member = db.get(TeamMember, member_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")
    require_team_member(db, member.team_id, context, roles={TeamRole.ADMIN}, detail="Only team admins can manage members")
    return member


def update_member_role(db: Session, context: RequestContext, member_id: uuid.UUID, role: TeamRole) -> TeamMember:
    member = _member_for_admin(db, context, member_id)
    previous = member.role
    member.role = role
    db.flush()
    write_audit_log(
        db, context, "team.member_role_updated", "team_member", member.id, {"from": previous.value, "to": role.value}
    )
    return member


def remove_member(db: Session, context: RequestContext, member_id: uuid.UUID) -> None:
    member = _member_for_admin(db, context, member_id)
    team = _get_team(db, member.team_id)
    if member.user_id == team.owner_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot remove team owner")
    profile = db.get(UserProfile, member.user_id)
    if profile is not None and profile.current_team_id == team.id:
        profile.current_team_id = None
    db.delete(member)
    db.flush()
    write_audit_log(db, context, "team.member_removed", "team_member", member_id, {"team_id": str(team.id)})


def update_branding(db: Session, context: RequestContext, team_id: uuid.UUID, changes: dict[str, Any]) -> Team:
    team = _get_team(db, team_id)
    if team.owner_id != context.current_user_id:
        require_team_member(db, team_id, context, roles={TeamRole.ADMIN}, detail="Only team admins can update branding")
    team.branding = {**(team.branding or {}), **changes}
    db.flush()
    write_audit_log(db, context, "team.branding_updated", "team", team.id, {"fields": sorted(changes)})
    return team
