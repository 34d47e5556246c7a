from __future__ import annotations

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from listing_api.auth import RequestContext
from listing_api.models import AuditLog, SubscriptionTier, Team, TeamRole
from listing_api.services.teams import (
    create_team,
    invite_member,
    join_team,
    list_members,
    remove_member,
    slugify,
    update_branding,
    update_member_role,
)


@pytest.fixture()
def team_setup(sqlite_session, make_profile):
    owner = make_profile(SubscriptionTier.TEAM, email="owner@harborrealty.com")
    manager = make_profile(SubscriptionTier.PRO, email="manager@harborrealty.com")
    agent = make_profile(SubscriptionTier.PRO, email="Agent@HarborRealty.com")
    owner_ctx = RequestContext(current_user_id=owner.id)
    team = create_team(sqlite_session, owner_ctx, owner, "Harbor Realty Group", {"tagline": "Home on the harbor"})
    manager_member = invite_member(sqlite_session, owner_ctx, team.id, "manager@harborrealty.com", TeamRole.MANAGER)
    return {
        "team": team,
        "owner": owner,
        "manager": manager,
        "agent": agent,
        "owner_ctx": owner_ctx,
        "manager_ctx": RequestContext(current_user_id=manager.id),
        "agent_ctx": RequestContext(current_user_id=agent.id),
        "manager_member": manager_member,
    }


def test_slugify_and_unique_slug(sqlite_session, make_profile) -> None:
    assert slugify("Harbor Realty Group!") == "harbor-realty-group"
    owner = make_profile(SubscriptionTier.TEAM)
    context = RequestContext(current_user_id=owner.id)
    first = create_team(sqlite_session, context, owner, "Lowcountry Homes", None)
    second = create_team(sqlite_session, context, owner, "Lowcountry  Homes", None)
    assert first.slug == "lowcountry-homes"
    assert second.slug == "lowcountry-homes-1"


def test_create_team_makes_owner_admin(sqlite_session, team_setup) -> None:
    team = team_setup["team"]
    assert team.subscription_tier == SubscriptionTier.TEAM
    assert team_setup["owner"].current_team_id == team.id

    members = list_members(sqlite_session, team_setup["owner_ctx"], team.id)
    roles = {email: member.role for member, email in members}
    assert roles["owner@harborrealty.com"] == TeamRole.ADMIN
    assert roles["manager@harborrealty.com"] == TeamRole.MANAGER

    actions = sqlite_session.scalars(select(AuditLog.action)).all()
    assert "team.created" in actions
    assert "team.member_invited" in actions


def test_invite_rules(sqlite_session, team_setup) -> None:
    team = team_setup["team"]

    with pytest.raises(HTTPException) as exc:
        invite_member(sqlite_session, team_setup["manager_ctx"], team.id, "agent@harborrealty.com", TeamRole.ADMIN)
    assert exc.value.detail == "Managers cannot invite admins"

    member = invite_member(sqlite_session, team_setup["manager_ctx"], team.id, "AGENT@harborrealty.com", TeamRole.AGENT)
    assert member.user_id == team_setup["agent"].id

    with pytest.raises(HTTPException) as exc:
        invite_member(sqlite_session, team_setup["owner_ctx"], team.id, "agent@harborrealty.com", TeamRole.AGENT)
    assert exc.value.detail == "User is already a team member"

    with pytest.raises(HTTPException) as exc:
        invite_member(sqlite_session, team_setup["owner_ctx"], team.id, "nobody@example.com", TeamRole.AGENT)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        invite_member(sqlite_session, team_setup["agent_ctx"], team.id, "owner@harborrealty.com", TeamRole.AGENT)
    assert exc.value.detail == "Insufficient permissions to invite members"


def test_join_team(sqlite_session, team_setup) -> None:
    team = team_setup["team"]
    member = join_team(sqlite_session, team_setup["agent_ctx"], team_setup["agent"], team.id)
    assert member.role == TeamRole.AGENT
    assert team_setup["agent"].current_team_id == team.id

    with pytest.raises(HTTPException) as exc:
        join_team(sqlite_session, team_setup["agent_ctx"], team_setup["agent"], team.id)
    assert exc.value.detail == "Already a team member"


def test_only_admins_manage_members(sqlite_session, team_setup) -> None:
    manager_member = team_setup["manager_member"]
    with pytest.raises(HTTPException) as exc:
        update_member_role(sqlite_session, team_setup["manager_ctx"], manager_member.id, TeamRole.ADMIN)
    assert exc.value.detail == "Only team admins can manage members"

    updated = update_member_role(sqlite_session, team_setup["owner_ctx"], manager_member.id, TeamRole.AGENT)
    assert updated.role == TeamRole.AGENT


def test_owner_cannot_be_removed(sqlite_session, team_setup) -> None:
    team = team_setup["team"]
    owner_member = next(
        member for member, _ in list_members(sqlite_session, team_setup["owner_ctx"], team.id)
        if member.user_id == team_setup["owner"].id
    )
    with pytest.raises(HTTPException) as exc:
        remove_member(sqlite_session, team_setup["owner_ctx"], owner_member.id)
    assert exc.value.detail == "Cannot remove team owner"

    remove_member(sqlite_session, team_setup["owner_ctx"], team_setup["manager_member"].id)
    remaining = [member.user_id for member, _ in list_members(sqlite_session, team_setup["owner_ctx"], team.id)]
    assert remaining == [team_setup["owner"].id]


def test_branding_merge_and_permissions(sqlite_session, team_setup) -> None:
    team = team_setup["team"]
    updated = update_branding(sqlite_session, team_setup["owner_ctx"], team.id, {"primary_color": "#0A3D62"})
    assert updated.branding == {"tagline": "Home on the harbor", "primary_color": "#0A3D62"}

    with pytest.raises(HTTPException) as exc:
        update_branding(sqlite_session, team_setup["manager_ctx"], team.id, {"tagline": "New"})
    assert exc.value.detail == "Only team admins can update branding"
    assert sqlite_session.get(Team, team.id).branding["tagline"] == "Home on the harbor"
