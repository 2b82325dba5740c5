"""
Team API endpoints (nested under /org/organisations/{org_id}/teams).

POST   /teams                              — Create (owner/admin)
GET    /teams                              — List
GET    /teams/{team_id}                    — Get with members
PATCH  /teams/{team_id}                    — Rename/describe (owner/admin)
DELETE /teams/{team_id}                    — Delete non-default team (owner/admin)
POST   /teams/{team_id}/members            — Add member (owner/admin)
PATCH  /teams/{team_id}/members/{user_id}  — Change team role (owner/admin)
DELETE /teams/{team_id}/members/{user_id}  — Remove member (owner/admin)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import OrgCaller, get_context, get_org_caller, get_session
from uoa_server.core.context import AppContext
from uoa_server.services.rate_limit import CREATE_TEAM_LIMIT, create_team_key, enforce
from uoa_server.services.teams import TeamService
from uoa_shared.schemas.common import CursorPage
from uoa_shared.schemas.teams import (
    TeamCreateRequest,
    TeamDetailResponse,
    TeamMemberAddRequest,
    TeamMemberResponse,
    TeamMemberRoleRequest,
    TeamResponse,
    TeamUpdateRequest,
)

router = APIRouter()


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    org_id: uuid.UUID,
    body: TeamCreateRequest,
    caller: OrgCaller = Depends(get_org_caller),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    await enforce(context.rate_limiter, create_team_key(caller.domain, str(org_id)), CREATE_TEAM_LIMIT)
    team = await TeamService(session).create(
        org_id, caller.domain, caller.user_id, body.name, body.description, caller.features
    )
    return TeamResponse.model_validate(team)


@router.get("", response_model=CursorPage[TeamResponse])
async def list_teams(
    org_id: uuid.UUID,
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    rows, next_cursor = await TeamService(session).list_teams(
        org_id, caller.domain, caller.user_id, cursor, limit
    )
    return CursorPage[TeamResponse](
        data=[TeamResponse.model_validate(row) for row in rows], next_cursor=next_cursor
    )


@router.get("/{team_id}", response_model=TeamDetailResponse)
async def get_team(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    team, members = await TeamService(session).get(team_id, org_id, caller.domain, caller.user_id)
    return TeamDetailResponse(
        **TeamResponse.model_validate(team).model_dump(),
        members=[TeamMemberResponse.model_validate(m) for m in members],
    )


@router.patch("/{team_id}", response_model=TeamResponse)
async def update_team(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    body: TeamUpdateRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    team = await TeamService(session).update(
        team_id, org_id, caller.domain, caller.user_id, name=body.name, description=body.description
    )
    return TeamResponse.model_validate(team)


@router.delete("/{team_id}", status_code=204)
async def delete_team(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    await TeamService(session).delete(team_id, org_id, caller.domain, caller.user_id)


@router.post("/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
async def add_team_member(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    body: TeamMemberAddRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    member = await TeamService(session).add_member(
        team_id, org_id, caller.domain, caller.user_id, body.user_id, caller.features, body.team_role
    )
    return TeamMemberResponse.model_validate(member)


@router.patch("/{team_id}/members/{user_id}", response_model=TeamMemberResponse)
async def change_team_member_role(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    body: TeamMemberRoleRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    member = await TeamService(session).change_member_role(
        team_id, org_id, caller.domain, caller.user_id, user_id, body.team_role
    )
    return TeamMemberResponse.model_validate(member)


@router.delete("/{team_id}/members/{user_id}", status_code=204)
async def remove_team_member(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    user_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    await TeamService(session).remove_member(team_id, org_id, caller.domain, caller.user_id, user_id)
