"""
Internal group management (elevated tier: client backend domain hash only).

POST   /internal/org/organisations/{org_id}/groups                              — Create group
PATCH  /internal/org/organisations/{org_id}/groups/{group_id}                   — Update group
DELETE /internal/org/organisations/{org_id}/groups/{group_id}                   — Delete group
POST   /internal/org/organisations/{org_id}/groups/{group_id}/members           — Add member
PATCH  /internal/org/organisations/{org_id}/groups/{group_id}/members/{user_id} — Set admin flag
DELETE /internal/org/organisations/{org_id}/groups/{group_id}/members/{user_id} — Remove member
PUT    /internal/org/organisations/{org_id}/teams/{team_id}/group               — Assign/detach team
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import RequestConfig, get_session, require_groups_enabled
from uoa_server.services.groups import GroupService
from uoa_shared.schemas.groups import (
    GroupCreateRequest,
    GroupMemberAddRequest,
    GroupMemberAdminRequest,
    GroupMemberResponse,
    GroupResponse,
    GroupUpdateRequest,
    TeamGroupAssignRequest,
)
from uoa_shared.schemas.teams import TeamResponse

router = APIRouter()


@router.post("/{org_id}/groups", response_model=GroupResponse, status_code=201)
async def create_group(
    org_id: uuid.UUID,
    body: GroupCreateRequest,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    group = await GroupService(session).create(org_id, rc.domain, body.name, body.description, rc.features)
    return GroupResponse.model_validate(group)


@router.patch("/{org_id}/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    body: GroupUpdateRequest,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    group = await GroupService(session).update(
        group_id, org_id, rc.domain, rc.features, name=body.name, description=body.description
    )
    return GroupResponse.model_validate(group)


@router.delete("/{org_id}/groups/{group_id}", status_code=204)
async def delete_group(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    await GroupService(session).delete(group_id, org_id, rc.domain, rc.features)


@router.post("/{org_id}/groups/{group_id}/members", response_model=GroupMemberResponse, status_code=201)
async def add_group_member(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    body: GroupMemberAddRequest,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    member = await GroupService(session).add_member(
        group_id, org_id, rc.domain, body.user_id, rc.features, is_admin=body.is_admin
    )
    return GroupMemberResponse.model_validate(member)


@router.patch("/{org_id}/groups/{group_id}/members/{user_id}", response_model=GroupMemberResponse)
async def set_group_admin(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    body: GroupMemberAdminRequest,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    member = await GroupService(session).set_admin(
        group_id, org_id, rc.domain, user_id, body.is_admin, rc.features
    )
    return GroupMemberResponse.model_validate(member)


@router.delete("/{org_id}/groups/{group_id}/members/{user_id}", status_code=204)
async def remove_group_member(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    user_id: uuid.UUID,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    await GroupService(session).remove_member(group_id, org_id, rc.domain, user_id, rc.features)


@router.put("/{org_id}/teams/{team_id}/group", response_model=TeamResponse)
async def assign_team_to_group(
    org_id: uuid.UUID,
    team_id: uuid.UUID,
    body: TeamGroupAssignRequest,
    rc: RequestConfig = Depends(require_groups_enabled),
    session: AsyncSession = Depends(get_session),
):
    team = await GroupService(session).assign_team_to_group(
        team_id, body.group_id, org_id, rc.domain, rc.features
    )
    return TeamResponse.model_validate(team)
