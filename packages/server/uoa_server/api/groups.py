"""
Group read endpoints for org members (nested under /org/organisations/{org_id}/groups).

GET /groups             — List groups
GET /groups/{group_id}  — Group with its teams and members

Group mutations live in ``uoa_server.api.internal``.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import OrgCaller, get_org_caller, get_session
from uoa_server.services.groups import GroupService
from uoa_shared.schemas.common import CursorPage
from uoa_shared.schemas.groups import GroupDetailResponse, GroupMemberResponse, GroupResponse
from uoa_shared.schemas.teams import TeamResponse

router = APIRouter()


@router.get("", response_model=CursorPage[GroupResponse])
async def list_groups(
    org_id: uuid.UUID,
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    rows, next_cursor = await GroupService(session).list_groups(
        org_id, caller.domain, caller.user_id, caller.features, cursor, limit
    )
    return CursorPage[GroupResponse](
        data=[GroupResponse.model_validate(row) for row in rows], next_cursor=next_cursor
    )


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def get_group(
    org_id: uuid.UUID,
    group_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    group, teams, members = await GroupService(session).get(
        group_id, org_id, caller.domain, caller.user_id, caller.features
    )
    return group_detail(group, teams, members)


def group_detail(group, teams, members) -> GroupDetailResponse:
    return GroupDetailResponse(
        **GroupResponse.model_validate(group).model_dump(),
        teams=[TeamResponse.model_validate(t) for t in teams],
        members=[GroupMemberResponse.model_validate(m) for m in members],
    )
