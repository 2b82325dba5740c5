"""
Organisation API endpoints.

POST   /org/organisations                                   — Create (caller becomes owner)
GET    /org/organisations                                   — List organisations on the domain
GET    /org/organisations/{org_id}                          — Get
PATCH  /org/organisations/{org_id}                          — Rename (owner/admin)
DELETE /org/organisations/{org_id}                          — Delete (owner)
GET    /org/organisations/{org_id}/members                  — List members
POST   /org/organisations/{org_id}/members                  — Add member (owner/admin)
PATCH  /org/organisations/{org_id}/members/{user_id}        — Change role (owner)
DELETE /org/organisations/{org_id}/members/{user_id}        — Remove member (owner/admin)
POST   /org/organisations/{org_id}/transfer-ownership       — Transfer ownership (owner)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import OrgCaller, get_context, get_org_caller, get_session
from uoa_server.core.context import AppContext
from uoa_server.services.organisations import OrganisationService
from uoa_server.services.rate_limit import (
    ADD_ORG_MEMBER_LIMIT,
    CREATE_ORG_LIMIT,
    add_org_member_key,
    create_org_key,
    enforce,
)
from uoa_shared.schemas.common import CursorPage
from uoa_shared.schemas.organisations import (
    OrgCreateRequest,
    OrgMemberAddRequest,
    OrgMemberResponse,
    OrgMemberRoleRequest,
    OrgResponse,
    OrgUpdateRequest,
    TransferOwnershipRequest,
)

router = APIRouter()


@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    caller: OrgCaller = Depends(get_org_caller),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    await enforce(context.rate_limiter, create_org_key(caller.domain, str(caller.user_id)), CREATE_ORG_LIMIT)
    org = await OrganisationService(session).create(
        caller.domain, body.name, caller.user_id, caller.features
    )
    return OrgResponse.model_validate(org)


@router.get("", response_model=CursorPage[OrgResponse])
async def list_orgs(
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    rows, next_cursor = await OrganisationService(session).list_orgs(caller.domain, cursor, limit)
    return CursorPage[OrgResponse](
        data=[OrgResponse.model_validate(row) for row in rows], next_cursor=next_cursor
    )


@router.get("/{org_id}", response_model=OrgResponse)
async def get_org(
    org_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    org = await OrganisationService(session).get(org_id, caller.domain, caller.user_id)
    return OrgResponse.model_validate(org)


@router.patch("/{org_id}", response_model=OrgResponse)
async def update_org(
    org_id: uuid.UUID,
    body: OrgUpdateRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    org = await OrganisationService(session).update(org_id, caller.domain, caller.user_id, body.name)
    return OrgResponse.model_validate(org)


@router.delete("/{org_id}", status_code=204)
async def delete_org(
    org_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    await OrganisationService(session).delete(org_id, caller.domain, caller.user_id)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/{org_id}/members", response_model=CursorPage[OrgMemberResponse])
async def list_members(
    org_id: uuid.UUID,
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    rows, next_cursor = await OrganisationService(session).list_members(
        org_id, caller.domain, caller.user_id, cursor, limit
    )
    return CursorPage[OrgMemberResponse](
        data=[OrgMemberResponse.model_validate(row) for row in rows], next_cursor=next_cursor
    )


@router.post("/{org_id}/members", response_model=OrgMemberResponse, status_code=201)
async def add_member(
    org_id: uuid.UUID,
    body: OrgMemberAddRequest,
    caller: OrgCaller = Depends(get_org_caller),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    await enforce(context.rate_limiter, add_org_member_key(caller.domain, str(org_id)), ADD_ORG_MEMBER_LIMIT)
    member = await OrganisationService(session).add_member(
        org_id, caller.domain, caller.user_id, body.user_id, body.role, caller.features
    )
    return OrgMemberResponse.model_validate(member)


@router.patch("/{org_id}/members/{user_id}", response_model=OrgMemberResponse)
async def change_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    body: OrgMemberRoleRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    member = await OrganisationService(session).change_member_role(
        org_id, caller.domain, caller.user_id, user_id, body.role, caller.features
    )
    return OrgMemberResponse.model_validate(member)


@router.delete("/{org_id}/members/{user_id}", status_code=204)
async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    await OrganisationService(session).remove_member(org_id, caller.domain, caller.user_id, user_id)


@router.post("/{org_id}/transfer-ownership", response_model=OrgResponse)
async def transfer_ownership(
    org_id: uuid.UUID,
    body: TransferOwnershipRequest,
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    org = await OrganisationService(session).transfer_ownership(
        org_id, caller.domain, caller.user_id, body.new_owner_id
    )
    return OrgResponse.model_validate(org)
