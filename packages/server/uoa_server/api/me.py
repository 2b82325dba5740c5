"""
GET /org/me — the caller's live org context on this domain.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import OrgCaller, get_org_caller, get_session
from uoa_server.services.org_context import OrgContextResolver
from uoa_shared.schemas.auth import OrgClaims

router = APIRouter()


@router.get("/me", response_model=Optional[OrgClaims], response_model_exclude_none=True)
async def get_my_org_context(
    caller: OrgCaller = Depends(get_org_caller),
    session: AsyncSession = Depends(get_session),
):
    """Returns ``null`` when the caller belongs to no organisation on this domain."""
    return await OrgContextResolver(session).resolve(caller.user_id, caller.domain, caller.features)
