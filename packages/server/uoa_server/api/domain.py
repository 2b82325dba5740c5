"""
Domain-scoped backend endpoints (client backend domain hash only).

GET /domain/users  — Users holding a role on the domain, with that role
GET /domain/logs   — Successful logins on the domain within retention
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import RequestConfig, get_context, get_session, require_domain_hash
from uoa_server.core.context import AppContext
from uoa_server.services.domain_users import list_domain_users
from uoa_server.services.login_logs import LoginLogService
from uoa_shared.schemas.common import CursorPage
from uoa_shared.schemas.domain import DomainUserResponse, LoginLogResponse

router = APIRouter()


@router.get("/users", response_model=CursorPage[DomainUserResponse])
async def list_users(
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    rc: RequestConfig = Depends(require_domain_hash),
    session: AsyncSession = Depends(get_session),
):
    users, next_cursor = await list_domain_users(session, rc.domain, cursor, limit)
    return CursorPage[DomainUserResponse](data=users, next_cursor=next_cursor)


@router.get("/logs", response_model=CursorPage[LoginLogResponse])
async def list_logs(
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    rc: RequestConfig = Depends(require_domain_hash),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    service = LoginLogService(session, retention_days=context.settings.log_retention_days)
    rows, next_cursor = await service.list_for_domain(rc.domain, cursor, limit)
    return CursorPage[LoginLogResponse](
        data=[LoginLogResponse.model_validate(row) for row in rows], next_cursor=next_cursor
    )
