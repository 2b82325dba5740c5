"""
Login logs: one row per successful login, kept for a finite retention period.

Retention is enforced on every write and once at startup; reads never return
rows older than the cutoff even if pruning has not caught up yet.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.models.base import utcnow
from uoa_server.models.login_log import LoginLog
from uoa_server.services.pagination import paginate
from uoa_shared.schemas.common import normalize_domain

log = structlog.get_logger()

DEFAULT_RETENTION_DAYS = 90
USER_AGENT_MAX_LENGTH = 512


class LoginLogService:
    def __init__(
        self,
        session: AsyncSession,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        now: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.retention = timedelta(days=retention_days)
        self.now = now

    def cutoff(self) -> datetime:
        return self.now() - self.retention

    async def record(
        self,
        user_id: uuid.UUID,
        email: str,
        domain: str,
        auth_method: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginLog:
        entry = LoginLog(
            user_id=user_id,
            email=email.strip().lower(),
            domain=normalize_domain(domain),
            auth_method=auth_method,
            ip=ip,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
            created_at=self.now(),
        )
        self.session.add(entry)
        await self.session.flush()
        await self.prune()
        return entry

    async def prune(self) -> int:
        """Delete rows past retention; returns how many went."""
        result = await self.session.execute(
            delete(LoginLog)
            .where(LoginLog.created_at < self.cutoff())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            log.info("login_log.pruned", deleted=result.rowcount)
        return result.rowcount

    async def list_for_domain(
        self, domain: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> tuple[list[LoginLog], Optional[str]]:
        return await paginate(
            self.session,
            LoginLog,
            LoginLog.domain == normalize_domain(domain),
            LoginLog.created_at >= self.cutoff(),
            cursor=cursor,
            limit=limit,
        )
