"""
Background task: prune login logs past their retention period.

Runs once at startup and then every ``login_log_prune_interval_seconds`` so
retention holds even on domains with no new logins.
"""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.exc import SQLAlchemyError

from uoa_server.core.context import AppContext
from uoa_server.core.database import session_scope
from uoa_server.services.login_logs import LoginLogService

log = structlog.get_logger()


async def prune_login_logs(context: AppContext) -> int:
    """Delete expired login logs. Returns the number of rows removed."""
    async with session_scope(context.session_factory) as session:
        service = LoginLogService(session, retention_days=context.settings.log_retention_days)
        return await service.prune()


async def run_login_log_retention(context: AppContext) -> None:
    interval = context.settings.login_log_prune_interval_seconds
    while True:
        try:
            await prune_login_logs(context)
        except SQLAlchemyError:
            log.exception("login_log.prune_failed")
        await asyncio.sleep(interval)
