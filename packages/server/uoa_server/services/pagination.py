"""
Cursor pagination shared by every list operation.

Rows are ordered newest first (``created_at desc, id desc``). The cursor is
the id of the first row of the next page; a page is fetched by taking
``limit + 1`` rows and peeling off the extra one.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.errors import ValidationFailed
from uoa_shared.schemas.common import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    if limit <= 0:
        return 1
    return min(limit, MAX_LIST_LIMIT)


def parse_cursor(cursor: Optional[str]) -> Optional[uuid.UUID]:
    if not cursor:
        return None
    try:
        return uuid.UUID(cursor)
    except ValueError as exc:
        raise ValidationFailed("malformed cursor", cursor=cursor) from exc


async def paginate(
    session: AsyncSession,
    model: Any,
    *filters,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    key: Any = None,
) -> tuple[list, Optional[str]]:
    """Return ``(rows, next_cursor)`` for ``model`` rows matching ``filters``.

    ``key`` is the uuid tie-breaker column; it defaults to ``model.id``.
    """
    take = clamp_limit(limit)
    cursor_id = parse_cursor(cursor)
    if key is None:
        key = model.id

    stmt = select(model).where(*filters)
    if cursor_id is not None:
        anchor = (
            await session.execute(select(model.created_at).where(key == cursor_id, *filters))
        ).scalar_one_or_none()
        if anchor is None:
            raise ValidationFailed("unknown cursor", cursor=cursor)
        stmt = stmt.where(
            or_(
                model.created_at < anchor,
                and_(model.created_at == anchor, key <= cursor_id),
            )
        )

    stmt = stmt.order_by(model.created_at.desc(), key.desc()).limit(take + 1)
    rows = list((await session.execute(stmt)).scalars().all())

    next_cursor = None
    if len(rows) > take:
        next_cursor = str(getattr(rows[take], key.key))
        rows = rows[:take]
    return rows, next_cursor
