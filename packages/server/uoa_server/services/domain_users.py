"""
Domain user listing for client backends.

A domain's users are the users holding a domain role there, which means every
user who has completed a token exchange on the domain at least once.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.errors import ValidationFailed
from uoa_server.models.domain_role import DomainRole
from uoa_server.models.user import User
from uoa_server.services.pagination import paginate
from uoa_shared.schemas.common import normalize_domain
from uoa_shared.schemas.domain import DomainUserResponse


async def list_domain_users(
    session: AsyncSession,
    domain: str,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> tuple[list[DomainUserResponse], Optional[str]]:
    """Newest role holders first. Only non-sensitive user fields are returned."""
    domain = normalize_domain(domain)
    if not domain:
        raise ValidationFailed("domain must not be empty")

    roles, next_cursor = await paginate(
        session,
        DomainRole,
        DomainRole.domain == domain,
        cursor=cursor,
        limit=limit,
        key=DomainRole.user_id,
    )
    if not roles:
        return [], next_cursor

    users = {
        user.id: user
        for user in (
            await session.execute(select(User).where(User.id.in_([r.user_id for r in roles])))
        ).scalars()
    }
    return [
        DomainUserResponse(
            id=role.user_id,
            email=users[role.user_id].email,
            name=users[role.user_id].name,
            twofa_enabled=users[role.user_id].twofa_enabled,
            role=role.role,
            created_at=users[role.user_id].created_at,
        )
        for role in roles
    ], next_cursor
