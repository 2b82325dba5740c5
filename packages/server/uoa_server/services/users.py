"""
User identity lookup under the configured user scope.

With ``global`` scope one email is one user across every client domain. With
``per_domain`` scope the same email on two domains is two users, told apart
by a ``domain|email`` key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import InternalError
from uoa_server.models.user import User
from uoa_shared.schemas.common import UserScope, normalize_domain

log = structlog.get_logger()


@dataclass(frozen=True)
class UserIdentity:
    user_key: str
    email: str
    domain: Optional[str]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def build_user_identity(user_scope: UserScope, email: str, domain: str) -> UserIdentity:
    email = normalize_email(email)
    if user_scope == UserScope.PER_DOMAIN:
        domain = normalize_domain(domain)
        return UserIdentity(user_key=f"{domain}|{email}", email=email, domain=domain)
    return UserIdentity(user_key=email, email=email, domain=None)


async def get_user_by_key(session: AsyncSession, user_key: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.user_key == user_key))
    return result.scalar_one_or_none()


async def find_or_create_user(
    session: AsyncSession,
    identity: UserIdentity,
    name: Optional[str] = None,
    email_verified: bool = False,
) -> tuple[User, bool]:
    """Return ``(user, created)`` for ``identity``, creating the user on first sight."""
    user = await get_user_by_key(session, identity.user_key)
    if user is not None:
        return user, False

    user = User(
        email=identity.email,
        domain=identity.domain,
        user_key=identity.user_key,
        name=name,
        email_verified=email_verified,
    )
    try:
        async with session.begin_nested():
            session.add(user)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        # Created concurrently by another request.
        user = await get_user_by_key(session, identity.user_key)
        if user is None:
            raise InternalError("user vanished after key conflict") from exc
        return user, False

    log.info("user.created", user_id=str(user.id), scope="per_domain" if identity.domain else "global")
    return user, True
