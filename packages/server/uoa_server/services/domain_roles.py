"""
Domain role assignment.

The first user to complete a token exchange on a domain becomes its superuser;
everyone after that is a plain user. The decision is made by the partial
unique index on ``domain_roles(domain) WHERE role = 'superuser'``: we try the
superuser insert and fall back when the store rejects it.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import InternalError
from uoa_server.models.domain_role import DomainRole, DomainRoleName
from uoa_shared.schemas.common import normalize_domain

log = structlog.get_logger()


class DomainRoleAssigner:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, domain: str, user_id: uuid.UUID) -> DomainRole | None:
        result = await self.session.execute(
            select(DomainRole).where(
                DomainRole.domain == normalize_domain(domain),
                DomainRole.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def ensure(self, domain: str, user_id: uuid.UUID) -> DomainRole:
        """Return the role for (domain, user), creating it on first call."""
        domain = normalize_domain(domain)

        existing = await self.get(domain, user_id)
        if existing is not None:
            return existing

        created = await self._try_insert(domain, user_id, DomainRoleName.SUPERUSER)
        if created is not None:
            log.info("domain_role.assigned", domain=domain, user_id=str(user_id), role=created.role)
            return created

        # Lost the superuser race, or a concurrent call for this same user won.
        existing = await self.get(domain, user_id)
        if existing is not None:
            return existing

        created = await self._try_insert(domain, user_id, DomainRoleName.USER)
        if created is not None:
            log.info("domain_role.assigned", domain=domain, user_id=str(user_id), role=created.role)
            return created

        existing = await self.get(domain, user_id)
        if existing is not None:
            return existing
        raise InternalError("domain role insert conflicted twice", domain=domain, user_id=str(user_id))

    async def _try_insert(
        self, domain: str, user_id: uuid.UUID, role: DomainRoleName
    ) -> DomainRole | None:
        row = DomainRole(domain=domain, user_id=user_id, role=role.value)
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            return None
        return row
