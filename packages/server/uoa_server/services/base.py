"""
Shared lookups for the organisation, team and group services.

Every mutation resolves the full domain → organisation → child chain before
acting; anything outside the caller's domain reads as not found.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.errors import ForbiddenError, InternalError, NotFoundError, ValidationFailed
from uoa_server.models.organisation import Organisation, OrgMember
from uoa_server.models.team import Team
from uoa_server.models.user import User
from uoa_shared.schemas.common import OrgRole, normalize_domain
from uoa_shared.schemas.organisations import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH

MANAGER_ROLES = frozenset({OrgRole.OWNER.value, OrgRole.ADMIN.value})


def clean_name(name: str, what: str = "name") -> str:
    value = (name or "").strip()
    if not value or len(value) > NAME_MAX_LENGTH:
        raise ValidationFailed(f"{what} must be 1-{NAME_MAX_LENGTH} characters")
    return value


def clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    value = description.strip()
    if len(value) > DESCRIPTION_MAX_LENGTH:
        raise ValidationFailed(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")
    return value or None


def select_org(org_id: uuid.UUID, domain: str, for_update: bool = False):
    stmt = select(Organisation).where(
        Organisation.id == org_id,
        Organisation.domain == normalize_domain(domain),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return stmt


class OrgScopedService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = (
            await self.session.execute(select(User).where(User.id == user_id))
        ).scalar_one_or_none()
        if user is None:
            raise NotFoundError("user not found", user_id=str(user_id))
        return user

    async def _get_org(self, org_id: uuid.UUID, domain: str, for_update: bool = False) -> Organisation:
        """Load the organisation, row-locked when ``for_update`` is set.

        Mutations that check a count before writing (last owner, last team,
        limits) lock the org row first so concurrent requests on the same org
        run one after another.
        """
        org = (
            await self.session.execute(select_org(org_id, domain, for_update=for_update))
        ).scalar_one_or_none()
        if org is None:
            raise NotFoundError("organisation not found", org_id=str(org_id), domain=domain)
        return org

    async def _get_member(self, org_id: uuid.UUID, user_id: uuid.UUID) -> Optional[OrgMember]:
        return (
            await self.session.execute(
                select(OrgMember).where(OrgMember.org_id == org_id, OrgMember.user_id == user_id)
            )
        ).scalar_one_or_none()

    async def _require_member(self, org_id: uuid.UUID, user_id: uuid.UUID) -> OrgMember:
        member = await self._get_member(org_id, user_id)
        if member is None:
            raise NotFoundError("caller is not a member", org_id=str(org_id), user_id=str(user_id))
        return member

    async def _require_manager(self, org_id: uuid.UUID, user_id: uuid.UUID) -> OrgMember:
        member = await self._require_member(org_id, user_id)
        if member.role not in MANAGER_ROLES:
            raise ForbiddenError("owner or admin required", org_id=str(org_id), user_id=str(user_id))
        return member

    async def _membership_on_domain(self, domain: str, user_id: uuid.UUID) -> Optional[OrgMember]:
        return (
            await self.session.execute(
                select(OrgMember).where(
                    OrgMember.domain == normalize_domain(domain),
                    OrgMember.user_id == user_id,
                )
            )
        ).scalar_one_or_none()

    async def _default_team(self, org_id: uuid.UUID) -> Team:
        team = (
            await self.session.execute(
                select(Team).where(Team.org_id == org_id, Team.is_default.is_(True))
            )
        ).scalar_one_or_none()
        if team is None:
            raise InternalError("organisation has no default team", org_id=str(org_id))
        return team

    async def _count(self, column, *filters) -> int:
        return (await self.session.execute(select(func.count(column)).where(*filters))).scalar_one()
