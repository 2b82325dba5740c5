"""
Group service: optional collections of teams within an organisation.

Groups exist only when the domain's config enables them; otherwise every
operation reads as not found. Reads are open to org members. Mutations are
reached only through the internal (domain-hash authenticated) API.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import ConflictError, LimitExceeded, NotFoundError
from uoa_server.models.group import Group, GroupMember
from uoa_server.models.team import Team
from uoa_server.services.base import OrgScopedService, clean_description, clean_name
from uoa_server.services.pagination import paginate
from uoa_shared.schemas.config import OrgFeatures

log = structlog.get_logger()


def require_groups_enabled(features: OrgFeatures) -> None:
    if not (features.enabled and features.groups_enabled):
        raise NotFoundError("groups are not enabled for this domain")


class GroupService(OrgScopedService):

    async def _get_group(self, group_id: uuid.UUID, org_id: uuid.UUID) -> Group:
        group = (
            await self.session.execute(select(Group).where(Group.id == group_id, Group.org_id == org_id))
        ).scalar_one_or_none()
        if group is None:
            raise NotFoundError("group not found", group_id=str(group_id), org_id=str(org_id))
        return group

    async def _get_group_member(self, group_id: uuid.UUID, user_id: uuid.UUID) -> GroupMember:
        member = (
            await self.session.execute(
                select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            )
        ).scalar_one_or_none()
        if member is None:
            raise NotFoundError("group member not found", group_id=str(group_id), user_id=str(user_id))
        return member

    # ------------------------------------------------------------------
    # Reads (org members)
    # ------------------------------------------------------------------

    async def list_groups(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        features: OrgFeatures,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[Group], Optional[str]]:
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        return await paginate(self.session, Group, Group.org_id == org.id, cursor=cursor, limit=limit)

    async def get(
        self,
        group_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        features: OrgFeatures,
    ) -> tuple[Group, list[Team], list[GroupMember]]:
        """Return the group with its teams and members."""
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        group = await self._get_group(group_id, org.id)

        teams = (
            await self.session.execute(
                select(Team).where(Team.group_id == group.id).order_by(Team.created_at)
            )
        ).scalars().all()
        members = (
            await self.session.execute(
                select(GroupMember).where(GroupMember.group_id == group.id).order_by(GroupMember.created_at)
            )
        ).scalars().all()
        return group, list(teams), list(members)

    # ------------------------------------------------------------------
    # Mutations (internal tier)
    # ------------------------------------------------------------------

    async def create(
        self,
        org_id: uuid.UUID,
        domain: str,
        name: str,
        description: Optional[str],
        features: OrgFeatures,
    ) -> Group:
        require_groups_enabled(features)
        name = clean_name(name)
        description = clean_description(description)
        org = await self._get_org(org_id, domain, for_update=True)

        if await self._count(Group.id, Group.org_id == org.id) >= features.max_groups_per_org:
            raise LimitExceeded("group limit reached", org_id=str(org.id))

        group = Group(org_id=org.id, name=name, description=description)
        try:
            async with self.session.begin_nested():
                self.session.add(group)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("group name already used", org_id=str(org.id), name=name) from exc

        log.info("group.created", org_id=str(org.id), group_id=str(group.id))
        return group

    async def update(
        self,
        group_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        features: OrgFeatures,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Group:
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        group = await self._get_group(group_id, org.id)

        if name is not None:
            group.name = clean_name(name)
        if description is not None:
            group.description = clean_description(description)

        try:
            async with self.session.begin_nested():
                self.session.add(group)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("group name already used", org_id=str(org.id)) from exc

        log.info("group.updated", group_id=str(group.id))
        return group

    async def delete(
        self, group_id: uuid.UUID, org_id: uuid.UUID, domain: str, features: OrgFeatures
    ) -> None:
        """Delete a group. Its teams survive with ``group_id`` cleared."""
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        group = await self._get_group(group_id, org.id)

        async with self.session.begin_nested():
            # Loaded Team objects must see the cleared reference.
            await self.session.execute(
                update(Team).where(Team.group_id == group.id).values(group_id=None)
            )
            for stmt in (
                delete(GroupMember).where(GroupMember.group_id == group.id),
                delete(Group).where(Group.id == group.id),
            ):
                await self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.expunge(group)
        log.info("group.deleted", org_id=str(org.id), group_id=str(group_id))

    async def add_member(
        self,
        group_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        user_id: uuid.UUID,
        features: OrgFeatures,
        is_admin: bool = False,
    ) -> GroupMember:
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        group = await self._get_group(group_id, org.id)

        if await self._get_member(org.id, user_id) is None:
            raise NotFoundError("user is not a member of the organisation", user_id=str(user_id))
        if await self._count(GroupMember.id, GroupMember.group_id == group.id) >= features.max_members_per_group:
            raise LimitExceeded("group member limit reached", group_id=str(group.id))

        member = GroupMember(group_id=group.id, user_id=user_id, is_admin=is_admin)
        try:
            async with self.session.begin_nested():
                self.session.add(member)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("user already in group", group_id=str(group.id)) from exc

        log.info("group.member_added", group_id=str(group.id), user_id=str(user_id), is_admin=is_admin)
        return member

    async def remove_member(
        self,
        group_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        user_id: uuid.UUID,
        features: OrgFeatures,
    ) -> None:
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        group = await self._get_group(group_id, org.id)
        member = await self._get_group_member(group.id, user_id)

        await self.session.delete(member)
        await self.session.flush()
        log.info("group.member_removed", group_id=str(group.id), user_id=str(user_id))

    async def set_admin(
        self,
        group_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        user_id: uuid.UUID,
        is_admin: bool,
        features: OrgFeatures,
    ) -> GroupMember:
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        group = await self._get_group(group_id, org.id)
        member = await self._get_group_member(group.id, user_id)

        member.is_admin = is_admin
        self.session.add(member)
        await self.session.flush()
        log.info("group.admin_set", group_id=str(group.id), user_id=str(user_id), is_admin=is_admin)
        return member

    async def assign_team_to_group(
        self,
        team_id: uuid.UUID,
        group_id: Optional[uuid.UUID],
        org_id: uuid.UUID,
        domain: str,
        features: OrgFeatures,
    ) -> Team:
        """Attach a team to a group of the same org, or detach it (``group_id=None``)."""
        require_groups_enabled(features)
        org = await self._get_org(org_id, domain, for_update=True)
        team = (
            await self.session.execute(select(Team).where(Team.id == team_id, Team.org_id == org.id))
        ).scalar_one_or_none()
        if team is None:
            raise NotFoundError("team not found", team_id=str(team_id), org_id=str(org.id))
        if group_id is not None:
            await self._get_group(group_id, org.id)

        team.group_id = group_id
        self.session.add(team)
        await self.session.flush()
        log.info(
            "group.team_assigned",
            team_id=str(team.id),
            group_id=str(group_id) if group_id else None,
        )
        return team
