"""
Team service: teams inside an organisation and their membership.

Every org member keeps at least one team membership: new members land in the
default team, deleting a team moves sole-team members to the default team,
and removing someone from their last team is refused.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import (
    ConflictError,
    LimitExceeded,
    NotFoundError,
    ValidationFailed,
)
from uoa_server.models.team import Team, TeamMember, TeamRole
from uoa_server.services.base import OrgScopedService, clean_description, clean_name
from uoa_server.services.pagination import paginate
from uoa_shared.schemas.config import OrgFeatures

log = structlog.get_logger()

TEAM_ROLES = frozenset(r.value for r in TeamRole)


def _check_team_role(team_role: str) -> str:
    if team_role not in TEAM_ROLES:
        raise ValidationFailed("team role must be lead or member", team_role=team_role)
    return team_role


class TeamService(OrgScopedService):

    async def _get_team(self, team_id: uuid.UUID, org_id: uuid.UUID) -> Team:
        team = (
            await self.session.execute(select(Team).where(Team.id == team_id, Team.org_id == org_id))
        ).scalar_one_or_none()
        if team is None:
            raise NotFoundError("team not found", team_id=str(team_id), org_id=str(org_id))
        return team

    async def _get_team_member(self, team_id: uuid.UUID, user_id: uuid.UUID) -> Optional[TeamMember]:
        return (
            await self.session.execute(
                select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
            )
        ).scalar_one_or_none()

    async def _memberships_in_org(self, org_id: uuid.UUID, user_id: uuid.UUID) -> int:
        return await self._count(
            TeamMember.id,
            TeamMember.user_id == user_id,
            TeamMember.team_id.in_(select(Team.id).where(Team.org_id == org_id)),
        )

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def create(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        name: str,
        description: Optional[str],
        features: OrgFeatures,
    ) -> Team:
        name = clean_name(name)
        description = clean_description(description)
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)

        count = await self._count(Team.id, Team.org_id == org.id)
        if count >= features.max_teams_per_org:
            raise LimitExceeded("team limit reached", org_id=str(org.id))

        team = Team(org_id=org.id, name=name, description=description, is_default=False)
        try:
            async with self.session.begin_nested():
                self.session.add(team)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("team name already used", org_id=str(org.id), name=name) from exc

        log.info("team.created", org_id=str(org.id), team_id=str(team.id))
        return team

    async def get(
        self, team_id: uuid.UUID, org_id: uuid.UUID, domain: str, caller_user_id: uuid.UUID
    ) -> tuple[Team, list[TeamMember]]:
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)
        members = (
            await self.session.execute(
                select(TeamMember).where(TeamMember.team_id == team.id).order_by(TeamMember.created_at)
            )
        ).scalars().all()
        return team, list(members)

    async def list_teams(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[Team], Optional[str]]:
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        return await paginate(self.session, Team, Team.org_id == org.id, cursor=cursor, limit=limit)

    async def update(
        self,
        team_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Team:
        """Rename or re-describe a team. ``is_default`` and ``group_id`` are not touched."""
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)

        if name is not None:
            team.name = clean_name(name)
        if description is not None:
            team.description = clean_description(description)

        try:
            async with self.session.begin_nested():
                self.session.add(team)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("team name already used", org_id=str(org.id)) from exc

        log.info("team.updated", org_id=str(org.id), team_id=str(team.id))
        return team

    async def delete(
        self, team_id: uuid.UUID, org_id: uuid.UUID, domain: str, caller_user_id: uuid.UUID
    ) -> None:
        """Delete a non-default team, moving sole-team members to the default team first."""
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)
        if team.is_default:
            raise ValidationFailed("the default team cannot be deleted", team_id=str(team.id))

        default_team = await self._default_team(org.id)
        member_ids = (
            await self.session.execute(select(TeamMember.user_id).where(TeamMember.team_id == team.id))
        ).scalars().all()

        async with self.session.begin_nested():
            moved = 0
            for user_id in member_ids:
                if await self._memberships_in_org(org.id, user_id) <= 1:
                    self.session.add(
                        TeamMember(team_id=default_team.id, user_id=user_id, team_role=TeamRole.MEMBER.value)
                    )
                    moved += 1
            await self.session.flush()
            await self.session.execute(
                delete(TeamMember)
                .where(TeamMember.team_id == team.id)
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(
                delete(Team).where(Team.id == team.id).execution_options(synchronize_session=False)
            )
        self.session.expunge(team)
        log.info("team.deleted", org_id=str(org.id), team_id=str(team_id), reenrolled=moved)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def add_member(
        self,
        team_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        user_id: uuid.UUID,
        features: OrgFeatures,
        team_role: str = TeamRole.MEMBER.value,
    ) -> TeamMember:
        team_role = _check_team_role(team_role)
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)

        if await self._get_member(org.id, user_id) is None:
            raise NotFoundError("user is not a member of the organisation", user_id=str(user_id))
        if await self._get_team_member(team.id, user_id) is not None:
            raise ConflictError("user already in team", team_id=str(team.id), user_id=str(user_id))

        if await self._count(TeamMember.id, TeamMember.team_id == team.id) >= features.max_members_per_team:
            raise LimitExceeded("team member limit reached", team_id=str(team.id))
        if await self._memberships_in_org(org.id, user_id) >= features.max_team_memberships_per_user:
            raise LimitExceeded("user team membership limit reached", user_id=str(user_id))

        member = TeamMember(team_id=team.id, user_id=user_id, team_role=team_role)
        try:
            async with self.session.begin_nested():
                self.session.add(member)
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("user already in team", team_id=str(team.id)) from exc

        log.info("team.member_added", team_id=str(team.id), user_id=str(user_id), team_role=team_role)
        return member

    async def remove_member(
        self,
        team_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)

        member = await self._get_team_member(team.id, user_id)
        if member is None:
            raise NotFoundError("team member not found", team_id=str(team.id), user_id=str(user_id))
        if await self._memberships_in_org(org.id, user_id) <= 1:
            raise ValidationFailed(
                "cannot remove a user from their last team; remove them from the organisation",
                user_id=str(user_id),
            )

        await self.session.delete(member)
        await self.session.flush()
        log.info("team.member_removed", team_id=str(team.id), user_id=str(user_id))

    async def change_member_role(
        self,
        team_id: uuid.UUID,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        user_id: uuid.UUID,
        team_role: str,
    ) -> TeamMember:
        team_role = _check_team_role(team_role)
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)
        team = await self._get_team(team_id, org.id)

        member = await self._get_team_member(team.id, user_id)
        if member is None:
            raise NotFoundError("team member not found", team_id=str(team.id), user_id=str(user_id))

        member.team_role = team_role
        self.session.add(member)
        await self.session.flush()
        log.info("team.member_role_changed", team_id=str(team.id), user_id=str(user_id), team_role=team_role)
        return member
