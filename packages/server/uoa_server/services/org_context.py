"""
Org context resolution: the single source for the ``org`` token claim and
``GET /org/me``. Always a live read.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.models.group import Group, GroupMember
from uoa_server.models.organisation import OrgMember
from uoa_server.models.team import Team, TeamMember
from uoa_shared.schemas.auth import OrgClaims
from uoa_shared.schemas.common import normalize_domain
from uoa_shared.schemas.config import OrgFeatures


class OrgContextResolver:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(
        self, user_id: uuid.UUID, domain: str, features: OrgFeatures
    ) -> Optional[OrgClaims]:
        """Return the user's org claims on ``domain``, or None when there are none."""
        if not features.enabled:
            return None

        member = (
            await self.session.execute(
                select(OrgMember).where(
                    OrgMember.domain == normalize_domain(domain),
                    OrgMember.user_id == user_id,
                )
            )
        ).scalar_one_or_none()
        if member is None:
            return None

        team_rows = (
            await self.session.execute(
                select(TeamMember.team_id, TeamMember.team_role)
                .join(Team, Team.id == TeamMember.team_id)
                .where(Team.org_id == member.org_id, TeamMember.user_id == user_id)
                .order_by(TeamMember.team_id)
                .limit(features.max_team_memberships_per_user)
            )
        ).all()

        claims = OrgClaims(
            org_id=str(member.org_id),
            org_role=member.role,
            teams=[str(team_id) for team_id, _ in team_rows],
            team_roles={str(team_id): role for team_id, role in team_rows},
        )

        if features.groups_enabled:
            group_rows = (
                await self.session.execute(
                    select(GroupMember.group_id, GroupMember.is_admin)
                    .join(Group, Group.id == GroupMember.group_id)
                    .where(Group.org_id == member.org_id, GroupMember.user_id == user_id)
                    .order_by(GroupMember.group_id)
                )
            ).all()
            if group_rows:
                claims.groups = [str(group_id) for group_id, _ in group_rows]
                admin_of = [str(group_id) for group_id, is_admin in group_rows if is_admin]
                if admin_of:
                    claims.group_admin = admin_of
        return claims
