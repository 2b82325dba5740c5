"""
Registration-time org placement.

A client config may map email domains to an organisation (and optionally a
team). A newly created user whose email matches is added to that org as a
``member``, in the mapped team or the org's default team. Placement never
fails the login: every reason it cannot happen is reported as a skip.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import uuid

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.models.organisation import OrgMember
from uoa_server.models.team import Team, TeamMember, TeamRole
from uoa_server.models.user import User
from uoa_server.services.base import OrgScopedService, select_org
from uoa_shared.schemas.common import OrgRole
from uoa_shared.schemas.config import ClientConfig, RegistrationDomainMapping

log = structlog.get_logger()

PLACED = "placed"
SKIPPED = "skipped"


@dataclass(frozen=True)
class PlacementResult:
    status: str
    reason: Optional[str] = None
    org_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None

    @property
    def placed(self) -> bool:
        return self.status == PLACED


def _skip(reason: str) -> PlacementResult:
    return PlacementResult(status=SKIPPED, reason=reason)


def email_domain_of(email: str) -> Optional[str]:
    _, at, domain = email.strip().lower().rpartition("@")
    if not at or not domain:
        return None
    return domain


def find_mapping(config: ClientConfig, email_domain: str) -> Optional[RegistrationDomainMapping]:
    for mapping in config.registration_domain_mapping:
        if mapping.email_domain == email_domain:
            return mapping
    return None


class OrgPlacementService(OrgScopedService):

    async def place(self, user: User, config: ClientConfig) -> PlacementResult:
        features = config.org_features
        if not features.enabled:
            return _skip("org_features_disabled")

        email_domain = email_domain_of(user.email)
        if email_domain is None:
            return _skip("invalid_email")

        mapping = find_mapping(config, email_domain)
        if mapping is None:
            return _skip("mapping_not_found")

        result = await self._place(user, config, mapping)
        if result.placed:
            log.info(
                "org_placement.placed",
                domain=config.domain,
                user_id=str(user.id),
                org_id=str(result.org_id),
                team_id=str(result.team_id),
            )
        elif result.reason != "already_member_for_domain":
            # The remaining reasons are client config mistakes.
            log.warning(
                "org_placement.skipped",
                domain=config.domain,
                user_id=str(user.id),
                org_id=str(mapping.org_id),
                reason=result.reason,
            )
        return result

    async def _place(
        self, user: User, config: ClientConfig, mapping: RegistrationDomainMapping
    ) -> PlacementResult:
        features = config.org_features
        role = OrgRole.MEMBER.value
        if role not in features.org_roles:
            return _skip("member_role_not_allowed")

        org = (
            await self.session.execute(select_org(mapping.org_id, config.domain, for_update=True))
        ).scalar_one_or_none()
        if org is None:
            return _skip("org_not_found")

        if mapping.team_id is not None:
            team_filter = Team.id == mapping.team_id
        else:
            team_filter = Team.is_default.is_(True)
        team = (
            await self.session.execute(select(Team).where(Team.org_id == org.id, team_filter))
        ).scalar_one_or_none()
        if team is None:
            return _skip("team_not_found")

        if await self._membership_on_domain(org.domain, user.id) is not None:
            return _skip("already_member_for_domain")
        if await self._count(OrgMember.id, OrgMember.org_id == org.id) >= features.max_members_per_org:
            return _skip("member_limit_reached")

        try:
            async with self.session.begin_nested():
                self.session.add(OrgMember(org_id=org.id, domain=org.domain, user_id=user.id, role=role))
                self.session.add(TeamMember(team_id=team.id, user_id=user.id, team_role=TeamRole.MEMBER.value))
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            return _skip("already_member_for_domain")

        return PlacementResult(status=PLACED, org_id=org.id, team_id=team.id)
