"""
Organisation service: tenant lifecycle, membership and ownership.

Every invariant-bearing mutation runs inside one savepoint so a failure part
way through leaves nothing behind.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    LastOwnerViolation,
    LimitExceeded,
    NotFoundError,
    ValidationFailed,
)
from uoa_server.models.base import utcnow
from uoa_server.models.group import Group, GroupMember
from uoa_server.models.organisation import Organisation, OrgMember
from uoa_server.models.team import DEFAULT_TEAM_NAME, Team, TeamMember, TeamRole
from uoa_server.services.base import OrgScopedService, clean_name
from uoa_server.services.pagination import paginate
from uoa_server.services.slugs import MAX_SLUG_ATTEMPTS, base_slug, slug_candidates, with_random_suffix
from uoa_shared.schemas.common import OrgRole, normalize_domain
from uoa_shared.schemas.config import OrgFeatures

log = structlog.get_logger()

OWNER = OrgRole.OWNER.value
ADMIN = OrgRole.ADMIN.value


def _team_ids(org_id: uuid.UUID):
    return select(Team.id).where(Team.org_id == org_id)


def _group_ids(org_id: uuid.UUID):
    return select(Group.id).where(Group.org_id == org_id)


class OrganisationService(OrgScopedService):

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(
        self,
        domain: str,
        name: str,
        owner_user_id: uuid.UUID,
        features: OrgFeatures,
        owner_role: str = OWNER,
    ) -> Organisation:
        """Create an organisation with its owner membership and default team."""
        domain = normalize_domain(domain)
        name = clean_name(name)
        if owner_role != OWNER or owner_role not in features.org_roles:
            raise ValidationFailed("organisation creator must hold the owner role", role=owner_role)

        await self._get_user(owner_user_id)
        if await self._membership_on_domain(domain, owner_user_id) is not None:
            raise ConflictError("user already belongs to an organisation on this domain")

        try:
            async with self.session.begin_nested():
                org = await self._insert_with_unique_slug(domain, name, owner_user_id)
                team = Team(org_id=org.id, name=DEFAULT_TEAM_NAME, is_default=True)
                self.session.add(
                    OrgMember(org_id=org.id, domain=domain, user_id=owner_user_id, role=OWNER)
                )
                self.session.add(team)
                await self.session.flush()
                self.session.add(
                    TeamMember(team_id=team.id, user_id=owner_user_id, team_role=TeamRole.MEMBER.value)
                )
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("organisation creation conflicted", domain=domain) from exc

        log.info("org.created", org_id=str(org.id), domain=domain, slug=org.slug, owner_id=str(owner_user_id))
        return org

    async def _insert_with_unique_slug(
        self, domain: str, name: str, owner_user_id: uuid.UUID
    ) -> Organisation:
        for slug in slug_candidates(name):
            org = Organisation(domain=domain, name=name, slug=slug, owner_id=owner_user_id)
            try:
                async with self.session.begin_nested():
                    self.session.add(org)
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                log.debug("org.slug_collision", domain=domain, slug=slug)
                continue
            return org
        raise InternalError("slug collision retries exhausted", domain=domain, name=name)

    async def get(self, org_id: uuid.UUID, domain: str, caller_user_id: uuid.UUID) -> Organisation:
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        return org

    async def list_orgs(
        self, domain: str, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> tuple[list[Organisation], Optional[str]]:
        return await paginate(
            self.session,
            Organisation,
            Organisation.domain == normalize_domain(domain),
            cursor=cursor,
            limit=limit,
        )

    async def update(
        self, org_id: uuid.UUID, domain: str, caller_user_id: uuid.UUID, name: str
    ) -> Organisation:
        """Rename the organisation; the slug is re-derived from the new name."""
        name = clean_name(name)
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)

        base = base_slug(name)
        if org.slug == base:
            candidates = [base]
        else:
            candidates = [base] + [with_random_suffix(base) for _ in range(MAX_SLUG_ATTEMPTS - 1)]

        for slug in candidates:
            try:
                async with self.session.begin_nested():
                    await self.session.execute(
                        update(Organisation)
                        .where(Organisation.id == org.id)
                        .values(name=name, slug=slug, updated_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                continue
            await self.session.refresh(org)
            log.info("org.updated", org_id=str(org.id), slug=org.slug)
            return org
        raise InternalError("slug collision retries exhausted", org_id=str(org.id))

    async def delete(self, org_id: uuid.UUID, domain: str, caller_user_id: uuid.UUID) -> None:
        """Owner-only. Removes memberships, teams, groups and the organisation."""
        org = await self._get_org(org_id, domain, for_update=True)
        if org.owner_id != caller_user_id:
            raise ForbiddenError("only the owner can delete an organisation", org_id=str(org.id))

        async with self.session.begin_nested():
            for stmt in (
                delete(GroupMember).where(GroupMember.group_id.in_(_group_ids(org.id))),
                delete(TeamMember).where(TeamMember.team_id.in_(_team_ids(org.id))),
                delete(Team).where(Team.org_id == org.id),
                delete(Group).where(Group.org_id == org.id),
                delete(OrgMember).where(OrgMember.org_id == org.id),
                delete(Organisation).where(Organisation.id == org.id),
            ):
                await self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.expunge(org)
        log.info("org.deleted", org_id=str(org_id), domain=org.domain)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def list_members(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> tuple[list[OrgMember], Optional[str]]:
        org = await self._get_org(org_id, domain)
        await self._require_member(org.id, caller_user_id)
        return await paginate(
            self.session, OrgMember, OrgMember.org_id == org.id, cursor=cursor, limit=limit
        )

    async def add_member(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        role: str,
        features: OrgFeatures,
    ) -> OrgMember:
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)

        role = role.strip()
        if role not in features.org_roles:
            raise ValidationFailed("role not allowed", role=role)

        if await self._membership_on_domain(org.domain, target_user_id) is not None:
            raise ConflictError("user already belongs to an organisation on this domain")

        count = await self._count(OrgMember.id, OrgMember.org_id == org.id)
        if count >= features.max_members_per_org:
            raise LimitExceeded("organisation member limit reached", org_id=str(org.id))

        target = await self._get_user(target_user_id)
        if target.domain is not None and target.domain != org.domain:
            raise NotFoundError("user not found on this domain", user_id=str(target_user_id))

        default_team = await self._default_team(org.id)
        member = OrgMember(org_id=org.id, domain=org.domain, user_id=target_user_id, role=role)
        try:
            async with self.session.begin_nested():
                self.session.add(member)
                self.session.add(
                    TeamMember(team_id=default_team.id, user_id=target_user_id, team_role=TeamRole.MEMBER.value)
                )
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            raise ConflictError("user already belongs to an organisation on this domain") from exc

        log.info("org.member_added", org_id=str(org.id), user_id=str(target_user_id), role=role)
        return member

    async def change_member_role(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        role: str,
        features: OrgFeatures,
    ) -> OrgMember:
        org = await self._get_org(org_id, domain, for_update=True)
        if org.owner_id != caller_user_id:
            raise ForbiddenError("only the owner can change member roles", org_id=str(org.id))

        role = role.strip()
        if role not in features.org_roles:
            raise ValidationFailed("role not allowed", role=role)

        target = await self._get_member(org.id, target_user_id)
        if target is None:
            raise NotFoundError("member not found", user_id=str(target_user_id))
        if target_user_id == org.owner_id and role != OWNER:
            raise LastOwnerViolation("transfer ownership before demoting the owner", org_id=str(org.id))

        target.role = role
        self.session.add(target)
        await self.session.flush()
        log.info("org.member_role_changed", org_id=str(org.id), user_id=str(target_user_id), role=role)
        return target

    async def remove_member(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
    ) -> None:
        """Remove a member and their team and group memberships in this org."""
        org = await self._get_org(org_id, domain, for_update=True)
        await self._require_manager(org.id, caller_user_id)

        target = await self._get_member(org.id, target_user_id)
        if target is None:
            raise NotFoundError("member not found", user_id=str(target_user_id))

        if target.role == OWNER:
            owners = await self._count(OrgMember.id, OrgMember.org_id == org.id, OrgMember.role == OWNER)
            if owners <= 1:
                raise LastOwnerViolation("cannot remove the last owner", org_id=str(org.id))

        async with self.session.begin_nested():
            if org.owner_id == target_user_id:
                successor = (
                    await self.session.execute(
                        select(OrgMember)
                        .where(
                            OrgMember.org_id == org.id,
                            OrgMember.role == OWNER,
                            OrgMember.user_id != target_user_id,
                        )
                        .order_by(OrgMember.created_at, OrgMember.id)
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if successor is None:
                    raise LastOwnerViolation("recorded owner has no successor", org_id=str(org.id))
                org.owner_id = successor.user_id
                self.session.add(org)
                await self.session.flush()

            for stmt in (
                delete(TeamMember).where(
                    TeamMember.user_id == target_user_id,
                    TeamMember.team_id.in_(_team_ids(org.id)),
                ),
                delete(GroupMember).where(
                    GroupMember.user_id == target_user_id,
                    GroupMember.group_id.in_(_group_ids(org.id)),
                ),
                delete(OrgMember).where(OrgMember.id == target.id),
            ):
                await self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.expunge(target)
        log.info("org.member_removed", org_id=str(org.id), user_id=str(target_user_id))

    async def transfer_ownership(
        self,
        org_id: uuid.UUID,
        domain: str,
        caller_user_id: uuid.UUID,
        new_owner_user_id: uuid.UUID,
    ) -> Organisation:
        if caller_user_id == new_owner_user_id:
            raise ValidationFailed("new owner is already the owner")
        org = await self._get_org(org_id, domain, for_update=True)
        if org.owner_id != caller_user_id:
            raise ForbiddenError("only the owner can transfer ownership", org_id=str(org.id))

        new_owner = await self._get_member(org.id, new_owner_user_id)
        if new_owner is None:
            raise NotFoundError("new owner is not a member", user_id=str(new_owner_user_id))
        old_owner = await self._get_member(org.id, caller_user_id)
        if old_owner is None:
            raise InternalError("recorded owner has no membership row", org_id=str(org.id))

        async with self.session.begin_nested():
            org.owner_id = new_owner_user_id
            new_owner.role = OWNER
            old_owner.role = ADMIN
            self.session.add_all([org, new_owner, old_owner])

        log.info(
            "org.ownership_transferred",
            org_id=str(org.id),
            from_user=str(caller_user_id),
            to_user=str(new_owner_user_id),
        )
        return org
