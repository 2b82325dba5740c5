"""
Integration tests for the organisation service.

Tests cover:
- Creation (owner membership, default team, slug collisions)
- One organisation per domain per user
- Membership management and role validation
- Last-owner protection and ownership transfer
- Tenant isolation and delete cascade
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func
from sqlmodel import select

from conftest import DOMAIN

from uoa_server.core.errors import (
    ConflictError,
    ForbiddenError,
    LastOwnerViolation,
    LimitExceeded,
    NotFoundError,
    ValidationFailed,
)
from uoa_server.models.group import Group, GroupMember
from uoa_server.models.organisation import Organisation, OrgMember
from uoa_server.models.team import DEFAULT_TEAM_NAME, Team, TeamMember
from uoa_server.services.groups import GroupService
from uoa_server.services.organisations import OrganisationService
from uoa_shared.schemas.config import OrgFeatures


@pytest.fixture
def orgs(session):
    return OrganisationService(session)


@pytest.fixture
async def acme(orgs, make_user, features):
    """Alice owns Acme; Bob is a member."""
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    org = await orgs.create(DOMAIN, "Acme", alice.id, features)
    await orgs.add_member(org.id, DOMAIN, alice.id, bob.id, "member", features)
    return org, alice, bob


async def _count(session, model, *filters) -> int:
    return (await session.execute(select(func.count()).select_from(model).where(*filters))).scalar_one()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreate:
    async def test_creates_owner_and_default_team(self, session, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        org = await orgs.create(DOMAIN, "Acme", alice.id, features)

        assert org.slug == "acme"
        assert org.owner_id == alice.id
        assert org.domain == DOMAIN

        member = (await session.execute(select(OrgMember).where(OrgMember.org_id == org.id))).scalar_one()
        assert member.user_id == alice.id
        assert member.role == "owner"

        team = (await session.execute(select(Team).where(Team.org_id == org.id))).scalar_one()
        assert team.is_default
        assert team.name == DEFAULT_TEAM_NAME
        assert await _count(session, TeamMember, TeamMember.team_id == team.id, TeamMember.user_id == alice.id) == 1

    async def test_slug_collision_gets_suffix(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        carol = await make_user("carol@example.com")
        first = await orgs.create(DOMAIN, "Acme", alice.id, features)
        second = await orgs.create(DOMAIN, "ACME", carol.id, features)

        assert first.slug == "acme"
        assert second.slug.startswith("acme-")
        assert second.slug != first.slug

    async def test_same_slug_on_another_domain(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        carol = await make_user("carol@example.com")
        await orgs.create(DOMAIN, "Acme", alice.id, features)
        other = await orgs.create("other.example.com", "Acme", carol.id, features)
        assert other.slug == "acme"

    async def test_second_org_on_same_domain_rejected(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        await orgs.create(DOMAIN, "Acme", alice.id, features)
        with pytest.raises(ConflictError):
            await orgs.create(DOMAIN, "Globex", alice.id, features)

    async def test_orgs_on_different_domains_allowed(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        await orgs.create(DOMAIN, "Acme", alice.id, features)
        await orgs.create("other.example.com", "Acme", alice.id, features)

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    async def test_invalid_names(self, orgs, make_user, features, name):
        alice = await make_user("alice@example.com")
        with pytest.raises(ValidationFailed):
            await orgs.create(DOMAIN, name, alice.id, features)

    async def test_reserved_slug_rejected(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        with pytest.raises(ValidationFailed):
            await orgs.create(DOMAIN, "Admin", alice.id, features)

    async def test_creator_must_be_owner(self, orgs, make_user, features):
        alice = await make_user("alice@example.com")
        with pytest.raises(ValidationFailed):
            await orgs.create(DOMAIN, "Acme", alice.id, features, owner_role="admin")

    async def test_unknown_user(self, orgs, features):
        with pytest.raises(NotFoundError):
            await orgs.create(DOMAIN, "Acme", uuid.uuid4(), features)


# ---------------------------------------------------------------------------
# Read / update
# ---------------------------------------------------------------------------

class TestReadUpdate:
    async def test_get_requires_membership(self, orgs, acme, make_user):
        org, alice, _ = acme
        outsider = await make_user("mallory@example.com")
        assert (await orgs.get(org.id, DOMAIN, alice.id)).id == org.id
        with pytest.raises(NotFoundError):
            await orgs.get(org.id, DOMAIN, outsider.id)

    async def test_other_domain_reads_as_not_found(self, orgs, acme):
        org, alice, _ = acme
        with pytest.raises(NotFoundError):
            await orgs.get(org.id, "other.example.com", alice.id)

    async def test_rename_rederives_slug(self, orgs, acme):
        org, alice, _ = acme
        updated = await orgs.update(org.id, DOMAIN, alice.id, "Acme Labs")
        assert updated.name == "Acme Labs"
        assert updated.slug == "acme-labs"

    async def test_rename_keeps_own_slug(self, orgs, acme):
        org, alice, _ = acme
        updated = await orgs.update(org.id, DOMAIN, alice.id, "ACME")
        assert updated.slug == "acme"
        assert updated.name == "ACME"

    async def test_rename_requires_manager(self, orgs, acme):
        org, _, bob = acme
        with pytest.raises(ForbiddenError):
            await orgs.update(org.id, DOMAIN, bob.id, "Bob's Org")


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

class TestMembership:
    async def test_new_member_lands_in_default_team(self, session, acme):
        org, _, bob = acme
        default_team = (
            await session.execute(select(Team).where(Team.org_id == org.id, Team.is_default.is_(True)))
        ).scalar_one()
        assert await _count(session, TeamMember, TeamMember.team_id == default_team.id, TeamMember.user_id == bob.id) == 1

    async def test_role_must_be_configured(self, orgs, acme, make_user, features):
        org, alice, _ = acme
        carol = await make_user("carol@example.com")
        with pytest.raises(ValidationFailed):
            await orgs.add_member(org.id, DOMAIN, alice.id, carol.id, "emperor", features)

    async def test_custom_roles(self, orgs, acme, make_user):
        org, alice, _ = acme
        carol = await make_user("carol@example.com")
        features = OrgFeatures(enabled=True, org_roles=["admin", "billing"])
        member = await orgs.add_member(org.id, DOMAIN, alice.id, carol.id, "billing", features)
        assert member.role == "billing"

    async def test_member_cannot_add(self, orgs, acme, make_user, features):
        org, _, bob = acme
        carol = await make_user("carol@example.com")
        with pytest.raises(ForbiddenError):
            await orgs.add_member(org.id, DOMAIN, bob.id, carol.id, "member", features)

    async def test_user_in_another_org_on_domain_rejected(self, orgs, acme, make_user, features):
        org, alice, _ = acme
        carol = await make_user("carol@example.com")
        await orgs.create(DOMAIN, "Globex", carol.id, features)
        with pytest.raises(ConflictError):
            await orgs.add_member(org.id, DOMAIN, alice.id, carol.id, "member", features)

    async def test_per_domain_user_from_other_domain_rejected(self, orgs, acme, make_user, features):
        org, alice, _ = acme
        stranger = await make_user("carol@example.com", domain="other.example.com")
        with pytest.raises(NotFoundError):
            await orgs.add_member(org.id, DOMAIN, alice.id, stranger.id, "member", features)

    async def test_member_cap(self, orgs, acme, make_user):
        org, alice, _ = acme
        carol = await make_user("carol@example.com")
        features = OrgFeatures(enabled=True, max_members_per_org=2)
        with pytest.raises(LimitExceeded):
            await orgs.add_member(org.id, DOMAIN, alice.id, carol.id, "member", features)

    async def test_list_members(self, orgs, acme):
        org, alice, bob = acme
        rows, next_cursor = await orgs.list_members(org.id, DOMAIN, alice.id)
        assert {row.user_id for row in rows} == {alice.id, bob.id}
        assert next_cursor is None

    async def test_change_role_owner_only(self, orgs, acme, features):
        org, alice, bob = acme
        member = await orgs.change_member_role(org.id, DOMAIN, alice.id, bob.id, "admin", features)
        assert member.role == "admin"
        with pytest.raises(ForbiddenError):
            await orgs.change_member_role(org.id, DOMAIN, bob.id, alice.id, "member", features)

    async def test_remove_member_clears_team_and_group_rows(self, session, orgs, acme, features):
        org, alice, bob = acme
        group = await GroupService(session).create(org.id, DOMAIN, "Engineering", None, features)
        await GroupService(session).add_member(group.id, org.id, DOMAIN, bob.id, features)

        await orgs.remove_member(org.id, DOMAIN, alice.id, bob.id)

        assert await orgs._get_member(org.id, bob.id) is None
        assert await _count(session, TeamMember, TeamMember.user_id == bob.id) == 0
        assert await _count(session, GroupMember, GroupMember.user_id == bob.id) == 0

    async def test_removed_member_can_join_another_org(self, orgs, acme, features):
        org, alice, bob = acme
        await orgs.remove_member(org.id, DOMAIN, alice.id, bob.id)
        other = await orgs.create(DOMAIN, "Bob Industries", bob.id, features)
        assert other.owner_id == bob.id


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------

class TestOwnership:
    async def test_last_owner_cannot_be_removed(self, orgs, acme, features):
        org, alice, bob = acme
        await orgs.change_member_role(org.id, DOMAIN, alice.id, bob.id, "admin", features)
        with pytest.raises(LastOwnerViolation):
            await orgs.remove_member(org.id, DOMAIN, bob.id, alice.id)

    async def test_owner_cannot_be_demoted(self, orgs, acme, features):
        org, alice, _ = acme
        with pytest.raises(LastOwnerViolation):
            await orgs.change_member_role(org.id, DOMAIN, alice.id, alice.id, "admin", features)

    async def test_removing_recorded_owner_hands_over_to_co_owner(self, session, orgs, acme, features):
        org, alice, bob = acme
        await orgs.change_member_role(org.id, DOMAIN, alice.id, bob.id, "owner", features)

        await orgs.remove_member(org.id, DOMAIN, bob.id, alice.id)

        refreshed = (await session.execute(select(Organisation).where(Organisation.id == org.id))).scalar_one()
        assert refreshed.owner_id == bob.id

    async def test_transfer(self, orgs, acme):
        org, alice, bob = acme
        updated = await orgs.transfer_ownership(org.id, DOMAIN, alice.id, bob.id)

        assert updated.owner_id == bob.id
        assert (await orgs._get_member(org.id, bob.id)).role == "owner"
        assert (await orgs._get_member(org.id, alice.id)).role == "admin"

    async def test_transfer_owner_only(self, orgs, acme):
        org, alice, bob = acme
        with pytest.raises(ForbiddenError):
            await orgs.transfer_ownership(org.id, DOMAIN, bob.id, alice.id)

    async def test_transfer_to_non_member(self, orgs, acme, make_user):
        org, alice, _ = acme
        carol = await make_user("carol@example.com")
        with pytest.raises(NotFoundError):
            await orgs.transfer_ownership(org.id, DOMAIN, alice.id, carol.id)

    async def test_transfer_to_self(self, orgs, acme):
        org, alice, _ = acme
        with pytest.raises(ValidationFailed):
            await orgs.transfer_ownership(org.id, DOMAIN, alice.id, alice.id)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDelete:
    async def test_owner_only(self, orgs, acme):
        org, _, bob = acme
        with pytest.raises(ForbiddenError):
            await orgs.delete(org.id, DOMAIN, bob.id)

    async def test_cascade(self, session, orgs, acme, features):
        org, alice, bob = acme
        group = await GroupService(session).create(org.id, DOMAIN, "Engineering", None, features)
        await GroupService(session).add_member(group.id, org.id, DOMAIN, bob.id, features)

        await orgs.delete(org.id, DOMAIN, alice.id)

        assert await _count(session, Organisation, Organisation.id == org.id) == 0
        assert await _count(session, OrgMember, OrgMember.org_id == org.id) == 0
        assert await _count(session, Team, Team.org_id == org.id) == 0
        assert await _count(session, TeamMember) == 0
        assert await _count(session, Group, Group.org_id == org.id) == 0
        assert await _count(session, GroupMember) == 0

        # Everyone is free to join or create another organisation.
        again = await orgs.create(DOMAIN, "Acme", alice.id, features)
        assert again.slug == "acme"
