"""
Tests for domain role assignment.

Covers:
- First user on a domain becomes superuser, later users are plain users
- Idempotence for a user that already has a role
- Roles are independent per domain
- Losing a race against a concurrent call for the same user
"""

from __future__ import annotations

from sqlalchemy import func
from sqlmodel import select

from conftest import DOMAIN, new_user

from uoa_server.core.database import session_scope
from uoa_server.models.domain_role import DomainRole, DomainRoleName
from uoa_server.services.domain_roles import DomainRoleAssigner


class TestEnsure:
    async def test_first_user_is_superuser(self, session, make_user):
        alice = await make_user("alice@example.com")
        role = await DomainRoleAssigner(session).ensure(DOMAIN, alice.id)
        assert role.role == DomainRoleName.SUPERUSER.value

    async def test_second_user_is_plain_user(self, session, make_user):
        alice = await make_user("alice@example.com")
        bob = await make_user("bob@example.com")
        assigner = DomainRoleAssigner(session)
        await assigner.ensure(DOMAIN, alice.id)
        role = await assigner.ensure(DOMAIN, bob.id)
        assert role.role == DomainRoleName.USER.value

    async def test_existing_role_is_returned_unchanged(self, session, make_user):
        alice = await make_user("alice@example.com")
        bob = await make_user("bob@example.com")
        assigner = DomainRoleAssigner(session)
        await assigner.ensure(DOMAIN, alice.id)
        await assigner.ensure(DOMAIN, bob.id)

        again = await assigner.ensure(DOMAIN, alice.id)
        assert again.role == DomainRoleName.SUPERUSER.value
        count = (await session.execute(select(func.count()).select_from(DomainRole))).scalar_one()
        assert count == 2

    async def test_domains_are_independent(self, session, make_user):
        alice = await make_user("alice@example.com")
        bob = await make_user("bob@example.com")
        assigner = DomainRoleAssigner(session)
        await assigner.ensure("one.example.com", alice.id)
        role = await assigner.ensure("two.example.com", bob.id)
        assert role.role == DomainRoleName.SUPERUSER.value

    async def test_domain_is_normalized(self, session, make_user):
        alice = await make_user("alice@example.com")
        assigner = DomainRoleAssigner(session)
        await assigner.ensure("App.Example.com.", alice.id)
        role = await assigner.get(DOMAIN, alice.id)
        assert role is not None
        assert role.domain == DOMAIN

    async def test_one_superuser_per_domain(self, session, make_user):
        users = [await make_user() for _ in range(5)]
        assigner = DomainRoleAssigner(session)
        for user in users:
            await assigner.ensure(DOMAIN, user.id)

        superusers = (
            await session.execute(
                select(func.count())
                .select_from(DomainRole)
                .where(DomainRole.domain == DOMAIN, DomainRole.role == DomainRoleName.SUPERUSER.value)
            )
        ).scalar_one()
        assert superusers == 1


class TestConcurrentSameUser:
    async def test_stale_read_resolves_to_stored_role(self, session_factory):
        """A call that missed the row written by a concurrent call returns that row."""
        alice = new_user("alice@example.com")
        async with session_scope(session_factory) as s:
            s.add(alice)
        async with session_scope(session_factory) as s:
            await DomainRoleAssigner(s).ensure(DOMAIN, alice.id)

        async with session_scope(session_factory) as s:
            assigner = DomainRoleAssigner(s)
            real_get = assigner.get
            calls = []

            async def stale_get(domain, user_id):
                calls.append(user_id)
                if len(calls) == 1:
                    return None
                return await real_get(domain, user_id)

            assigner.get = stale_get
            role = await assigner.ensure(DOMAIN, alice.id)

        assert role.role == DomainRoleName.SUPERUSER.value
        assert len(calls) == 2
