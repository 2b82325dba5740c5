"""
Tests for login logs and the domain user listing.

Covers:
- Recording (normalisation, user agent truncation)
- Retention: prune on write, explicit prune, reads hide expired rows
- Per-domain isolation and pagination
- Domain users: role holders only, no secrets
- The periodic retention task
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func
from sqlmodel import select

from conftest import CONFIG_URL, DOMAIN, SHARED_SECRET

from uoa_server.core.database import session_scope
from uoa_server.core.errors import UnauthorizedError, ValidationFailed
from uoa_server.models.login_log import LoginLog
from uoa_server.services.authorization_codes import AuthorizationCodeStore
from uoa_server.services.domain_roles import DomainRoleAssigner
from uoa_server.services.domain_users import list_domain_users
from uoa_server.services.login import LoginService
from uoa_server.services.login_logs import USER_AGENT_MAX_LENGTH, LoginLogService
from uoa_server.services.verifiers import BcryptPasswordVerifier, PyotpTotpVerifier, SocialProfile
from uoa_server.tasks.login_log_retention import prune_login_logs

OTHER_DOMAIN = "other.example.com"
PASSWORD = "correct horse battery staple"


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def logs(session, clock):
    return LoginLogService(session, retention_days=90, now=clock)


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(LoginLog))).scalar_one()


class TestRecord:
    async def test_normalises_fields(self, logs, make_user):
        alice = await make_user("alice@example.com")
        entry = await logs.record(alice.id, " Alice@Example.COM ", "App.Example.com", "email_password", ip="10.0.0.1")

        assert entry.email == "alice@example.com"
        assert entry.domain == DOMAIN
        assert entry.auth_method == "email_password"
        assert entry.ip == "10.0.0.1"
        assert entry.user_agent is None

    async def test_truncates_user_agent(self, logs, make_user):
        alice = await make_user("alice@example.com")
        entry = await logs.record(alice.id, alice.email, DOMAIN, "google", user_agent="x" * 2000)
        assert len(entry.user_agent) == USER_AGENT_MAX_LENGTH


class TestRetention:
    async def test_write_prunes_expired_rows(self, session, logs, clock, make_user):
        alice = await make_user("alice@example.com")
        await logs.record(alice.id, alice.email, DOMAIN, "email_password")
        assert await _count(session) == 1

        clock.now += timedelta(days=91)
        await logs.record(alice.id, alice.email, DOMAIN, "email_password")
        assert await _count(session) == 1

    async def test_prune_keeps_rows_inside_window(self, session, logs, clock, make_user):
        alice = await make_user("alice@example.com")
        await logs.record(alice.id, alice.email, DOMAIN, "email_password")
        clock.now += timedelta(days=30)
        await logs.record(alice.id, alice.email, DOMAIN, "email_password")

        clock.now += timedelta(days=70)
        assert await logs.prune() == 1
        assert await _count(session) == 1
        assert await logs.prune() == 0

    async def test_list_hides_rows_past_cutoff(self, session, make_user):
        alice = await make_user("alice@example.com")
        old = datetime.now(timezone.utc) - timedelta(days=200)
        session.add(LoginLog(user_id=alice.id, email=alice.email, domain=DOMAIN, auth_method="google", created_at=old))
        await session.flush()

        rows, next_cursor = await LoginLogService(session).list_for_domain(DOMAIN)
        assert rows == []
        assert next_cursor is None


class TestListForDomain:
    async def test_domains_are_isolated(self, logs, make_user):
        alice = await make_user("alice@example.com")
        await logs.record(alice.id, alice.email, DOMAIN, "email_password")
        await logs.record(alice.id, alice.email, OTHER_DOMAIN, "email_password")

        rows, _ = await logs.list_for_domain(DOMAIN)
        assert [r.domain for r in rows] == [DOMAIN]

    async def test_newest_first_with_cursor(self, logs, clock, make_user):
        alice = await make_user("alice@example.com")
        recorded = []
        for _ in range(5):
            recorded.append(await logs.record(alice.id, alice.email, DOMAIN, "email_password"))
            clock.now += timedelta(minutes=1)

        first, cursor = await logs.list_for_domain(DOMAIN, limit=3)
        assert cursor is not None
        second, cursor = await logs.list_for_domain(DOMAIN, cursor=cursor, limit=3)
        assert cursor is None

        assert [r.id for r in first + second] == [r.id for r in reversed(recorded)]


class TestLoginWritesLog:
    @pytest.fixture
    def login(self, session, logs):
        store = AuthorizationCodeStore(session, pepper=SHARED_SECRET)
        return LoginService(session, store, BcryptPasswordVerifier(), PyotpTotpVerifier(), login_logs=logs)

    async def test_password_login(self, session, login, make_user, client_config):
        alice = await make_user("alice@example.com", password=PASSWORD)
        await login.complete_password_login(
            "alice@example.com", PASSWORD, client_config, CONFIG_URL, ip="10.0.0.7", user_agent="pytest"
        )

        entry = (await session.execute(select(LoginLog))).scalar_one()
        assert entry.user_id == alice.id
        assert entry.auth_method == "email_password"
        assert entry.ip == "10.0.0.7"
        assert entry.user_agent == "pytest"

    async def test_social_login(self, session, login, client_config):
        profile = SocialProfile(provider="google", email="dana@example.com", email_verified=True)
        await login.complete_social_login(profile, client_config, CONFIG_URL)

        entry = (await session.execute(select(LoginLog))).scalar_one()
        assert entry.auth_method == "google"
        assert entry.domain == DOMAIN

    async def test_failed_login_writes_nothing(self, session, login, make_user, client_config):
        await make_user("alice@example.com", password=PASSWORD)
        with pytest.raises(UnauthorizedError):
            await login.complete_password_login("alice@example.com", "wrong", client_config, CONFIG_URL)
        assert await _count(session) == 0


class TestDomainUsers:
    async def test_lists_role_holders(self, session, make_user):
        alice = await make_user("alice@example.com", name="Alice")
        bob = await make_user("bob@example.com")
        await make_user("carol@example.com")
        assigner = DomainRoleAssigner(session)
        await assigner.ensure(DOMAIN, alice.id)
        await assigner.ensure(DOMAIN, bob.id)
        await assigner.ensure(OTHER_DOMAIN, bob.id)

        users, next_cursor = await list_domain_users(session, DOMAIN)
        assert next_cursor is None
        by_email = {u.email: u for u in users}
        assert set(by_email) == {"alice@example.com", "bob@example.com"}
        assert by_email["alice@example.com"].role == "superuser"
        assert by_email["alice@example.com"].name == "Alice"
        assert by_email["bob@example.com"].role == "user"

    async def test_no_secrets_in_response(self, session, make_user):
        alice = await make_user("alice@example.com", password=PASSWORD)
        await DomainRoleAssigner(session).ensure(DOMAIN, alice.id)

        users, _ = await list_domain_users(session, DOMAIN)
        dumped = users[0].model_dump()
        assert "password_hash" not in dumped
        assert "twofa_secret" not in dumped
        assert "user_key" not in dumped

    async def test_pages_cover_every_user_once(self, session, make_user):
        assigner = DomainRoleAssigner(session)
        expected = set()
        for i in range(5):
            user = await make_user(f"user{i}@example.com")
            await assigner.ensure(DOMAIN, user.id)
            expected.add(user.id)

        seen = []
        cursor = None
        while True:
            page, cursor = await list_domain_users(session, DOMAIN, cursor=cursor, limit=2)
            seen.extend(u.id for u in page)
            if cursor is None:
                break
        assert len(seen) == 5
        assert set(seen) == expected

    async def test_empty_domain_rejected(self, session):
        with pytest.raises(ValidationFailed):
            await list_domain_users(session, "  ")


class TestRetentionTask:
    async def test_prune_login_logs(self, app_context, session_factory, seed_user):
        alice = await seed_user("alice@example.com")
        old = datetime.now(timezone.utc) - timedelta(days=app_context.settings.log_retention_days + 1)
        async with session_scope(session_factory) as s:
            s.add(LoginLog(user_id=alice.id, email=alice.email, domain=DOMAIN, auth_method="google", created_at=old))
            s.add(LoginLog(user_id=alice.id, email=alice.email, domain=DOMAIN, auth_method="google"))

        assert await prune_login_logs(app_context) == 1
        async with session_scope(session_factory) as s:
            assert await _count(s) == 1
