"""
Shared fixtures for server tests.

Each test gets its own file-backed SQLite database (SAVEPOINT and partial
unique indexes behave as they do on Postgres), a session on it, and helpers
for building users and client configs.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from uoa_server.core.config import load_settings
from uoa_server.core.context import AppContext
from uoa_server.core.database import create_engine, create_session_factory, init_db, session_scope
from uoa_server.core.errors import ValidationFailed
from uoa_server.core.security import domain_hash, hash_password
from uoa_server.main import create_app
from uoa_server.models.user import User
from uoa_server.services.access_tokens import AccessTokenIssuer
from uoa_server.services.rate_limit import InMemoryRateLimiter
from uoa_shared.schemas.config import ClientConfig, OrgFeatures

SHARED_SECRET = "test-shared-secret-" + "0123456789abcdef" * 3
ISSUER = "uoa-auth-service"
DOMAIN = "app.example.com"
CONFIG_URL = "https://app.example.com/uoa-config"
REDIRECT_URL = "https://app.example.com/callback"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    eng = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'uoa.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


def new_user(email: str | None = None, password: str | None = None, domain: str | None = None, **kwargs) -> User:
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    return User(
        email=email,
        domain=domain,
        user_key=f"{domain}|{email}" if domain else email,
        password_hash=hash_password(password) if password else None,
        **kwargs,
    )


@pytest.fixture
def make_user(session):
    """Factory: ``await make_user("ada@example.com", password="...")``."""

    async def _make(*args, **kwargs) -> User:
        user = new_user(*args, **kwargs)
        session.add(user)
        await session.flush()
        return user

    return _make


@pytest.fixture
def seed_user(session_factory):
    """Like ``make_user`` but committed in its own session, for HTTP tests."""

    async def _seed(*args, **kwargs) -> User:
        user = new_user(*args, **kwargs)
        async with session_scope(session_factory) as s:
            s.add(user)
        return user

    return _seed


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@pytest.fixture
def features():
    return OrgFeatures(enabled=True, groups_enabled=True)


def make_config(domain: str = DOMAIN, **org_features) -> ClientConfig:
    org_features.setdefault("enabled", True)
    org_features.setdefault("groups_enabled", True)
    return ClientConfig(
        domain=domain,
        redirect_urls=[REDIRECT_URL, "https://app.example.com/alt"],
        enabled_auth_methods=["email_password"],
        allowed_social_providers=["google"],
        org_features=OrgFeatures(**org_features),
    )


@pytest.fixture
def client_config():
    return make_config()


class FakeConfigResolver:
    """Serves pre-parsed configs by URL; unknown URLs fail like a bad fetch."""

    def __init__(self, configs: dict[str, ClientConfig]):
        self.configs = configs

    async def resolve(self, config_url: str) -> ClientConfig:
        try:
            return self.configs[config_url]
        except KeyError as exc:
            raise ValidationFailed("unknown config url") from exc

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return load_settings(
        shared_secret=SHARED_SECRET,
        auth_service_identifier=ISSUER,
        database_url="sqlite+aiosqlite://",
        log_format="console",
    )


@pytest.fixture
def token_issuer():
    return AccessTokenIssuer(secret=SHARED_SECRET, issuer=ISSUER)


@pytest.fixture
def resolver(client_config):
    return FakeConfigResolver({CONFIG_URL: client_config})


@pytest.fixture
def app_context(settings, engine, session_factory, resolver, token_issuer):
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        config_resolver=resolver,
        rate_limiter=InMemoryRateLimiter(),
        token_issuer=token_issuer,
    )


@pytest.fixture
async def client(app_context):
    app = create_app(app_context)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def backend_headers():
    return {"Authorization": f"Bearer {domain_hash(DOMAIN, SHARED_SECRET)}"}


@pytest.fixture
def config_params():
    return {"config_url": CONFIG_URL}
