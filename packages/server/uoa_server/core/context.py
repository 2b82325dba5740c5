"""
Application context.

Everything that would otherwise be a process-wide singleton lives here: the
database engine and session factory, the client-config resolver, the rate
limiter, the token issuer and the credential verifiers. ``create_app`` builds
one context at startup and stores it on ``app.state.context``; request
handlers reach it through ``uoa_server.api.deps.get_context``. Tests build
their own context with substitutes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from uoa_server.core.config import Settings
from uoa_server.core.database import create_engine, create_session_factory
from uoa_server.services.access_tokens import AccessTokenIssuer
from uoa_server.services.client_config import ConfigResolver, HttpConfigResolver
from uoa_server.services.rate_limit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from uoa_server.services.verifiers import (
    BcryptPasswordVerifier,
    PasswordVerifier,
    PyotpTotpVerifier,
    SocialProfileExchanger,
    TotpVerifier,
)

log = structlog.get_logger()


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: sessionmaker
    config_resolver: ConfigResolver
    rate_limiter: RateLimiter
    token_issuer: AccessTokenIssuer
    password_verifier: PasswordVerifier = field(default_factory=BcryptPasswordVerifier)
    totp_verifier: TotpVerifier = field(default_factory=PyotpTotpVerifier)
    social_exchanger: Optional[SocialProfileExchanger] = None

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "AppContext":
        """Build the production context; keyword overrides replace single collaborators."""
        engine = overrides.pop("engine", None) or create_engine(settings.database_url, echo=settings.debug)

        if "rate_limiter" not in overrides:
            if settings.rate_limit_backend == "redis":
                overrides["rate_limiter"] = RedisRateLimiter.from_url(settings.redis_url)
            else:
                overrides["rate_limiter"] = InMemoryRateLimiter()

        overrides.setdefault(
            "config_resolver",
            HttpConfigResolver(
                shared_secret=settings.shared_secret,
                audience=settings.auth_service_identifier,
                timeout=settings.config_fetch_timeout_seconds,
            ),
        )
        overrides.setdefault(
            "token_issuer",
            AccessTokenIssuer(
                secret=settings.shared_secret,
                issuer=settings.auth_service_identifier,
                ttl_minutes=settings.access_token_ttl_minutes,
            ),
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            **overrides,
        )

    async def aclose(self) -> None:
        await self.config_resolver.close()
        await self.rate_limiter.close()
        await self.engine.dispose()
        log.info("context.closed")
