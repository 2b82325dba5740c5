"""
Authorization code → access token exchange.

redeem (one-time) → domain role → org context (when enabled) → sign.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.errors import UnauthorizedError
from uoa_server.core.security import client_id_for_domain
from uoa_server.models.user import User
from uoa_server.services.access_tokens import AccessTokenIssuer
from uoa_server.services.authorization_codes import AuthorizationCodeStore
from uoa_server.services.domain_roles import DomainRoleAssigner
from uoa_server.services.org_context import OrgContextResolver
from uoa_shared.schemas.auth import TokenResponse
from uoa_shared.schemas.config import ClientConfig

log = structlog.get_logger()


async def exchange_code_for_token(
    session: AsyncSession,
    code: str,
    config: ClientConfig,
    config_url: str,
    issuer: AccessTokenIssuer,
    shared_secret: str,
    code_ttl_seconds: int,
) -> TokenResponse:
    store = AuthorizationCodeStore(session, pepper=shared_secret, ttl_seconds=code_ttl_seconds)
    user_id = await store.redeem(code, config.domain, config_url)

    user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise UnauthorizedError("code refers to a missing user", user_id=str(user_id))

    role = await DomainRoleAssigner(session).ensure(config.domain, user.id)
    org = None
    if config.org_features.enabled:
        org = await OrgContextResolver(session).resolve(user.id, config.domain, config.org_features)

    token = issuer.sign(
        user_id=user.id,
        email=user.email,
        domain=config.domain,
        role=role.role,
        client_id=client_id_for_domain(config.domain, shared_secret),
        org=org,
    )
    log.info("token.issued", user_id=str(user.id), domain=config.domain, role=role.role, has_org=org is not None)
    return TokenResponse(access_token=token, expires_in=issuer.ttl_seconds)
