"""
FastAPI dependencies: application context, sessions and the trust tiers.

Trust tiers:
- config: every client call names a ``config_url`` whose signed config is
  fetched and verified.
- backend: ``Authorization: Bearer sha256(domain + shared_secret)`` proves the
  caller is the client product's backend. On its own this is the elevated
  tier used by the internal group API.
- user: ``X-UOA-Access-Token`` carries an access token minted for the same
  domain. Ordinary org management requires backend + user.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.core.context import AppContext
from uoa_server.core.errors import NotFoundError, UnauthorizedError, ValidationFailed
from uoa_server.core.security import constant_time_equals, domain_hash
from uoa_shared.schemas.auth import AccessTokenClaims
from uoa_shared.schemas.common import normalize_domain
from uoa_shared.schemas.config import ClientConfig, OrgFeatures


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_session(
    context: AppContext = Depends(get_context),
) -> AsyncGenerator[AsyncSession, None]:
    """One transaction per request: commit on success, roll back on error."""
    async with context.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Config tier
# ---------------------------------------------------------------------------

@dataclass
class RequestConfig:
    config: ClientConfig
    config_url: str

    @property
    def domain(self) -> str:
        return self.config.domain

    @property
    def features(self) -> OrgFeatures:
        return self.config.org_features


async def get_request_config(
    config_url: str = Query(..., min_length=1),
    domain: Optional[str] = Query(None),
    context: AppContext = Depends(get_context),
) -> RequestConfig:
    config = await context.config_resolver.resolve(config_url)
    if domain is not None and normalize_domain(domain) != config.domain:
        raise ValidationFailed("domain does not match client config", domain=domain)
    return RequestConfig(config=config, config_url=config_url)


# ---------------------------------------------------------------------------
# Backend tier (domain hash)
# ---------------------------------------------------------------------------

async def require_domain_hash(
    authorization: Optional[str] = Header(None),
    request_config: RequestConfig = Depends(get_request_config),
    context: AppContext = Depends(get_context),
) -> RequestConfig:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("missing domain hash bearer")
    presented = authorization[len("bearer "):].strip()
    expected = domain_hash(request_config.domain, context.settings.shared_secret)
    if not constant_time_equals(presented, expected):
        raise UnauthorizedError("domain hash mismatch", domain=request_config.domain)
    return request_config


async def require_org_features(
    request_config: RequestConfig = Depends(require_domain_hash),
) -> RequestConfig:
    if not request_config.features.enabled:
        raise NotFoundError("org features disabled", domain=request_config.domain)
    return request_config


async def require_groups_enabled(
    request_config: RequestConfig = Depends(require_org_features),
) -> RequestConfig:
    if not request_config.features.groups_enabled:
        raise NotFoundError("groups disabled", domain=request_config.domain)
    return request_config


# ---------------------------------------------------------------------------
# User tier (access token)
# ---------------------------------------------------------------------------

@dataclass
class OrgCaller:
    user_id: uuid.UUID
    claims: AccessTokenClaims
    request_config: RequestConfig

    @property
    def domain(self) -> str:
        return self.request_config.domain

    @property
    def features(self) -> OrgFeatures:
        return self.request_config.features


async def get_org_caller(
    x_uoa_access_token: Optional[str] = Header(None, alias="X-UOA-Access-Token"),
    request_config: RequestConfig = Depends(require_org_features),
    context: AppContext = Depends(get_context),
) -> OrgCaller:
    if not x_uoa_access_token:
        raise UnauthorizedError("missing access token")
    claims = context.token_issuer.verify(x_uoa_access_token)
    if claims.domain != request_config.domain:
        raise UnauthorizedError("access token minted for another domain", domain=claims.domain)
    try:
        user_id = uuid.UUID(claims.sub)
    except ValueError as exc:
        raise UnauthorizedError("access token subject is not a user id") from exc
    return OrgCaller(user_id=user_id, claims=claims, request_config=request_config)
