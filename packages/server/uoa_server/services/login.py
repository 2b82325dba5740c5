"""
Login completion: verify credentials, then issue a one-time authorization code.

All credential failures look identical to the caller; the reason is logged.
Every success writes a login log row. A user created by social login may be
placed straight into an organisation (see ``org_placement``).
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.core.errors import UnauthorizedError, ValidationFailed
from uoa_server.models.user import User
from uoa_server.services.authorization_codes import (
    AuthorizationCodeStore,
    build_redirect_to_url,
    select_redirect_url,
)
from uoa_server.services.login_logs import LoginLogService
from uoa_server.services.org_placement import OrgPlacementService
from uoa_server.services.users import build_user_identity, find_or_create_user, get_user_by_key
from uoa_server.services.verifiers import PasswordVerifier, SocialProfile, TotpVerifier
from uoa_shared.schemas.auth import LoginResponse
from uoa_shared.schemas.config import ClientConfig

log = structlog.get_logger()

EMAIL_PASSWORD = "email_password"


class LoginService:
    def __init__(
        self,
        session: AsyncSession,
        code_store: AuthorizationCodeStore,
        password_verifier: PasswordVerifier,
        totp_verifier: TotpVerifier,
        login_logs: Optional[LoginLogService] = None,
    ):
        self.session = session
        self.code_store = code_store
        self.password_verifier = password_verifier
        self.totp_verifier = totp_verifier
        self.login_logs = login_logs or LoginLogService(session)

    async def _issue(
        self,
        user: User,
        config: ClientConfig,
        config_url: str,
        redirect_url: Optional[str],
        auth_method: str,
        ip: Optional[str],
        user_agent: Optional[str],
    ) -> LoginResponse:
        target = select_redirect_url(config.redirect_urls, redirect_url)
        code = await self.code_store.issue(user.id, config.domain, config_url, target)
        await self.login_logs.record(user.id, user.email, config.domain, auth_method, ip=ip, user_agent=user_agent)
        return LoginResponse(code=code, redirect_to=build_redirect_to_url(target, code))

    async def complete_password_login(
        self,
        email: str,
        password: str,
        config: ClientConfig,
        config_url: str,
        redirect_url: Optional[str] = None,
        totp_code: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResponse:
        if EMAIL_PASSWORD not in config.enabled_auth_methods:
            raise ValidationFailed("password login disabled for domain", domain=config.domain)

        identity = build_user_identity(config.user_scope, email, config.domain)
        user = await get_user_by_key(self.session, identity.user_key)
        if user is None or not self.password_verifier.verify(password, user.password_hash):
            log.info("login.failed", domain=config.domain, reason="credentials")
            raise UnauthorizedError("authentication failed")

        if user.twofa_enabled:
            if not totp_code or not self.totp_verifier.verify(totp_code, user.twofa_secret or ""):
                log.info("login.failed", domain=config.domain, user_id=str(user.id), reason="totp")
                raise UnauthorizedError("authentication failed")

        response = await self._issue(user, config, config_url, redirect_url, EMAIL_PASSWORD, ip, user_agent)
        log.info("login.succeeded", domain=config.domain, user_id=str(user.id), method=EMAIL_PASSWORD)
        return response

    async def complete_social_login(
        self,
        profile: SocialProfile,
        config: ClientConfig,
        config_url: str,
        redirect_url: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResponse:
        if profile.provider not in config.allowed_social_providers:
            raise ValidationFailed("social provider not allowed", provider=profile.provider)
        if not profile.email_verified:
            log.info("login.failed", domain=config.domain, reason="email_unverified")
            raise UnauthorizedError("authentication failed")

        identity = build_user_identity(config.user_scope, profile.email, config.domain)
        user, created = await find_or_create_user(
            self.session, identity, name=profile.name, email_verified=True
        )
        if created:
            await OrgPlacementService(self.session).place(user, config)
        response = await self._issue(user, config, config_url, redirect_url, profile.provider, ip, user_agent)
        log.info("login.succeeded", domain=config.domain, user_id=str(user.id), method=profile.provider)
        return response
