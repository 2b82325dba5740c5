"""
Auth endpoints.

POST /auth/login              — email/password (+TOTP) login, returns a one-time code
POST /auth/social/{provider}  — social login completion, returns a one-time code
POST /auth/token              — exchange a code for an access token (client backend)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from uoa_server.api.deps import RequestConfig, get_context, get_request_config, get_session
from uoa_server.core.context import AppContext
from uoa_server.core.errors import NotFoundError
from uoa_server.services.authorization_codes import AuthorizationCodeStore
from uoa_server.services.login import LoginService
from uoa_server.services.login_logs import LoginLogService
from uoa_server.services.token_exchange import exchange_code_for_token
from uoa_shared.schemas.auth import (
    LoginResponse,
    PasswordLoginRequest,
    SocialLoginRequest,
    TokenExchangeRequest,
    TokenResponse,
)

router = APIRouter()


def _login_service(context: AppContext, session: AsyncSession) -> LoginService:
    store = AuthorizationCodeStore(
        session,
        pepper=context.settings.shared_secret,
        ttl_seconds=context.settings.authorization_code_ttl_seconds,
    )
    login_logs = LoginLogService(session, retention_days=context.settings.log_retention_days)
    return LoginService(session, store, context.password_verifier, context.totp_verifier, login_logs)


def _client_details(request: Request) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    body: PasswordLoginRequest,
    redirect_url: Optional[str] = Query(None),
    request_config: RequestConfig = Depends(get_request_config),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    """Verify email/password and hand back a one-time authorization code."""
    return await _login_service(context, session).complete_password_login(
        email=body.email,
        password=body.password,
        config=request_config.config,
        config_url=request_config.config_url,
        redirect_url=redirect_url,
        totp_code=body.totp_code,
        **_client_details(request),
    )


@router.post("/social/{provider}", response_model=LoginResponse)
async def social_login(
    request: Request,
    provider: str,
    body: SocialLoginRequest,
    redirect_url: Optional[str] = Query(None),
    request_config: RequestConfig = Depends(get_request_config),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    if context.social_exchanger is None:
        raise NotFoundError("social login not configured")
    profile = await context.social_exchanger.exchange(provider, body.code)
    return await _login_service(context, session).complete_social_login(
        profile=profile,
        config=request_config.config,
        config_url=request_config.config_url,
        redirect_url=redirect_url,
        **_client_details(request),
    )


@router.post("/token", response_model=TokenResponse)
async def exchange_token(
    body: TokenExchangeRequest,
    request_config: RequestConfig = Depends(get_request_config),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
):
    """Redeem a one-time code for an access token."""
    return await exchange_code_for_token(
        session,
        code=body.code,
        config=request_config.config,
        config_url=request_config.config_url,
        issuer=context.token_issuer,
        shared_secret=context.settings.shared_secret,
        code_ttl_seconds=context.settings.authorization_code_ttl_seconds,
    )
