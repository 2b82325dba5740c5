"""
One-time authorization codes.

A code binds a user to (domain, config_url, redirect_url) for a few minutes.
Only ``sha256(code + "." + pepper)`` is stored. Redemption is a single
conditional UPDATE, so two concurrent redeems of the same code can never both
succeed, and a redeem against the wrong tenant never consumes the code.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from uoa_server.core.database import is_unique_violation
from uoa_server.core.errors import InternalError, UnauthorizedError, ValidationFailed
from uoa_server.core.security import generate_authorization_code, hash_authorization_code
from uoa_server.models.authorization_code import AuthorizationCode
from uoa_server.models.base import utcnow
from uoa_shared.schemas.common import normalize_domain

log = structlog.get_logger()

AUTHORIZATION_CODE_TTL_SECONDS = 300
MAX_ISSUE_ATTEMPTS = 3


# ---------------------------------------------------------------------------
# Redirect URL helpers
# ---------------------------------------------------------------------------

def parse_http_url(value: str) -> str:
    """Return ``value`` if it is an absolute http(s) URL with a host."""
    try:
        parts = urlsplit(value.strip())
    except ValueError as exc:
        raise ValidationFailed("redirect url is not a url") from exc
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValidationFailed("redirect url must be http(s) with a host", url=value)
    return value.strip()


def select_redirect_url(allowed: list[str], requested: str | None = None) -> str:
    """Pick the requested redirect if it is allowlisted, else the first allowlisted one."""
    requested = (requested or "").strip()
    if requested:
        if requested not in allowed:
            raise ValidationFailed("redirect url not allowed", url=requested)
        return parse_http_url(requested)

    candidate = allowed[0].strip() if allowed else ""
    if not candidate:
        raise ValidationFailed("config has no redirect url")
    return parse_http_url(candidate)


def build_redirect_to_url(redirect_url: str, code: str) -> str:
    parts = urlsplit(parse_http_url(redirect_url))
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "code"]
    query.append(("code", code))
    return urlunsplit(parts._replace(query=urlencode(query)))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class AuthorizationCodeStore:
    def __init__(
        self,
        session: AsyncSession,
        pepper: str,
        ttl_seconds: int = AUTHORIZATION_CODE_TTL_SECONDS,
        now: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.pepper = pepper
        self.ttl = timedelta(seconds=ttl_seconds)
        self.now = now

    async def issue(
        self,
        user_id: uuid.UUID,
        domain: str,
        config_url: str,
        redirect_url: str,
    ) -> str:
        """Persist a new code for ``user_id`` and return the raw code."""
        domain = normalize_domain(domain)
        redirect_url = parse_http_url(redirect_url)

        for attempt in range(MAX_ISSUE_ATTEMPTS):
            code = generate_authorization_code()
            row = AuthorizationCode(
                code_hash=hash_authorization_code(code, self.pepper),
                user_id=user_id,
                domain=domain,
                config_url=config_url,
                redirect_url=redirect_url,
                expires_at=self.now() + self.ttl,
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(row)
            except IntegrityError as exc:
                if not is_unique_violation(exc):
                    raise
                log.warning("auth_code.collision", attempt=attempt + 1)
                continue

            log.info("auth_code.issued", user_id=str(user_id), domain=domain)
            return code

        raise InternalError("authorization code collision retries exhausted")

    async def redeem(self, code: str, domain: str, config_url: str) -> uuid.UUID:
        """Consume ``code`` and return its user id.

        Unknown, expired, already used and wrong-tenant codes all fail the
        same way.
        """
        code_hash = hash_authorization_code(code, self.pepper)
        now = self.now()
        result = await self.session.execute(
            update(AuthorizationCode)
            .where(
                AuthorizationCode.code_hash == code_hash,
                AuthorizationCode.domain == normalize_domain(domain),
                AuthorizationCode.config_url == config_url,
                AuthorizationCode.used_at.is_(None),
                AuthorizationCode.expires_at > now,
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise UnauthorizedError("authorization code redemption failed")

        user_id = (
            await self.session.execute(
                select(AuthorizationCode.user_id).where(AuthorizationCode.code_hash == code_hash)
            )
        ).scalar_one()
        log.info("auth_code.redeemed", user_id=str(user_id), domain=normalize_domain(domain))
        return user_id
