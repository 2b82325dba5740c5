"""
Access token minting and verification (HS256 JWT).
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

import jwt
import structlog
from pydantic import ValidationError

from uoa_server.core.errors import UnauthorizedError
from uoa_server.models.base import utcnow
from uoa_shared.schemas.auth import AccessTokenClaims, OrgClaims
from uoa_shared.schemas.common import normalize_domain

log = structlog.get_logger()

ACCESS_TOKEN_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "iss", "iat", "exp"]


class AccessTokenIssuer:
    """Signs and verifies access tokens with a single shared key."""

    def __init__(
        self,
        secret: str,
        issuer: str,
        ttl_minutes: int = 30,
        now: Callable[[], datetime] = utcnow,
    ):
        self.secret = secret
        self.issuer = issuer
        self.ttl = timedelta(minutes=ttl_minutes)
        self.now = now

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def sign(
        self,
        user_id: uuid.UUID | str,
        email: str,
        domain: str,
        role: str,
        client_id: str,
        org: OrgClaims | None = None,
    ) -> str:
        issued_at = self.now()
        payload: dict = {
            "sub": str(user_id),
            "email": email,
            "domain": normalize_domain(domain),
            "client_id": client_id,
            "role": role,
            "iss": self.issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        if org is not None:
            payload["org"] = org.model_dump(exclude_none=True)
        return jwt.encode(payload, self.secret, algorithm=ACCESS_TOKEN_ALGORITHM)

    def verify(self, token: str) -> AccessTokenClaims:
        """Decode and validate ``token``. Every failure is the same UnauthorizedError."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ACCESS_TOKEN_ALGORITHM],
                issuer=self.issuer,
                options={"require": REQUIRED_CLAIMS},
            )
            return AccessTokenClaims.model_validate(payload)
        except (jwt.PyJWTError, ValidationError) as exc:
            log.info("access_token.rejected", reason=type(exc).__name__)
            raise UnauthorizedError("access token rejected") from exc
