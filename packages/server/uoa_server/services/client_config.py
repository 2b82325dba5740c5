"""
Client config resolution.

Each client product serves a config JWT at its ``config_url``. We fetch it,
check the signature against the shared secret and the audience against our
service identifier, then parse it into the typed ``ClientConfig``. Every
failure along the way is the same generic bad request.
"""

from __future__ import annotations

import json
from typing import Optional, Protocol
from urllib.parse import urlsplit

import httpx
import jwt
import structlog
from pydantic import ValidationError

from uoa_server.core.errors import ValidationFailed
from uoa_shared.schemas.config import ClientConfig

log = structlog.get_logger()

CONFIG_JWT_ALGORITHMS = ["HS256", "HS384", "HS512"]
_JSON_JWT_KEYS = ("jwt", "token", "config_jwt", "configJwt")


class ConfigResolver(Protocol):
    async def resolve(self, config_url: str) -> ClientConfig: ...

    async def close(self) -> None: ...


def extract_config_jwt(body: str) -> str:
    """Pull the JWT out of a plain, ``Bearer``-prefixed or small JSON body."""
    text = body.strip()
    if not text:
        return ""
    if text.lower().startswith("bearer "):
        return text[len("bearer "):].strip()
    if text.startswith("{") or text.startswith('"'):
        try:
            parsed = json.loads(text)
        except ValueError:
            return text
        if isinstance(parsed, str):
            return parsed.strip()
        if isinstance(parsed, dict):
            for key in _JSON_JWT_KEYS:
                value = parsed.get(key)
                if isinstance(value, str):
                    return value.strip()
    return text


def parse_client_config(token: str, shared_secret: str, audience: str) -> ClientConfig:
    try:
        payload = jwt.decode(
            token,
            shared_secret,
            algorithms=CONFIG_JWT_ALGORITHMS,
            audience=audience,
        )
        return ClientConfig.model_validate(payload)
    except (jwt.PyJWTError, ValidationError) as exc:
        log.info("client_config.rejected", reason=type(exc).__name__)
        raise ValidationFailed("client config rejected") from exc


class HttpConfigResolver:
    """Fetches config JWTs over HTTP with a shared httpx client."""

    def __init__(
        self,
        shared_secret: str,
        audience: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.shared_secret = shared_secret
        self.audience = audience
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)

    async def fetch(self, config_url: str) -> str:
        parts = urlsplit(config_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValidationFailed("config url must be http(s)", config_url=config_url)
        try:
            response = await self.client.get(
                config_url, headers={"Accept": "text/plain, application/json"}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("client_config.fetch_failed", config_url=config_url, error=str(exc))
            raise ValidationFailed("client config fetch failed") from exc

        token = extract_config_jwt(response.text)
        if not token:
            raise ValidationFailed("client config body empty", config_url=config_url)
        return token

    async def resolve(self, config_url: str) -> ClientConfig:
        token = await self.fetch(config_url)
        return parse_client_config(token, self.shared_secret, self.audience)

    async def close(self) -> None:
        await self.client.aclose()
