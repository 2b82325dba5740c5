"""
Tests for access token signing and verification.
"""

from __future__ import annotations

import base64
import json
import uuid
from datetime import timedelta

import jwt
import pytest

from conftest import DOMAIN, ISSUER, SHARED_SECRET

from uoa_server.core.errors import UnauthorizedError
from uoa_server.core.security import client_id_for_domain
from uoa_server.models.base import utcnow
from uoa_server.services.access_tokens import AccessTokenIssuer
from uoa_shared.schemas.auth import OrgClaims


def _sign(issuer: AccessTokenIssuer, org: OrgClaims | None = None, user_id=None) -> str:
    return issuer.sign(
        user_id=user_id or uuid.uuid4(),
        email="alice@example.com",
        domain=DOMAIN,
        role="superuser",
        client_id=client_id_for_domain(DOMAIN, SHARED_SECRET),
        org=org,
    )


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


class TestSignAndVerify:
    def test_round_trip(self, token_issuer):
        user_id = uuid.uuid4()
        claims = token_issuer.verify(_sign(token_issuer, user_id=user_id))
        assert claims.sub == str(user_id)
        assert claims.domain == DOMAIN
        assert claims.role == "superuser"
        assert claims.iss == ISSUER
        assert claims.exp - claims.iat == 30 * 60
        assert claims.org is None

    def test_org_claim_omits_empty_group_fields(self, token_issuer):
        org = OrgClaims(org_id="o1", org_role="owner", teams=["t1"], team_roles={"t1": "member"})
        token = _sign(token_issuer, org=org)

        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["org"] == {
            "org_id": "o1",
            "org_role": "owner",
            "teams": ["t1"],
            "team_roles": {"t1": "member"},
        }
        assert token_issuer.verify(token).org == org

    def test_header_is_hs256(self, token_issuer):
        assert jwt.get_unverified_header(_sign(token_issuer))["alg"] == "HS256"

    def test_ttl_seconds(self):
        assert AccessTokenIssuer(SHARED_SECRET, ISSUER, ttl_minutes=15).ttl_seconds == 900


class TestRejection:
    def test_wrong_key(self, token_issuer):
        token = _sign(AccessTokenIssuer("another-secret", ISSUER))
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(token)

    def test_wrong_issuer(self, token_issuer):
        token = _sign(AccessTokenIssuer(SHARED_SECRET, "someone-else"))
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(token)

    def test_expired(self, token_issuer):
        stale = AccessTokenIssuer(SHARED_SECRET, ISSUER, now=lambda: utcnow() - timedelta(hours=2))
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(_sign(stale))

    def test_tampered_payload(self, token_issuer):
        header, payload, signature = _sign(token_issuer).split(".")
        claims = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
        claims["role"] = "superuser"
        claims["domain"] = "other.example.com"
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(".".join([header, _b64(claims), signature]))

    def test_alg_none(self, token_issuer):
        now = int(utcnow().timestamp())
        token = ".".join(
            [
                _b64({"alg": "none", "typ": "JWT"}),
                _b64({"sub": "x", "email": "e", "domain": DOMAIN, "client_id": "c", "role": "superuser",
                      "iss": ISSUER, "iat": now, "exp": now + 600}),
                "",
            ]
        )
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(token)

    def test_missing_required_claim(self, token_issuer):
        token = jwt.encode({"sub": "x", "iss": ISSUER}, SHARED_SECRET, algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(token)

    def test_unexpected_audience(self, token_issuer):
        now = int(utcnow().timestamp())
        payload = {"sub": "x", "email": "e", "domain": DOMAIN, "client_id": "c", "role": "user",
                   "iss": ISSUER, "iat": now, "exp": now + 600, "aud": "some-client"}
        with pytest.raises(UnauthorizedError):
            token_issuer.verify(jwt.encode(payload, SHARED_SECRET, algorithm="HS256"))

    def test_garbage(self, token_issuer):
        with pytest.raises(UnauthorizedError):
            token_issuer.verify("not.a.jwt")
