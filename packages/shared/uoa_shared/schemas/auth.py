"""
Auth protocol schemas: login, code exchange, access-token claims.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ---------------------------------------------------------------------------
# Access token claims
# ---------------------------------------------------------------------------

class OrgClaims(BaseModel):
    """Org context embedded in the access token under ``org``."""

    model_config = ConfigDict(extra="ignore")

    org_id: str
    org_role: str
    teams: list[str] = Field(default_factory=list)
    team_roles: dict[str, str] = Field(default_factory=dict)
    groups: Optional[list[str]] = None
    group_admin: Optional[list[str]] = None


class AccessTokenClaims(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sub: str
    email: str
    domain: str
    client_id: str
    role: str
    org: Optional[OrgClaims] = None
    iss: str
    iat: int
    exp: int


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class PasswordLoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=1)
    totp_code: Optional[str] = Field(default=None, pattern=r"^\d{6,8}$")


class SocialLoginRequest(BaseModel):
    """Provider authorization code handed back by the social callback."""

    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., min_length=1)


class TokenExchangeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class LoginResponse(BaseModel):
    ok: bool = True
    code: str
    redirect_to: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
