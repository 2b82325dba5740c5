"""
Client configuration schema.

Client products publish a signed config JWT at their ``config_url``. After the
signature is verified the payload is parsed into ``ClientConfig``. Unknown
fields are dropped here, at the trust boundary; nothing downstream sees the
raw payload.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .common import OrgRole, UserScope, normalize_domain

DEFAULT_ORG_ROLES = [OrgRole.OWNER.value, OrgRole.ADMIN.value, OrgRole.MEMBER.value]


class OrgFeatures(BaseModel):
    """Multi-tenant switches and capacity limits for one domain."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    groups_enabled: bool = False
    max_teams_per_org: int = Field(default=100, ge=1)
    max_groups_per_org: int = Field(default=20, ge=1)
    max_members_per_org: int = Field(default=1000, ge=1)
    max_members_per_team: int = Field(default=200, ge=1)
    max_members_per_group: int = Field(default=500, ge=1)
    max_team_memberships_per_user: int = Field(default=50, ge=1)
    org_roles: list[str] = Field(default_factory=lambda: list(DEFAULT_ORG_ROLES))

    @field_validator("org_roles")
    @classmethod
    def _owner_always_allowed(cls, roles: list[str]) -> list[str]:
        cleaned: list[str] = []
        for role in roles:
            role = role.strip()
            if role and role not in cleaned:
                cleaned.append(role)
        if OrgRole.OWNER.value not in cleaned:
            cleaned.insert(0, OrgRole.OWNER.value)
        return cleaned


class RegistrationDomainMapping(BaseModel):
    """New users whose email is on ``email_domain`` are placed into ``org_id``
    (and ``team_id``, or the org's default team)."""

    model_config = ConfigDict(extra="ignore")

    email_domain: str = Field(..., min_length=1)
    org_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None

    @field_validator("email_domain")
    @classmethod
    def _normalize_email_domain(cls, value: str) -> str:
        value = normalize_domain(value).lstrip("@")
        if not value:
            raise ValueError("email_domain must not be empty")
        return value


class ClientConfig(BaseModel):
    """Verified per-domain client configuration (version 1)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: Literal[1] = 1
    domain: str = Field(..., min_length=1)
    redirect_urls: list[str] = Field(..., min_length=1)
    enabled_auth_methods: list[str] = Field(default_factory=lambda: ["email_password"])
    allowed_social_providers: list[str] = Field(default_factory=list)
    user_scope: UserScope = UserScope.GLOBAL
    org_features: OrgFeatures = Field(default_factory=OrgFeatures)
    registration_domain_mapping: list[RegistrationDomainMapping] = Field(default_factory=list)

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        value = normalize_domain(value)
        if not value:
            raise ValueError("domain must not be empty")
        return value
