"""Team schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .organisations import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH


class TeamCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)


class TeamUpdateRequest(BaseModel):
    """Rename/describe only; is_default and group_id are not writable here."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)


class TeamMemberAddRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: uuid.UUID
    team_role: str = Field(default="member", pattern=r"^(member|lead)$")


class TeamMemberRoleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    team_role: str = Field(..., pattern=r"^(member|lead)$")


class TeamResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    org_id: uuid.UUID
    group_id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    is_default: bool
    created_at: datetime
    updated_at: datetime


class TeamMemberResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    team_id: uuid.UUID
    user_id: uuid.UUID
    team_role: str
    created_at: datetime


class TeamDetailResponse(TeamResponse):
    members: list[TeamMemberResponse] = []
