"""Group schemas (groups are collections of teams)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .organisations import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH
from .teams import TeamResponse


class GroupCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)


class GroupUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)


class GroupMemberAddRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: uuid.UUID
    is_admin: bool = False


class GroupMemberAdminRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_admin: bool


class TeamGroupAssignRequest(BaseModel):
    """``group_id = None`` detaches the team from its group."""

    model_config = ConfigDict(extra="forbid")

    group_id: Optional[uuid.UUID] = None


class GroupResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class GroupMemberResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    group_id: uuid.UUID
    user_id: uuid.UUID
    is_admin: bool
    created_at: datetime


class GroupDetailResponse(GroupResponse):
    teams: list[TeamResponse] = []
    members: list[GroupMemberResponse] = []
