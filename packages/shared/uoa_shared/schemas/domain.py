"""Domain-scoped backend schemas: user listing and login logs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DomainUserResponse(BaseModel):
    """A user as seen by a client backend. No secrets, no lookup key."""

    id: uuid.UUID
    email: str
    name: Optional[str] = None
    twofa_enabled: bool
    role: str
    created_at: datetime


class LoginLogResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: uuid.UUID
    user_id: uuid.UUID
    email: str
    domain: str
    auth_method: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
