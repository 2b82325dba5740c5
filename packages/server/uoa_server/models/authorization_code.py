"""One-time authorization codes (stored hashed)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class AuthorizationCode(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "authorization_codes"

    code_hash: str = Field(unique=True, nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    domain: str = Field(nullable=False, index=True)
    config_url: str = Field(nullable=False)
    redirect_url: str = Field(nullable=False)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    used_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
