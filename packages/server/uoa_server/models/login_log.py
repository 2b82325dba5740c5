"""Successful login events, kept for a bounded retention period."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class LoginLog(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "login_logs"
    __table_args__ = (
        sa.Index("ix_login_logs_domain_created_at", "domain", "created_at"),
        sa.Index("ix_login_logs_created_at", "created_at"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    email: str = Field(nullable=False)
    domain: str = Field(nullable=False)
    auth_method: str = Field(nullable=False)
    ip: Optional[str] = None
    user_agent: Optional[str] = None
