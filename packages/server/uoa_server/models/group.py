"""Groups (collections of teams) and group membership."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TimestampMixin, UUIDMixin


class Group(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "groups"
    __table_args__ = (sa.UniqueConstraint("org_id", "name", name="uq_groups_org_name"),)

    org_id: uuid.UUID = Field(foreign_key="organisations.id", nullable=False, index=True, ondelete="CASCADE")
    name: str = Field(nullable=False)
    description: Optional[str] = None


class GroupMember(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "group_members"
    __table_args__ = (sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),)

    group_id: uuid.UUID = Field(foreign_key="groups.id", nullable=False, index=True, ondelete="CASCADE")
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    is_admin: bool = Field(default=False, nullable=False)
