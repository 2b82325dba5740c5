"""Teams and team membership."""

from enum import Enum
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TimestampMixin, UUIDMixin

DEFAULT_TEAM_NAME = "General"


class TeamRole(str, Enum):
    MEMBER = "member"
    LEAD = "lead"


class Team(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"
    __table_args__ = (
        sa.UniqueConstraint("org_id", "name", name="uq_teams_org_name"),
        sa.Index(
            "uq_teams_one_default_per_org",
            "org_id",
            unique=True,
            postgresql_where=sa.text("is_default"),
            sqlite_where=sa.text("is_default = 1"),
        ),
    )

    org_id: uuid.UUID = Field(foreign_key="organisations.id", nullable=False, index=True, ondelete="CASCADE")
    # Weak back-reference: deleting the group clears it.
    group_id: Optional[uuid.UUID] = Field(default=None, foreign_key="groups.id", index=True, ondelete="SET NULL")
    name: str = Field(nullable=False)
    description: Optional[str] = None
    is_default: bool = Field(default=False, nullable=False)


class TeamMember(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),)

    team_id: uuid.UUID = Field(foreign_key="teams.id", nullable=False, index=True, ondelete="CASCADE")
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    team_role: str = Field(default=TeamRole.MEMBER.value, nullable=False)
