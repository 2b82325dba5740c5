"""Per-domain role assignment."""

from enum import Enum
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class DomainRoleName(str, Enum):
    SUPERUSER = "superuser"
    USER = "user"


class DomainRole(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "domain_roles"
    __table_args__ = (
        # At most one superuser per domain. This index is the only thing that
        # serialises concurrent first logins.
        sa.Index(
            "uq_domain_roles_one_superuser",
            "domain",
            unique=True,
            postgresql_where=sa.text("role = 'superuser'"),
            sqlite_where=sa.text("role = 'superuser'"),
        ),
    )

    domain: str = Field(primary_key=True)
    user_id: uuid.UUID = Field(
        primary_key=True,
        foreign_key="users.id",
        ondelete="CASCADE",
    )
    role: str = Field(nullable=False)  # DomainRoleName
