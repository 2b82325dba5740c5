"""Organisation and organisation membership."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TimestampMixin, UUIDMixin


class Organisation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organisations"
    __table_args__ = (sa.UniqueConstraint("domain", "slug", name="uq_organisations_domain_slug"),)

    domain: str = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    slug: str = Field(nullable=False)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)


class OrgMember(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "org_members"
    __table_args__ = (
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        # One organisation per domain per user, enforced by the store.
        sa.UniqueConstraint("domain", "user_id", name="uq_org_members_domain_user"),
    )

    org_id: uuid.UUID = Field(foreign_key="organisations.id", nullable=False, index=True, ondelete="CASCADE")
    domain: str = Field(nullable=False)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    role: str = Field(nullable=False)  # free text, validated against the configured org_roles
