"""Identity, domain roles, authorization codes and org/team/group tables.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        )
    return cols


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=True),
        sa.Column("user_key", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("twofa_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("twofa_secret", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_user_key", "users", ["user_key"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_domain", "users", ["domain"])

    # domain_roles: one superuser per domain via partial unique index
    op.create_table(
        "domain_roles",
        sa.Column("domain", sa.Text(), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index(
        "uq_domain_roles_one_superuser",
        "domain_roles",
        ["domain"],
        unique=True,
        postgresql_where=sa.text("role = 'superuser'"),
    )

    # authorization_codes
    op.create_table(
        "authorization_codes",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("code_hash", sa.Text(), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("config_url", sa.Text(), nullable=False),
        sa.Column("redirect_url", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_authorization_codes_code_hash", "authorization_codes", ["code_hash"], unique=True)
    op.create_index("ix_authorization_codes_user_id", "authorization_codes", ["user_id"])
    op.create_index("ix_authorization_codes_domain", "authorization_codes", ["domain"])

    # organisations
    op.create_table(
        "organisations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("owner_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("domain", "slug", name="uq_organisations_domain_slug"),
    )
    op.create_index("ix_organisations_domain", "organisations", ["domain"])
    op.create_index("ix_organisations_owner_id", "organisations", ["owner_id"])

    # org_members: one row per (org, user) and per (domain, user)
    op.create_table(
        "org_members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("org_id", UUID, sa.ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
        sa.UniqueConstraint("domain", "user_id", name="uq_org_members_domain_user"),
    )
    op.create_index("ix_org_members_org_id", "org_members", ["org_id"])
    op.create_index("ix_org_members_user_id", "org_members", ["user_id"])

    # groups (before teams: teams.group_id references it)
    op.create_table(
        "groups",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("org_id", UUID, sa.ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "name", name="uq_groups_org_name"),
    )
    op.create_index("ix_groups_org_id", "groups", ["org_id"])

    # teams: exactly one default per org via partial unique index
    op.create_table(
        "teams",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("org_id", UUID, sa.ForeignKey("organisations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "name", name="uq_teams_org_name"),
    )
    op.create_index("ix_teams_org_id", "teams", ["org_id"])
    op.create_index("ix_teams_group_id", "teams", ["group_id"])
    op.create_index(
        "uq_teams_one_default_per_org",
        "teams",
        ["org_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
    )

    # team_members
    op.create_table(
        "team_members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("team_id", UUID, sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_role", sa.Text(), nullable=False, server_default="member"),
        *_timestamps(updated=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    # group_members
    op.create_table(
        "group_members",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("group_id", UUID, sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "group_members",
        "team_members",
        "teams",
        "groups",
        "org_members",
        "organisations",
        "authorization_codes",
        "domain_roles",
        "users",
    ):
        op.drop_table(table)
