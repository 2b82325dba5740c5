# Table models, imported together so SQLModel.metadata is complete for create_all and Alembic.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .user import User  # noqa: F401
from .domain_role import DomainRole, DomainRoleName  # noqa: F401
from .authorization_code import AuthorizationCode  # noqa: F401
from .organisation import Organisation, OrgMember  # noqa: F401
from .group import Group, GroupMember  # noqa: F401
from .team import DEFAULT_TEAM_NAME, Team, TeamMember, TeamRole  # noqa: F401
from .login_log import LoginLog  # noqa: F401
