from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def normalize_domain(domain: str) -> str:
    """Trim, lowercase and drop a single trailing dot."""
    value = domain.strip().lower()
    if value.endswith("."):
        value = value[:-1]
    return value


class UserScope(str, Enum):
    GLOBAL = "global"
    PER_DOMAIN = "per_domain"


class OrgRole(str, Enum):
    """Built-in org roles. Clients may configure additional free-text roles."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class CursorPage(BaseModel, Generic[T]):
    data: list[T]
    next_cursor: Optional[str] = None
