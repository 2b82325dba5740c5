"""User identity model.

Users are owned by the identity side of the system; the org tables only
reference them. ``user_key`` is the scoped lookup key (see
``uoa_server.services.users.build_user_identity``).
"""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, index=True)
    domain: Optional[str] = Field(default=None, index=True)  # set only for per-domain scope
    user_key: str = Field(unique=True, nullable=False, index=True)
    name: Optional[str] = None
    password_hash: Optional[str] = None  # bcrypt
    email_verified: bool = Field(default=False, nullable=False)
    twofa_enabled: bool = Field(default=False, nullable=False)
    twofa_secret: Optional[str] = None  # base32 TOTP secret
