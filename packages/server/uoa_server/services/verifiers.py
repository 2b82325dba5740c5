"""
Credential verifier collaborators.

The core only sees pass/fail (or a verified profile). Default implementations
use bcrypt for passwords and pyotp for TOTP; social providers have no default
and must be supplied by the deployment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import pyotp

from uoa_server.core.security import verify_password


@dataclass(frozen=True)
class SocialProfile:
    provider: str
    email: str
    email_verified: bool
    name: Optional[str] = None


class PasswordVerifier(Protocol):
    def verify(self, password: str, password_hash: Optional[str]) -> bool: ...


class TotpVerifier(Protocol):
    def verify(self, code: str, secret: str) -> bool: ...


class SocialProfileExchanger(Protocol):
    async def exchange(self, provider: str, code: str) -> SocialProfile:
        """Trade a provider authorization code for a verified profile."""
        ...


class BcryptPasswordVerifier:
    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        return verify_password(password, password_hash)


class PyotpTotpVerifier:
    def __init__(self, valid_window: int = 1):
        self.valid_window = valid_window

    def verify(self, code: str, secret: str) -> bool:
        if not code or not secret:
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=self.valid_window)
