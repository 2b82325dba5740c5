"""
Hashing and secret helpers shared by the auth flows.

Covers:
- bcrypt password hashing
- authorization code generation and keyed hashing
- client id / domain hash derivation from the shared secret
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import bcrypt

from uoa_shared.schemas.common import normalize_domain

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    """Verify a password against a bcrypt hash. A missing hash never matches."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash.
        return False


# ---------------------------------------------------------------------------
# Authorization codes
# ---------------------------------------------------------------------------

def generate_authorization_code() -> str:
    """256 bits of randomness, base64url without padding."""
    return secrets.token_urlsafe(32)


def hash_authorization_code(code: str, pepper: str) -> str:
    return hashlib.sha256(f"{code}.{pepper}".encode()).hexdigest()


# ---------------------------------------------------------------------------
# Domain-bound secrets
# ---------------------------------------------------------------------------

def domain_hash(domain: str, shared_secret: str) -> str:
    """sha256(domain + secret); used both as client_id and as the backend bearer."""
    return hashlib.sha256(f"{normalize_domain(domain)}{shared_secret}".encode()).hexdigest()


def client_id_for_domain(domain: str, shared_secret: str) -> str:
    return domain_hash(domain, shared_secret)


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())
