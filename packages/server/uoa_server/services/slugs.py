"""
Organisation slug derivation.

Slugs are unique per domain. Collisions get a random suffix instead of a
counter so that slugs do not reveal how many organisations exist.
"""

from __future__ import annotations

import re
import secrets
import string
import unicodedata

from uoa_server.core.errors import ValidationFailed

SLUG_MAX_LENGTH = 120
SLUG_MIN_LENGTH = 2
SLUG_SUFFIX_LENGTH = 4
MAX_SLUG_ATTEMPTS = 10

RESERVED_SLUGS = frozenset(
    {"admin", "api", "internal", "me", "system", "settings", "new", "default"}
)

SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def slugify(name: str) -> str:
    """ASCII-fold, lowercase, hyphenate and trim ``name`` (no validation)."""
    folded = unicodedata.normalize("NFKD", name)
    ascii_only = folded.encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("-", ascii_only.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def is_valid_slug(slug: str) -> bool:
    return (
        SLUG_MIN_LENGTH <= len(slug) <= SLUG_MAX_LENGTH
        and slug not in RESERVED_SLUGS
        and "--" not in slug
        and SLUG_PATTERN.match(slug) is not None
    )


def base_slug(name: str) -> str:
    """Derive the collision-free candidate for ``name`` or raise ValidationFailed."""
    slug = slugify(name)
    if not is_valid_slug(slug):
        raise ValidationFailed("organisation name does not produce a valid slug", name=name)
    return slug


def with_random_suffix(slug: str) -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH))
    trimmed = slug[: SLUG_MAX_LENGTH - SLUG_SUFFIX_LENGTH - 1].rstrip("-")
    return f"{trimmed}-{suffix}"


def slug_candidates(name: str):
    """Yield the base slug, then suffixed variants, ``MAX_SLUG_ATTEMPTS`` in total."""
    base = base_slug(name)
    yield base
    for _ in range(MAX_SLUG_ATTEMPTS - 1):
        yield with_random_suffix(base)
