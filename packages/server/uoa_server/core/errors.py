"""
Service error hierarchy.

Services raise these with a descriptive internal message. The message is for
server-side logs only: the HTTP layer collapses every error to the same
generic body and exposes nothing but the status class.
"""

from __future__ import annotations

GENERIC_ERROR_BODY = {"error": "Request failed"}


class ServiceError(Exception):
    """Base error for the identity & authorization core."""

    status_code: int = 400

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationFailed(ServiceError):
    """Input failed validation (bad name, bad role, bad slug...)."""

    status_code = 400


class ConflictError(ServiceError):
    """Duplicate membership, duplicate name, slug exhaustion."""

    status_code = 400


class LimitExceeded(ServiceError):
    """A configured capacity cap was hit."""

    status_code = 400


class LastOwnerViolation(ServiceError):
    """Operation would leave an organisation without an owner."""

    status_code = 400


class UnauthorizedError(ServiceError):
    """Authentication failed (bad code, bad token, bad credentials)."""

    status_code = 401


class ForbiddenError(ServiceError):
    """Caller's role is insufficient."""

    status_code = 403


class NotFoundError(ServiceError):
    """Entity absent or outside the caller's tenant scope."""

    status_code = 404


class RateLimited(ServiceError):
    status_code = 429


class InternalError(ServiceError):
    """Unexpected state or exhausted internal retries."""

    status_code = 500
