from __future__ import annotations

from typing import Mapping, Optional


class DomainError(Exception):
    """Base exception for business rule violations."""

    kind = "domain_error"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules.

    ``errors`` maps a field name to a human-readable message so callers can
    report it back verbatim for form correction.
    """

    kind = "validation_failed"

    def __init__(self, message: str, errors: Optional[Mapping[str, str]] = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class MaxGuardiansExceeded(ValidationError):
    """Raised when a student already has the maximum number of guardians."""

    kind = "max_guardians_exceeded"


class AuthorizationError(DomainError):
    """Raised when an actor is not allowed to act on a request."""

    kind = "forbidden"


class NotFoundError(DomainError):
    """Raised when a request id is unknown."""

    kind = "not_found"


class AlreadyTerminalError(DomainError):
    """Raised when a request has already left the state the action needs."""

    kind = "already_terminal"


class ExpiredError(DomainError):
    """Raised when a guardian-link request outlived its approval window."""

    kind = "expired"


class ConflictError(DomainError):
    """Raised when a concurrent writer committed first (stale version)."""

    kind = "conflict"
