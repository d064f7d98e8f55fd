"""
Service-level error taxonomy.

Every manager operation either returns a value or raises exactly one
ServiceError subclass. The status code travels with the error because the
same kind of failure maps to different codes depending on the operation
(a missing account is 404 on read but 400 on update).
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        body = {"detail": self.message}
        body.update(self.extra)
        return body


class ValidationError(ServiceError):
    """Malformed or missing input."""
    kind = "validation"
    status_code = 400


class ConflictError(ServiceError):
    """Duplicate key on create."""
    kind = "conflict"
    status_code = 400


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 400


class ForbiddenError(ServiceError):
    """Missing, unknown, expired or foreign token."""
    kind = "forbidden"
    status_code = 403


class InvalidCredentialsError(ServiceError):
    kind = "invalid_credentials"
    status_code = 400


class ExpiredError(ServiceError):
    kind = "expired"
    status_code = 400


class InvalidError(ServiceError):
    """Semantic rejection, e.g. a url whose host does not resolve."""
    kind = "invalid"
    status_code = 400


class EmptyError(ServiceError):
    kind = "empty"
    status_code = 400


class InconsistentError(ServiceError):
    """The account <-> media relation was already broken."""
    kind = "inconsistent"
    status_code = 500


class PartialFailureError(ServiceError):
    """Some but not all items of a fan-out succeeded."""
    kind = "partial_failure"
    status_code = 500


class PersistenceError(ServiceError):
    kind = "persistence"
    status_code = 500
