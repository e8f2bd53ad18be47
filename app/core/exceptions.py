"""
Domain errors raised by the catalog / order services.

Services never return sentinel values for failures; they raise one of these
and the HTTP layer (see app/main.py) turns it into a structured response.
"""
from typing import Any, Dict, Optional


class CatalogError(Exception):
    error_code = "internal"
    http_status = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "detail": self.message,
            "error_code": self.error_code,
        }
        if self.field:
            payload["field"] = self.field
        return payload


class NotFoundError(CatalogError):
    """Referenced product, category, order or user does not exist."""

    error_code = "not_found"
    http_status = 404


class InvalidArgumentError(CatalogError):
    """Caller-fixable input problem. Never retried."""

    error_code = "invalid_argument"
    http_status = 400


class FailedPreconditionError(CatalogError):
    """
    The request is well formed but the current state rejects it
    (insufficient stock). The same request may succeed later.
    """

    error_code = "failed_precondition"
    http_status = 409


class UnauthorizedError(CatalogError):
    error_code = "unauthorized"
    http_status = 401


class ForbiddenError(CatalogError):
    error_code = "forbidden"
    http_status = 403


class ConflictError(CatalogError):
    """Store failure, rollback or unclassified constraint violation."""

    error_code = "conflict"
    http_status = 500
