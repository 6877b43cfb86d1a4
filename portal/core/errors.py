# portal/core/errors.py
"""
Error taxonomy shared by routes, repositories and services.

Each error carries the HTTP status the API layer maps it to; handlers in
portal.main turn them into the standard response envelope.
"""
from typing import Any, Dict, List, Optional


class PortalError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class UnauthorizedError(PortalError):
    status_code = 401
    default_message = "Access denied. No token provided"


class ForbiddenError(PortalError):
    status_code = 403
    default_message = "Access denied. Insufficient permissions"


class NotFoundError(PortalError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(PortalError):
    status_code = 409
    default_message = "Conflict"


class UpstreamError(PortalError):
    # only surfaced when no local fallback exists
    status_code = 502
    default_message = "Upstream service failed"


class InternalError(PortalError):
    status_code = 500


def field_errors(pydantic_errors) -> List[Dict[str, Any]]:
    """Flatten pydantic's error list into [{field, message}]."""
    out = []
    for err in pydantic_errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        out.append({"field": ".".join(loc) or None, "message": err.get("msg")})
    return out
