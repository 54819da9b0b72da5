"""
Domain errors raised by kernel and engine services.

Routers do not catch these; the application-level handler in main.py turns
each one into the standard failure envelope using its status_code.
"""

from typing import Any, Optional


class AssessmentError(Exception):
    """Base class for every expected, client-facing failure."""

    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AssessmentError):
    status_code = 400
    default_message = "Invalid input"


class InvalidState(AssessmentError):
    """Operation not allowed in the entity's current state."""

    status_code = 400
    default_message = "Operation not allowed in the current state"


class Unauthorized(AssessmentError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AssessmentError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AssessmentError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AssessmentError):
    status_code = 409
    default_message = "Conflicting update, please retry"
