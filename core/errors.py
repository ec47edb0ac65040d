"""
core/errors.py -- Typed outcomes raised by the TaskFlow core.

The core (auth/, tasks/, admin/) raises these; the HTTP layer is the only
place that maps them to status codes and response envelopes (see the
exception handlers in api/main.py). Keeping the status_code on the class
means the mapping lives next to the error kind instead of being scattered
across route handlers.

Anything not derived from TaskFlowError is "unexpected": api/main.py logs it
with a traceback and answers with a generic 500.

Layer rule: core/ is the kernel. No imports from api/, auth/, tasks/, admin/.
"""

from __future__ import annotations

from typing import Optional


class TaskFlowError(Exception):
    """Base class for every classified core outcome."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error."

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict]] = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationFailed(TaskFlowError):
    """Input is well-formed JSON but violates a domain rule.

    errors is a list of {"field": ..., "message": ...} dicts.
    """

    status_code = 400
    code = "validation_error"
    default_message = "Validation failed."

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(errors=[{"field": field, "message": message}])


class Unauthenticated(TaskFlowError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class InvalidToken(Unauthenticated):
    code = "invalid_token"
    default_message = "Invalid token. Please log in again."


class ExpiredToken(Unauthenticated):
    code = "token_expired"
    default_message = "Token has expired. Please log in again."


class AuthFailure(Unauthenticated):
    """Credential check failed.

    Used for both unknown email and wrong password so that responses never
    reveal whether an account exists.
    """

    code = "bad_credentials"
    default_message = "Invalid email or password."


class Forbidden(TaskFlowError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class NotFound(TaskFlowError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class Conflict(TaskFlowError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class RateLimited(TaskFlowError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests, please try again later."
