"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The bearer token is read from the "Authorization: Bearer <token>" header and
handed to AuthService.authenticate(), which verifies it and re-reads the user
from the store. Failures propagate as core.errors.Unauthenticated; the
exception handlers in api/main.py turn them into 401 envelopes.

get_current_user() requires authentication.
require_admin() wraps get_current_user() and applies the coarse role gate
from auth/policy.py (403 for members).

Layer rule: no imports from api/, tasks/, or admin/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import User
from auth.policy import require_admin as _require_admin_role
from auth.service import AuthService


def bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (401) if the token is missing or invalid.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    auth_service: AuthService = request.app.state.auth_service
    user = auth_service.authenticate(bearer_token(request))
    request.state.user = user
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin role. Raises 401 if unauthenticated, 403 if not admin."""
    _require_admin_role(user)
    return user
