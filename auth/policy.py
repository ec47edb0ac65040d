"""
auth/policy.py -- Access decisions for TaskFlow.

can_access() is a pure function of (caller role, caller id, operation,
resource owner id). It never touches the store; callers look up the target
resource first and pass its owner id in. authorize() and require_admin()
are the raising variants the services call.

Rules:
  Admins:  every operation, except deactivating or deleting their own
           identity (prevents lockout / accidental self-destruction).
  Members: READ_OWN / WRITE_OWN / DELETE_OWN only, and only when the
           resource owner is the caller. Anything else is denied.

require_admin() is the coarse gate for admin-only surfaces (dashboard stats,
user management). It runs before any owner comparison.

Layer rule: no imports from api/, tasks/, or admin/.
"""

from __future__ import annotations

import logging
from enum import Enum

from auth.models import Role, User
from core.errors import Forbidden

logger = logging.getLogger("taskflow.auth")


class Operation(str, Enum):
    READ_OWN = "read-own"
    WRITE_OWN = "write-own"
    DELETE_OWN = "delete-own"
    READ_ANY = "read-any"
    WRITE_ANY = "write-any"
    ADMIN = "admin-only"
    DEACTIVATE_USER = "deactivate-user"
    DELETE_USER = "delete-user"


_MEMBER_OPERATIONS = frozenset({Operation.READ_OWN, Operation.WRITE_OWN, Operation.DELETE_OWN})
_SELF_PROTECTED = frozenset({Operation.DEACTIVATE_USER, Operation.DELETE_USER})


def can_access(caller: User, operation: Operation, resource_owner_id: str | None) -> bool:
    """Return True if caller may perform operation on a resource owned by resource_owner_id.

    For user-management operations the "resource owner" is the target user's
    own id, which is what makes the admin self-protection rule work.
    """
    if caller.role == Role.ADMIN:
        if operation in _SELF_PROTECTED and resource_owner_id == caller.id:
            return False
        return True
    return operation in _MEMBER_OPERATIONS and resource_owner_id is not None and resource_owner_id == caller.id


def authorize(caller: User, operation: Operation, resource_owner_id: str | None, message: str | None = None) -> None:
    """Raise Forbidden unless can_access() allows the operation."""
    if not can_access(caller, operation, resource_owner_id):
        raise Forbidden(message)


def require_admin(caller: User) -> None:
    """Raise Forbidden unless caller is an administrator."""
    if caller.role != Role.ADMIN:
        logger.warning("Denied admin-only access for %s (role=%s)", caller.email, caller.role.value)
        raise Forbidden(f"Role '{caller.role.value}' is not authorized to access this resource.")
