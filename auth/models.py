"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in tasks/models.py -- dataclasses own domain shape; stores, the policy engine
and services do the work.

Role is a closed tag rather than a class hierarchy: auth/policy.py branches
on it, nothing subclasses User.

Layer rule: no imports from api/, tasks/, or admin/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of principal kinds. Values are the wire/storage form."""

    MEMBER = "user"
    ADMIN = "admin"


@dataclass
class User:
    """An authenticated identity in TaskFlow.

    email is stored lower-cased and stripped; it is the login lookup key and
    carries a UNIQUE constraint in the store.

    hashed_password is a bcrypt hash. It never leaves the core: API response
    models are built field-by-field and have no slot for it.

    password_changed_at is None until the first password change after
    registration. Tokens issued before it are rejected by auth/tokens.py.
    """

    name: str
    email: str
    role: Role = Role.MEMBER
    id: str | None = None
    hashed_password: str | None = None
    is_active: bool = True
    last_login: str | None = None  # ISO 8601
    password_changed_at: str | None = None  # ISO 8601
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
