"""
tests/test_policy.py -- Unit tests for the access decisions in auth/policy.py.

Pure-function tests: users are plain dataclasses, no store involved.
"""

from __future__ import annotations

import pytest

from auth.models import Role, User
from auth.policy import Operation, authorize, can_access, require_admin
from core.errors import Forbidden

ADMIN = User(name="Ada", email="ada@taskflow.io", role=Role.ADMIN, id="admin-1")
MEMBER = User(name="Mia", email="mia@taskflow.io", role=Role.MEMBER, id="member-1")
OTHER_ID = "member-2"


class TestAdmin:
    @pytest.mark.parametrize("op", list(Operation))
    def test_admin_allowed_on_other_users_resources(self, op) -> None:
        assert can_access(ADMIN, op, OTHER_ID)

    @pytest.mark.parametrize("op", [Operation.DEACTIVATE_USER, Operation.DELETE_USER])
    def test_admin_cannot_deactivate_or_delete_self(self, op) -> None:
        assert not can_access(ADMIN, op, ADMIN.id)

    @pytest.mark.parametrize("op", [Operation.READ_OWN, Operation.WRITE_ANY, Operation.ADMIN])
    def test_admin_other_operations_on_self_allowed(self, op) -> None:
        assert can_access(ADMIN, op, ADMIN.id)


class TestMember:
    @pytest.mark.parametrize("op", [Operation.READ_OWN, Operation.WRITE_OWN, Operation.DELETE_OWN])
    def test_member_own_operations_on_own_resource(self, op) -> None:
        assert can_access(MEMBER, op, MEMBER.id)

    @pytest.mark.parametrize("op", [Operation.READ_OWN, Operation.WRITE_OWN, Operation.DELETE_OWN])
    def test_member_own_operations_on_foreign_resource(self, op) -> None:
        assert not can_access(MEMBER, op, OTHER_ID)

    @pytest.mark.parametrize(
        "op",
        [
            Operation.READ_ANY,
            Operation.WRITE_ANY,
            Operation.ADMIN,
            Operation.DEACTIVATE_USER,
            Operation.DELETE_USER,
        ],
    )
    def test_member_denied_non_own_operations_even_on_self(self, op) -> None:
        assert not can_access(MEMBER, op, MEMBER.id)

    def test_member_denied_when_owner_unknown(self) -> None:
        assert not can_access(MEMBER, Operation.READ_OWN, None)


class TestRaisingVariants:
    def test_authorize_raises_forbidden_with_message(self) -> None:
        with pytest.raises(Forbidden, match="not yours"):
            authorize(MEMBER, Operation.WRITE_OWN, OTHER_ID, "not yours")

    def test_authorize_passes_silently(self) -> None:
        authorize(MEMBER, Operation.WRITE_OWN, MEMBER.id)

    def test_require_admin(self) -> None:
        require_admin(ADMIN)
        with pytest.raises(Forbidden):
            require_admin(MEMBER)

    def test_forbidden_maps_to_403(self) -> None:
        assert Forbidden.status_code == 403
