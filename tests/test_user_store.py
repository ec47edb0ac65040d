"""
tests/test_user_store.py -- Unit tests for UserStore (auth/store.py).

Each test gets a fresh named in-memory database from the stores fixture.
"""

from __future__ import annotations

import pytest

from auth.models import Role
from auth.store import UserStore
from conftest import DEFAULT_PASSWORD, make_user, memory_db_url
from core.errors import Conflict
from core.pagination import PageRequest


class TestCreateUser:
    def test_create_returns_stored_record(self, user_store: UserStore) -> None:
        user = user_store.create_user("Ada Lovelace", "  Ada@TaskFlow.io ", DEFAULT_PASSWORD)
        assert user.id
        assert user.email == "ada@taskflow.io"
        assert user.role == Role.MEMBER
        assert user.is_active
        assert user.created_at
        assert user.hashed_password and user.hashed_password != DEFAULT_PASSWORD

    def test_duplicate_email_case_insensitive(self, user_store: UserStore) -> None:
        user_store.create_user("Ada", "ada@taskflow.io", DEFAULT_PASSWORD)
        with pytest.raises(Conflict):
            user_store.create_user("Other Ada", "ADA@taskflow.io", DEFAULT_PASSWORD)

    def test_admin_role_stored(self, user_store: UserStore) -> None:
        user = user_store.create_user("Root", "root@taskflow.io", DEFAULT_PASSWORD, Role.ADMIN)
        assert user_store.get_by_id(user.id).role == Role.ADMIN

    def test_file_database_persists_across_instances(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'users.db'}"
        first = UserStore(db_url=url)
        user = first.create_user("Ada", "ada@taskflow.io", DEFAULT_PASSWORD)
        first.close()
        second = UserStore(db_url=url)
        assert second.get_by_email("ada@taskflow.io").id == user.id
        second.close()


class TestVerifyCredentials:
    def test_correct_password(self, user_store: UserStore) -> None:
        user, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        assert user_store.verify_credentials("ADA@taskflow.io", DEFAULT_PASSWORD).id == user.id

    def test_wrong_password_unknown_email_and_inactive_look_identical(self, user_store: UserStore) -> None:
        user, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        make_user(user_store, "Ina", "ina@taskflow.io")
        user_store.set_active(user_store.get_by_email("ina@taskflow.io").id, False)

        assert user_store.verify_credentials("ada@taskflow.io", "Wrong@1234") is None
        assert user_store.verify_credentials("nobody@taskflow.io", DEFAULT_PASSWORD) is None
        assert user_store.verify_credentials("ina@taskflow.io", DEFAULT_PASSWORD) is None

    def test_change_password(self, user_store: UserStore) -> None:
        user, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        assert user_store.change_password(user.id, "NewPassword@456")
        assert user_store.verify_credentials("ada@taskflow.io", DEFAULT_PASSWORD) is None
        assert user_store.verify_credentials("ada@taskflow.io", "NewPassword@456").id == user.id
        assert user_store.get_by_id(user.id).password_changed_at is not None

    def test_change_password_unknown_user(self, user_store: UserStore) -> None:
        assert user_store.change_password("missing", "NewPassword@456") is False

    def test_update_last_login(self, user_store: UserStore) -> None:
        user, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        assert user.last_login is None
        user_store.update_last_login(user.id)
        assert user_store.get_by_id(user.id).last_login is not None


class TestUpdateUser:
    def test_update_name_and_role(self, user_store: UserStore) -> None:
        user, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        updated = user_store.update_user(user.id, name="Ada King", role=Role.ADMIN)
        assert updated.name == "Ada King"
        assert updated.role == Role.ADMIN
        assert updated.email == "ada@taskflow.io"

    def test_update_email_conflict(self, user_store: UserStore) -> None:
        make_user(user_store, "Ada", "ada@taskflow.io")
        bob, _ = make_user(user_store, "Bob", "bob@taskflow.io")
        with pytest.raises(Conflict):
            user_store.update_user(bob.id, email="ADA@taskflow.io")

    def test_update_own_email_to_same_value(self, user_store: UserStore) -> None:
        ada, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        assert user_store.update_user(ada.id, email="Ada@TaskFlow.io").email == "ada@taskflow.io"

    def test_unknown_field_rejected(self, user_store: UserStore) -> None:
        ada, _ = make_user(user_store, "Ada", "ada@taskflow.io")
        with pytest.raises(ValueError):
            user_store.update_user(ada.id, hashed_password="x")

    def test_update_missing_user(self, user_store: UserStore) -> None:
        assert user_store.update_user("missing", name="Nobody") is None


class TestListUsers:
    @pytest.fixture()
    def populated(self, user_store: UserStore) -> UserStore:
        make_user(user_store, "Ada Admin", "ada@taskflow.io", Role.ADMIN)
        make_user(user_store, "Bob Builder", "bob@taskflow.io")
        make_user(user_store, "Cy Coder", "cy@example.org")
        inactive, _ = make_user(user_store, "Dee Dormant", "dee@taskflow.io")
        user_store.set_active(inactive.id, False)
        return user_store

    def test_total_and_pagination(self, populated: UserStore) -> None:
        page = populated.list_users(PageRequest(page=1, limit=3))
        assert page.total == 4
        assert len(page.items) == 3
        assert page.has_next

    def test_filter_by_role(self, populated: UserStore) -> None:
        page = populated.list_users(PageRequest(), role=Role.ADMIN)
        assert [u.name for u in page.items] == ["Ada Admin"]

    def test_filter_by_active(self, populated: UserStore) -> None:
        assert populated.list_users(PageRequest(), is_active=False).total == 1

    def test_search_name_or_email_case_insensitive(self, populated: UserStore) -> None:
        assert populated.list_users(PageRequest(), search="BUILDER").total == 1
        assert populated.list_users(PageRequest(), search="example.org").total == 1

    def test_search_wildcards_are_literal(self, populated: UserStore) -> None:
        assert populated.list_users(PageRequest(), search="%").total == 0

    def test_sort_by_name(self, populated: UserStore) -> None:
        page = populated.list_users(PageRequest(), sort_by="name", order="asc")
        assert [u.name for u in page.items][:2] == ["Ada Admin", "Bob Builder"]

    def test_counts(self, populated: UserStore) -> None:
        assert populated.count_users() == 4
        assert populated.count_users(is_active=True) == 3
        assert populated.count_users(role=Role.ADMIN) == 1

    def test_recent_users_newest_first(self, populated: UserStore) -> None:
        recent = populated.recent_users(2)
        assert [u.name for u in recent] == ["Dee Dormant", "Cy Coder"]

    def test_get_by_ids(self, populated: UserStore) -> None:
        ada = populated.get_by_email("ada@taskflow.io")
        found = populated.get_by_ids({ada.id, "missing"})
        assert set(found) == {ada.id}


def test_separate_databases_are_isolated() -> None:
    a = UserStore(db_url=memory_db_url())
    b = UserStore(db_url=memory_db_url())
    a.create_user("Ada", "ada@taskflow.io", DEFAULT_PASSWORD)
    assert b.get_by_email("ada@taskflow.io") is None
    a.close()
    b.close()
