"""
tests/test_task_store.py -- Unit tests for TaskStore (tasks/store.py).

Coverage:
  - completed_at derivation (pure function and through the store)
  - filters: status, priority, exact tag, case-insensitive search, owner
  - sorting and pagination totals
  - stats and overdue counting
  - bulk status update (count, owner restriction, no-op rows)
  - cascade helpers used when a user is deleted
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from auth.models import Role
from conftest import make_user
from core.pagination import PageRequest
from tasks.models import Task
from tasks.scoping import TaskQuery
from tasks.store import TaskStore, derive_completed_at

NOW = "2026-01-01T00:00:00.000000+00:00"
EARLIER = "2025-12-01T00:00:00.000000+00:00"


def _past(days: int = 1) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def _future(days: int = 1) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture()
def owners(user_store):
    admin, _ = make_user(user_store, "Ada Admin", "admin@taskflow.io", Role.ADMIN)
    mia, _ = make_user(user_store, "Mia Member", "mia@taskflow.io")
    otto, _ = make_user(user_store, "Otto Other", "otto@taskflow.io")
    return admin, mia, otto


def _add(store: TaskStore, owner_id: str, title: str = "Write report", created_by: str | None = None, **kw) -> Task:
    return store.create_task(Task(title=title, owner_id=owner_id, created_by=created_by or owner_id, **kw))


class TestDeriveCompletedAt:
    def test_entering_completed_stamps_now(self) -> None:
        assert derive_completed_at("pending", "completed", None, NOW) == NOW

    def test_staying_completed_keeps_stamp(self) -> None:
        assert derive_completed_at("completed", "completed", EARLIER, NOW) == EARLIER

    @pytest.mark.parametrize("status", ["pending", "in-progress", "cancelled"])
    def test_leaving_completed_clears(self, status) -> None:
        assert derive_completed_at("completed", status, EARLIER, NOW) is None

    def test_create_as_completed(self) -> None:
        assert derive_completed_at(None, "completed", None, NOW) == NOW


class TestCrud:
    def test_create_defaults(self, task_store, owners) -> None:
        _, mia, _ = owners
        task = _add(task_store, mia.id, "  Write report  ")
        assert task.id
        assert task.title == "Write report"
        assert task.status == "pending"
        assert task.priority == "medium"
        assert task.tags == []
        assert task.completed_at is None
        assert task.created_at == task.updated_at

    def test_create_completed_sets_completed_at(self, task_store, owners) -> None:
        _, mia, _ = owners
        assert _add(task_store, mia.id, status="completed").completed_at is not None

    def test_completed_at_follows_status(self, task_store, owners) -> None:
        _, mia, _ = owners
        task = _add(task_store, mia.id)
        done = task_store.update_task(task.id, status="completed")
        assert done.completed_at is not None

        again = task_store.update_task(task.id, status="completed", title="Write final report")
        assert again.completed_at == done.completed_at

        reopened = task_store.update_task(task.id, status="pending")
        assert reopened.completed_at is None

    def test_non_status_update_keeps_completed_at(self, task_store, owners) -> None:
        _, mia, _ = owners
        task = _add(task_store, mia.id, status="completed")
        assert task_store.update_task(task.id, priority="high").completed_at == task.completed_at

    def test_due_date_normalized_and_clearable(self, task_store, owners) -> None:
        _, mia, _ = owners
        due = datetime(2030, 5, 1, 12, 0, tzinfo=timezone.utc)
        task = _add(task_store, mia.id, due_date=due)
        assert task.due_date == "2030-05-01T12:00:00.000000+00:00"
        assert task_store.update_task(task.id, due_date=None).due_date is None

    def test_update_missing_task(self, task_store) -> None:
        assert task_store.update_task("missing", title="Nope") is None

    def test_update_rejects_unknown_field(self, task_store, owners) -> None:
        _, mia, _ = owners
        task = _add(task_store, mia.id)
        with pytest.raises(ValueError):
            task_store.update_task(task.id, completed_at=NOW)

    def test_delete(self, task_store, owners) -> None:
        _, mia, _ = owners
        task = _add(task_store, mia.id)
        assert task_store.delete_task(task.id)
        assert task_store.get_task(task.id) is None
        assert not task_store.delete_task(task.id)


class TestListTasks:
    @pytest.fixture()
    def seeded(self, task_store, owners):
        admin, mia, otto = owners
        _add(task_store, mia.id, "Design UI", tags=["ui", "design"], priority="high")
        _add(task_store, mia.id, "Fix login bug", tags=["ui-kit"], status="in-progress")
        _add(task_store, mia.id, "Write docs", description="Document the REPORT api", priority="low")
        _add(task_store, otto.id, "Otto private task", tags=["ui"])
        return task_store, admin, mia, otto

    def test_owner_scope(self, seeded) -> None:
        store, _, mia, otto = seeded
        assert store.list_tasks(TaskQuery(owner_id=mia.id)).total == 3
        assert store.list_tasks(TaskQuery(owner_id=otto.id)).total == 1
        assert store.list_tasks(TaskQuery()).total == 4

    def test_tag_filter_matches_whole_tag(self, seeded) -> None:
        store, _, mia, _ = seeded
        page = store.list_tasks(TaskQuery(owner_id=mia.id, tag="ui"))
        assert [t.title for t in page.items] == ["Design UI"]

    def test_tag_filter_is_case_sensitive(self, task_store, owners) -> None:
        _, mia, _ = owners
        _add(task_store, mia.id, "Lowercase tags", tags=["work", "caf\u00e9"])
        assert task_store.list_tasks(TaskQuery(owner_id=mia.id, tag="WORK")).total == 0
        assert task_store.list_tasks(TaskQuery(owner_id=mia.id, tag="CAF\u00c9")).total == 0
        assert task_store.list_tasks(TaskQuery(owner_id=mia.id, tag="work")).total == 1
        assert task_store.list_tasks(TaskQuery(owner_id=mia.id, tag="caf\u00e9")).total == 1

    def test_search_title_or_description_case_insensitive(self, seeded) -> None:
        store, _, mia, _ = seeded
        assert store.list_tasks(TaskQuery(owner_id=mia.id, search="report")).total == 1
        assert store.list_tasks(TaskQuery(owner_id=mia.id, search="LOGIN")).total == 1

    def test_status_and_priority_filters(self, seeded) -> None:
        store, _, _, _ = seeded
        assert store.list_tasks(TaskQuery(status="in-progress")).total == 1
        assert store.list_tasks(TaskQuery(priority="high")).total == 1

    def test_sort_by_title_ascending(self, seeded) -> None:
        store, _, mia, _ = seeded
        page = store.list_tasks(TaskQuery(owner_id=mia.id, sort_by="title", order="asc"))
        assert [t.title for t in page.items] == ["Design UI", "Fix login bug", "Write docs"]

    def test_default_sort_newest_first(self, seeded) -> None:
        store, _, mia, _ = seeded
        page = store.list_tasks(TaskQuery(owner_id=mia.id))
        assert page.items[0].title == "Write docs"

    def test_pagination(self, seeded) -> None:
        store, _, mia, _ = seeded
        page = store.list_tasks(TaskQuery(owner_id=mia.id, page=PageRequest(page=2, limit=2)))
        assert page.total == 3
        assert len(page.items) == 1
        assert page.total_pages == 2
        assert not page.has_next
        assert page.has_prev


class TestStats:
    def test_stats_by_status_priority_and_overdue(self, task_store, owners) -> None:
        _, mia, otto = owners
        _add(task_store, mia.id, "Late one", due_date=_past(), priority="urgent")
        _add(task_store, mia.id, "Late but done", due_date=_past(), status="completed")
        _add(task_store, mia.id, "Late but cancelled", due_date=_past(), status="cancelled")
        _add(task_store, mia.id, "Not due yet", due_date=_future())
        _add(task_store, otto.id, "Otto late", due_date=_past())

        stats = task_store.stats_for(mia.id)
        assert stats.by_status == {"pending": 2, "completed": 1, "cancelled": 1}
        assert stats.by_priority == {"urgent": 1, "medium": 3}
        assert stats.overdue == 1
        assert stats.total == 4

    def test_empty_owner_has_empty_stats(self, task_store, owners) -> None:
        _, mia, _ = owners
        stats = task_store.stats_for(mia.id)
        assert stats.by_status == {}
        assert stats.overdue == 0

    def test_all_owners(self, task_store, owners) -> None:
        _, mia, otto = owners
        _add(task_store, mia.id)
        _add(task_store, otto.id)
        assert task_store.stats_for(None).total == 2
        assert task_store.count_tasks() == 2
        assert task_store.count_tasks(mia.id) == 1

    def test_overdue_flag_on_task(self, task_store, owners) -> None:
        _, mia, _ = owners
        assert _add(task_store, mia.id, due_date=_past()).is_overdue
        assert not _add(task_store, mia.id, due_date=_future()).is_overdue
        assert not _add(task_store, mia.id, due_date=_past(), status="completed").is_overdue


class TestBulkUpdate:
    def test_counts_only_changed_rows(self, task_store, owners) -> None:
        _, mia, _ = owners
        a = _add(task_store, mia.id)
        b = _add(task_store, mia.id, status="completed")
        assert task_store.bulk_update_status([a.id, b.id, "missing"], "completed") == 1
        assert task_store.get_task(a.id).completed_at is not None

    def test_owner_restriction_skips_foreign_rows(self, task_store, owners) -> None:
        _, mia, otto = owners
        mine = _add(task_store, mia.id)
        theirs = _add(task_store, otto.id)
        assert task_store.bulk_update_status([mine.id, theirs.id], "in-progress", owner_id=mia.id) == 1
        assert task_store.get_task(theirs.id).status == "pending"

    def test_leaving_completed_clears_stamp(self, task_store, owners) -> None:
        _, mia, _ = owners
        done = _add(task_store, mia.id, status="completed")
        task_store.bulk_update_status([done.id], "pending")
        assert task_store.get_task(done.id).completed_at is None

    def test_empty_ids(self, task_store) -> None:
        assert task_store.bulk_update_status([], "completed") == 0


class TestCascadeHelpers:
    def test_delete_tasks_for_owner(self, task_store, owners) -> None:
        _, mia, otto = owners
        _add(task_store, mia.id)
        _add(task_store, mia.id)
        keep = _add(task_store, otto.id)
        assert task_store.delete_tasks_for_owner(mia.id) == 2
        assert task_store.count_tasks(mia.id) == 0
        assert task_store.get_task(keep.id) is not None

    def test_reattribute_created_by(self, task_store, owners) -> None:
        admin, mia, _ = owners
        assigned = _add(task_store, mia.id, created_by=admin.id)
        own = _add(task_store, admin.id)
        assert task_store.reattribute_created_by(admin.id) == 1
        assert task_store.get_task(assigned.id).created_by == mia.id
        assert task_store.get_task(own.id).created_by == admin.id
