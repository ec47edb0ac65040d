"""
tasks/store.py -- SQLAlchemy-backed persistence layer for TaskFlow work items.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tasks/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. TaskStore is the repository; _row_to_task
is the mapper. Services never touch SQL directly.

Completion timestamp:
  completed_at is derived, never written by callers. derive_completed_at() is
  the single pure rule; create_task(), update_task() and bulk_update_status()
  all run it before writing.

Scoping:
  The store does not decide who may see what. list_tasks() executes a
  tasks.scoping.TaskQuery exactly as given; the owner restriction was already
  applied there.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision) so lexical comparison in SQL matches chronological order.

Security: all queries use bound parameters. No f-strings in SQL.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, Index, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.pagination import Page
from tasks.models import CLOSED_STATUSES, Task, TaskStats, TaskStatus
from tasks.scoping import TaskQuery

logger = logging.getLogger("taskflow.tasks")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tasks = Table(
    "tasks",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("title", String(100), nullable=False),
    Column("description", String(1000), nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default=TaskStatus.PENDING.value),
    Column("priority", String(10), nullable=False, server_default="medium"),
    Column("due_date", String(32)),
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array serialized as text
    Column("owner_id", String(32), nullable=False),
    Column("created_by", String(32), nullable=False),
    Column("completed_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_tasks_owner_status", "owner_id", "status"),
    Index("ix_tasks_owner_priority", "owner_id", "priority"),
    Index("ix_tasks_owner_due", "owner_id", "due_date"),
    Index("ix_tasks_owner_created", "owner_id", "created_at"),
)

_SORT_COLUMNS = {
    "createdAt": _tasks.c.created_at,
    "updatedAt": _tasks.c.updated_at,
    "title": _tasks.c.title,
    "priority": _tasks.c.priority,
    "dueDate": _tasks.c.due_date,
    "status": _tasks.c.status,
}

_UPDATABLE_FIELDS = {"title", "description", "status", "priority", "due_date", "tags", "owner_id"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO 8601. Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def _normalize_due(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    return to_iso(datetime.fromisoformat(str(value)))


def _normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    return [t.strip() for t in (tags or []) if t and t.strip()]


def derive_completed_at(
    previous_status: Optional[str],
    new_status: str,
    previous_completed_at: Optional[str],
    now: str,
) -> Optional[str]:
    """Return the completed_at value to persist for a status write.

    Moving into completed stamps now; staying completed keeps the original
    stamp; any other status clears it.
    """
    if new_status != TaskStatus.COMPLETED.value:
        return None
    if previous_status == TaskStatus.COMPLETED.value and previous_completed_at:
        return previous_completed_at
    return now


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # thread pool where the same connection may be accessed across threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Single-record CRUD
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> Task:
        """Insert a task and return the stored record.

        Any completed_at on the input is ignored; it is derived from status.
        """
        task_id = uuid.uuid4().hex
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _tasks.insert().values(
                    id=task_id,
                    title=task.title.strip(),
                    description=(task.description or "").strip(),
                    status=task.status,
                    priority=task.priority,
                    due_date=_normalize_due(task.due_date),
                    tags=json.dumps(_normalize_tags(task.tags)),
                    owner_id=task.owner_id,
                    created_by=task.created_by,
                    completed_at=derive_completed_at(None, task.status, None, now),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_task(task_id)

    def get_task(self, task_id: str) -> Optional[Task]:
        """Fetch a single task by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_tasks.select().where(_tasks.c.id == task_id)).fetchone()
        return _row_to_task(row) if row is not None else None

    def update_task(self, task_id: str, **fields) -> Optional[Task]:
        """Update mutable fields and return the fresh record (None if not found).

        Accepts any subset of: title, description, status, priority, due_date,
        tags, owner_id. completed_at is recomputed whenever status is written.
        The read and the write share one transaction.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")

        values = dict(fields)
        if "title" in values:
            values["title"] = values["title"].strip()
        if "description" in values:
            values["description"] = (values["description"] or "").strip()
        if "due_date" in values:
            values["due_date"] = _normalize_due(values["due_date"])
        if "tags" in values:
            values["tags"] = json.dumps(_normalize_tags(values["tags"]))

        now = _now_iso()
        with self.engine.begin() as conn:
            current = conn.execute(_tasks.select().where(_tasks.c.id == task_id)).fetchone()
            if current is None:
                return None
            if "status" in values:
                values["completed_at"] = derive_completed_at(
                    current.status, values["status"], current.completed_at, now
                )
            values["updated_at"] = now
            conn.execute(_tasks.update().where(_tasks.c.id == task_id).values(**values))
        return self.get_task(task_id)

    def delete_task(self, task_id: str) -> bool:
        """Delete a task. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_tasks.delete().where(_tasks.c.id == task_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Multi-record operations (per-record atomicity only)
    # ------------------------------------------------------------------

    def bulk_update_status(self, task_ids: list[str], status: str, owner_id: Optional[str] = None) -> int:
        """Set status on every listed task (restricted to owner_id if given).

        Rows already in the target status are left alone, so the returned
        count is the number of tasks actually modified. Because every touched
        row is changing status, derive_completed_at() yields the same value
        for all of them.
        """
        if not task_ids:
            return 0
        now = _now_iso()
        conditions = [_tasks.c.id.in_(task_ids), _tasks.c.status != status]
        if owner_id is not None:
            conditions.append(_tasks.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update()
                .where(*conditions)
                .values(
                    status=status,
                    completed_at=derive_completed_at(None, status, None, now),
                    updated_at=now,
                )
            )
            conn.commit()
        return result.rowcount

    def delete_tasks_for_owner(self, owner_id: str) -> int:
        """Delete every task owned by owner_id. Returns the number deleted."""
        with self.engine.connect() as conn:
            result = conn.execute(_tasks.delete().where(_tasks.c.owner_id == owner_id))
            conn.commit()
        return result.rowcount

    def reattribute_created_by(self, user_id: str) -> int:
        """Point created_by at the owner for tasks user_id created for others.

        Run before deleting a user so created_by always names a live user.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _tasks.update()
                .where((_tasks.c.created_by == user_id) & (_tasks.c.owner_id != user_id))
                .values(created_by=_tasks.c.owner_id)
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_tasks(self, query: TaskQuery) -> Page[Task]:
        """Execute a scoped TaskQuery and return one page plus the total count."""
        conditions = _query_conditions(query)
        sort_col = _SORT_COLUMNS.get(query.sort_by, _tasks.c.created_at)
        ordering = sort_col.asc() if query.order == "asc" else sort_col.desc()
        stmt = (
            _tasks.select()
            .where(*conditions)
            .order_by(ordering, _tasks.c.id)
            .offset(query.page.offset)
            .limit(query.page.limit)
        )
        count_stmt = select(func.count()).select_from(_tasks).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
            total = conn.execute(count_stmt).scalar() or 0
        return Page(items=[_row_to_task(r) for r in rows], total=total, request=query.page)

    def count_tasks(self, owner_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(_tasks)
        if owner_id is not None:
            stmt = stmt.where(_tasks.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats_for(self, owner_id: Optional[str]) -> TaskStats:
        """Group an owner's tasks by status and by priority, and count overdue ones.

        owner_id None aggregates across every owner (admin dashboard).
        Categories with no tasks are absent from the mappings. Overdue means
        status not completed/cancelled and due_date strictly before now.
        """
        owner_clause = [_tasks.c.owner_id == owner_id] if owner_id is not None else []
        status_stmt = (
            select(_tasks.c.status, func.count().label("n")).where(*owner_clause).group_by(_tasks.c.status)
        )
        priority_stmt = (
            select(_tasks.c.priority, func.count().label("n")).where(*owner_clause).group_by(_tasks.c.priority)
        )
        overdue_stmt = (
            select(func.count())
            .select_from(_tasks)
            .where(
                *owner_clause,
                _tasks.c.status.not_in(sorted(CLOSED_STATUSES)),
                _tasks.c.due_date.isnot(None),
                _tasks.c.due_date < _now_iso(),
            )
        )
        with self.engine.connect() as conn:
            by_status = {row.status: row.n for row in conn.execute(status_stmt)}
            by_priority = {row.priority: row.n for row in conn.execute(priority_stmt)}
            overdue = conn.execute(overdue_stmt).scalar() or 0
        return TaskStats(by_status=by_status, by_priority=by_priority, overdue=overdue)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query translation
# ---------------------------------------------------------------------------


def _query_conditions(query: TaskQuery) -> list:
    conditions = []
    if query.owner_id is not None:
        conditions.append(_tasks.c.owner_id == query.owner_id)
    if query.status:
        conditions.append(_tasks.c.status == query.status)
    if query.priority:
        conditions.append(_tasks.c.priority == query.priority)
    if query.tag:
        # Tags are a JSON array; a quoted element can only match a whole tag.
        # instr is case-sensitive where LIKE is not.
        conditions.append(func.instr(_tasks.c.tags, json.dumps(query.tag.strip())) > 0)
    if query.search:
        conditions.append(
            or_(
                _tasks.c.title.icontains(query.search, autoescape=True),
                _tasks.c.description.icontains(query.search, autoescape=True),
            )
        )
    return conditions


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_task(row) -> Task:
    tags: list[str] = json.loads(row.tags) if row.tags else []
    return Task(
        id=row.id,
        title=row.title,
        description=row.description or "",
        status=row.status,
        priority=row.priority,
        due_date=row.due_date,
        tags=tags,
        owner_id=row.owner_id,
        created_by=row.created_by,
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
