"""
tasks/models.py -- Domain dataclasses for work items.

Pure data containers. Status and priority are closed enums; the completion
timestamp rule and the scoping rules live in tasks/store.py and
tasks/scoping.py respectively.

Layer rule: no imports from api/ or admin/.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Statuses that can never be overdue.
CLOSED_STATUSES = frozenset({TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value})

MAX_TAGS = 10


@dataclass
class Task:
    """A work item.

    owner_id   -- the user the task is *for*; the access-control owner.
    created_by -- who created it. Differs from owner_id when an admin assigns work.
    completed_at is derived from status transitions and never set by callers.

    id is None before the record is written to the database.
    """

    title: str
    owner_id: str
    created_by: str
    description: str = ""
    status: str = TaskStatus.PENDING.value
    priority: str = TaskPriority.MEDIUM.value
    due_date: Optional[str] = None  # ISO 8601, UTC
    tags: list[str] = field(default_factory=list)
    completed_at: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_overdue(self) -> bool:
        if not self.due_date or self.status in CLOSED_STATUSES:
            return False
        due = datetime.fromisoformat(self.due_date)
        if due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        return due < datetime.now(timezone.utc)


@dataclass
class TaskStats:
    """Per-owner counts for dashboards. Absent categories are absent, not zero."""

    by_status: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    overdue: int = 0

    @property
    def total(self) -> int:
        return sum(self.by_status.values())
