"""
tasks/service.py -- Work item operations, gated by auth/policy.py.

Every method takes the authenticated caller first. Single-record operations
load the task, then ask the policy engine about (caller, operation, owner);
list, stats and bulk operations go through tasks/scoping.py instead, so a
member's query is pinned to their own id before it reaches the store.

Owner reassignment (admin assigning work to someone else) is checked twice:
write access on the current owner and on the new owner. Members therefore
get Forbidden for any foreign owner id, on create as well as update.

Domain invariants are enforced here too (title length, enum membership, tag
count), independent of the HTTP layer's request-shape validation.
"""

import logging
from datetime import datetime
from typing import Optional, Union

from auth.models import User
from auth.policy import Operation, authorize
from auth.store import UserStore
from core.errors import NotFound, ValidationFailed
from core.pagination import Page, PageRequest
from tasks.models import MAX_TAGS, Task, TaskPriority, TaskStats, TaskStatus
from tasks.scoping import TaskFilters, scope_owner, scope_task_query, stats_owner
from tasks.store import TaskStore

logger = logging.getLogger("taskflow.tasks")

_STATUSES = {s.value for s in TaskStatus}
_PRIORITIES = {p.value for p in TaskPriority}


def _own_or_any(caller: User, owner_id: str, own: Operation, any_: Operation) -> Operation:
    return own if owner_id == caller.id else any_


def _validate(fields: dict) -> None:
    """Raise ValidationFailed listing every field that breaks a domain invariant."""
    errors: list[dict] = []
    if "title" in fields:
        title = (fields["title"] or "").strip()
        if not 3 <= len(title) <= 100:
            errors.append({"field": "title", "message": "Title must be between 3 and 100 characters"})
    if "description" in fields and len((fields["description"] or "").strip()) > 1000:
        errors.append({"field": "description", "message": "Description cannot exceed 1000 characters"})
    if "status" in fields and fields["status"] not in _STATUSES:
        errors.append({"field": "status", "message": "Invalid status value"})
    if "priority" in fields and fields["priority"] not in _PRIORITIES:
        errors.append({"field": "priority", "message": "Invalid priority value"})
    if "tags" in fields and len(fields["tags"] or []) > MAX_TAGS:
        errors.append({"field": "tags", "message": f"Cannot have more than {MAX_TAGS} tags"})
    if errors:
        raise ValidationFailed(errors=errors)


class TaskService:
    def __init__(self, tasks: TaskStore, users: UserStore) -> None:
        self.tasks = tasks
        self.users = users

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_tasks(self, caller: User, filters: TaskFilters, page: Optional[PageRequest] = None) -> Page[Task]:
        """Return one page of tasks the caller may see, filtered and sorted."""
        return self.tasks.list_tasks(scope_task_query(caller, filters, page))

    def get_task(self, caller: User, task_id: str) -> Task:
        task = self._load(task_id)
        authorize(
            caller,
            _own_or_any(caller, task.owner_id, Operation.READ_OWN, Operation.READ_ANY),
            task.owner_id,
            "You do not have permission to access this task",
        )
        return task

    def stats(self, caller: User, user_id: Optional[str] = None) -> TaskStats:
        """Status/priority/overdue counts for the caller, or for user_id when an admin asks."""
        return self.tasks.stats_for(stats_owner(caller, user_id))

    def owners_of(self, tasks: list[Task]) -> dict[str, User]:
        """Batch-resolve owner records for embedding in responses."""
        return self.users.get_by_ids({t.owner_id for t in tasks})

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_task(
        self,
        caller: User,
        title: str,
        description: str = "",
        status: str = TaskStatus.PENDING.value,
        priority: str = TaskPriority.MEDIUM.value,
        due_date: Optional[Union[str, datetime]] = None,
        tags: Optional[list[str]] = None,
        owner_id: Optional[str] = None,
    ) -> Task:
        """Create a task owned by the caller, or by owner_id when an admin assigns it."""
        _validate({"title": title, "description": description, "status": status, "priority": priority, "tags": tags})
        target_owner = owner_id or caller.id
        authorize(
            caller,
            _own_or_any(caller, target_owner, Operation.WRITE_OWN, Operation.WRITE_ANY),
            target_owner,
            "You do not have permission to create tasks for another user",
        )
        self._require_user(target_owner)
        task = self.tasks.create_task(
            Task(
                title=title,
                description=description or "",
                status=status,
                priority=priority,
                due_date=due_date,
                tags=tags or [],
                owner_id=target_owner,
                created_by=caller.id,
            )
        )
        logger.info("Task created: %s by user: %s", task.id, caller.email)
        return task

    def update_task(self, caller: User, task_id: str, owner_id: Optional[str] = None, **fields) -> Task:
        """Apply a partial update. Only fields present in **fields are written.

        owner_id reassigns the task; callers need write access on both the
        current and the new owner.
        """
        task = self._load(task_id)
        authorize(
            caller,
            _own_or_any(caller, task.owner_id, Operation.WRITE_OWN, Operation.WRITE_ANY),
            task.owner_id,
            "You do not have permission to update this task",
        )
        _validate(fields)
        if owner_id and owner_id != task.owner_id:
            authorize(
                caller,
                _own_or_any(caller, owner_id, Operation.WRITE_OWN, Operation.WRITE_ANY),
                owner_id,
                "You do not have permission to reassign this task",
            )
            self._require_user(owner_id)
            fields["owner_id"] = owner_id

        updated = self.tasks.update_task(task_id, **fields) if fields else task
        if updated is None:
            raise NotFound("Task not found")
        logger.info("Task updated: %s by user: %s", task_id, caller.email)
        return updated

    def delete_task(self, caller: User, task_id: str) -> None:
        task = self._load(task_id)
        authorize(
            caller,
            _own_or_any(caller, task.owner_id, Operation.DELETE_OWN, Operation.WRITE_ANY),
            task.owner_id,
            "You do not have permission to delete this task",
        )
        self.tasks.delete_task(task_id)
        logger.info("Task deleted: %s by user: %s", task_id, caller.email)

    def bulk_update_status(self, caller: User, task_ids: list[str], status: str) -> int:
        """Set status on many tasks; members only touch their own. Returns the modified count.

        Not all-or-nothing: each row is updated independently, and ids the
        caller may not touch are skipped rather than reported.
        """
        if not task_ids:
            raise ValidationFailed.for_field("taskIds", "Task IDs are required")
        _validate({"status": status})
        modified = self.tasks.bulk_update_status(task_ids, status, owner_id=scope_owner(caller))
        logger.info("Bulk status update: %d tasks updated by %s", modified, caller.email)
        return modified

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, task_id: str) -> Task:
        task = self.tasks.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _require_user(self, user_id: str) -> None:
        if not self.users.exists(user_id):
            raise ValidationFailed.for_field("userId", "Assigned user does not exist")
