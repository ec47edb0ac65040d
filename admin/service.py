"""
admin/service.py -- Administrator operations over users and aggregate stats.

Every method starts with the coarse role gate (auth.policy.require_admin),
then applies the per-target rule where one exists: an admin may not
deactivate or delete their own identity.

This is the only module that writes to both stores. Deleting a user is an
explicit, ordered cascade rather than a foreign key:
  1. tasks the user created for other owners are re-attributed to their owner
  2. tasks the user owns are deleted
  3. the user record is deleted
Each step is atomic on its own; the sequence is not a transaction.

Layer rule: may import auth/, tasks/ and core/. Nothing imports admin/
except api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from auth.models import Role, User
from auth.policy import Operation, authorize, require_admin
from auth.store import UserStore
from core.errors import NotFound
from core.pagination import Page, PageRequest
from tasks.models import TaskStats
from tasks.store import TaskStore

logger = logging.getLogger("taskflow.admin")

_RECENT_USERS = 5


@dataclass
class DashboardStats:
    total_users: int
    active_users: int
    admins: int
    tasks: TaskStats
    total_tasks: int
    recent_users: list[User] = field(default_factory=list)

    @property
    def regular_users(self) -> int:
        return self.total_users - self.admins


class AdminService:
    def __init__(self, users: UserStore, tasks: TaskStore) -> None:
        self.users = users
        self.tasks = tasks

    def list_users(
        self,
        caller: User,
        page: PageRequest,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Page[User]:
        require_admin(caller)
        return self.users.list_users(page, role=role, is_active=is_active, search=search, sort_by=sort_by, order=order)

    def get_user(self, caller: User, user_id: str) -> tuple[User, TaskStats]:
        """Return the user and that user's task stats."""
        require_admin(caller)
        user = self._load(user_id)
        return user, self.tasks.stats_for(user.id)

    def update_user(
        self,
        caller: User,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        """Update profile, role and/or active flag. Raises Conflict on a taken email."""
        require_admin(caller)
        target = self._load(user_id)
        if is_active is False:
            authorize(caller, Operation.DEACTIVATE_USER, target.id, "You cannot deactivate your own account")
        updated = self.users.update_user(target.id, name=name, email=email, role=role, is_active=is_active)
        if updated is None:
            raise NotFound("User not found")
        logger.info("Admin %s updated user %s", caller.email, updated.email)
        return updated

    def set_active(self, caller: User, user_id: str, active: bool) -> User:
        require_admin(caller)
        target = self._load(user_id)
        if not active:
            authorize(caller, Operation.DEACTIVATE_USER, target.id, "You cannot deactivate your own account")
        self.users.set_active(target.id, active)
        logger.info("Admin %s %s user %s", caller.email, "activated" if active else "deactivated", target.email)
        return self._load(target.id)

    def delete_user(self, caller: User, user_id: str) -> int:
        """Delete a user and every task they own. Returns the number of tasks removed."""
        require_admin(caller)
        target = self._load(user_id)
        authorize(caller, Operation.DELETE_USER, target.id, "You cannot delete your own account")
        self.tasks.reattribute_created_by(target.id)
        removed = self.tasks.delete_tasks_for_owner(target.id)
        self.users.delete_user(target.id)
        logger.info("Admin %s deleted user %s and %d tasks", caller.email, target.email, removed)
        return removed

    def dashboard_stats(self, caller: User) -> DashboardStats:
        """Counts across all users and all tasks, plus the newest accounts."""
        require_admin(caller)
        task_stats = self.tasks.stats_for(None)
        return DashboardStats(
            total_users=self.users.count_users(),
            active_users=self.users.count_users(is_active=True),
            admins=self.users.count_users(role=Role.ADMIN),
            tasks=task_stats,
            total_tasks=self.tasks.count_tasks(),
            recent_users=self.users.recent_users(_RECENT_USERS),
        )

    def _load(self, user_id: str) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user
