"""
tasks/scoping.py -- Turn a caller plus requested filters into the effective task query.

This is the data-isolation boundary for list, search, stats and bulk
operations. Everything here is pure: no store access, no I/O.

Owner rules:
  Members: the owner filter is always the caller's own id. An owner override
           in the request is ignored, not rejected -- the member simply sees
           their own data.
  Admins:  the override applies when supplied; otherwise no owner filter.

TaskQuery is what tasks/store.py translates into SQL. The store never
decides who may see what; it only executes the query it is given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from auth.models import Role, User
from core.pagination import PageRequest

# Public sort keys (camelCase, as sent by clients). tasks/store.py maps these
# to columns; anything else falls back to DEFAULT_SORT.
TASK_SORT_FIELDS = ("createdAt", "updatedAt", "title", "priority", "dueDate", "status")
DEFAULT_SORT = "createdAt"
DEFAULT_ORDER = "desc"


@dataclass(frozen=True)
class TaskFilters:
    """Filters as requested by the caller, before scoping."""

    status: Optional[str] = None
    priority: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    owner_id: Optional[str] = None
    sort_by: str = DEFAULT_SORT
    order: str = DEFAULT_ORDER


@dataclass(frozen=True)
class TaskQuery:
    """The effective query after scoping. owner_id None means "all owners"."""

    owner_id: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    sort_by: str = DEFAULT_SORT
    order: str = DEFAULT_ORDER
    page: PageRequest = field(default_factory=PageRequest)


def scope_owner(caller: User, requested_owner_id: Optional[str] = None) -> Optional[str]:
    """Return the owner restriction for caller.

    Members always get their own id. Admins get the requested id, or None
    (no restriction) when nothing was requested.
    """
    if caller.role != Role.ADMIN:
        return caller.id
    return requested_owner_id or None


def scope_task_query(caller: User, filters: TaskFilters, page: Optional[PageRequest] = None) -> TaskQuery:
    """Build the effective TaskQuery for caller."""
    search = filters.search.strip() if filters.search else None
    return TaskQuery(
        owner_id=scope_owner(caller, filters.owner_id),
        status=filters.status or None,
        priority=filters.priority or None,
        tag=filters.tag or None,
        search=search or None,
        sort_by=filters.sort_by if filters.sort_by in TASK_SORT_FIELDS else DEFAULT_SORT,
        order="asc" if filters.order == "asc" else "desc",
        page=page or PageRequest(),
    )


def stats_owner(caller: User, requested_owner_id: Optional[str] = None) -> str:
    """Owner whose stats a caller sees: admins may pick anyone, default is self."""
    return scope_owner(caller, requested_owner_id) or caller.id
