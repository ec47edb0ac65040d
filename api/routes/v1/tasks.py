"""
api/routes/v1/tasks.py -- Task REST endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /tasks               -- paginated, filtered, sorted list
  POST   /tasks               -- create (admins may assign via userId)
  GET    /tasks/stats         -- status/priority/overdue counts
  PATCH  /tasks/bulk-status   -- set status on many tasks
  GET    /tasks/{task_id}     -- single task
  PUT    /tasks/{task_id}     -- partial update
  DELETE /tasks/{task_id}     -- delete

/tasks/stats and /tasks/bulk-status MUST be registered before /tasks/{task_id},
otherwise "stats" is captured as a task id.

Access control lives in tasks/service.py (policy checks) and tasks/scoping.py
(query scoping). These handlers only translate HTTP <-> service calls.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    ApiResponse,
    BulkResult,
    BulkStatusUpdate,
    PaginatedResponse,
    PaginationMeta,
    TaskCreate,
    TaskOut,
    TaskStatsOut,
    TaskUpdate,
)
from auth.dependencies import get_current_user
from auth.models import User
from core.pagination import PageRequest
from tasks.models import Task, TaskPriority, TaskStatus
from tasks.scoping import DEFAULT_SORT, TaskFilters
from tasks.service import TaskService

# All task routes require authentication. Each handler still declares
# current_user because the service needs the caller for policy checks.
router = APIRouter()

# Fields a client may clear with an explicit null. The others ignore null.
_NULLABLE_FIELDS = {"description", "due_date"}


def _service(request: Request) -> TaskService:
    return request.app.state.task_service


def _to_out(service: TaskService, tasks: list[Task]) -> list[TaskOut]:
    owners = service.owners_of(tasks)
    return [TaskOut.from_task(t, owners.get(t.owner_id)) for t in tasks]


# ---------------------------------------------------------------------------
# GET /tasks -- list
# ---------------------------------------------------------------------------


@router.get("/tasks", response_model=PaginatedResponse[TaskOut])
def list_tasks(
    request: Request,
    page: int = 1,
    limit: int = 10,
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    sort_by: str = Query(default=DEFAULT_SORT, alias="sortBy"),
    order: Literal["asc", "desc"] = "desc",
    current_user: User = Depends(get_current_user),
) -> PaginatedResponse[TaskOut]:
    """Return one page of the caller's tasks (or everyone's, for admins).

    Members always see only their own tasks; a userId filter from a member is
    ignored. Out-of-range page/limit values are clamped, not rejected.
    """
    service = _service(request)
    filters = TaskFilters(
        status=status.value if status else None,
        priority=priority.value if priority else None,
        tag=tag,
        search=search,
        owner_id=user_id,
        sort_by=sort_by,
        order=order,
    )
    result = service.list_tasks(current_user, filters, PageRequest(page=page, limit=limit))
    return PaginatedResponse(
        message="Tasks retrieved successfully",
        data=_to_out(service, result.items),
        pagination=PaginationMeta.from_page(result),
    )


# ---------------------------------------------------------------------------
# POST /tasks -- create
# ---------------------------------------------------------------------------


@router.post("/tasks", response_model=ApiResponse[TaskOut], status_code=201)
def create_task(
    request: Request,
    body: TaskCreate,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[TaskOut]:
    """Create a task for the caller, or for userId when the caller is an admin."""
    service = _service(request)
    task = service.create_task(
        current_user,
        title=body.title,
        description=body.description,
        status=body.status.value,
        priority=body.priority.value,
        due_date=body.due_date,
        tags=body.tags,
        owner_id=body.user_id,
    )
    return ApiResponse(message="Task created successfully", data=_to_out(service, [task])[0])


# ---------------------------------------------------------------------------
# Collection-level actions (before /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks/stats", response_model=ApiResponse[TaskStatsOut])
def task_stats(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: User = Depends(get_current_user),
) -> ApiResponse[TaskStatsOut]:
    """Counts by status and priority plus overdue, for the caller or (admins) userId."""
    stats = _service(request).stats(current_user, user_id)
    return ApiResponse(message="Task statistics retrieved successfully", data=TaskStatsOut.from_stats(stats))


@router.patch("/tasks/bulk-status", response_model=ApiResponse[BulkResult])
def bulk_update_status(
    request: Request,
    body: BulkStatusUpdate,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[BulkResult]:
    """Set one status on many tasks. Ids the caller does not own are skipped for members."""
    modified = _service(request).bulk_update_status(current_user, body.task_ids, body.status.value)
    return ApiResponse(message=f"{modified} tasks updated successfully", data=BulkResult(modified_count=modified))


# ---------------------------------------------------------------------------
# Single-task routes
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}", response_model=ApiResponse[TaskOut])
def get_task(
    request: Request,
    task_id: str,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[TaskOut]:
    service = _service(request)
    task = service.get_task(current_user, task_id)
    return ApiResponse(message="Task retrieved successfully", data=_to_out(service, [task])[0])


@router.put("/tasks/{task_id}", response_model=ApiResponse[TaskOut])
def update_task(
    request: Request,
    task_id: str,
    body: TaskUpdate,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[TaskOut]:
    """Apply only the fields present in the body.

    description and dueDate accept null to clear them. Changing userId
    reassigns the task (admins only).
    """
    service = _service(request)
    fields = body.model_dump(exclude_unset=True)
    owner_id = fields.pop("user_id", None)
    fields = {k: v for k, v in fields.items() if v is not None or k in _NULLABLE_FIELDS}
    for key in ("status", "priority"):
        if key in fields:
            fields[key] = fields[key].value
    task = service.update_task(current_user, task_id, owner_id=owner_id, **fields)
    return ApiResponse(message="Task updated successfully", data=_to_out(service, [task])[0])


@router.delete("/tasks/{task_id}", response_model=ApiResponse[None])
def delete_task(
    request: Request,
    task_id: str,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[None]:
    _service(request).delete_task(current_user, task_id)
    return ApiResponse(message="Task deleted successfully")
