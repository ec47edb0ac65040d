"""
api/routes/v1/admin.py -- Administrator endpoints: user management and dashboard.

Routes:
  GET    /admin/stats                      -- dashboard counts
  GET    /admin/users                      -- paginated user list
  GET    /admin/users/{user_id}            -- user + that user's task stats
  PUT    /admin/users/{user_id}            -- update name/email/role/isActive
  DELETE /admin/users/{user_id}            -- delete user and their tasks
  PATCH  /admin/users/{user_id}/deactivate -- set isActive=false
  PATCH  /admin/users/{user_id}/activate   -- set isActive=true

Every route depends on require_admin (401 unauthenticated, 403 member).
An admin can neither deactivate nor delete their own account; AdminService
enforces that through auth/policy.py and it surfaces as 403.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    ApiResponse,
    DashboardOut,
    DeletedUserResult,
    PaginatedResponse,
    PaginationMeta,
    TaskCounts,
    TaskStatsOut,
    UserAdminUpdate,
    UserCounts,
    UserDetailOut,
    UserOut,
)
from admin.service import AdminService
from auth.dependencies import require_admin
from auth.models import Role, User
from core.pagination import PageRequest

router = APIRouter()


def _service(request: Request) -> AdminService:
    return request.app.state.admin_service


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@router.get("/admin/stats", response_model=ApiResponse[DashboardOut])
def dashboard_stats(request: Request, current_user: User = Depends(require_admin)) -> ApiResponse[DashboardOut]:
    """User counts, task counts by status and priority, and the five newest accounts."""
    stats = _service(request).dashboard_stats(current_user)
    return ApiResponse(
        message="Dashboard statistics retrieved successfully",
        data=DashboardOut(
            users=UserCounts(
                total=stats.total_users,
                active=stats.active_users,
                admins=stats.admins,
                regular_users=stats.regular_users,
            ),
            tasks=TaskCounts(
                total=stats.total_tasks,
                by_status=stats.tasks.by_status,
                by_priority=stats.tasks.by_priority,
            ),
            recent_users=[UserOut.from_user(u) for u in stats.recent_users],
        ),
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=PaginatedResponse[UserOut])
def list_users(
    request: Request,
    page: int = 1,
    limit: int = 10,
    role: Optional[Role] = None,
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    search: Optional[str] = None,
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = "desc",
    current_user: User = Depends(require_admin),
) -> PaginatedResponse[UserOut]:
    """Return one page of users. search matches name or email, case-insensitively."""
    result = _service(request).list_users(
        current_user,
        PageRequest(page=page, limit=limit),
        role=role,
        is_active=is_active,
        search=search,
        sort_by=sort_by,
        order=order,
    )
    return PaginatedResponse(
        message="Users retrieved successfully",
        data=[UserOut.from_user(u) for u in result.items],
        pagination=PaginationMeta.from_page(result),
    )


@router.get("/admin/users/{user_id}", response_model=ApiResponse[UserDetailOut])
def get_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> ApiResponse[UserDetailOut]:
    user, stats = _service(request).get_user(current_user, user_id)
    return ApiResponse(
        message="User retrieved successfully",
        data=UserDetailOut(user=UserOut.from_user(user), task_stats=TaskStatsOut.from_stats(stats)),
    )


@router.put("/admin/users/{user_id}", response_model=ApiResponse[UserOut])
def update_user(
    request: Request,
    user_id: str,
    body: UserAdminUpdate,
    current_user: User = Depends(require_admin),
) -> ApiResponse[UserOut]:
    """Update any subset of name, email, role, isActive. 409 on a taken email."""
    updated = _service(request).update_user(
        current_user,
        user_id,
        name=body.name,
        email=body.email,
        role=body.role,
        is_active=body.is_active,
    )
    return ApiResponse(message="User updated successfully", data=UserOut.from_user(updated))


@router.delete("/admin/users/{user_id}", response_model=ApiResponse[DeletedUserResult])
def delete_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> ApiResponse[DeletedUserResult]:
    """Delete the user and every task they own."""
    removed = _service(request).delete_user(current_user, user_id)
    return ApiResponse(
        message="User and associated tasks deleted successfully",
        data=DeletedUserResult(deleted_tasks=removed),
    )


@router.patch("/admin/users/{user_id}/deactivate", response_model=ApiResponse[UserOut])
def deactivate_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> ApiResponse[UserOut]:
    """Deactivate an account. Its outstanding tokens stop working on the next request."""
    user = _service(request).set_active(current_user, user_id, False)
    return ApiResponse(message="User deactivated successfully", data=UserOut.from_user(user))


@router.patch("/admin/users/{user_id}/activate", response_model=ApiResponse[UserOut])
def activate_user(
    request: Request,
    user_id: str,
    current_user: User = Depends(require_admin),
) -> ApiResponse[UserOut]:
    user = _service(request).set_active(current_user, user_id, True)
    return ApiResponse(message="User activated successfully", data=UserOut.from_user(user))
