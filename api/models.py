"""
API request and response models for TaskFlow REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tasks/models.py, which own the internal domain representation. Route handlers
map between the two.

Wire names are camelCase (dueDate, isActive, totalPages, ...). Fields are
declared snake_case and aliased via to_camel; populate_by_name lets route code
construct models with either spelling.

Envelopes:
  ApiResponse[T]        -- {success, message, data}
  PaginatedResponse[T]  -- {success, message, data: [...], pagination: {...}}
  ErrorResponse         -- {success: false, message, errors?, detail?}

Separation of concerns: domain models = domain truth; api/ models = API contract.
No response model has a slot for a password hash.
"""

import re
from datetime import datetime
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator, model_validator
from pydantic.alias_generators import to_camel

from auth.models import Role, User
from core.pagination import Page
from tasks.models import Task, TaskPriority, TaskStats, TaskStatus

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# One lowercase, one uppercase, one digit, one of @$!%*?&. Python re (not the
# pydantic pattern engine) because the rule needs lookaheads.
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")
_PASSWORD_RULE = (
    "Password must contain at least one uppercase letter, one lowercase letter, "
    "one number, and one special character"
)

_Tag = Annotated[str, Field(min_length=1, max_length=30)]


def _check_password_strength(value: str) -> str:
    if not _PASSWORD_RE.match(value):
        raise ValueError(_PASSWORD_RULE)
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class _CredentialModel(BaseModel):
    """Base for bodies carrying passwords, which are hashed exactly as sent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _normalize_email(value: object) -> object:
    return value.strip().lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CredentialModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50, pattern=r"^[A-Za-z\s]+$")]
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    role: Role = Role.MEMBER

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(_CredentialModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


class ProfileUpdate(_CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=r"^[A-Za-z\s]+$")
    email: Optional[EmailStr] = None


class ChangePasswordRequest(_CredentialModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def differs_from_current(self) -> "ChangePasswordRequest":
        if self.new_password == self.current_password:
            raise ValueError("New password must be different from current password")
        return self


# ---------------------------------------------------------------------------
# Tasks -- request models
# ---------------------------------------------------------------------------


class TaskCreate(_CamelModel):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=1000)
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    tags: list[_Tag] = Field(default_factory=list, max_length=10)
    user_id: Optional[str] = Field(default=None, description="Owner to assign the task to (admins only).")


class TaskUpdate(_CamelModel):
    """Partial update. Only fields present in the request body are applied."""

    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    tags: Optional[list[_Tag]] = Field(default=None, max_length=10)
    user_id: Optional[str] = None


class BulkStatusUpdate(_CamelModel):
    task_ids: list[str] = Field(min_length=1, max_length=100)
    status: TaskStatus


# ---------------------------------------------------------------------------
# Admin -- request models
# ---------------------------------------------------------------------------


class UserAdminUpdate(_CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50, pattern=r"^[A-Za-z\s]+$")
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ApiResponse(_CamelModel, Generic[T]):
    success: bool = True
    message: str = "Success"
    data: Optional[T] = None


class PaginationMeta(_CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def from_page(cls, page: Page) -> "PaginationMeta":
        return cls(
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
            has_next_page=page.has_next,
            has_prev_page=page.has_prev,
        )


class PaginatedResponse(_CamelModel, Generic[T]):
    success: bool = True
    message: str = "Success"
    data: list[T] = Field(default_factory=list)
    pagination: PaginationMeta


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Failure envelope returned on every 4xx/5xx response.

    detail carries the raw exception text for unexpected errors and is only
    populated when DEBUG=true.
    """

    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None
    detail: Optional[str] = None


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class UserOut(_CamelModel):
    id: str
    name: str
    email: str
    role: Role
    is_active: bool
    last_login: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        """Factory Method -- the only place a domain User becomes wire data."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserBrief(_CamelModel):
    id: str
    name: str
    email: str


class AuthPayload(_CamelModel):
    user: UserOut
    token: str


class TokenPayload(_CamelModel):
    token: str


class TaskOut(_CamelModel):
    id: str
    title: str
    description: str
    status: str
    priority: str
    due_date: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    user_id: str
    user: Optional[UserBrief] = None
    created_by: str
    completed_at: Optional[str] = None
    is_overdue: bool = False
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, task: Task, owner: Optional[User] = None) -> "TaskOut":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            tags=task.tags,
            user_id=task.owner_id,
            user=UserBrief(id=owner.id, name=owner.name, email=owner.email) if owner else None,
            created_by=task.created_by,
            completed_at=task.completed_at,
            is_overdue=task.is_overdue,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskStatsOut(_CamelModel):
    by_status: dict[str, int]
    by_priority: dict[str, int]
    overdue: int

    @classmethod
    def from_stats(cls, stats: TaskStats) -> "TaskStatsOut":
        return cls(by_status=stats.by_status, by_priority=stats.by_priority, overdue=stats.overdue)


class BulkResult(_CamelModel):
    modified_count: int


class DeletedUserResult(_CamelModel):
    deleted_tasks: int


class UserDetailOut(_CamelModel):
    user: UserOut
    task_stats: TaskStatsOut


class UserCounts(_CamelModel):
    total: int
    active: int
    admins: int
    regular_users: int


class TaskCounts(_CamelModel):
    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]


class DashboardOut(_CamelModel):
    users: UserCounts
    tasks: TaskCounts
    recent_users: list[UserOut]


class HealthData(_CamelModel):
    status: str = "healthy"
    version: str
    environment: str
    timestamp: str
    components: dict[str, str] = Field(default_factory=dict)
