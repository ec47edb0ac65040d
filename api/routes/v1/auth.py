"""
api/routes/v1/auth.py -- Registration, login and self-service account endpoints.

Routes:
  POST /api/v1/auth/register         -- create account; returns user + token (201)
  POST /api/v1/auth/login            -- password login; returns user + token
  GET  /api/v1/auth/me               -- current user profile (requires auth)
  PUT  /api/v1/auth/me               -- update own name/email (requires auth)
  PUT  /api/v1/auth/change-password  -- re-verify, store new password, fresh token
  POST /api/v1/auth/logout           -- acknowledgement; tokens are stateless

Security:
  register and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  AuthService.login() gives unknown email, inactive account and wrong password
  the same response and the same bcrypt cost.
  Cache-Control: no-store on every response that carries a token.
  Handlers that hash or verify passwords are plain `def` so FastAPI runs them
  in its thread pool; bcrypt never blocks the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ApiResponse,
    AuthPayload,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    TokenPayload,
    UserOut,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register:        public
# - POST /api/v1/auth/login:           public
# - GET  /api/v1/auth/me:              requires auth (get_current_user)
# - PUT  /api/v1/auth/me:              requires auth (get_current_user)
# - PUT  /api/v1/auth/change-password: requires auth (get_current_user)
# - POST /api/v1/auth/logout:          requires auth (get_current_user)
router = APIRouter()


def _token_response(status_code: int, message: str, data) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ApiResponse(message=message, data=data).model_dump(by_alias=True, mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=ApiResponse[AuthPayload], status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and return it together with a session token.

    409 if the email is already registered (case-insensitive).
    """
    auth_service: AuthService = request.app.state.auth_service
    user, token = auth_service.register(body.name, body.email, body.password, body.role)
    return _token_response(
        201,
        "User registered successfully",
        AuthPayload(user=UserOut.from_user(user), token=token),
    )


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=ApiResponse[AuthPayload])
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Returns the same generic 401 for unknown email, wrong password and
    deactivated account, so responses never reveal whether an account exists.
    """
    auth_service: AuthService = request.app.state.auth_service
    user, token = auth_service.login(body.email, body.password)
    return _token_response(200, "Login successful", AuthPayload(user=UserOut.from_user(user), token=token))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=ApiResponse[UserOut])
def me(current_user: User = Depends(get_current_user)) -> ApiResponse[UserOut]:
    """Return the profile of the currently authenticated user."""
    return ApiResponse(message="User profile retrieved successfully", data=UserOut.from_user(current_user))


@router.put("/auth/me", response_model=ApiResponse[UserOut])
def update_me(
    request: Request,
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
) -> ApiResponse[UserOut]:
    """Update the caller's own name and/or email. Role and active flag are admin-only."""
    auth_service: AuthService = request.app.state.auth_service
    updated = auth_service.update_profile(current_user, name=body.name, email=body.email)
    return ApiResponse(message="Profile updated successfully", data=UserOut.from_user(updated))


@router.put("/auth/change-password", response_model=ApiResponse[TokenPayload])
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Store a new password and return a fresh token.

    Every token issued before the change, including the one used for this
    request, stops working.
    """
    auth_service: AuthService = request.app.state.auth_service
    token = auth_service.change_password(current_user, body.current_password, body.new_password)
    return _token_response(200, "Password changed successfully", TokenPayload(token=token))


@router.post("/auth/logout", response_model=ApiResponse[None])
def logout(request: Request, current_user: User = Depends(get_current_user)) -> ApiResponse[None]:
    """Acknowledge logout. The client is expected to discard its token."""
    auth_service: AuthService = request.app.state.auth_service
    auth_service.logout(current_user)
    return ApiResponse(message="Logged out successfully")
