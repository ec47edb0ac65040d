"""
auth/service.py -- Credential lifecycle operations exposed to the HTTP layer.

AuthService ties UserStore (credentials) to auth/tokens.py (sessions):
  authenticate(token)                  -> live User or Unauthenticated
  register(name, email, password, role) -> (User, token)
  login(email, password)                -> (User, token) or AuthFailure
  change_password(user, current, new)   -> fresh token or AuthFailure
  update_profile(user, name, email)     -> User

Methods that hash or check passwords block for the bcrypt cost.
The routes that call them are sync handlers so FastAPI runs them in its
thread pool, off the event loop.

Layer rule: no imports from api/, tasks/, or admin/.
"""

from __future__ import annotations

import logging

from auth.models import Role, User
from auth.passwords import verify_password
from auth.store import UserStore
from auth.tokens import create_access_token, verify_token
from core.errors import AuthFailure, NotFound, Unauthenticated

logger = logging.getLogger("taskflow.auth")


class AuthService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def authenticate(self, token: str | None) -> User:
        """Resolve an optional bearer token to the live user.

        Raises Unauthenticated (or its InvalidToken / ExpiredToken subclasses)
        when the token is missing or does not verify.
        """
        if not token:
            raise Unauthenticated("Access denied. No token provided.")
        return verify_token(self.store, token)

    def register(self, name: str, email: str, password: str, role: Role = Role.MEMBER) -> tuple[User, str]:
        """Create an account and return it with a session token.

        Raises Conflict if the email is already registered.
        """
        user = self.store.create_user(name, email, password, role)
        logger.info("New user registered: %s with role: %s", user.email, user.role.value)
        return user, create_access_token(user)

    def login(self, email: str, password: str) -> tuple[User, str]:
        """Verify credentials, stamp last_login, and issue a token.

        Unknown email, inactive account and wrong password all raise the same
        AuthFailure. Do not add branches that distinguish them.
        """
        user = self.store.verify_credentials(email, password)
        if user is None:
            raise AuthFailure()
        self.store.update_last_login(user.id)
        logger.info("User logged in: %s", user.email)
        return self.store.get_by_id(user.id) or user, create_access_token(user)

    def change_password(self, user: User, current_password: str, new_password: str) -> str:
        """Re-verify the current password, store the new one, return a fresh token.

        Every token issued before this call stops verifying.
        """
        stored = self.store.get_by_id(user.id)
        if stored is None:
            raise NotFound("User not found.")
        if not verify_password(current_password, stored.hashed_password or ""):
            raise AuthFailure("Current password is incorrect.")
        self.store.change_password(stored.id, new_password)
        logger.info("Password changed for user: %s", stored.email)
        return create_access_token(stored)

    def update_profile(self, user: User, name: str | None = None, email: str | None = None) -> User:
        """Update the caller's own name and/or email. Raises Conflict on a taken email."""
        updated = self.store.update_user(user.id, name=name, email=email)
        if updated is None:
            raise NotFound("User not found.")
        logger.info("User profile updated: %s", updated.email)
        return updated

    def logout(self, user: User) -> None:
        """Tokens are stateless; logout is an acknowledgement the client drops its token."""
        logger.info("User logged out: %s", user.email)
