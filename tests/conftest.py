"""
tests/conftest.py -- Shared test fixtures for TaskFlow unit and integration tests.

This module provides:
  - stores: fresh UserStore + TaskStore over one isolated in-memory DB
  - make_user(): create a user in a store and mint a token for it
  - admin / member / other_member: (User, token) pairs
  - client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool, and because the two
stores open separate engines onto the same database. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A random
name per test keeps tests isolated from each other.

Environment variables must be set before any auth/core import: get_settings()
is cached on first use.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import so get_settings() auto-generates
# SECRET_KEY in dev mode, hashes cheaply, and never rate-limits test traffic.
os.environ.setdefault("DEBUG", "true")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token
from tasks.store import TaskStore

DEFAULT_PASSWORD = "Password@123"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def memory_db_url() -> str:
    return f"sqlite:///file:taskflow_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_user(
    store: UserStore,
    name: str,
    email: str,
    role: Role = Role.MEMBER,
    password: str = DEFAULT_PASSWORD,
) -> tuple[User, str]:
    """Create a user directly in the store and return it with a fresh token."""
    user = store.create_user(name, email, password, role)
    return user, create_access_token(user)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(user_store: UserStore, task_store: TaskStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    the isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, user_store, task_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def stores() -> Generator[tuple[UserStore, TaskStore], None, None]:
    """Yield (user_store, task_store) sharing one fresh in-memory database."""
    url = memory_db_url()
    user_store = UserStore(db_url=url)
    task_store = TaskStore(db_url=url)
    yield user_store, task_store
    task_store.close()
    user_store.close()


@pytest.fixture()
def user_store(stores) -> UserStore:
    return stores[0]


@pytest.fixture()
def task_store(stores) -> TaskStore:
    return stores[1]


@pytest.fixture()
def admin(user_store) -> tuple[User, str]:
    return make_user(user_store, "Ada Admin", "admin@taskflow.io", Role.ADMIN)


@pytest.fixture()
def member(user_store) -> tuple[User, str]:
    return make_user(user_store, "Mia Member", "mia@taskflow.io")


@pytest.fixture()
def other_member(user_store) -> tuple[User, str]:
    return make_user(user_store, "Otto Other", "otto@taskflow.io")


@pytest.fixture()
def client(stores) -> Generator[TestClient, None, None]:
    """TestClient over the real app with the test stores wired in.

    The app is the real FastAPI instance, so requests go through middleware,
    dependency injection, exception handlers and response serialization.
    """
    user_store, task_store = stores
    app.router.lifespan_context = _patch_lifespan(user_store, task_store)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client
