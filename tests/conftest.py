"""
tests/conftest.py -- Shared test fixtures for OrgDesk integration tests.

This module provides:
  - make_test_stores(): creates an isolated in-memory DB shared by both stores
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus admin and regular-user JWTs
  - fresh_client: TestClient on an empty install (setup required)
  - stores: both stores on a fresh database for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG=true                -- get_settings() auto-generates SECRET_KEY
  RATE_LIMIT_ENABLED=false  -- one limiter counter is shared by every test module
  ALLOWED_HOSTS=["*"]       -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from org.store import DepartmentStore

ADMIN_PASSWORD = "adminpass123"
USER_PASSWORD = "userpass123"


class ApiContext(NamedTuple):
    client: TestClient
    admin_token: str
    admin_id: int
    user_token: str
    user_id: int

    @property
    def admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.admin_token}"}

    @property
    def user_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.user_token}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_name: str) -> tuple[UserStore, DepartmentStore]:
    """Create both stores on one named shared-memory SQLite database.

    Both stores must see the same database: department user counts join the
    users table.

    Args:
        db_name: Unique name so test modules don't share state.
    """
    url = f"sqlite:///file:test_{db_name}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), DepartmentStore(db_url=url)


def _patch_lifespan(user_store: UserStore, department_store: DepartmentStore, setup_required: bool = False):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.department_store = department_store
        app.state.setup_required = setup_required
        yield

    return test_lifespan


def _seed_user(store: UserStore, name: str, email: str, username: str, password: str, role: str) -> int:
    return store.create_user(
        User(
            name=name,
            email=email,
            username=username,
            role=role,
            hashed_password=hash_password(password),
        )
    )


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory database. Two
    accounts exist before the client starts:
      admin  / adminpass123 (role admin)
      alice  / userpass123  (role user)
    """
    user_store, department_store = make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    admin_id = _seed_user(user_store, "Admin", "admin@example.com", "admin", ADMIN_PASSWORD, "admin")
    user_id = _seed_user(user_store, "Alice", "alice@example.com", "alice", USER_PASSWORD, "user")

    admin_token = create_access_token(admin_id, "admin@example.com", "admin", expire_seconds=3600)
    user_token = create_access_token(user_id, "alice@example.com", "user", expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, department_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client, admin_token, admin_id, user_token, user_id)

    department_store.close()
    user_store.close()


@pytest.fixture
def fresh_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, user_store) for an install with no users (setup required).

    Replaces app.state, so never combine with api_client in one module.
    """
    user_store, department_store = make_test_stores(f"fresh_{uuid.uuid4().hex[:8]}")
    app.router.lifespan_context = _patch_lifespan(user_store, department_store, setup_required=True)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    department_store.close()
    user_store.close()


@pytest.fixture
def stores() -> Generator[tuple[UserStore, DepartmentStore], None, None]:
    """Yield (user_store, department_store) on a fresh database, no HTTP layer."""
    user_store, department_store = make_test_stores(f"unit_{uuid.uuid4().hex[:8]}")
    yield user_store, department_store
    department_store.close()
    user_store.close()
