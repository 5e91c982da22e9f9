"""
tests/conftest.py -- Shared test fixtures for GeoGuard tests.

This module provides:
  - IsolatedDatabase: in-memory UserStore + SessionStore pair
  - _patch_lifespan(): wires test stores and services into app.state,
    bypassing the real startup
  - stores / authenticator / enforcer: per-test unit fixtures
  - api: module-scoped TestClient plus the stores it is wired to

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool, and the two
stores each own an engine. Plain :memory: DBs are per-connection and would
present a blank schema to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG             -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS     -- minimum cost so hashing does not dominate the run
  LOGIN_RATE_LIMIT  -- high enough that login-heavy modules never see 429
  ALLOWED_HOSTS     -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
import sqlite3
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authenticator import CredentialAuthenticator
from auth.geofence import GeofenceEnforcer
from auth.store import SessionStore, UserStore
from core.config import get_settings

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


class IsolatedDatabase:
    """A UserStore/SessionStore pair sharing one named in-memory database.

    The raw sqlite3 keepalive connection pins the shared-memory database for
    the lifetime of this object; SQLite drops it when the last connection to
    it closes, and the engines' pools may recycle theirs at any time.
    """

    def __init__(self) -> None:
        name = f"test_geoguard_{uuid.uuid4().hex}"
        self._keepalive = sqlite3.connect(f"file:{name}?mode=memory&cache=shared", uri=True, check_same_thread=False)
        url = f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"
        self.users = UserStore(url)
        self.sessions = SessionStore(url)

    def close(self) -> None:
        self.sessions.close()
        self.users.close()
        self._keepalive.close()


def _patch_lifespan(user_store: UserStore, session_store: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine (a real asyncio.Task is
    required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.authenticator = CredentialAuthenticator(user_store, session_store, settings)
        app.state.geofence = GeofenceEnforcer(user_store, session_store, settings)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, SessionStore], None, None]:
    db = IsolatedDatabase()
    yield db.users, db.sessions
    db.close()


@pytest.fixture
def email() -> str:
    """A fresh, never-registered email address."""
    return f"user-{uuid.uuid4().hex[:8]}@example.com"


@pytest.fixture
def authenticator(stores) -> CredentialAuthenticator:
    users, sessions = stores
    return CredentialAuthenticator(users, sessions, get_settings())


@pytest.fixture
def enforcer(stores) -> GeofenceEnforcer:
    users, sessions = stores
    return GeofenceEnforcer(users, sessions, get_settings())


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    users: UserStore
    sessions: SessionStore

    def signup(self, email: str, password: str = "correct-horse", **extra) -> dict:
        body = {"email": email, "password": password, "name": "Test User", **extra}
        resp = self.client.post("/api/auth/signup", json=body)
        assert resp.status_code == 201, resp.text
        return resp.json()

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory database. Tests in
    a module share the database, so each test registers its own email.
    """
    db = IsolatedDatabase()
    app.router.lifespan_context = _patch_lifespan(db.users, db.sessions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, users=db.users, sessions=db.sessions)

    db.close()
