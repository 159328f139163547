"""
tests/conftest.py -- Shared test fixtures for NutriTrack auth tests.

This module provides:
  - user_store / session_store / manager: isolated per-test auth components
  - make_user(): inserts a user with a known bcrypt password
  - api_client: TestClient with a patched lifespan wired to test stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient and the concurrency tests run work in other threads.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The env vars must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "10")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.manager import SessionManager
from auth.models import User
from auth.sessions import RefreshTokenStore
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings, get_settings

DEFAULT_PASSWORD = "Str0ng!pass"


def _memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """Fresh shared-memory UserStore, isolated per test."""
    store = UserStore(_memory_db_url("test_users"))
    yield store
    store.close()


@pytest.fixture
def session_store(settings: Settings) -> RefreshTokenStore:
    return RefreshTokenStore(settings.secret_key)


@pytest.fixture
def manager(user_store: UserStore, session_store: RefreshTokenStore, settings: Settings) -> SessionManager:
    return SessionManager(user_store, session_store, settings=settings)


@pytest.fixture
def make_user(user_store: UserStore, settings: Settings) -> Callable[..., User]:
    """Return a factory that inserts a user whose password is DEFAULT_PASSWORD.

    Usage:
        user = make_user("a@b.com", roles=["admin"])
    """

    def factory(email: str = "a@b.com", password: str = DEFAULT_PASSWORD, **fields) -> User:
        fields.setdefault("name", "Alice Example")
        return user_store.create(
            User(email=email, hashed_password=hash_password(password, rounds=settings.bcrypt_rounds), **fields)
        )

    return factory


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, session_store: RefreshTokenStore, manager: SessionManager):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated stores. The sweep_task is a long-sleeping coroutine standing in
    for the real sweep loop (a real asyncio.Task is required for .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.session_manager = manager
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(
    user_store: UserStore,
    session_store: RefreshTokenStore,
    manager: SessionManager,
) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against isolated stores."""
    app.router.lifespan_context = _patch_lifespan(user_store, session_store, manager)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
