"""
tests/conftest.py -- Shared test fixtures for SocialHub auth tests.

This module provides:
  - settings / store / codec / clock / service: unit-level fixtures wired with
    explicit secrets, a private in-memory database and a controllable clock
  - make_test_store(): isolated named shared-memory SQLite store
  - api_client: TestClient against the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

DEBUG must be set before any api/ or core/ import so get_settings() can
auto-generate the token secrets instead of raising ValueError. Rate limiting
is switched off so scenario tests can log in more than a handful of times.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: configure the environment before importing api/ or core/.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.session import SessionService
from auth.store import SqlAccountStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

ACCESS_SECRET = "test-jwt-secret-key-at-least-32-characters-long"
REFRESH_SECRET = "test-refresh-secret-key-at-least-32-characters-long"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=False,
        jwt_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
    )


@pytest.fixture
def store() -> Generator[SqlAccountStore, None, None]:
    s = SqlAccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec.from_settings(settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(store: SqlAccountStore, settings: Settings, clock: FakeClock) -> SessionService:
    return SessionService.from_settings(store, settings, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def make_test_store(db_suffix: str) -> SqlAccountStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'routes', 'gates').
    """
    return SqlAccountStore(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: SqlAccountStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state so routes see an isolated database
    instead of the default on-disk one. Tokens are signed with the same
    Settings the app module resolved at import.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app_settings = get_settings()
        app.state.account_store = store
        app.state.token_codec = TokenCodec.from_settings(app_settings)
        app.state.sessions = SessionService.from_settings(store, app_settings)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, SqlAccountStore], None, None]:
    """Yield (client, store) for API integration tests, one DB per test module."""
    store = make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()
