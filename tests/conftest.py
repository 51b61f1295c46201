"""
tests/conftest.py -- Shared test fixtures for the store ratings tests.

This module provides:
  - make_database(): an isolated named shared-memory SQLite database
  - db / service:    per-test database and fully wired RatingService
  - make_user / make_store: factories that insert rows directly
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - api: module-scoped TestClient plus a JWT for each role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
database gets a random suffix so tests never see each other's rows.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import itertools
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from api.limiter import limiter
from api.main import app
from auth.models import Actor, Role, User
from auth.tokens import create_access_token, hash_password
from catalog.models import Store
from catalog.service import RatingService, build_service
from core.config import get_settings
from core.database import Database, ratings

PASSWORD = "Secret#123"

# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def make_database(prefix: str) -> Database:
    """Create an isolated named shared-memory SQLite database with the schema applied."""
    db = Database(f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    db.create_all()
    return db


@pytest.fixture
def actor_of() -> Callable[[User], Actor]:
    """Turn a stored User into the Actor the service expects."""
    return lambda user: Actor(id=user.id, role=user.role)


@pytest.fixture(scope="session")
def password_hash() -> str:
    """One bcrypt hash shared by every fixture user; hashing per user is slow."""
    return hash_password(PASSWORD)


@pytest.fixture
def db() -> Generator[Database, None, None]:
    database = make_database("unit")
    yield database
    database.close()


@pytest.fixture
def service(db: Database) -> RatingService:
    return build_service(db, get_settings())


@pytest.fixture
def make_user(service: RatingService, password_hash: str) -> Callable[..., User]:
    """Factory: insert a user with PASSWORD and return it (id populated)."""
    counter = itertools.count(1)

    def _make(
        role: Role = Role.USER,
        name: Optional[str] = None,
        email: Optional[str] = None,
        address: Optional[str] = None,
    ) -> User:
        n = next(counter)
        user = User(
            name=name or f"Test Account Number {n:04d}",
            email=email or f"{role.value.lower()}{n}@example.com",
            role=role,
            hashed_password=password_hash,
            address=address,
        )
        user.id = service.users.create_user(user)
        return service.users.get_by_id(user.id)

    return _make


@pytest.fixture
def make_store(service: RatingService) -> Callable[..., Store]:
    """Factory: insert a store and return it (id populated)."""
    counter = itertools.count(1)

    def _make(name: Optional[str] = None, address: Optional[str] = None, owner_id: Optional[str] = None) -> Store:
        store_id, _ = service.catalog.create_store(
            Store(name=name or f"Store {next(counter):03d}", address=address, owner_id=owner_id)
        )
        return service.catalog.get_store(store_id)

    return _make


@pytest.fixture
def count_rating_rows(db: Database) -> Callable[[str], int]:
    """Count the stored rating rows for a store straight from the table."""

    def _count(store_id: str) -> int:
        with db.connect() as conn:
            return conn.execute(
                select(func.count()).select_from(ratings).where(ratings.c.store_id == store_id)
            ).scalar()

    return _count


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database, service: RatingService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes see
    an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = db
        app.state.service = service
        app.state.user_store = service.users
        yield

    return test_lifespan


@dataclass
class ApiSession:
    client: TestClient
    service: RatingService
    tokens: dict[Role, str] = field(default_factory=dict)
    users: dict[Role, User] = field(default_factory=dict)

    def headers(self, role: Role) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[role]}"}


@pytest.fixture(scope="module")
def api(password_hash: str) -> Generator[ApiSession, None, None]:
    """Yield an ApiSession: a TestClient over an isolated DB and one user + JWT per role.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers, middleware and exception handlers.
    """
    db = make_database("api")
    service = build_service(db, get_settings())
    session_users: dict[Role, User] = {}
    tokens: dict[Role, str] = {}
    for role, name in (
        (Role.ADMIN, "Integration Test Administrator"),
        (Role.STORE_OWNER, "Integration Test Store Owner"),
        (Role.USER, "Integration Test Regular User"),
    ):
        user = User(
            name=name,
            email=f"{role.value.lower()}@api.example.com",
            role=role,
            hashed_password=password_hash,
        )
        user.id = service.users.create_user(user)
        session_users[role] = service.users.get_by_id(user.id)
        tokens[role] = create_access_token(user.id, user.email, role.value, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(db, service)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiSession(client=client, service=service, tokens=tokens, users=session_users)

    db.close()
