"""
core/database.py -- Shared SQLAlchemy Core schema and engine for all repositories.

Users, stores and ratings live in one database because the ratings table
references both of the others: cascading deletes and the (user_id, store_id)
uniqueness rule only hold when the storage layer can see all three relations.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py and
catalog/models.py stay the authoritative domain representation. Swapping
SQLite for PostgreSQL is a DATABASE_URL change.

Constraints enforced by the schema (not by application code):
  users.email                    UNIQUE
  stores.owner_id                UNIQUE, FK users.id ON DELETE SET NULL
  ratings (user_id, store_id)    UNIQUE -- the arbiter for concurrent upserts
  ratings.user_id / store_id     FK ON DELETE CASCADE
  ratings.rating                 CHECK 1..5

Security: all queries built on these tables use bound parameters.

Layer rule: no imports from api/, auth/ or catalog/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from core.errors import StorageUnavailable

logger = logging.getLogger("storeratings.database")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(60), nullable=False),
    Column("email", String(120), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("address", String(400)),
    Column("role", String(20), nullable=False, server_default="USER"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint("role IN ('ADMIN', 'STORE_OWNER', 'USER')", name="ck_users_role"),
)

stores = Table(
    "stores",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("address", String(400)),
    Column("owner_id", String(36), ForeignKey("users.id", ondelete="SET NULL"), unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

ratings = Table(
    "ratings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("store_id", String(36), ForeignKey("stores.id", ondelete="CASCADE"), nullable=False),
    Column("rating", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "store_id", name="uq_ratings_user_store"),
    CheckConstraint("rating BETWEEN 1 AND 5", name="ck_ratings_range"),
)

Index("ix_ratings_store_id", ratings.c.store_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    # Fixed microsecond precision keeps the strings lexicographically sortable.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    return str(uuid.uuid4())


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement, and make lower()
    fold non-ASCII text.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is OFF by default in SQLite,
    which would silently disable the ON DELETE CASCADE rules above.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")
    # The built-in lower() only folds ASCII; search lowers both sides with it.
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)


# ---------------------------------------------------------------------------
# Database handle
# ---------------------------------------------------------------------------


class Database:
    """Owns the engine. Repositories borrow connections from it.

    Usage:
        db = Database("sqlite:///storeratings.db")
        db.create_all()
        with db.begin() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a threadpool, so a pooled
            # connection may be used from a thread other than its creator.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def create_all(self) -> None:
        """Create missing tables. Idempotent -- safe to call on every startup."""
        try:
            metadata.create_all(self.engine)
        except OperationalError as exc:
            raise StorageUnavailable("The database is currently unavailable.") from exc

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield a connection for reads. Callers commit explicitly if they write."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Database operation failed: %s", exc.orig)
            raise StorageUnavailable("The database is currently unavailable.") from exc

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction: commit on success, rollback on error."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except OperationalError as exc:
            logger.error("Database transaction failed: %s", exc.orig)
            raise StorageUnavailable("The database is currently unavailable.") from exc

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except OperationalError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
