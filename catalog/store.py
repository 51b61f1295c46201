"""
catalog/store.py -- SQLAlchemy Core persistence layer for stores and ratings.

Pattern: Repository + Data Mapper, same as auth/store.py. CatalogStore is the
repository; row_to_store / row_to_rating are the mappers (shared with
catalog/listing.py).

Ratings upsert:
  upsert_rating() is a single INSERT ... ON CONFLICT (user_id, store_id)
  DO UPDATE on SQLite and PostgreSQL. The UNIQUE constraint, not an
  application lock, decides which of two concurrent writers for the same pair
  inserts and which updates, so two rows can never exist for one pair. Other
  dialects fall back to update-then-insert with a bounded retry when a
  concurrent insert wins the race (IntegrityError on the unique constraint).

Store ownership:
  stores.owner_id is UNIQUE, so a second store for the same owner fails at
  the storage layer even if two admin requests race past the service check.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import insert_user
from catalog.models import Rating, Store
from core.database import Database, new_id, now_iso, ratings, stores, users
from core.errors import Conflict, NotFound

logger = logging.getLogger("storeratings.catalog")

_UPDATABLE_FIELDS = {"name", "address"}

# Dialects with native INSERT ... ON CONFLICT support.
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

_MAX_UPSERT_ATTEMPTS = 3


class CatalogStore:
    """Repository for Store and Rating entities.

    Usage:
        catalog = CatalogStore(db)
        store_id = catalog.create_store(Store(name="Corner Shop"))
        rating = catalog.upsert_rating(user_id, store_id, 4)
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def create_store(self, store: Store, owner: Optional[User] = None) -> tuple[str, Optional[str]]:
        """Insert a store, optionally creating its owner in the same transaction.

        Returns (store_id, owner_id). If owner is given, store.owner_id is
        ignored and the new user's id is used. Either both rows are written
        or neither is.

        Raises Conflict if the owner's email is taken or the owner already
        owns a store, and NotFound if store.owner_id names no user.
        """
        now = now_iso()
        store_id = new_id()
        try:
            with self.db.begin() as conn:
                owner_id = insert_user(conn, owner) if owner is not None else store.owner_id
                conn.execute(
                    stores.insert().values(
                        id=store_id,
                        name=store.name,
                        address=store.address,
                        owner_id=owner_id,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            # Either the owner already has a store or the owner row vanished
            # between the service check and this insert.
            if owner is None and store.owner_id is not None and not self._owner_exists(store.owner_id):
                raise NotFound("Owner not found.") from exc
            raise Conflict("This user already owns a store.") from exc
        return store_id, owner_id

    def _owner_exists(self, owner_id: str) -> bool:
        with self.db.connect() as conn:
            return conn.execute(select(users.c.id).where(users.c.id == owner_id)).first() is not None

    def get_store(self, store_id: str) -> Optional[Store]:
        """Fetch a single store by id. Returns None if not found."""
        with self.db.connect() as conn:
            row = conn.execute(stores.select().where(stores.c.id == store_id)).fetchone()
        return row_to_store(row) if row is not None else None

    def get_store_by_owner(self, owner_id: str) -> Optional[Store]:
        """Return the store owned by owner_id, or None."""
        with self.db.connect() as conn:
            row = conn.execute(stores.select().where(stores.c.owner_id == owner_id)).fetchone()
        return row_to_store(row) if row is not None else None

    def update_store(self, store_id: str, **fields) -> bool:
        """Update name and/or address. Returns False if store_id was not found."""
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown store fields: {unknown!r}")
        with self.db.begin() as conn:
            result = conn.execute(stores.update().where(stores.c.id == store_id).values(updated_at=now_iso(), **fields))
        return result.rowcount > 0

    def delete_store(self, store_id: str) -> bool:
        """Delete a store; its ratings cascade. Returns False if not found."""
        with self.db.begin() as conn:
            result = conn.execute(stores.delete().where(stores.c.id == store_id))
        return result.rowcount > 0

    def count_stores(self) -> int:
        with self.db.connect() as conn:
            return conn.execute(select(func.count()).select_from(stores)).scalar() or 0

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def get_rating(self, user_id: str, store_id: str) -> Optional[Rating]:
        """Look up the rating for a (user, store) pair. Returns None if absent."""
        with self.db.connect() as conn:
            row = _select_rating(conn, user_id, store_id)
        return row_to_rating(row) if row is not None else None

    def upsert_rating(self, user_id: str, store_id: str, value: int) -> Rating:
        """Insert or update the (user_id, store_id) rating atomically and return it.

        On update the row keeps its id and created_at; rating and updated_at
        change. Raises NotFound if the user or store disappeared concurrently.
        """
        insert = _UPSERT_INSERTS.get(self.db.dialect)
        if insert is None:
            return self._upsert_with_retry(user_id, store_id, value)

        now = now_iso()
        stmt = insert(ratings).values(
            id=new_id(),
            user_id=user_id,
            store_id=store_id,
            rating=value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ratings.c.user_id, ratings.c.store_id],
            set_={"rating": stmt.excluded.rating, "updated_at": stmt.excluded.updated_at},
        )
        try:
            with self.db.begin() as conn:
                conn.execute(stmt)
                row = _select_rating(conn, user_id, store_id)
        except IntegrityError as exc:
            # ON CONFLICT absorbs the unique violation; what remains is a
            # foreign key failure.
            raise NotFound("Store not found.") from exc
        return row_to_rating(row)

    def _upsert_with_retry(self, user_id: str, store_id: str, value: int) -> Rating:
        for attempt in range(1, _MAX_UPSERT_ATTEMPTS + 1):
            now = now_iso()
            try:
                with self.db.begin() as conn:
                    updated = conn.execute(
                        ratings.update()
                        .where((ratings.c.user_id == user_id) & (ratings.c.store_id == store_id))
                        .values(rating=value, updated_at=now)
                    ).rowcount
                    if not updated:
                        conn.execute(
                            ratings.insert().values(
                                id=new_id(),
                                user_id=user_id,
                                store_id=store_id,
                                rating=value,
                                created_at=now,
                                updated_at=now,
                            )
                        )
                    row = _select_rating(conn, user_id, store_id)
                return row_to_rating(row)
            except IntegrityError:
                logger.info("Rating upsert for (%s, %s) lost an insert race (attempt %d)", user_id, store_id, attempt)
        raise NotFound("Store not found.")


# ---------------------------------------------------------------------------
# Helpers and row mappers
# ---------------------------------------------------------------------------


def _select_rating(conn: Connection, user_id: str, store_id: str):
    return conn.execute(
        ratings.select().where((ratings.c.user_id == user_id) & (ratings.c.store_id == store_id))
    ).fetchone()


def row_to_store(row) -> Store:
    return Store(
        id=row.id,
        name=row.name,
        address=row.address,
        owner_id=row.owner_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def row_to_rating(row) -> Rating:
    return Rating(
        id=row.id,
        user_id=row.user_id,
        store_id=row.store_id,
        rating=row.rating,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
