"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; row_to_user
is the mapper. Service and route code never touches SQL directly.

Email uniqueness is enforced by the UNIQUE index on users.email. Writes that
collide are translated from IntegrityError to Conflict here so callers see a
named domain failure, not a driver exception. A pre-check alone would race
with concurrent registrations.

insert_user() is module-level so catalog/store.py can create a store owner
inside the same transaction as the store itself.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from core.database import Database, new_id, now_iso, users
from core.errors import Conflict

_DUPLICATE_EMAIL = "A user with this email already exists."

_UPDATABLE_FIELDS = {"name", "email", "address", "role", "hashed_password"}


def insert_user(conn: Connection, user: User) -> str:
    """Insert a user on an open connection and return the new id.

    Raises Conflict if the email is taken. The caller owns the transaction.
    """
    user_id = new_id()
    now = now_iso()
    try:
        conn.execute(
            users.insert().values(
                id=user_id,
                name=user.name,
                email=user.email,
                hashed_password=user.hashed_password,
                address=user.address,
                role=Role(user.role).value,
                created_at=now,
                updated_at=now,
            )
        )
    except IntegrityError as exc:
        raise Conflict(_DUPLICATE_EMAIL) from exc
    return user_id


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(db)
        user_id = store.create_user(User(name=..., email=..., role=Role.USER, hashed_password=...))
        user = store.get_by_email("someone@example.com")
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.db.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.db.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with self.db.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return row_to_user(row) if row is not None else None

    def count_by_role(self) -> dict[str, int]:
        """Return {role: count} for every role, zero-filled."""
        counts = {role.value: 0 for role in Role}
        with self.db.connect() as conn:
            rows = conn.execute(select(users.c.role, func.count().label("n")).group_by(users.c.role)).fetchall()
        for row in rows:
            counts[row.role] = row.n
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its id. Raises Conflict on duplicate email."""
        with self.db.begin() as conn:
            return insert_user(conn, user)

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: name, email, address, role, hashed_password.
        Returns True if a row was updated, False if user_id was not found.
        Raises Conflict if the new email belongs to another user.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        try:
            with self.db.begin() as conn:
                result = conn.execute(
                    users.update().where(users.c.id == user_id).values(updated_at=now_iso(), **fields)
                )
        except IntegrityError as exc:
            raise Conflict(_DUPLICATE_EMAIL) from exc
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found.

        The schema cascades the user's ratings and detaches any store they own
        (owner_id set to NULL). Last-admin checks are the caller's job.
        """
        with self.db.begin() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        address=row.address,
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
