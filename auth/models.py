"""
auth/models.py -- Domain dataclasses for user identities.

Pattern: Data class (pure data container, zero logic). Stores and the service
layer do the work; these are transient value copies of persisted rows.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    STORE_OWNER = "STORE_OWNER"
    USER = "USER"


@dataclass
class User:
    """A registered account.

    hashed_password is a bcrypt hash and is never compared in plaintext;
    response models must not expose it.

    id is None before the record is written to the database.
    """

    name: str
    email: str
    role: Role
    hashed_password: str = ""
    address: str | None = None
    id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Actor:
    """The authenticated identity performing an operation."""

    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
