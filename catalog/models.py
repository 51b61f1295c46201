"""
catalog/models.py -- Domain dataclasses for stores, ratings and their aggregates.

These are pure data containers. Aggregates are never stored on Store: they
are computed per request by catalog/aggregator.py and attached to listing rows
(StoreListing) by catalog/listing.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Store:
    """A rated store. owner_id is None for ownerless stores.

    id is None before the record is written to the database.
    """

    name: str
    address: Optional[str] = None
    owner_id: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Rating:
    """One user's rating of one store. At most one exists per (user_id, store_id)."""

    user_id: str
    store_id: str
    rating: int
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Aggregate:
    """Average and count of a store's ratings. average is 0.0 when count is 0."""

    average: float = 0.0
    count: int = 0


@dataclass
class OwnerSummary:
    id: str
    name: str
    email: str


@dataclass
class StoreListing:
    """A store row as shown in listings: owner resolved, aggregate attached."""

    store: Store
    aggregate: Aggregate
    owner: Optional[OwnerSummary] = None


@dataclass
class StoreSummary:
    id: str
    name: str
    address: Optional[str]


@dataclass
class RaterSummary:
    id: str
    name: str
    email: str


@dataclass
class StoreRatingRow:
    """A rating in a store's ratings listing, with the rater resolved."""

    rating: Rating
    user: RaterSummary


@dataclass
class UserRatingRow:
    """A rating in a user's ratings listing, with the store resolved."""

    rating: Rating
    store: StoreSummary
