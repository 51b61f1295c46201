"""
catalog/listing.py -- Search, filter, sort and paginate over stores, users and ratings.

Two sort paths for stores:

  Stored keys (name, createdAt, updatedAt)
      ORDER BY <column> <dir>, id ASC LIMIT/OFFSET in SQL. Aggregates are then
      fetched for the page only (one GROUP BY query).

  Computed keys (averageRating, totalRatings)
      The value is not a column, so SQL cannot order by it without a join
      against an aggregate subquery. Instead: fetch every row matching the
      search, aggregate them in one batch, sort in memory, slice the window.
      O(matches) per request rather than O(page).

Both paths break ties by store id ASC, so concatenating pages 1..totalPages
yields each matching store exactly once and both paths return identical
pages for equal data. Python's sort is stable, including with reverse=True,
so pre-sorting by id and then sorting by the aggregate keeps id ASC among
equal aggregates in either direction.

meta.total is the match count before pagination on every path.

Relations (owner, rater, store) are resolved with explicit joins here; the
dataclasses carry no lazy references.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_, select

from auth.models import Role, User
from auth.store import row_to_user
from catalog.aggregator import RatingAggregator
from catalog.models import (
    Aggregate,
    OwnerSummary,
    RaterSummary,
    StoreListing,
    StoreRatingRow,
    StoreSummary,
    UserRatingRow,
)
from catalog.store import row_to_rating, row_to_store
from core.database import Database, ratings, stores, users
from core.errors import InvalidInput
from core.models import SORT_ASC, SORT_DESC, Page, PageMeta
from core.validation import check_page

logger = logging.getLogger("storeratings.listing")

# ---------------------------------------------------------------------------
# Sort keys
# ---------------------------------------------------------------------------

STORE_SORT_COLUMNS = {
    "name": stores.c.name,
    "createdAt": stores.c.created_at,
    "updatedAt": stores.c.updated_at,
}

COMPUTED_STORE_SORT_KEYS: dict[str, Callable[[Aggregate], float]] = {
    "averageRating": lambda aggregate: aggregate.average,
    "totalRatings": lambda aggregate: aggregate.count,
}

USER_SORT_COLUMNS = {
    "name": users.c.name,
    "email": users.c.email,
    "role": users.c.role,
    "createdAt": users.c.created_at,
    "updatedAt": users.c.updated_at,
}

DEFAULT_SORT_BY = "createdAt"

_owners = users.alias("owners")


@dataclass
class StoreListParams:
    page: int = 1
    limit: int = 10
    search: Optional[str] = None
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = SORT_DESC


@dataclass
class UserListParams:
    page: int = 1
    limit: int = 10
    search: Optional[str] = None
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = SORT_DESC
    filter_by: Optional[str] = None  # a Role value


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ListingQueryEngine:
    """Read-only listing queries. Holds no state between calls.

    Usage:
        listing = ListingQueryEngine(db, RatingAggregator(db), max_limit=100)
        page = listing.list_stores(StoreListParams(sort_by="averageRating"))
    """

    def __init__(self, db: Database, aggregator: RatingAggregator, max_limit: int = 100) -> None:
        self.db = db
        self.aggregator = aggregator
        self.max_limit = max_limit

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def list_stores(self, params: StoreListParams) -> Page[StoreListing]:
        check_page(params.page, params.limit, self.max_limit)
        descending = _check_sort_order(params.sort_order) == SORT_DESC
        if params.sort_by not in STORE_SORT_COLUMNS and params.sort_by not in COMPUTED_STORE_SORT_KEYS:
            raise InvalidInput(
                f"sortBy must be one of: {', '.join([*STORE_SORT_COLUMNS, *COMPUTED_STORE_SORT_KEYS])}."
            )

        criteria = []
        if _has_term(params.search):
            criteria.append(_search_clause(params.search, stores.c.name, stores.c.address))

        base = (
            select(stores, _owners.c.name.label("owner_name"), _owners.c.email.label("owner_email"))
            .select_from(stores.outerjoin(_owners, stores.c.owner_id == _owners.c.id))
            .where(*criteria)
        )
        offset = (params.page - 1) * params.limit

        if params.sort_by in COMPUTED_STORE_SORT_KEYS:
            with self.db.connect() as conn:
                rows = conn.execute(base).fetchall()
            listings = self._attach_aggregates(rows)
            total = len(listings)
            key = COMPUTED_STORE_SORT_KEYS[params.sort_by]
            listings.sort(key=lambda listing: listing.store.id)
            listings.sort(key=lambda listing: key(listing.aggregate), reverse=descending)
            data = listings[offset : offset + params.limit]
        else:
            column = STORE_SORT_COLUMNS[params.sort_by]
            stmt = (
                base.order_by(column.desc() if descending else column.asc(), stores.c.id.asc())
                .limit(params.limit)
                .offset(offset)
            )
            count_stmt = select(func.count()).select_from(stores).where(*criteria)
            with self.db.connect() as conn:
                total = conn.execute(count_stmt).scalar() or 0
                rows = conn.execute(stmt).fetchall()
            data = self._attach_aggregates(rows)

        logger.debug(
            "list_stores sort=%s %s search=%r page=%d -> %d/%d",
            params.sort_by,
            "DESC" if descending else "ASC",
            params.search,
            params.page,
            len(data),
            total,
        )
        return Page(meta=PageMeta(page=params.page, limit=params.limit, total=total), data=data)

    def _attach_aggregates(self, rows) -> list[StoreListing]:
        aggregates = self.aggregator.aggregates_for(row.id for row in rows)
        return [
            StoreListing(
                store=row_to_store(row),
                aggregate=aggregates[row.id],
                owner=(
                    OwnerSummary(id=row.owner_id, name=row.owner_name, email=row.owner_email)
                    if row.owner_id is not None
                    else None
                ),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self, params: UserListParams) -> Page[User]:
        check_page(params.page, params.limit, self.max_limit)
        descending = _check_sort_order(params.sort_order) == SORT_DESC
        column = USER_SORT_COLUMNS.get(params.sort_by)
        if column is None:
            raise InvalidInput(f"sortBy must be one of: {', '.join(USER_SORT_COLUMNS)}.")

        criteria = []
        if params.filter_by:
            try:
                role = Role(params.filter_by)
            except ValueError:
                raise InvalidInput(f"filterBy must be one of: {', '.join(r.value for r in Role)}.") from None
            criteria.append(users.c.role == role.value)
        if _has_term(params.search):
            criteria.append(_search_clause(params.search, users.c.name, users.c.email, users.c.address))

        stmt = (
            users.select()
            .where(*criteria)
            .order_by(column.desc() if descending else column.asc(), users.c.id.asc())
            .limit(params.limit)
            .offset((params.page - 1) * params.limit)
        )
        count_stmt = select(func.count()).select_from(users).where(*criteria)
        with self.db.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(stmt).fetchall()
        return Page(
            meta=PageMeta(page=params.page, limit=params.limit, total=total),
            data=[row_to_user(row) for row in rows],
        )

    # ------------------------------------------------------------------
    # Ratings (newest first)
    # ------------------------------------------------------------------

    def list_store_ratings(self, store_id: str, page: int = 1, limit: int = 10) -> Page[StoreRatingRow]:
        """Ratings of one store with the rater's id, name and email."""
        check_page(page, limit, self.max_limit)
        stmt = (
            select(ratings, users.c.name.label("user_name"), users.c.email.label("user_email"))
            .select_from(ratings.join(users, ratings.c.user_id == users.c.id))
            .where(ratings.c.store_id == store_id)
            .order_by(ratings.c.created_at.desc(), ratings.c.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        count_stmt = select(func.count()).select_from(ratings).where(ratings.c.store_id == store_id)
        with self.db.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(stmt).fetchall()
        data = [
            StoreRatingRow(
                rating=row_to_rating(row),
                user=RaterSummary(id=row.user_id, name=row.user_name, email=row.user_email),
            )
            for row in rows
        ]
        return Page(meta=PageMeta(page=page, limit=limit, total=total), data=data)

    def list_user_ratings(self, user_id: str, page: int = 1, limit: int = 10) -> Page[UserRatingRow]:
        """Ratings submitted by one user with the rated store's id, name and address."""
        check_page(page, limit, self.max_limit)
        stmt = (
            select(ratings, stores.c.name.label("store_name"), stores.c.address.label("store_address"))
            .select_from(ratings.join(stores, ratings.c.store_id == stores.c.id))
            .where(ratings.c.user_id == user_id)
            .order_by(ratings.c.created_at.desc(), ratings.c.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        count_stmt = select(func.count()).select_from(ratings).where(ratings.c.user_id == user_id)
        with self.db.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(stmt).fetchall()
        data = [
            UserRatingRow(
                rating=row_to_rating(row),
                store=StoreSummary(id=row.store_id, name=row.store_name, address=row.store_address),
            )
            for row in rows
        ]
        return Page(meta=PageMeta(page=page, limit=limit, total=total), data=data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_sort_order(sort_order: str) -> str:
    order = (sort_order or "").upper()
    if order not in (SORT_ASC, SORT_DESC):
        raise InvalidInput("sortOrder must be ASC or DESC.")
    return order


def _has_term(search: Optional[str]) -> bool:
    return bool(search and search.strip())


def _search_clause(term: str, *columns):
    # autoescape keeps user-supplied % and _ literal.
    needle = term.strip().lower()
    return or_(*(func.lower(column).contains(needle, autoescape=True) for column in columns))
