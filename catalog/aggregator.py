"""
catalog/aggregator.py -- Per-store average and count, computed on demand.

Aggregates are never cached or stored on the store row: every call runs
AVG/COUNT against the ratings table, so a value read right after an upsert
commits already includes it.

aggregates_for() is the batch form used by listings. It issues one GROUP BY
query for a whole page (or, on the rating-sort path, a whole match set)
instead of one query per store.

The core never rounds. Presentation code does.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select

from catalog.models import Aggregate
from core.database import Database, ratings


class RatingAggregator:
    def __init__(self, db: Database) -> None:
        self.db = db

    def average_and_count(self, store_id: str) -> Aggregate:
        """Return the mean rating and rating count for one store.

        A store with no ratings yields Aggregate(0.0, 0), never NaN or None.
        """
        stmt = select(func.avg(ratings.c.rating), func.count(ratings.c.id)).where(ratings.c.store_id == store_id)
        with self.db.connect() as conn:
            average, count = conn.execute(stmt).one()
        return _to_aggregate(average, count)

    def aggregates_for(self, store_ids: Iterable[str]) -> dict[str, Aggregate]:
        """Return {store_id: Aggregate} for every requested id.

        Stores without ratings are present with the zero aggregate.
        """
        ids = list(dict.fromkeys(store_ids))
        result = {store_id: Aggregate() for store_id in ids}
        if not ids:
            return result
        stmt = (
            select(ratings.c.store_id, func.avg(ratings.c.rating), func.count(ratings.c.id))
            .where(ratings.c.store_id.in_(ids))
            .group_by(ratings.c.store_id)
        )
        with self.db.connect() as conn:
            for store_id, average, count in conn.execute(stmt):
                result[store_id] = _to_aggregate(average, count)
        return result


def _to_aggregate(average, count) -> Aggregate:
    # PostgreSQL returns AVG as Decimal; SQLite as float. NULL when no rows.
    if not count:
        return Aggregate()
    return Aggregate(average=float(average), count=int(count))
