"""
catalog/upsert.py -- One rating per (user, store), and no rating your own store.

Order of checks, each terminal:
  1. actor may rate at all (USER role)     -> Unauthenticated / Forbidden
  2. value in 1..5                         -> InvalidInput
  3. store exists                          -> NotFound
  4. actor does not own the store          -> Forbidden
  5. atomic insert-or-update               (CatalogStore.upsert_rating)

Step 5 relies on the UNIQUE (user_id, store_id) constraint, never on an
in-process lock, so it holds across worker processes too. A rating is
Absent until the first upsert and Rated afterwards; re-rating changes the
value and updated_at but not the row id.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import Actor
from auth.policy import AccessPolicy, Operation, Resource
from catalog.models import Rating
from catalog.store import CatalogStore
from core.errors import NotFound
from core.validation import check_rating_value

logger = logging.getLogger("storeratings.ratings")


class UpsertCoordinator:
    def __init__(self, catalog: CatalogStore, policy: AccessPolicy) -> None:
        self.catalog = catalog
        self.policy = policy

    def upsert_rating(self, actor: Optional[Actor], store_id: str, value: int) -> Rating:
        """Create or replace the actor's rating of store_id and return the stored row."""
        # Role check before the store lookup so non-raters learn nothing about store ids.
        self.policy.enforce(actor, Operation.UPSERT_RATING)
        value = check_rating_value(value)
        store = self.catalog.get_store(store_id)
        if store is None:
            raise NotFound("Store not found.")
        self.policy.enforce(actor, Operation.UPSERT_RATING, Resource(owner_id=store.owner_id))

        rating = self.catalog.upsert_rating(actor.id, store_id, value)
        logger.info(
            "Rating %s: user=%s store=%s value=%d",
            "updated" if rating.created_at != rating.updated_at else "created",
            actor.id,
            store_id,
            value,
        )
        return rating
