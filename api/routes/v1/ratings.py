"""
api/routes/v1/ratings.py -- Submitting and reading ratings.

Routes:
  PUT /ratings                        -- create or replace the caller's rating of a store (user)
  GET /ratings/stores/{store_id}      -- ratings of a store with rater details (store owner, admin)
  GET /ratings/stores/{store_id}/mine -- the caller's own rating of a store (user)
  GET /ratings/users/{user_id}        -- ratings by a user with store details (that user, admin)

PUT is idempotent: repeating it with the same body leaves one rating row with
the same id. A store owner rating their own store gets 403; a rating outside
1..5 gets 400.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import (
    PageMetaResponse,
    RatingResponse,
    RatingUpsert,
    StoreRatingListResponse,
    StoreRatingResponse,
    UserRatingListResponse,
    UserRatingResponse,
)
from auth.dependencies import get_optional_actor
from auth.models import Actor
from catalog.service import RatingService
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


@limiter.limit("30/minute")
@router.put("/ratings", response_model=RatingResponse)
def upsert_rating(
    request: Request,
    body: RatingUpsert,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> RatingResponse:
    service: RatingService = request.app.state.service
    return RatingResponse.from_domain(service.upsert_rating(actor, body.store_id, body.rating))


@router.get("/ratings/stores/{store_id}", response_model=StoreRatingListResponse)
def list_store_ratings(
    request: Request,
    store_id: str,
    page: int = 1,
    limit: int = _settings.default_page_limit,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> StoreRatingListResponse:
    service: RatingService = request.app.state.service
    result = service.list_store_ratings(actor, store_id, page, limit)
    return StoreRatingListResponse(
        data=[StoreRatingResponse.from_row(row) for row in result.data],
        meta=PageMetaResponse.from_domain(result.meta),
    )


@router.get("/ratings/stores/{store_id}/mine", response_model=RatingResponse)
def my_rating(
    request: Request,
    store_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> RatingResponse:
    service: RatingService = request.app.state.service
    return RatingResponse.from_domain(service.get_own_rating(actor, store_id))


@router.get("/ratings/users/{user_id}", response_model=UserRatingListResponse)
def list_user_ratings(
    request: Request,
    user_id: str,
    page: int = 1,
    limit: int = _settings.default_page_limit,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserRatingListResponse:
    service: RatingService = request.app.state.service
    result = service.list_user_ratings(actor, user_id, page, limit)
    return UserRatingListResponse(
        data=[UserRatingResponse.from_row(row) for row in result.data],
        meta=PageMetaResponse.from_domain(result.meta),
    )
