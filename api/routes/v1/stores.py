"""
api/routes/v1/stores.py -- Store listing, detail and administration.

Routes (fixed paths before /stores/{store_id}):
  GET    /stores                    -- public listing: search, sortBy, sortOrder, page, limit
  GET    /stores/count              -- total stores (admin)
  GET    /stores/mine               -- the caller's own store with its aggregate (store owner)
  GET    /stores/{store_id}         -- public detail with live aggregate
  GET    /stores/{store_id}/average -- public aggregate only
  POST   /stores                    -- create, optionally with an existing or new owner (admin)
  PATCH  /stores/{store_id}         -- rename / change address (admin)
  DELETE /stores/{store_id}         -- delete; ratings cascade (admin)

sortBy accepts name, createdAt, updatedAt, averageRating and totalRatings.
The last two are sorted in memory by the listing engine; the response shape
is identical either way.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AggregateResponse,
    CountResponse,
    PageMetaResponse,
    StoreCreate,
    StoreListResponse,
    StorePatch,
    StoreResponse,
)
from auth.dependencies import get_optional_actor
from auth.models import Actor
from catalog.listing import DEFAULT_SORT_BY, StoreListParams
from catalog.service import NewAccount, RatingService
from core.config import get_settings
from core.models import SORT_DESC

_settings = get_settings()

router = APIRouter()


@router.get("/stores", response_model=StoreListResponse)
def list_stores(
    request: Request,
    page: int = 1,
    limit: int = _settings.default_page_limit,
    search: Optional[str] = None,
    sort_by: str = Query(default=DEFAULT_SORT_BY, alias="sortBy"),
    sort_order: str = Query(default=SORT_DESC, alias="sortOrder"),
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> StoreListResponse:
    service: RatingService = request.app.state.service
    result = service.list_stores(
        actor,
        StoreListParams(page=page, limit=limit, search=search, sort_by=sort_by, sort_order=sort_order),
    )
    return StoreListResponse(
        data=[StoreResponse.from_domain(listing) for listing in result.data],
        meta=PageMetaResponse.from_domain(result.meta),
    )


@router.get("/stores/count", response_model=CountResponse)
def count_stores(request: Request, actor: Optional[Actor] = Depends(get_optional_actor)) -> CountResponse:
    service: RatingService = request.app.state.service
    return CountResponse(total=service.count_stores(actor))


@router.get("/stores/mine", response_model=StoreResponse)
def my_store(request: Request, actor: Optional[Actor] = Depends(get_optional_actor)) -> StoreResponse:
    service: RatingService = request.app.state.service
    return StoreResponse.from_domain(service.get_own_store(actor))


@router.get("/stores/{store_id}", response_model=StoreResponse)
def get_store(
    request: Request,
    store_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> StoreResponse:
    service: RatingService = request.app.state.service
    return StoreResponse.from_domain(service.get_store(actor, store_id))


@router.get("/stores/{store_id}/average", response_model=AggregateResponse)
def get_store_average(
    request: Request,
    store_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> AggregateResponse:
    service: RatingService = request.app.state.service
    return AggregateResponse.from_domain(store_id, service.get_store_aggregate(actor, store_id))


@router.post("/stores", response_model=StoreResponse, status_code=201)
def create_store(
    request: Request,
    body: StoreCreate,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> StoreResponse:
    service: RatingService = request.app.state.service
    owner = None
    if body.owner is not None:
        owner = NewAccount(
            name=body.owner.name,
            email=body.owner.email,
            password=body.owner.password,
            address=body.owner.address,
        )
    listing = service.create_store(actor, body.name, body.address, owner_id=body.owner_id, owner=owner)
    return StoreResponse.from_domain(listing)


@router.patch("/stores/{store_id}", response_model=StoreResponse)
def update_store(
    request: Request,
    store_id: str,
    body: StorePatch,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> StoreResponse:
    service: RatingService = request.app.state.service
    listing = service.update_store(actor, store_id, body.model_dump(exclude_unset=True))
    return StoreResponse.from_domain(listing)


@router.delete("/stores/{store_id}", status_code=204)
def delete_store(
    request: Request,
    store_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> Response:
    service: RatingService = request.app.state.service
    service.delete_store(actor, store_id)
    return Response(status_code=204)
