"""
api/routes/v1/users.py -- User registration and administration.

Routes (fixed paths registered before /users/{user_id} so they are not
captured by the path parameter):
  POST   /users/register  -- public self-registration, role USER (rate-limited)
  POST   /users           -- create a user with any role (admin)
  POST   /users/admin     -- create an administrator (admin)
  GET    /users           -- paginated listing: search, filterBy role, sortBy, sortOrder (admin)
  GET    /users/count     -- totals by role (admin)
  GET    /users/{user_id} -- one user (admin)
  PATCH  /users/{user_id} -- profile update (self or admin); role/password reset (admin)
  DELETE /users/{user_id} -- delete user; ratings cascade, owned store becomes ownerless (admin)

Authorization is decided by the service's access policy, not here. Handlers
pass the optional actor through.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.limiter import limiter
from api.models import (
    PageMetaResponse,
    RegisterRequest,
    UserCountResponse,
    UserCreate,
    UserListResponse,
    UserPatch,
    UserResponse,
)
from auth.dependencies import get_optional_actor
from auth.models import Actor
from catalog.listing import DEFAULT_SORT_BY, UserListParams
from catalog.service import RatingService
from core.config import get_settings
from core.models import SORT_DESC

_settings = get_settings()

router = APIRouter()


@limiter.limit("5/minute")
@router.post("/users/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    service: RatingService = request.app.state.service
    user = service.register(body.name, body.email, body.password, body.address)
    return UserResponse.from_domain(user)


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserResponse:
    service: RatingService = request.app.state.service
    user = service.create_user(actor, body.name, body.email, body.password, body.address, body.role)
    return UserResponse.from_domain(user)


@router.post("/users/admin", response_model=UserResponse, status_code=201)
def create_admin(
    request: Request,
    body: RegisterRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserResponse:
    service: RatingService = request.app.state.service
    user = service.create_admin(actor, body.name, body.email, body.password, body.address)
    return UserResponse.from_domain(user)


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = 1,
    limit: int = _settings.default_page_limit,
    search: Optional[str] = None,
    sort_by: str = Query(default=DEFAULT_SORT_BY, alias="sortBy"),
    sort_order: str = Query(default=SORT_DESC, alias="sortOrder"),
    filter_by: Optional[str] = Query(default=None, alias="filterBy"),
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserListResponse:
    service: RatingService = request.app.state.service
    result = service.list_users(
        actor,
        UserListParams(
            page=page,
            limit=limit,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            filter_by=filter_by,
        ),
    )
    return UserListResponse(
        data=[UserResponse.from_domain(u) for u in result.data],
        meta=PageMetaResponse.from_domain(result.meta),
    )


@router.get("/users/count", response_model=UserCountResponse)
def count_users(request: Request, actor: Optional[Actor] = Depends(get_optional_actor)) -> UserCountResponse:
    service: RatingService = request.app.state.service
    by_role = service.count_users(actor)
    return UserCountResponse(total=sum(by_role.values()), by_role=by_role)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserResponse:
    service: RatingService = request.app.state.service
    return UserResponse.from_domain(service.get_user(actor, user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> UserResponse:
    """Apply only the fields present in the body."""
    service: RatingService = request.app.state.service
    user = service.update_user(actor, user_id, body.model_dump(exclude_unset=True))
    return UserResponse.from_domain(user)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: str,
    actor: Optional[Actor] = Depends(get_optional_actor),
) -> Response:
    service: RatingService = request.app.state.service
    service.delete_user(actor, user_id)
    return Response(status_code=204)
