"""
API request and response models for the store ratings REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two with the from_domain() factories below.

JSON field names are camelCase (ownerId, averageRating, totalPages);
Python attribute names stay snake_case. populate_by_name lets handlers and
tests construct models with either form.

Request models check shape and coarse length bounds only. The full domain
rules (password composition, email syntax, rating range) live in
core/validation.py so the CLI gets them too; violations there surface as 400.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Role, User
from catalog.models import Aggregate, Rating, StoreListing, StoreRatingRow, UserRatingRow
from core.models import ADDRESS_MAX, EMAIL_MAX, STORE_NAME_MAX, USER_NAME_MAX, PageMeta

# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class _ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(_RequestModel):
    email: str = Field(min_length=1, max_length=EMAIL_MAX)
    password: str = Field(min_length=1, max_length=128)


class RegisterRequest(_RequestModel):
    """Request body for POST /api/v1/users/register."""

    name: str = Field(max_length=USER_NAME_MAX)
    email: str = Field(max_length=EMAIL_MAX)
    password: str = Field(max_length=128)
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX)


class UserCreate(RegisterRequest):
    """Request body for POST /api/v1/users (admin only)."""

    role: Role = Role.USER


class UserPatch(_RequestModel):
    """Request body for PATCH /api/v1/users/{id}. Only fields sent are changed.

    role and password are admin-only; sending them as a non-admin is a 403.
    """

    name: Optional[str] = Field(default=None, max_length=USER_NAME_MAX)
    email: Optional[str] = Field(default=None, max_length=EMAIL_MAX)
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX)
    role: Optional[Role] = None
    password: Optional[str] = Field(default=None, max_length=128)


class PasswordUpdate(_RequestModel):
    current_password: str = Field(max_length=128)
    new_password: str = Field(max_length=128)


class OwnerCreate(RegisterRequest):
    """Inline owner account for POST /api/v1/stores."""


class StoreCreate(_RequestModel):
    """Request body for POST /api/v1/stores.

    Send ownerId to attach an existing STORE_OWNER, owner to create one in
    the same transaction, or neither for an ownerless store.
    """

    name: str = Field(max_length=STORE_NAME_MAX)
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX)
    owner_id: Optional[str] = None
    owner: Optional[OwnerCreate] = None


class StorePatch(_RequestModel):
    name: Optional[str] = Field(default=None, max_length=STORE_NAME_MAX)
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX)


class RatingUpsert(_RequestModel):
    """Request body for PUT /api/v1/ratings. The 1..5 range is checked by the core."""

    store_id: str
    rating: int


# ---------------------------------------------------------------------------
# Response models -- users
# ---------------------------------------------------------------------------


class UserResponse(_ResponseModel):
    """A user as returned by the API. Never includes the password hash."""

    id: str
    name: str
    email: str
    address: Optional[str]
    role: Role
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            address=user.address,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class LoginResponse(_ResponseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class UserCountResponse(_ResponseModel):
    total: int
    by_role: dict[str, int]


# ---------------------------------------------------------------------------
# Response models -- stores and ratings
# ---------------------------------------------------------------------------


class OwnerResponse(_ResponseModel):
    id: str
    name: str
    email: str


class StoreResponse(_ResponseModel):
    """A store with its owner and live aggregate. averageRating is unrounded."""

    id: str
    name: str
    address: Optional[str]
    owner_id: Optional[str]
    owner: Optional[OwnerResponse]
    average_rating: float
    total_ratings: int
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, listing: StoreListing) -> "StoreResponse":
        store = listing.store
        return cls(
            id=store.id,
            name=store.name,
            address=store.address,
            owner_id=store.owner_id,
            owner=(
                OwnerResponse(id=listing.owner.id, name=listing.owner.name, email=listing.owner.email)
                if listing.owner is not None
                else None
            ),
            average_rating=listing.aggregate.average,
            total_ratings=listing.aggregate.count,
            created_at=store.created_at,
            updated_at=store.updated_at,
        )


class AggregateResponse(_ResponseModel):
    store_id: str
    average_rating: float
    total_ratings: int

    @classmethod
    def from_domain(cls, store_id: str, aggregate: Aggregate) -> "AggregateResponse":
        return cls(store_id=store_id, average_rating=aggregate.average, total_ratings=aggregate.count)


class CountResponse(_ResponseModel):
    total: int


class RatingResponse(_ResponseModel):
    id: str
    user_id: str
    store_id: str
    rating: int
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, rating: Rating) -> "RatingResponse":
        return cls(
            id=rating.id,
            user_id=rating.user_id,
            store_id=rating.store_id,
            rating=rating.rating,
            created_at=rating.created_at,
            updated_at=rating.updated_at,
        )


class RaterResponse(_ResponseModel):
    id: str
    name: str
    email: str


class StoreSummaryResponse(_ResponseModel):
    id: str
    name: str
    address: Optional[str]


class StoreRatingResponse(RatingResponse):
    """One row of GET /ratings/stores/{id}: the rating plus who gave it."""

    user: RaterResponse

    @classmethod
    def from_row(cls, row: StoreRatingRow) -> "StoreRatingResponse":
        return cls(
            **RatingResponse.from_domain(row.rating).model_dump(),
            user=RaterResponse(id=row.user.id, name=row.user.name, email=row.user.email),
        )


class UserRatingResponse(RatingResponse):
    """One row of GET /ratings/users/{id}: the rating plus the store it is for."""

    store: StoreSummaryResponse

    @classmethod
    def from_row(cls, row: UserRatingRow) -> "UserRatingResponse":
        return cls(
            **RatingResponse.from_domain(row.rating).model_dump(),
            store=StoreSummaryResponse(id=row.store.id, name=row.store.name, address=row.store.address),
        )


# ---------------------------------------------------------------------------
# Listing envelopes
# ---------------------------------------------------------------------------


class PageMetaResponse(_ResponseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_domain(cls, meta: PageMeta) -> "PageMetaResponse":
        return cls(page=meta.page, limit=meta.limit, total=meta.total, total_pages=meta.total_pages)


class StoreListResponse(_ResponseModel):
    data: list[StoreResponse]
    meta: PageMetaResponse


class UserListResponse(_ResponseModel):
    data: list[UserResponse]
    meta: PageMetaResponse


class StoreRatingListResponse(_ResponseModel):
    data: list[StoreRatingResponse]
    meta: PageMetaResponse


class UserRatingListResponse(_ResponseModel):
    data: list[UserRatingResponse]
    meta: PageMetaResponse


# ---------------------------------------------------------------------------
# Generic responses
# ---------------------------------------------------------------------------


class MessageResponse(_ResponseModel):
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
