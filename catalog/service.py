"""
catalog/service.py -- The operations exposed to the HTTP layer and the CLI.

RatingService is the facade over the repositories, the listing engine and the
upsert coordinator. Every public method takes the acting Actor (or None for
anonymous callers) first and runs the access policy before touching storage
for writes. Inputs are validated here, not only in the API models, because
the CLI calls the service directly.

Dependencies are passed to the constructor (see build_service() below);
nothing in this module reads global state except through those objects.

Logging: writes are logged at INFO with ids only. Passwords and hashes are
never logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from auth.models import Actor, Role, User
from auth.policy import AccessPolicy, Operation, Resource
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, verify_password
from catalog.aggregator import RatingAggregator
from catalog.listing import ListingQueryEngine, StoreListParams, UserListParams
from catalog.models import Aggregate, OwnerSummary, Rating, Store, StoreListing, StoreRatingRow, UserRatingRow
from catalog.store import CatalogStore
from catalog.upsert import UpsertCoordinator
from core.config import Settings
from core.database import Database
from core.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated
from core.models import Page
from core.validation import (
    check_address,
    check_email,
    check_password,
    check_store_name,
    check_user_name,
)

logger = logging.getLogger("storeratings.service")


@dataclass
class NewAccount:
    """Credentials and profile for an account created alongside another write."""

    name: str
    email: str
    password: str
    address: Optional[str] = None


class RatingService:
    """Usage:
    service = RatingService(users, catalog, aggregator, listing, upserts, AccessPolicy())
    page = service.list_stores(None, StoreListParams(search="coffee"))
    """

    def __init__(
        self,
        users: UserStore,
        catalog: CatalogStore,
        aggregator: RatingAggregator,
        listing: ListingQueryEngine,
        upserts: UpsertCoordinator,
        policy: AccessPolicy,
        self_registration_enabled: bool = True,
    ) -> None:
        self.users = users
        self.catalog = catalog
        self.aggregator = aggregator
        self.listing = listing
        self.upserts = upserts
        self.policy = policy
        self.self_registration_enabled = self_registration_enabled

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> tuple[User, str]:
        """Verify credentials and return (user, access token).

        Unknown email and wrong password fail identically.
        """
        user = authenticate_user(self.users, email, password)
        if user is None:
            logger.info("Failed login attempt")
            raise Unauthenticated("Invalid email or password.")
        token = create_access_token(user.id, user.email, user.role.value)
        logger.info("Login: user=%s role=%s", user.id, user.role.value)
        return user, token

    def seed_admin(self, name: str, email: str, password: str) -> tuple[User, bool]:
        """Create the first administrator from a trusted context (the CLI).

        Idempotent: returns (existing_admin, False) when an ADMIN with this
        email already exists. Raises Conflict if the email belongs to a
        non-admin account.
        """
        existing = self.users.get_by_email(check_email(email))
        if existing is not None:
            if existing.role is not Role.ADMIN:
                raise Conflict("A non-admin account already uses this email.")
            return existing, False
        user = self._build_user(name, email, password, None, Role.ADMIN)
        user.id = self.users.create_user(user)
        logger.info("Administrator seeded: id=%s", user.id)
        return self._require_user(user.id), True

    def get_profile(self, actor: Optional[Actor]) -> User:
        if actor is None:
            raise Unauthenticated("Authentication required.")
        return self._require_user(actor.id)

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def list_stores(self, actor: Optional[Actor], params: StoreListParams) -> Page[StoreListing]:
        self.policy.enforce(actor, Operation.READ_STORE)
        return self.listing.list_stores(params)

    def get_store(self, actor: Optional[Actor], store_id: str) -> StoreListing:
        self.policy.enforce(actor, Operation.READ_STORE)
        return self._store_listing(self._require_store(store_id))

    def get_store_aggregate(self, actor: Optional[Actor], store_id: str) -> Aggregate:
        self.policy.enforce(actor, Operation.READ_STORE)
        self._require_store(store_id)
        return self.aggregator.average_and_count(store_id)

    def get_own_store(self, actor: Optional[Actor]) -> StoreListing:
        """The store dashboard for a STORE_OWNER: their store with its aggregate."""
        self.policy.enforce(actor, Operation.READ_OWN_STORE)
        store = self.catalog.get_store_by_owner(actor.id)
        if store is None:
            raise NotFound("You do not own a store.")
        return self._store_listing(store)

    def create_store(
        self,
        actor: Optional[Actor],
        name: str,
        address: Optional[str] = None,
        owner_id: Optional[str] = None,
        owner: Optional[NewAccount] = None,
    ) -> StoreListing:
        """Create a store that is ownerless, owned by an existing STORE_OWNER,
        or owned by a new STORE_OWNER account created in the same transaction.
        """
        self.policy.enforce(actor, Operation.CREATE_STORE)
        name = check_store_name(name)
        address = check_address(address)
        if owner_id is not None and owner is not None:
            raise InvalidInput("Provide either ownerId or owner, not both.")

        new_owner = None
        if owner is not None:
            new_owner = self._build_user(owner.name, owner.email, owner.password, owner.address, Role.STORE_OWNER)
        elif owner_id is not None:
            existing = self.users.get_by_id(owner_id)
            if existing is None:
                raise NotFound("Owner not found.")
            if existing.role is not Role.STORE_OWNER:
                raise InvalidInput("The owner must have the STORE_OWNER role.")
            if self.catalog.get_store_by_owner(owner_id) is not None:
                raise Conflict("This user already owns a store.")

        store_id, owner_id = self.catalog.create_store(
            Store(name=name, address=address, owner_id=owner_id), owner=new_owner
        )
        logger.info(
            "Store created: id=%s owner=%s%s by=%s",
            store_id,
            owner_id or "-",
            " (new account)" if new_owner is not None else "",
            actor.id,
        )
        return self._store_listing(self._require_store(store_id))

    def update_store(self, actor: Optional[Actor], store_id: str, changes: dict[str, Any]) -> StoreListing:
        """Apply a partial update. Accepted keys: name, address (None clears it)."""
        self.policy.enforce(actor, Operation.UPDATE_STORE)
        fields: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                fields["name"] = check_store_name(value)
            elif key == "address":
                fields["address"] = check_address(value)
            else:
                raise InvalidInput(f"Unknown store field: {key}.")
        if fields and not self.catalog.update_store(store_id, **fields):
            raise NotFound("Store not found.")
        store = self._require_store(store_id)
        logger.info("Store updated: id=%s fields=%s by=%s", store_id, sorted(fields), actor.id)
        return self._store_listing(store)

    def delete_store(self, actor: Optional[Actor], store_id: str) -> None:
        self.policy.enforce(actor, Operation.DELETE_STORE)
        if not self.catalog.delete_store(store_id):
            raise NotFound("Store not found.")
        logger.info("Store deleted: id=%s by=%s", store_id, actor.id)

    def count_stores(self, actor: Optional[Actor]) -> int:
        self.policy.enforce(actor, Operation.VIEW_COUNTS)
        return self.catalog.count_stores()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def list_users(self, actor: Optional[Actor], params: UserListParams) -> Page[User]:
        self.policy.enforce(actor, Operation.LIST_USERS)
        return self.listing.list_users(params)

    def get_user(self, actor: Optional[Actor], user_id: str) -> User:
        self.policy.enforce(actor, Operation.READ_USER, Resource(user_id=user_id))
        return self._require_user(user_id)

    def count_users(self, actor: Optional[Actor]) -> dict[str, int]:
        """Return {role: count} for every role."""
        self.policy.enforce(actor, Operation.VIEW_COUNTS)
        return self.users.count_by_role()

    def register(self, name: str, email: str, password: str, address: Optional[str] = None) -> User:
        """Public self-registration. The role is always USER."""
        if not self.self_registration_enabled:
            raise Forbidden("Self-registration is disabled.")
        user = self._build_user(name, email, password, address, Role.USER)
        user.id = self.users.create_user(user)
        logger.info("User registered: id=%s", user.id)
        return self._require_user(user.id)

    def create_user(
        self,
        actor: Optional[Actor],
        name: str,
        email: str,
        password: str,
        address: Optional[str] = None,
        role: Role = Role.USER,
    ) -> User:
        self.policy.enforce(actor, Operation.CREATE_USER)
        user = self._build_user(name, email, password, address, Role(role))
        user.id = self.users.create_user(user)
        logger.info("User created: id=%s role=%s by=%s", user.id, user.role.value, actor.id)
        return self._require_user(user.id)

    def create_admin(
        self,
        actor: Optional[Actor],
        name: str,
        email: str,
        password: str,
        address: Optional[str] = None,
    ) -> User:
        return self.create_user(actor, name, email, password, address, Role.ADMIN)

    def update_user(self, actor: Optional[Actor], user_id: str, changes: dict[str, Any]) -> User:
        """Apply a partial profile update.

        name, email and address are editable by the user themself or an admin.
        role and password (a reset, no current password) are admin-only.
        """
        self.policy.enforce(actor, Operation.UPDATE_PROFILE, Resource(user_id=user_id))
        if "role" in changes or "password" in changes:
            self.policy.enforce(actor, Operation.MANAGE_ACCOUNT, Resource(user_id=user_id))

        fields: dict[str, Any] = {}
        for key, value in changes.items():
            if key == "name":
                fields["name"] = check_user_name(value)
            elif key == "email":
                fields["email"] = check_email(value)
            elif key == "address":
                fields["address"] = check_address(value)
            elif key == "role":
                try:
                    fields["role"] = Role(value)
                except ValueError:
                    raise InvalidInput(f"role must be one of: {', '.join(r.value for r in Role)}.") from None
            elif key == "password":
                fields["hashed_password"] = hash_password(check_password(value))
            else:
                raise InvalidInput(f"Unknown user field: {key}.")

        target = self._require_user(user_id)
        if "role" in fields and fields["role"] is not target.role:
            if target.id == actor.id:
                raise Conflict("You cannot change your own role.")
            if target.role is Role.STORE_OWNER and self.catalog.get_store_by_owner(target.id) is not None:
                raise Conflict("Reassign or delete this user's store before changing their role.")

        if fields and not self.users.update_user(user_id, **fields):
            raise NotFound("User not found.")
        logger.info("User updated: id=%s fields=%s by=%s", user_id, sorted(fields), actor.id)
        return self._require_user(user_id)

    def update_password(self, actor: Optional[Actor], current_password: str, new_password: str) -> None:
        """Change the actor's own password after verifying the current one."""
        verified = False
        if actor is not None:
            user = self._require_user(actor.id)
            verified = verify_password(current_password, user.hashed_password)
        self.policy.enforce(
            actor,
            Operation.UPDATE_PASSWORD,
            Resource(user_id=actor.id if actor else None, password_verified=verified),
        )
        hashed = hash_password(check_password(new_password))
        self.users.update_user(actor.id, hashed_password=hashed)
        logger.info("Password changed: user=%s", actor.id)

    def delete_user(self, actor: Optional[Actor], user_id: str) -> None:
        """Delete a user. Their ratings are removed and any store they own becomes ownerless."""
        self.policy.enforce(actor, Operation.DELETE_USER, Resource(user_id=user_id))
        if user_id == actor.id:
            raise Conflict("You cannot delete your own account.")
        if not self.users.delete_user(user_id):
            raise NotFound("User not found.")
        logger.info("User deleted: id=%s by=%s", user_id, actor.id)

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def upsert_rating(self, actor: Optional[Actor], store_id: str, value: int) -> Rating:
        return self.upserts.upsert_rating(actor, store_id, value)

    def get_own_rating(self, actor: Optional[Actor], store_id: str) -> Rating:
        """The rating the actor gave store_id. NotFound until they rate it."""
        self.policy.enforce(actor, Operation.READ_OWN_RATING)
        self._require_store(store_id)
        rating = self.catalog.get_rating(actor.id, store_id)
        if rating is None:
            raise NotFound("You have not rated this store.")
        return rating

    def list_store_ratings(
        self, actor: Optional[Actor], store_id: str, page: int = 1, limit: int = 10
    ) -> Page[StoreRatingRow]:
        self.policy.enforce(actor, Operation.LIST_STORE_RATINGS)
        self._require_store(store_id)
        return self.listing.list_store_ratings(store_id, page, limit)

    def list_user_ratings(
        self, actor: Optional[Actor], user_id: str, page: int = 1, limit: int = 10
    ) -> Page[UserRatingRow]:
        self.policy.enforce(actor, Operation.LIST_USER_RATINGS, Resource(user_id=user_id))
        self._require_user(user_id)
        return self.listing.list_user_ratings(user_id, page, limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_store(self, store_id: str) -> Store:
        store = self.catalog.get_store(store_id)
        if store is None:
            raise NotFound("Store not found.")
        return store

    def _require_user(self, user_id: str) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    def _store_listing(self, store: Store) -> StoreListing:
        owner = None
        if store.owner_id is not None:
            user = self.users.get_by_id(store.owner_id)
            if user is not None:
                owner = OwnerSummary(id=user.id, name=user.name, email=user.email)
        return StoreListing(store=store, aggregate=self.aggregator.average_and_count(store.id), owner=owner)

    @staticmethod
    def _build_user(name: str, email: str, password: str, address: Optional[str], role: Role) -> User:
        return User(
            name=check_user_name(name),
            email=check_email(email),
            role=role,
            hashed_password=hash_password(check_password(password)),
            address=check_address(address),
        )


def build_service(db: Database, settings: Settings) -> RatingService:
    """Construct the full component graph over one database handle.

    Used by the API lifespan, the CLI and the test fixtures.
    """
    policy = AccessPolicy()
    aggregator = RatingAggregator(db)
    catalog = CatalogStore(db)
    return RatingService(
        UserStore(db),
        catalog,
        aggregator,
        ListingQueryEngine(db, aggregator, max_limit=settings.max_page_limit),
        UpsertCoordinator(catalog, policy),
        policy,
        self_registration_enabled=settings.self_registration_enabled,
    )
