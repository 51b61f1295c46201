"""Unit tests for catalog/service.py -- RatingService operations end to end.

Covers:
- store creation: ownerless, existing owner, atomic new owner, duplicate
  ownership Conflict, rollback when the new owner's email is taken
- cascades: deleting a store or a user removes their ratings; deleting an
  owner leaves the store ownerless
- registration, admin-issued creation, seeding the first admin
- login and password change
- profile updates: self vs admin, role changes, duplicate email
- counts, owner dashboard, rating listings access, the caller's own rating
"""

import pytest

from auth.models import Role
from auth.tokens import decode_access_token
from catalog.listing import StoreListParams
from catalog.models import Store
from catalog.service import NewAccount
from core.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated

PASSWORD = "Secret#123"  # matches the conftest fixture users
NEW_OWNER_NAME = "Brand New Store Owner Account"


@pytest.fixture
def admin(make_user, actor_of):
    return actor_of(make_user(Role.ADMIN))


# ---------------------------------------------------------------------------
# Store creation
# ---------------------------------------------------------------------------


class TestCreateStore:
    def test_ownerless_store(self, service, admin):
        listing = service.create_store(admin, "  Corner Shop ", address="1 High Street")
        assert listing.store.name == "Corner Shop"
        assert listing.store.owner_id is None
        assert listing.owner is None
        assert listing.aggregate.count == 0

    def test_existing_owner(self, service, admin, make_user):
        owner = make_user(Role.STORE_OWNER)
        listing = service.create_store(admin, "Owned Shop", owner_id=owner.id)
        assert listing.owner.id == owner.id
        assert listing.owner.email == owner.email

    def test_owner_who_already_owns_a_store_conflicts(self, service, admin, make_user):
        owner = make_user(Role.STORE_OWNER)
        service.create_store(admin, "First", owner_id=owner.id)
        with pytest.raises(Conflict):
            service.create_store(admin, "A", owner_id=owner.id)
        assert service.catalog.count_stores() == 1

    def test_owner_must_have_store_owner_role(self, service, admin, make_user):
        customer = make_user(Role.USER)
        with pytest.raises(InvalidInput):
            service.create_store(admin, "Shop", owner_id=customer.id)

    def test_unknown_owner(self, service, admin):
        with pytest.raises(NotFound):
            service.create_store(admin, "Shop", owner_id="no-such-user")

    def test_owner_id_and_inline_owner_are_exclusive(self, service, admin, make_user):
        owner = make_user(Role.STORE_OWNER)
        account = NewAccount(NEW_OWNER_NAME, "new.owner@example.com", PASSWORD)
        with pytest.raises(InvalidInput):
            service.create_store(admin, "Shop", owner_id=owner.id, owner=account)

    def test_atomic_new_owner(self, service, admin):
        account = NewAccount(NEW_OWNER_NAME, "New.Owner@Example.com", PASSWORD, address="2 Low Road")
        listing = service.create_store(admin, "Fresh Market", owner=account)

        owner = service.users.get_by_id(listing.store.owner_id)
        assert owner.role is Role.STORE_OWNER
        assert owner.email == "new.owner@example.com"
        assert service.login("new.owner@example.com", PASSWORD)[0].id == owner.id

    def test_new_owner_with_taken_email_rolls_back(self, service, admin, make_user):
        taken = make_user(Role.USER)
        account = NewAccount(NEW_OWNER_NAME, taken.email, PASSWORD)
        with pytest.raises(Conflict):
            service.create_store(admin, "Never Created", owner=account)
        assert service.catalog.count_stores() == 0

    def test_new_owner_password_rules_apply(self, service, admin):
        account = NewAccount(NEW_OWNER_NAME, "weak@example.com", "weakpass")
        with pytest.raises(InvalidInput):
            service.create_store(admin, "Shop", owner=account)
        assert service.users.get_by_email("weak@example.com") is None

    @pytest.mark.parametrize("role", [Role.USER, Role.STORE_OWNER])
    def test_non_admin_forbidden(self, service, make_user, actor_of, role):
        with pytest.raises(Forbidden):
            service.create_store(actor_of(make_user(role)), "Shop")

    def test_name_length(self, service, admin):
        with pytest.raises(InvalidInput):
            service.create_store(admin, "x" * 101)
        with pytest.raises(InvalidInput):
            service.create_store(admin, "   ")

    def test_owner_removed_before_insert(self, service):
        # The service checks the owner first; the repository still has to
        # report a vanished owner as missing, not as a duplicate store.
        with pytest.raises(NotFound, match="Owner not found."):
            service.catalog.create_store(Store(name="Orphaned", owner_id="deleted-owner"))
        assert service.catalog.count_stores() == 0

    def test_duplicate_owner_at_storage_layer(self, service, make_user):
        owner = make_user(Role.STORE_OWNER)
        service.catalog.create_store(Store(name="First", owner_id=owner.id))
        with pytest.raises(Conflict, match="already owns a store"):
            service.catalog.create_store(Store(name="Second", owner_id=owner.id))


# ---------------------------------------------------------------------------
# Reads, updates and deletes
# ---------------------------------------------------------------------------


class TestStores:
    def test_aggregate_scenario(self, service, admin, make_user, actor_of):
        store = service.create_store(admin, "Rated Shop").store
        for value in (5, 3, 4):
            service.upsert_rating(actor_of(make_user()), store.id, value)

        aggregate = service.get_store_aggregate(None, store.id)
        assert (aggregate.average, aggregate.count) == (4.0, 3)
        assert service.get_store(None, store.id).aggregate == aggregate

    def test_unknown_store(self, service):
        with pytest.raises(NotFound):
            service.get_store(None, "missing")
        with pytest.raises(NotFound):
            service.get_store_aggregate(None, "missing")

    def test_public_listing(self, service, admin):
        service.create_store(admin, "Visible")
        assert service.list_stores(None, StoreListParams()).meta.total == 1

    def test_update_store(self, service, admin):
        store = service.create_store(admin, "Old Name", address="Somewhere").store
        updated = service.update_store(admin, store.id, {"name": "New Name", "address": None})
        assert updated.store.name == "New Name"
        assert updated.store.address is None

    def test_update_unknown_store(self, service, admin):
        with pytest.raises(NotFound):
            service.update_store(admin, "missing", {"name": "Anything"})

    def test_delete_store_cascades_ratings(self, service, admin, make_user, actor_of):
        store = service.create_store(admin, "Doomed").store
        rater = make_user()
        service.upsert_rating(actor_of(rater), store.id, 4)

        service.delete_store(admin, store.id)
        assert service.catalog.get_store(store.id) is None
        assert service.catalog.get_rating(rater.id, store.id) is None
        with pytest.raises(NotFound):
            service.delete_store(admin, store.id)

    def test_own_store_dashboard(self, service, admin, make_user, actor_of):
        owner = make_user(Role.STORE_OWNER)
        service.create_store(admin, "Mine", owner_id=owner.id)
        assert service.get_own_store(actor_of(owner)).store.name == "Mine"

        other_owner = make_user(Role.STORE_OWNER)
        with pytest.raises(NotFound):
            service.get_own_store(actor_of(other_owner))

    def test_counts(self, service, admin, make_user):
        make_user(Role.USER)
        make_user(Role.USER)
        make_user(Role.STORE_OWNER)
        service.create_store(admin, "One")
        assert service.count_stores(admin) == 1
        assert service.count_users(admin) == {"ADMIN": 1, "STORE_OWNER": 1, "USER": 2}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_register_forces_user_role_and_normalizes_email(self, service):
        user = service.register("Jonathan Appleseed Junior", "  Jon@Example.COM ", PASSWORD)
        assert user.role is Role.USER
        assert user.email == "jon@example.com"
        assert user.hashed_password != PASSWORD

    def test_register_duplicate_email(self, service):
        service.register("Jonathan Appleseed Junior", "jon@example.com", PASSWORD)
        with pytest.raises(Conflict):
            service.register("Jonathan Appleseed Senior", "JON@example.com", PASSWORD)

    @pytest.mark.parametrize(
        "name, email, password",
        [
            ("Too Short", "a@example.com", PASSWORD),
            ("Jonathan Appleseed Junior", "not-an-email", PASSWORD),
            ("Jonathan Appleseed Junior", "a@example.com", "secret#123"),  # no uppercase
            ("Jonathan Appleseed Junior", "a@example.com", "Secret1234"),  # no special
            ("Jonathan Appleseed Junior", "a@example.com", "Sec#1"),  # too short
            ("Jonathan Appleseed Junior", "a@example.com", "Secret#123456789X"),  # 17 chars
        ],
    )
    def test_register_validation(self, service, name, email, password):
        with pytest.raises(InvalidInput):
            service.register(name, email, password)

    def test_register_disabled(self, service):
        service.self_registration_enabled = False
        with pytest.raises(Forbidden):
            service.register("Jonathan Appleseed Junior", "jon@example.com", PASSWORD)

    def test_admin_creates_users_and_admins(self, service, admin):
        owner = service.create_user(admin, "Store Owner Created By Admin", "o@example.com", PASSWORD, role=Role.STORE_OWNER)
        second_admin = service.create_admin(admin, "Second Administrator Account", "a2@example.com", PASSWORD)
        assert owner.role is Role.STORE_OWNER
        assert second_admin.role is Role.ADMIN

    def test_non_admin_cannot_create_users(self, service, make_user, actor_of):
        with pytest.raises(Forbidden):
            service.create_admin(actor_of(make_user()), "Sneaky Escalation Attempt", "x@example.com", PASSWORD)

    def test_seed_admin_is_idempotent(self, service):
        first, created = service.seed_admin("Seeded Administrator Account", "root@example.com", PASSWORD)
        again, created_again = service.seed_admin("Seeded Administrator Account", "ROOT@example.com", PASSWORD)
        assert created and not created_again
        assert again.id == first.id
        assert first.role is Role.ADMIN

    def test_seed_admin_refuses_non_admin_email(self, service, make_user):
        user = make_user(Role.USER)
        with pytest.raises(Conflict):
            service.seed_admin("Seeded Administrator Account", user.email, PASSWORD)

    def test_get_user_admin_only(self, service, admin, make_user, actor_of):
        user = make_user()
        assert service.get_user(admin, user.id).email == user.email
        with pytest.raises(Forbidden):
            service.get_user(actor_of(user), user.id)
        with pytest.raises(NotFound):
            service.get_user(admin, "missing")


class TestUpdateUser:
    def test_self_update(self, service, make_user, actor_of):
        user = make_user()
        updated = service.update_user(actor_of(user), user.id, {"name": "A Much Better Display Name", "address": "3 Elm"})
        assert updated.name == "A Much Better Display Name"
        assert updated.address == "3 Elm"

    def test_cannot_update_someone_else(self, service, make_user, actor_of):
        user, other = make_user(), make_user()
        with pytest.raises(Forbidden):
            service.update_user(actor_of(user), other.id, {"name": "Hijacked Display Name Here"})

    def test_user_cannot_change_own_role(self, service, make_user, actor_of):
        user = make_user()
        with pytest.raises(Forbidden):
            service.update_user(actor_of(user), user.id, {"role": "ADMIN"})
        assert service.users.get_by_id(user.id).role is Role.USER

    def test_admin_changes_role_and_resets_password(self, service, admin, make_user):
        user = make_user()
        updated = service.update_user(admin, user.id, {"role": "STORE_OWNER", "password": "Another#99"})
        assert updated.role is Role.STORE_OWNER
        assert service.login(user.email, "Another#99")[0].id == user.id

    def test_admin_cannot_change_own_role(self, service, admin):
        with pytest.raises(Conflict):
            service.update_user(admin, admin.id, {"role": "USER"})

    def test_owner_with_store_keeps_role(self, service, admin, make_user):
        owner = make_user(Role.STORE_OWNER)
        service.create_store(admin, "Held", owner_id=owner.id)
        with pytest.raises(Conflict):
            service.update_user(admin, owner.id, {"role": "USER"})

    def test_duplicate_email(self, service, make_user, actor_of):
        user, other = make_user(), make_user()
        with pytest.raises(Conflict):
            service.update_user(actor_of(user), user.id, {"email": other.email.upper()})

    def test_unknown_field(self, service, admin, make_user):
        with pytest.raises(InvalidInput):
            service.update_user(admin, make_user().id, {"hashed_password": "x"})


class TestPasswords:
    def test_login(self, service, make_user):
        user = make_user()
        logged_in, token = service.login(user.email.upper(), PASSWORD)
        assert logged_in.id == user.id
        payload = decode_access_token(token)
        assert payload["sub"] == user.id
        assert payload["role"] == "USER"

    @pytest.mark.parametrize("email, password", [("nobody@example.com", PASSWORD), (None, "Wrong#Pass1")])
    def test_login_failures_look_the_same(self, service, make_user, email, password):
        user = make_user()
        with pytest.raises(Unauthenticated, match="Invalid email or password."):
            service.login(email or user.email, password)

    def test_update_password(self, service, make_user, actor_of):
        user = make_user()
        service.update_password(actor_of(user), PASSWORD, "Changed#Pw1")
        assert service.login(user.email, "Changed#Pw1")[0].id == user.id
        with pytest.raises(Unauthenticated):
            service.login(user.email, PASSWORD)

    def test_wrong_current_password(self, service, make_user, actor_of):
        user = make_user()
        with pytest.raises(Forbidden, match="Current password is incorrect."):
            service.update_password(actor_of(user), "Wrong#Pass1", "Changed#Pw1")

    def test_new_password_rules(self, service, make_user, actor_of):
        user = make_user()
        with pytest.raises(InvalidInput):
            service.update_password(actor_of(user), PASSWORD, "short")

    def test_anonymous(self, service):
        with pytest.raises(Unauthenticated):
            service.update_password(None, PASSWORD, "Changed#Pw1")


class TestDeleteUser:
    def test_delete_owner_detaches_store_and_cascades_ratings(self, service, admin, make_user, actor_of):
        owner = make_user(Role.STORE_OWNER)
        rater = make_user()
        store = service.create_store(admin, "Outlives Owner", owner_id=owner.id).store
        other = service.create_store(admin, "Rated By Rater").store
        service.upsert_rating(actor_of(rater), other.id, 5)

        service.delete_user(admin, owner.id)
        service.delete_user(admin, rater.id)

        assert service.catalog.get_store(store.id).owner_id is None
        assert service.get_store_aggregate(None, other.id).count == 0

    def test_cannot_delete_self(self, service, admin):
        with pytest.raises(Conflict):
            service.delete_user(admin, admin.id)

    def test_unknown_user(self, service, admin):
        with pytest.raises(NotFound):
            service.delete_user(admin, "missing")


class TestRatingListings:
    def test_user_sees_only_own_ratings(self, service, make_user, actor_of):
        user, other = make_user(), make_user()
        assert service.list_user_ratings(actor_of(user), user.id).meta.total == 0
        with pytest.raises(Forbidden):
            service.list_user_ratings(actor_of(user), other.id)

    def test_store_ratings_for_owner_and_admin(self, service, admin, make_user, actor_of):
        owner = make_user(Role.STORE_OWNER)
        store = service.create_store(admin, "Listed", owner_id=owner.id).store
        service.upsert_rating(actor_of(make_user()), store.id, 3)
        assert service.list_store_ratings(actor_of(owner), store.id).meta.total == 1
        assert service.list_store_ratings(admin, store.id).meta.total == 1
        with pytest.raises(NotFound):
            service.list_store_ratings(admin, "missing")

    def test_users_cannot_list_store_ratings(self, service, admin, make_user, actor_of):
        store = service.create_store(admin, "Private").store
        with pytest.raises(Forbidden):
            service.list_store_ratings(actor_of(make_user()), store.id)

    def test_own_rating(self, service, admin, make_user, actor_of):
        store = service.create_store(admin, "Rated Once").store
        rater = actor_of(make_user())
        with pytest.raises(NotFound, match="not rated"):
            service.get_own_rating(rater, store.id)

        service.upsert_rating(rater, store.id, 2)
        service.upsert_rating(rater, store.id, 5)
        assert service.get_own_rating(rater, store.id).rating == 5

    def test_own_rating_for_users_only(self, service, admin, make_user, actor_of):
        store = service.create_store(admin, "Unrated").store
        with pytest.raises(Forbidden):
            service.get_own_rating(admin, store.id)
        with pytest.raises(Unauthenticated):
            service.get_own_rating(None, store.id)
        with pytest.raises(NotFound, match="Store not found."):
            service.get_own_rating(actor_of(make_user()), "missing")
