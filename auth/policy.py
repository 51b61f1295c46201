"""
auth/policy.py -- Role-based access policy as a fixed, ordered rule table.

authorize(actor, operation, resource) walks RULES in order and applies the
first rule whose operation matches. Evaluation is pure: it reads only the
actor, the operation and the Resource facts the caller supplies, and never
touches storage. Facts that need I/O (who owns the store, whether the current
password verified) are resolved by the caller and passed in on Resource.

Two kinds of denial:
  - no actor on a rule that requires one -> Unauthenticated (checked first)
  - wrong role or failed condition       -> Forbidden(reason)

An operation with no matching rule is denied.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from auth.models import Actor, Role
from core.errors import Forbidden, Unauthenticated

logger = logging.getLogger("storeratings.policy")


class Operation(str, Enum):
    CREATE_STORE = "create_store"
    UPSERT_RATING = "upsert_rating"
    READ_STORE = "read_store"
    UPDATE_STORE = "update_store"
    DELETE_STORE = "delete_store"
    LIST_STORE_RATINGS = "list_store_ratings"
    LIST_USER_RATINGS = "list_user_ratings"
    LIST_USERS = "list_users"
    READ_USER = "read_user"
    DELETE_USER = "delete_user"
    UPDATE_PROFILE = "update_profile"
    UPDATE_PASSWORD = "update_password"
    CREATE_USER = "create_user"
    MANAGE_ACCOUNT = "manage_account"  # change role, reset password
    VIEW_COUNTS = "view_counts"
    READ_OWN_STORE = "read_own_store"
    READ_OWN_RATING = "read_own_rating"


@dataclass(frozen=True)
class Resource:
    """Facts about the target of an operation. Unused fields stay None."""

    user_id: Optional[str] = None  # target user
    owner_id: Optional[str] = None  # owner of the target store
    password_verified: Optional[bool] = None  # current password matched


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""
    unauthenticated: bool = False


Condition = Callable[[Actor, Resource], bool]


@dataclass(frozen=True)
class Rule:
    operation: Operation
    roles: Optional[frozenset[Role]]  # None = any role
    requires_actor: bool = True
    condition: Optional[Condition] = None
    role_reason: str = "You do not have permission to perform this action."
    condition_reason: str = "You do not have permission to perform this action."


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def _not_store_owner(actor: Actor, resource: Resource) -> bool:
    return resource.owner_id != actor.id


def _users_only_self(actor: Actor, resource: Resource) -> bool:
    return actor.role is not Role.USER or resource.user_id == actor.id


def _self_or_admin(actor: Actor, resource: Resource) -> bool:
    return actor.is_admin or resource.user_id == actor.id


def _self_with_current_password(actor: Actor, resource: Resource) -> bool:
    return resource.user_id == actor.id and resource.password_verified is True


# ---------------------------------------------------------------------------
# Rule table (first match wins)
# ---------------------------------------------------------------------------

_ADMIN = frozenset({Role.ADMIN})
_ADMIN_ONLY = "Admin access required."

RULES: tuple[Rule, ...] = (
    Rule(Operation.CREATE_STORE, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(
        Operation.UPSERT_RATING,
        frozenset({Role.USER}),
        condition=_not_store_owner,
        role_reason="Only users can rate stores.",
        condition_reason="Store owners cannot rate their own store.",
    ),
    Rule(Operation.READ_STORE, None, requires_actor=False),
    Rule(Operation.UPDATE_STORE, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(Operation.DELETE_STORE, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(
        Operation.LIST_STORE_RATINGS,
        frozenset({Role.STORE_OWNER, Role.ADMIN}),
        role_reason="Only store owners and admins can view store ratings.",
    ),
    Rule(
        Operation.LIST_USER_RATINGS,
        frozenset({Role.USER, Role.ADMIN}),
        condition=_users_only_self,
        role_reason="Only users and admins can view user ratings.",
        condition_reason="You can only view your own ratings.",
    ),
    Rule(Operation.LIST_USERS, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(Operation.READ_USER, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(Operation.DELETE_USER, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(
        Operation.UPDATE_PROFILE,
        None,
        condition=_self_or_admin,
        condition_reason="You can only update your own profile.",
    ),
    Rule(
        Operation.UPDATE_PASSWORD,
        None,
        condition=_self_with_current_password,
        condition_reason="Current password is incorrect.",
    ),
    Rule(Operation.CREATE_USER, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(Operation.MANAGE_ACCOUNT, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(Operation.VIEW_COUNTS, _ADMIN, role_reason=_ADMIN_ONLY),
    Rule(
        Operation.READ_OWN_STORE,
        frozenset({Role.STORE_OWNER}),
        role_reason="Only store owners have a store dashboard.",
    ),
    Rule(
        Operation.READ_OWN_RATING,
        frozenset({Role.USER}),
        role_reason="Only users rate stores.",
    ),
)


class AccessPolicy:
    """Evaluates a rule table. Constructed explicitly and handed to the service."""

    def __init__(self, rules: tuple[Rule, ...] = RULES) -> None:
        self._rules = rules

    def authorize(self, actor: Optional[Actor], operation: Operation, resource: Resource = Resource()) -> Decision:
        for rule in self._rules:
            if rule.operation is not operation:
                continue
            if actor is None:
                if rule.requires_actor:
                    return Decision(False, "Authentication required.", unauthenticated=True)
                return Decision(True)
            if rule.roles is not None and actor.role not in rule.roles:
                return Decision(False, rule.role_reason)
            if rule.condition is not None and not rule.condition(actor, resource):
                return Decision(False, rule.condition_reason)
            return Decision(True)
        return Decision(False, "This operation is not permitted.")

    def enforce(self, actor: Optional[Actor], operation: Operation, resource: Resource = Resource()) -> None:
        """Raise Unauthenticated or Forbidden unless authorize() allows the operation."""
        decision = self.authorize(actor, operation, resource)
        if decision.allowed:
            return
        if decision.unauthenticated:
            raise Unauthenticated(decision.reason)
        logger.info(
            "Denied %s for actor %s (%s): %s",
            operation.value,
            actor.id if actor else "-",
            actor.role.value if actor else "-",
            decision.reason,
        )
        raise Forbidden(decision.reason)
