"""
auth/dependencies.py -- FastAPI Depends() helpers that identify the actor.

Two credential sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the login endpoint for browsers.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on authenticate_and_identify(), which verifies the token and
re-reads the user so a deleted account or a changed role takes effect on the
next request rather than when the token expires.

get_optional_actor() is the soft variant used by public endpoints (store
listings): it returns None when no credentials are present, but a present and
invalid token is still rejected.
get_actor() raises Unauthenticated when no valid credentials are present.

Role decisions are NOT made here; they belong to auth/policy.py.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Actor
from auth.store import UserStore
from auth.tokens import COOKIE_NAME, decode_access_token
from core.errors import Unauthenticated


def authenticate_and_identify(user_store: UserStore, token: str) -> Actor:
    """Verify a token and return the actor it identifies.

    Raises Unauthenticated if the token is invalid or expired, or if the
    user no longer exists.
    """
    payload = decode_access_token(token)
    if payload is None:
        raise Unauthenticated("Invalid or expired token.")
    user = user_store.get_by_id(payload["sub"])
    if user is None:
        raise Unauthenticated("The account for this token no longer exists.")
    return Actor(id=user.id, role=user.role)


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:] or None
    return None


def get_optional_actor(request: Request) -> Actor | None:
    """Return the actor if credentials are present, None for anonymous requests."""
    token = _extract_token(request)
    if token is None:
        return None
    return authenticate_and_identify(request.app.state.user_store, token)


def get_actor(request: Request) -> Actor:
    """Require authentication. Raises Unauthenticated (HTTP 401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(actor: Actor = Depends(get_actor)): ...
    """
    actor = get_optional_actor(request)
    if actor is None:
        raise Unauthenticated("Authentication required.")
    return actor
