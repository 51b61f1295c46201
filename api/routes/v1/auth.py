"""
api/routes/v1/auth.py -- Session endpoints.

Routes:
  POST  /api/v1/auth/login     -- email/password login; sets JWT cookie, returns token
  POST  /api/v1/auth/logout    -- clears cookie
  GET   /api/v1/auth/me        -- current user profile (requires auth)
  PATCH /api/v1/auth/password  -- change own password (requires current password)

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  Login goes through RatingService.login(), which uses authenticate_user()'s
  timing equalization. Unknown email and wrong password return the same 401.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, PasswordUpdate, UserResponse
from auth.dependencies import get_actor
from auth.models import Actor
from auth.tokens import COOKIE_NAME, set_auth_cookie
from catalog.service import RatingService
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the JWT cookie and return the token."""
    service: RatingService = request.app.state.service
    user, token = service.login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=UserResponse.from_domain(user),
        ).model_dump(by_alias=True, mode="json"),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the JWT cookie. Tokens are stateless, so a copied bearer token stays valid until expiry."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(COOKIE_NAME)
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, actor: Actor = Depends(get_actor)) -> UserResponse:
    service: RatingService = request.app.state.service
    return UserResponse.from_domain(service.get_profile(actor))


@router.patch("/auth/password", response_model=MessageResponse)
def update_password(request: Request, body: PasswordUpdate, actor: Actor = Depends(get_actor)) -> MessageResponse:
    """Change the caller's password. A wrong current password is a 403."""
    service: RatingService = request.app.state.service
    service.update_password(actor, body.current_password, body.new_password)
    return MessageResponse(message="Password updated.")
