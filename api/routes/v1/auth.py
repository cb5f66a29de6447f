"""
api/routes/v1/auth.py -- Session and first-run setup endpoints.

Routes:
  POST /api/v1/auth/login     -- password login (username or email); sets JWT cookie
  POST /api/v1/auth/logout    -- clears cookie; 200
  GET  /api/v1/auth/me        -- current user info (requires auth)
  POST /api/v1/setup          -- create the first admin (only while no users exist)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  authenticate_user() provides timing equalization -- use it, never inline.
  POST /setup re-checks has_users() at the DB level; the in-memory
  setup_required flag alone is racy.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MeResponse, MessageResponse, SetupRequest
from auth import admin
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import COOKIE_NAME, authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/login:   public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:  public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:      requires auth (get_current_user)
# - POST /api/v1/setup:        public, but only while no user exists
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username-or-email and password; set JWT cookie.

    Wrong identifier, wrong password, banned and deactivated accounts all get
    the same 401 bad_credentials so the response does not reveal which one
    it was.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": "Invalid username or password.", "code": "bad_credentials"},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.email, user.role)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            user=MeResponse.from_user(user),
        ).model_dump(by_alias=True),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(COOKIE_NAME)
    return resp


@router.post("/setup", response_model=MeResponse, status_code=201)
def setup(request: Request, body: SetupRequest) -> MeResponse:
    """Create the first admin account.

    Race condition guard: re-checks has_users() inside the handler even
    though the middleware already checked setup_required. Two concurrent
    requests could both pass the middleware check before either creates a
    user. The DB-level check and IntegrityError catch ensure only one wins.
    """
    user_store: UserStore = request.app.state.user_store
    setup_done = HTTPException(
        status_code=409,
        detail={"code": "setup_complete", "message": "Setup already complete. Please log in."},
    )

    if user_store.has_users():
        request.app.state.setup_required = False
        raise setup_done
    try:
        user = admin.create_user(
            user_store,
            name=body.name,
            email=body.email,
            password=body.password,
            role="admin",
            username=body.username or None,
        )
    except IntegrityError as exc:
        raise setup_done from exc

    request.app.state.setup_required = False
    return MeResponse.from_user(user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse.from_user(current_user)
