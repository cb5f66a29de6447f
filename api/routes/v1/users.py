"""
api/routes/v1/users.py -- User management routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET  /users                    -- filtered, paged listing
  GET  /users/count              -- total number of accounts
  POST /users                    -- create account
  POST /users/{id}/ban           -- ban with reason and optional expiry
  POST /users/{id}/unban         -- lift a ban
  POST /users/{id}/role          -- change role
  POST /users/{id}/password      -- set a new password
  PUT  /users/{id}/department    -- attach to / detach from a department

Auth policy: every route requires an admin session (router-level dependency).

The state changes themselves live in auth/admin.py; handlers validate input,
check cross-entity preconditions (department exists, not banning yourself,
not demoting the last admin) and map failures to HTTP errors.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    BanRequest,
    DepartmentAssign,
    PasswordUpdate,
    RoleEnum,
    RoleUpdate,
    UserCountResponse,
    UserCreate,
    UserPage,
    UserResponse,
)
from auth import admin
from auth.dependencies import require_admin
from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.filters import FilterError, build_user_filter
from core.pagination import total_pages
from org.store import DepartmentStore

_settings = get_settings()

router = APIRouter(dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "User not found."},
    )


def _require_department(request: Request, dept_id: int | None) -> None:
    if dept_id is None:
        return
    dept_store: DepartmentStore = request.app.state.department_store
    if dept_store.get_department(dept_id) is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Department not found."},
        )


def _with_departments(request: Request, users: list[User]) -> list[UserResponse]:
    """Resolve department names for a batch of users in one query."""
    dept_store: DepartmentStore = request.app.state.department_store
    names = dept_store.get_names(u.department_id for u in users)
    for user in users:
        user.department_name = names.get(user.department_id)
    return [UserResponse.from_user(u) for u in users]


def _respond(request: Request, user: User | None) -> UserResponse:
    if user is None:
        raise _not_found()
    return _with_departments(request, [user])[0]


# ---------------------------------------------------------------------------
# GET /users -- paged listing
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/users", response_model=UserPage)
async def list_users(
    request: Request,
    search_value: str | None = Query(None, alias="searchValue", max_length=255),
    search_field: str | None = Query(None, alias="searchField", max_length=50),
    filter_field: str | None = Query(None, alias="filterField", max_length=50),
    filter_value: str | None = Query(None, alias="filterValue", max_length=255),
    filter_operator: str | None = Query(None, alias="filterOperator", max_length=20),
    limit: int = Query(_settings.default_page_size, ge=1, le=_settings.max_page_size),
    offset: int = Query(0, ge=0),
) -> UserPage:
    """Return the [offset, offset + limit) slice of matching users, newest first.

    searchValue/searchField is a case-insensitive substring search; an unknown
    searchField is ignored. filterField/filterValue/filterOperator narrows
    further; an unknown field or operator is a 400 invalid_filter.
    """
    try:
        where = build_user_filter(search_value, search_field, filter_field, filter_value, filter_operator)
    except FilterError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_filter", "message": str(exc)},
        ) from exc

    store: UserStore = request.app.state.user_store
    users, total = await asyncio.gather(
        run_in_threadpool(store.find_users, where, limit, offset),
        run_in_threadpool(store.count_users, where),
    )
    records = await run_in_threadpool(_with_departments, request, users)
    return UserPage(
        records=records,
        total=total,
        limit=limit,
        offset=offset,
        page=offset // limit + 1,
        total_pages=total_pages(total, limit),
    )


@limiter.limit("60/minute")
@router.get("/users/count", response_model=UserCountResponse)
def count_users(request: Request) -> UserCountResponse:
    store: UserStore = request.app.state.user_store
    return UserCountResponse(count=store.count_users())


# ---------------------------------------------------------------------------
# POST /users -- create
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    store: UserStore = request.app.state.user_store
    _require_department(request, body.department_id)

    try:
        user = admin.create_user(
            store,
            name=body.name,
            email=body.email,
            password=body.password,
            role=body.role.value,
            username=body.username or None,
            department_id=body.department_id,
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that email or username already exists."},
        ) from exc
    return _respond(request, user)


# ---------------------------------------------------------------------------
# Ban / unban
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/users/{user_id}/ban", response_model=UserResponse)
def ban_user(
    request: Request,
    user_id: int,
    body: BanRequest,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Ban an account. An admin cannot ban their own account."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_ban", "message": "You cannot ban your own account."},
        )
    store: UserStore = request.app.state.user_store
    return _respond(request, admin.ban_user(store, user_id, body.ban_reason, body.ban_expires_in))


@limiter.limit("30/minute")
@router.post("/users/{user_id}/unban", response_model=UserResponse)
def unban_user(request: Request, user_id: int) -> UserResponse:
    store: UserStore = request.app.state.user_store
    return _respond(request, admin.unban_user(store, user_id))


# ---------------------------------------------------------------------------
# Role / password / department
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/users/{user_id}/role", response_model=UserResponse)
def set_role(request: Request, user_id: int, body: RoleUpdate) -> UserResponse:
    """Change an account's role. The last active admin cannot be demoted."""
    store: UserStore = request.app.state.user_store

    target = store.get_by_id(user_id)
    if target is None:
        raise _not_found()
    if (
        target.role == "admin"
        and body.role is not RoleEnum.admin
        and target.is_active
        and not target.banned
        and store.count_active_admins() <= 1
    ):
        raise HTTPException(
            status_code=400,
            detail={"code": "last_admin", "message": "Cannot demote the last active admin account."},
        )
    return _respond(request, admin.set_role(store, user_id, body.role.value))


@limiter.limit("10/minute")
@router.post("/users/{user_id}/password", response_model=UserResponse)
def set_user_password(request: Request, user_id: int, body: PasswordUpdate) -> UserResponse:
    store: UserStore = request.app.state.user_store
    return _respond(request, admin.set_user_password(store, user_id, body.new_password))


@limiter.limit("30/minute")
@router.put("/users/{user_id}/department", response_model=UserResponse)
def assign_department(request: Request, user_id: int, body: DepartmentAssign) -> UserResponse:
    """Attach the user to a department, or detach with departmentId: null."""
    store: UserStore = request.app.state.user_store
    if store.get_by_id(user_id) is None:
        raise _not_found()
    _require_department(request, body.department_id)
    return _respond(request, admin.set_department(store, user_id, body.department_id))
