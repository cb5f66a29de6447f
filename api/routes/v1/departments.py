"""
api/routes/v1/departments.py -- Department management routes.

Routes:
  GET    /departments          -- paged listing with free-text search
  POST   /departments          -- create
  GET    /departments/{id}     -- single department with userCount
  PUT    /departments/{id}     -- rename / redescribe
  DELETE /departments/{id}     -- delete (refused while users are attached)

Auth policy: every route requires an admin session. The router-level
dependency raises 401 for a missing or invalid session and 403 for a
non-admin one, before any handler runs.

Name uniqueness is case-insensitive. Handlers pre-check so they can name the
clash; the unique name_key column catches the concurrent-writer case and the
resulting IntegrityError is reported as the same 409.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import DepartmentPage, DepartmentResponse, DepartmentWrite, MessageResponse
from auth.dependencies import require_admin
from core.config import get_settings
from core.filters import build_department_filter
from core.pagination import page_offset, total_pages
from org.models import Department
from org.store import DepartmentStore

_settings = get_settings()

router = APIRouter(dependencies=[Depends(require_admin)])


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "Department not found."},
    )


def _name_taken(name: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"code": "conflict", "message": f"A department named {name!r} already exists."},
    )


# ---------------------------------------------------------------------------
# GET /departments -- paged listing
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/departments", response_model=DepartmentPage)
async def list_departments(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(_settings.default_page_size, ge=1, le=_settings.max_page_size),
    search: str | None = Query(None, max_length=255),
) -> DepartmentPage:
    """Return one page of departments, newest first.

    search matches name OR description, case-insensitively. The page and the
    filtered total are fetched concurrently; both see the same filter.
    """
    store: DepartmentStore = request.app.state.department_store
    where = build_department_filter(search)
    offset = page_offset(page, limit)

    departments, total = await asyncio.gather(
        run_in_threadpool(store.list_departments, where, limit, offset),
        run_in_threadpool(store.count_departments, where),
    )
    return DepartmentPage(
        records=[DepartmentResponse.from_department(d) for d in departments],
        total=total,
        limit=limit,
        offset=offset,
        page=page,
        total_pages=total_pages(total, limit),
    )


# ---------------------------------------------------------------------------
# POST /departments -- create
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/departments", response_model=DepartmentResponse, status_code=201)
def create_department(request: Request, body: DepartmentWrite) -> DepartmentResponse:
    store: DepartmentStore = request.app.state.department_store

    if store.find_by_name(body.name) is not None:
        raise _name_taken(body.name)
    try:
        dept_id = store.create_department(Department(name=body.name, description=body.description or None))
    except IntegrityError as exc:
        raise _name_taken(body.name) from exc

    return DepartmentResponse.from_department(store.get_department(dept_id))


# ---------------------------------------------------------------------------
# GET /departments/{id}
# ---------------------------------------------------------------------------


@limiter.limit("60/minute")
@router.get("/departments/{dept_id}", response_model=DepartmentResponse)
def get_department(request: Request, dept_id: int) -> DepartmentResponse:
    store: DepartmentStore = request.app.state.department_store
    dept = store.get_department(dept_id)
    if dept is None:
        raise _not_found()
    return DepartmentResponse.from_department(dept)


# ---------------------------------------------------------------------------
# PUT /departments/{id} -- update
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.put("/departments/{dept_id}", response_model=DepartmentResponse)
def update_department(request: Request, dept_id: int, body: DepartmentWrite) -> DepartmentResponse:
    """Replace name and description. Renaming to a different case of the
    department's own name is allowed; clashing with another department is not.
    """
    store: DepartmentStore = request.app.state.department_store

    if store.get_department(dept_id) is None:
        raise _not_found()
    if store.find_by_name(body.name, exclude_id=dept_id) is not None:
        raise _name_taken(body.name)
    try:
        updated = store.update_department(dept_id, body.name, body.description or None)
    except IntegrityError as exc:
        raise _name_taken(body.name) from exc
    if not updated:
        # Deleted between the existence check and the write.
        raise _not_found()

    return DepartmentResponse.from_department(store.get_department(dept_id))


# ---------------------------------------------------------------------------
# DELETE /departments/{id}
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.delete("/departments/{dept_id}", response_model=MessageResponse)
def delete_department(request: Request, dept_id: int) -> MessageResponse:
    """Delete an empty department.

    Returns 400 department_in_use while any user is attached. The store
    re-checks emptiness inside the DELETE itself, so an assignment racing this
    call still blocks it.
    """
    store: DepartmentStore = request.app.state.department_store

    dept = store.get_department(dept_id)
    if dept is None:
        raise _not_found()
    if dept.user_count > 0 or not store.delete_department(dept_id):
        if store.get_department(dept_id) is None:
            raise _not_found()
        count = store.count_users(dept_id)
        raise HTTPException(
            status_code=400,
            detail={
                "code": "department_in_use",
                "message": f"Department has {count} user(s). Reassign them before deleting.",
            },
        )
    return MessageResponse(message="Department deleted.")
