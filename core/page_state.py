"""
core/page_state.py -- Framework-free state machine for the admin list pages.

Each list page (users, departments) is a frozen ListPageState plus a pure
reduce(state, event) -> state function. Nothing here performs I/O: the caller
turns the state into request parameters (user_query / department_query),
performs the request, and feeds LoadSucceeded or LoadFailed back in.

Transitions:
  SearchChanged / RoleFilterChanged / PageSizeChanged -> page resets to 1
  PageChanged                                         -> page set (>= 1)
  LoadStarted                                         -> loading, error cleared
  LoadSucceeded                                       -> records + total stored
  LoadFailed                                          -> error stored, records kept

Layer rule: no imports from api/, auth/, org/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional, Union

from core.pagination import PageWindow, page_offset, page_window, should_paginate

PAGE_SIZE_CHOICES: tuple[int, ...] = (10, 25, 50, 100)


@dataclass(frozen=True)
class ListPageState:
    search: str = ""
    role_filter: str = ""
    page: int = 1
    page_size: int = 10
    records: tuple[dict[str, Any], ...] = ()
    total: int = 0
    loading: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchChanged:
    search: str


@dataclass(frozen=True)
class RoleFilterChanged:
    role: str


@dataclass(frozen=True)
class PageSizeChanged:
    page_size: int


@dataclass(frozen=True)
class PageChanged:
    page: int


@dataclass(frozen=True)
class LoadStarted:
    pass


@dataclass(frozen=True)
class LoadSucceeded:
    records: tuple[dict[str, Any], ...]
    total: int


@dataclass(frozen=True)
class LoadFailed:
    message: str


Event = Union[
    SearchChanged,
    RoleFilterChanged,
    PageSizeChanged,
    PageChanged,
    LoadStarted,
    LoadSucceeded,
    LoadFailed,
]


def reduce(state: ListPageState, event: Event) -> ListPageState:
    """Return the state that follows `event`. Never mutates `state`."""
    if isinstance(event, SearchChanged):
        return replace(state, search=event.search, page=1)
    if isinstance(event, RoleFilterChanged):
        return replace(state, role_filter=event.role, page=1)
    if isinstance(event, PageSizeChanged):
        if event.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {event.page_size}")
        return replace(state, page_size=event.page_size, page=1)
    if isinstance(event, PageChanged):
        return replace(state, page=max(1, event.page))
    if isinstance(event, LoadStarted):
        return replace(state, loading=True, error=None)
    if isinstance(event, LoadSucceeded):
        return replace(state, records=tuple(event.records), total=event.total, loading=False, error=None)
    if isinstance(event, LoadFailed):
        return replace(state, loading=False, error=event.message)
    raise TypeError(f"Unknown page event: {event!r}")


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


def user_query(state: ListPageState) -> dict[str, Any]:
    """Query parameters for GET /api/v1/users matching the page state."""
    params: dict[str, Any] = {
        "limit": state.page_size,
        "offset": page_offset(state.page, state.page_size),
    }
    if state.search:
        params["searchValue"] = state.search
        params["searchField"] = "name"
    if state.role_filter:
        params["filterField"] = "role"
        params["filterValue"] = state.role_filter
        params["filterOperator"] = "eq"
    return params


def department_query(state: ListPageState) -> dict[str, Any]:
    """Query parameters for GET /api/v1/departments matching the page state."""
    params: dict[str, Any] = {"page": state.page, "limit": state.page_size}
    if state.search:
        params["search"] = state.search
    return params


def pagination(state: ListPageState) -> Optional[PageWindow]:
    """Return the pagination bar for the page, or None when it is hidden."""
    if not should_paginate(state.total, state.page_size):
        return None
    return page_window(state.total, state.page, state.page_size)
