"""
core/pagination.py -- Page window arithmetic shared by every listing route.

Pure functions, no I/O. The API layer uses page_offset() to slice the store
query; the page-state reducer and the admin client use page_window() to
derive what a pagination bar shows.

Invariants:
  offset      == (page - 1) * page_size
  total_pages == ceil(total / page_size)
  visible_pages() never repeats a number and never leaves [1, total_pages].

A page past total_pages is not clamped here; the caller decides whether to
show an empty page or redirect.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Marker used in visible_pages() output where the UI renders "...".
ELLIPSIS = None


@dataclass(frozen=True)
class PageWindow:
    """Everything a listing page needs to render its pagination bar."""

    total: int
    page: int
    page_size: int
    offset: int
    limit: int
    total_pages: int
    first_item: int  # 1-based, 0 when the result set is empty
    last_item: int
    pages: tuple[int | None, ...]

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def _check(page: int, page_size: int) -> None:
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")


def page_offset(page: int, page_size: int) -> int:
    """Return the number of records to skip before the given 1-based page."""
    _check(page, page_size)
    return (page - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    if total < 0:
        raise ValueError(f"total must be >= 0, got {total}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    return math.ceil(total / page_size)


def should_paginate(total: int, page_size: int) -> bool:
    """Return False when everything fits on one page and the bar is hidden."""
    return total > page_size


def visible_pages(page: int, last_page: int) -> list[int | None]:
    """Return the page numbers to render, with None standing for an ellipsis.

    Page 1 and the last page are always shown, as are the current page and
    its neighbours when they fall inside [1, last_page]. A run of two or more
    hidden pages collapses into one ellipsis; a single hidden page is shown
    as its number, since an ellipsis would take the same space. A current
    page past last_page is left out: out-of-range numbers are never emitted.

    >>> visible_pages(5, 10)
    [1, None, 4, 5, 6, None, 10]
    >>> visible_pages(2, 4)
    [1, 2, 3, 4]
    """
    if last_page < 1:
        return []
    wanted = {1, last_page, page - 1, page, page + 1}
    shown = sorted(p for p in wanted if 1 <= p <= last_page)

    result: list[int | None] = []
    previous = 0
    for number in shown:
        gap = number - previous - 1
        if gap == 1:
            result.append(previous + 1)
        elif gap > 1:
            result.append(ELLIPSIS)
        result.append(number)
        previous = number
    return result


def page_window(total: int, page: int, page_size: int) -> PageWindow:
    """Derive the full page window for a result set of `total` records."""
    offset = page_offset(page, page_size)
    pages_count = total_pages(total, page_size)
    if total == 0 or offset >= total:
        first_item = last_item = 0
    else:
        first_item = offset + 1
        last_item = min(page * page_size, total)
    return PageWindow(
        total=total,
        page=page,
        page_size=page_size,
        offset=offset,
        limit=page_size,
        total_pages=pages_count,
        first_item=first_item,
        last_item=last_item,
        pages=tuple(visible_pages(page, pages_count)),
    )
