"""
tests/test_pagination.py -- Unit tests for core/pagination.py.

Covers:
  - page_offset / total_pages arithmetic and input validation
  - should_paginate threshold (bar hidden when everything fits)
  - visible_pages ellipsis placement, edges and out-of-range pages
  - page_window displayed range ("showing 11 to 20 of 25")
"""

from __future__ import annotations

import pytest

from core.pagination import (
    ELLIPSIS,
    page_offset,
    page_window,
    should_paginate,
    total_pages,
    visible_pages,
)


class TestOffsetArithmetic:
    def test_first_page_starts_at_zero(self) -> None:
        assert page_offset(1, 10) == 0

    def test_offset_is_page_minus_one_times_size(self) -> None:
        assert page_offset(3, 25) == 50

    def test_total_pages_rounds_up(self) -> None:
        assert total_pages(25, 10) == 3
        assert total_pages(30, 10) == 3
        assert total_pages(31, 10) == 4

    def test_total_pages_of_empty_set_is_zero(self) -> None:
        assert total_pages(0, 10) == 0

    @pytest.mark.parametrize("page,size", [(0, 10), (-1, 10), (1, 0)])
    def test_offset_rejects_invalid_input(self, page: int, size: int) -> None:
        with pytest.raises(ValueError):
            page_offset(page, size)

    def test_total_pages_rejects_negative_total(self) -> None:
        with pytest.raises(ValueError):
            total_pages(-1, 10)


class TestShouldPaginate:
    def test_hidden_when_total_fits_one_page(self) -> None:
        """total <= page_size means no pagination bar at all."""
        assert should_paginate(10, 10) is False
        assert should_paginate(0, 10) is False

    def test_shown_when_total_exceeds_page_size(self) -> None:
        assert should_paginate(11, 10) is True


class TestVisiblePages:
    def test_middle_page_has_ellipsis_on_both_sides(self) -> None:
        assert visible_pages(5, 10) == [1, ELLIPSIS, 4, 5, 6, ELLIPSIS, 10]

    def test_small_range_shows_every_page(self) -> None:
        assert visible_pages(2, 4) == [1, 2, 3, 4]

    def test_single_page(self) -> None:
        assert visible_pages(1, 1) == [1]

    def test_no_pages_when_empty(self) -> None:
        assert visible_pages(1, 0) == []

    def test_first_page_drops_out_of_range_neighbour(self) -> None:
        """Page 0 is never rendered; the gap to the last page is an ellipsis."""
        assert visible_pages(1, 5) == [1, 2, ELLIPSIS, 5]

    def test_last_page(self) -> None:
        assert visible_pages(10, 10) == [1, ELLIPSIS, 9, 10]

    def test_single_hidden_page_is_shown_as_number(self) -> None:
        """A gap of one page renders the number instead of an ellipsis."""
        assert visible_pages(4, 10) == [1, 2, 3, 4, 5, ELLIPSIS, 10]

    def test_page_beyond_last_is_not_clamped_into_output(self) -> None:
        assert visible_pages(12, 10) == [1, ELLIPSIS, 10]

    def test_never_repeats_a_number(self) -> None:
        for last in range(1, 15):
            for page in range(1, last + 1):
                numbers = [p for p in visible_pages(page, last) if p is not None]
                assert len(numbers) == len(set(numbers)), f"duplicate in page={page} last={last}"
                assert numbers == sorted(numbers)
                assert numbers[0] == 1 and numbers[-1] == last


class TestPageWindow:
    def test_second_page_of_twenty_five(self) -> None:
        window = page_window(total=25, page=2, page_size=10)
        assert window.offset == 10
        assert window.limit == 10
        assert window.total_pages == 3
        assert (window.first_item, window.last_item) == (11, 20)
        assert window.pages == (1, 2, 3)
        assert window.has_previous and window.has_next

    def test_last_partial_page(self) -> None:
        window = page_window(total=25, page=3, page_size=10)
        assert (window.first_item, window.last_item) == (21, 25)
        assert not window.has_next

    def test_empty_result_set(self) -> None:
        window = page_window(total=0, page=1, page_size=10)
        assert (window.first_item, window.last_item) == (0, 0)
        assert window.total_pages == 0
        assert window.pages == ()
        assert not window.has_previous

    def test_page_past_the_end_shows_no_items(self) -> None:
        window = page_window(total=5, page=4, page_size=10)
        assert (window.first_item, window.last_item) == (0, 0)
        assert window.offset == 30
