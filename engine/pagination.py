"""Page-window arithmetic for the filtered trade list.

A requested page beyond the last page is clamped, never an error; an empty
result is one valid, empty page.
"""

from __future__ import annotations

from dataclasses import dataclass

from engine.criteria import PageState


@dataclass(frozen=True)
class PageWindow:
    """Half-open ``[start_index, end_index)`` slice of the filtered list."""

    start_index: int
    end_index: int
    page_count: int
    effective_page: int
    page_size: int
    total_count: int

    @property
    def offset(self) -> int:
        return self.start_index

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def item_count(self) -> int:
        return self.end_index - self.start_index

    @property
    def has_next(self) -> bool:
        return self.effective_page < self.page_count

    @property
    def has_previous(self) -> bool:
        return self.effective_page > 1

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "start_index": self.start_index,
            "end_index": self.end_index,
            "page_count": self.page_count,
            "page": self.effective_page,
            "page_size": self.page_size,
            "total": self.total_count,
            "has_next": self.has_next,
        }


def paginate(total_count: int, page_state: PageState) -> PageWindow:
    """Compute the window for *page_state* over *total_count* filtered records.

    Raises:
        ValueError: If total_count is negative.
    """
    if total_count < 0:
        raise ValueError(f"total_count must be >= 0, got {total_count}")
    size = page_state.page_size
    page_count = max(1, -(-total_count // size))
    effective = min(max(page_state.page, 1), page_count)
    start = (effective - 1) * size
    end = min(start + size, total_count)
    return PageWindow(
        start_index=start,
        end_index=end,
        page_count=page_count,
        effective_page=effective,
        page_size=size,
        total_count=total_count,
    )


def clamp_page(total_count: int, page_state: PageState) -> PageState:
    """Return *page_state* with its page clamped; the same object if already valid."""
    window = paginate(total_count, page_state)
    return page_state.with_page(window.effective_page)
