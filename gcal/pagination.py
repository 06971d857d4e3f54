"""Bounded traversal of cursor-paginated list endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, TypeVar

from gcal.errors import PaginationLimitExceeded

MAX_PAGES = 100

T = TypeVar("T")


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of results plus the token for the next one."""

    items: List[T] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> "Page[Any]":
        """Build a page from a Google list response body."""
        return cls(
            items=list(response.get("items") or []),
            next_cursor=response.get("nextPageToken") or None,
        )


def collect_all(
    fetch_page: Callable[[Optional[str]], Page[T]],
    *,
    max_pages: int = MAX_PAGES,
) -> List[T]:
    """Follow page cursors until exhausted and return every item in order.

    Raises PaginationLimitExceeded once *max_pages* pages have been fetched
    and the last one still carries a cursor.
    """
    collected: List[T] = []
    cursor: Optional[str] = None
    pages = 0

    while True:
        page = fetch_page(cursor)
        pages += 1
        collected.extend(page.items)
        cursor = page.next_cursor
        if not cursor:
            return collected
        if pages >= max_pages:
            raise PaginationLimitExceeded(
                f"Pagination limit of {max_pages} pages exceeded"
            )


__all__ = ["MAX_PAGES", "Page", "collect_all"]
