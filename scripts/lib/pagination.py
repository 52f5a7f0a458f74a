"""
Generic page walker shared by every external client.

A fetch function receives a cursor (page number, offset, or an opaque next
link) and returns a ``Page``. The walker concatenates pages until the source
says it is exhausted, a page comes back short, or the page ceiling is hit.
Hitting the ceiling is a warning: the records gathered so far are returned.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from scripts.lib.config import MAX_PAGES
from scripts.lib.logger import setup_logger

logger = setup_logger("pagination")


@dataclass
class Page:
    items: List[Any]
    next_cursor: Any = None
    has_more: Optional[bool] = None


@dataclass
class PaginationResult:
    items: List[Any] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False
    warnings: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


async def walk_pages(
    fetch_page: Callable[[Any], Awaitable[Page]],
    first_cursor: Any = None,
    page_size: int = None,
    max_pages: int = None,
    label: str = "source",
) -> PaginationResult:
    """
    Walk a paginated source into one in-memory collection.

    Args:
        fetch_page: Async callable ``cursor -> Page``. Exceptions propagate and
            abort the walk.
        first_cursor: Cursor for the first page.
        page_size: Expected full page size; a shorter page ends the walk.
        max_pages: Hard ceiling on pages fetched (default MAX_PAGES).
        label: Name used in log lines and warnings.

    Returns:
        PaginationResult with the accumulated items.
    """
    ceiling = max_pages if max_pages is not None else MAX_PAGES
    result = PaginationResult()
    cursor = first_cursor

    while True:
        if result.pages >= ceiling:
            msg = f"{label}: reached page ceiling ({ceiling}), returning partial results"
            logger.warning(msg)
            result.truncated = True
            result.warnings.append(msg)
            break

        page = await fetch_page(cursor)
        result.pages += 1
        result.items.extend(page.items)
        logger.debug("%s: page %d returned %d items", label, result.pages, len(page.items))

        if page.has_more is False:
            break
        if page_size is not None and len(page.items) < page_size:
            break
        if page.next_cursor is None:
            break
        cursor = page.next_cursor

    logger.info("%s: fetched %d items in %d pages", label, len(result.items), result.pages)
    return result
