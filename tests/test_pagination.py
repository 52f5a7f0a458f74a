"""Tests for the shared page walker."""

import pytest

from scripts.lib.errors import APIError
from scripts.lib.pagination import Page, walk_pages


def numbered_pages(total_pages, per_page=2, has_more=True):
    calls = []

    async def fetch(page):
        calls.append(page)
        items = [f"p{page}-{i}" for i in range(per_page)]
        return Page(items=items, next_cursor=page + 1, has_more=has_more and page < total_pages)

    return fetch, calls


class TestWalkPages:
    @pytest.mark.asyncio
    async def test_stops_when_has_more_is_false(self):
        fetch, calls = numbered_pages(3)
        result = await walk_pages(fetch, first_cursor=1)
        assert calls == [1, 2, 3]
        assert len(result) == 6
        assert result.pages == 3
        assert result.truncated is False
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_short_page_ends_offset_walk(self):
        async def fetch(offset):
            remaining = 450 - (offset - 1)
            return Page(items=list(range(min(200, remaining))), next_cursor=offset + 200)

        result = await walk_pages(fetch, first_cursor=1, page_size=200)
        assert len(result) == 450
        assert result.pages == 3

    @pytest.mark.asyncio
    async def test_missing_next_cursor_ends_walk(self):
        links = {"first": "second", "second": None}

        async def fetch(cursor):
            return Page(items=[cursor], next_cursor=links[cursor])

        result = await walk_pages(fetch, first_cursor="first")
        assert result.items == ["first", "second"]

    @pytest.mark.asyncio
    async def test_ceiling_returns_partial_results_with_warning(self):
        # A source that always claims more: 201 pages available, 200 fetched
        fetch, calls = numbered_pages(201)
        result = await walk_pages(fetch, first_cursor=1, max_pages=200, label="zoho_books.bills")
        assert len(calls) == 200
        assert result.pages == 200
        assert len(result) == 400
        assert result.truncated is True
        assert len(result.warnings) == 1
        assert "page ceiling" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self):
        async def fetch(page):
            if page == 2:
                raise APIError("boom", status_code=500)
            return Page(items=[page], next_cursor=page + 1, has_more=True)

        with pytest.raises(APIError):
            await walk_pages(fetch, first_cursor=1)
