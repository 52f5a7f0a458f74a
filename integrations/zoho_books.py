"""
Zoho Books Integration
=======================

Reads customer payments, contacts, bills and expenses from Zoho Books v3.

List endpoints are paged with ``page``/``per_page`` (200 max) and signal
exhaustion through ``page_context.has_more_page``.

Setup:
1. Connect Zoho Books (access token, organization id, API domain)
2. Set ZOHO_REGION to pick the data center (default IN)
"""

from datetime import date
from typing import Any, Dict

from integrations.http_client import SourceClient
from integrations.token_provider import ZOHO_BOOKS, SourceTokens
from scripts.lib.config import ZOHO_BOOKS_PAGE_SIZE
from scripts.lib.errors import APIError
from scripts.lib.logger import setup_logger
from scripts.lib.pagination import Page, PaginationResult, walk_pages

logger = setup_logger("zoho_books")


class ZohoBooksClient(SourceClient):
    """Zoho Books v3 connector."""

    service = "Zoho Books"
    token_key = ZOHO_BOOKS

    def auth_headers(self, tokens: SourceTokens) -> Dict[str, str]:
        return {"Authorization": f"Zoho-oauthtoken {tokens.access_token}"}

    @staticmethod
    def _base_url(tokens: SourceTokens) -> str:
        return f"{tokens.api_domain.rstrip('/')}/books/v3"

    async def _list(self, resource: str, key: str, params: Dict[str, Any] = None) -> PaginationResult:
        tokens = await self.tokens()
        url = f"{self._base_url(tokens)}/{resource}"

        async def fetch(page: int) -> Page:
            data = await self.request_json("GET", url, params={
                "organization_id": tokens.organization_id,
                "page": page,
                "per_page": ZOHO_BOOKS_PAGE_SIZE,
                **(params or {}),
            }, tokens=tokens)
            page_context = data.get("page_context") or {}
            return Page(
                items=data.get(key) or [],
                next_cursor=page + 1,
                has_more=bool(page_context.get("has_more_page")),
            )

        return await walk_pages(fetch, first_cursor=1, max_pages=self.max_pages, label=f"zoho_books.{resource}")

    async def list_customer_payments(self) -> PaginationResult:
        return await self._list("customerpayments", "customerpayments")

    async def list_contacts(self) -> PaginationResult:
        return await self._list("contacts", "contacts")

    async def list_bills(self, date_start: date, date_end: date) -> PaginationResult:
        return await self._list("bills", "bills", {
            "date_start": date_start.isoformat(),
            "date_end": date_end.isoformat(),
        })

    async def list_expenses(self, date_start: date, date_end: date) -> PaginationResult:
        return await self._list("expenses", "expenses", {
            "date_start": date_start.isoformat(),
            "date_end": date_end.isoformat(),
        })

    async def get_bill(self, bill_id: str, tokens: SourceTokens = None) -> Dict[str, Any]:
        """Fetch one bill with line items and tax detail."""
        tokens = tokens or await self.tokens()
        url = f"{self._base_url(tokens)}/bills/{bill_id}"
        data = await self.request_json(
            "GET", url, params={"organization_id": tokens.organization_id}, tokens=tokens,
        )
        bill = data.get("bill")
        if not isinstance(bill, dict):
            raise APIError(f"Zoho Books returned no bill for {bill_id}", url=url, retryable=False)
        return bill
