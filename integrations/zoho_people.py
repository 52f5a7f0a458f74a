"""
Zoho People Integration
========================

Reads employees, leaves and holidays from Zoho People.

Form records are paged by offset (``sIndex`` starting at 1, ``limit`` 200)
and come back in the ``{"<zoho id>": [{...}]}`` wrapper; unwrapping happens
in scripts.lib.field_mapper, not here.
"""

from typing import Any, Dict, List

from integrations.http_client import SourceClient
from integrations.token_provider import ZOHO_PEOPLE, SourceTokens
from scripts.lib.config import ZOHO_PEOPLE_PAGE_SIZE
from scripts.lib.errors import APIError
from scripts.lib.logger import setup_logger
from scripts.lib.pagination import Page, PaginationResult, walk_pages

logger = setup_logger("zoho_people")

# "No records found" when sIndex runs past the end
NO_RECORDS_CODE = 7024


class ZohoPeopleClient(SourceClient):
    """Zoho People connector."""

    service = "Zoho People"
    token_key = ZOHO_PEOPLE

    def auth_headers(self, tokens: SourceTokens) -> Dict[str, str]:
        return {"Authorization": f"Zoho-oauthtoken {tokens.access_token}"}

    @staticmethod
    def _records(data: Dict[str, Any], url: str) -> List[Dict[str, Any]]:
        """Pull the result list out of a getRecords body, raising on API-level errors."""
        response = data.get("response") or {}
        status = data.get("status", response.get("status"))
        if status not in (None, 0):
            errors = response.get("errors") or {}
            if isinstance(errors, dict) and errors.get("code") == NO_RECORDS_CODE:
                return []
            message = data.get("message") or response.get("message") or "Unknown error"
            raise APIError(f"Zoho People API error: {message}", url=url, retryable=False)
        return response.get("result") or []

    async def _list_form(self, form: str) -> PaginationResult:
        tokens = await self.tokens()
        url = f"{tokens.api_domain.rstrip('/')}/people/api/forms/{form}/getRecords"

        async def fetch(s_index: int) -> Page:
            data = await self.request_json(
                "GET", url, params={"sIndex": s_index, "limit": ZOHO_PEOPLE_PAGE_SIZE}, tokens=tokens,
            )
            return Page(items=self._records(data, url), next_cursor=s_index + ZOHO_PEOPLE_PAGE_SIZE)

        return await walk_pages(
            fetch, first_cursor=1, page_size=ZOHO_PEOPLE_PAGE_SIZE,
            max_pages=self.max_pages, label=f"zoho_people.{form}",
        )

    async def list_employees(self) -> PaginationResult:
        return await self._list_form("employee")

    async def list_leaves(self) -> PaginationResult:
        return await self._list_form("leave")

    async def list_holidays(self, year: int) -> List[Dict[str, Any]]:
        """Holidays for one calendar year (v2 API, not paginated)."""
        tokens = await self.tokens()
        url = f"{tokens.api_domain.rstrip('/')}/people/api/leave/v2/holidays/get"
        data = await self.request_json("GET", url, params={
            "dateFormat": "dd-MMM-yyyy",
            "from": f"01-Jan-{year}",
            "to": f"31-Dec-{year}",
        }, tokens=tokens)
        # v2 signals success with status 1
        if data.get("status") != 1 or data.get("data") is None:
            raise APIError(
                f"Zoho People holidays error for {year}: {data.get('message') or data}",
                url=url, retryable=False,
            )
        holidays = data["data"]
        logger.info("Fetched %d holidays for %d", len(holidays), year)
        return holidays
