"""
Microsoft Graph Integration
============================

Lists licensed Microsoft 365 users. Graph pages through ``@odata.nextLink``;
the advanced ``$count`` filter needs the ``ConsistencyLevel: eventual`` header.
"""

from typing import Dict

import httpx

from integrations.http_client import SourceClient
from integrations.token_provider import MICROSOFT, SourceTokens
from scripts.lib.config import MICROSOFT_GRAPH_URL
from scripts.lib.logger import setup_logger
from scripts.lib.pagination import Page, PaginationResult, walk_pages

logger = setup_logger("microsoft_graph")

USER_FIELDS = "id,displayName,mail,department,jobTitle,accountEnabled"


class MicrosoftGraphClient(SourceClient):
    """Microsoft Graph v1.0 connector."""

    service = "Microsoft 365"
    token_key = MICROSOFT

    def __init__(self, token_provider, base_url: str = MICROSOFT_GRAPH_URL, **kwargs):
        super().__init__(token_provider, **kwargs)
        self.base_url = base_url.rstrip("/")

    def auth_headers(self, tokens: SourceTokens) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {tokens.access_token}",
            "ConsistencyLevel": "eventual",
        }

    async def list_licensed_users(self) -> PaginationResult:
        tokens = await self.tokens()
        first = str(httpx.URL(f"{self.base_url}/users", params={
            "$filter": "assignedLicenses/$count ne 0",
            "$select": USER_FIELDS,
            "$count": "true",
        }))

        async def fetch(url: str) -> Page:
            data = await self.request_json("GET", url, tokens=tokens)
            return Page(items=data.get("value") or [], next_cursor=data.get("@odata.nextLink"))

        return await walk_pages(fetch, first_cursor=first, max_pages=self.max_pages, label="graph.users")
