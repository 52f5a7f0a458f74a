"""
Token Provider
===============

Supplies access credentials to the external clients. Token storage and the
OAuth refresh dance live outside the sync core: a provider only answers
"what token do I use for <service> right now", or None when the service is
not connected.

Providers:
- EnvTokenProvider: reads .env; fetches a Microsoft Graph token with the
  client-credentials grant when Azure AD app settings are present
- StaticTokenProvider: fixed tokens (tests, scripts)
"""

import os
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import aiohttp

from scripts.lib.config import MICROSOFT_LOGIN_URL, get_zoho_region_config
from scripts.lib.errors import APIError
from scripts.lib.logger import setup_logger

logger = setup_logger("token_provider")

ZOHO_BOOKS = "zoho_books"
ZOHO_PEOPLE = "zoho_people"
MICROSOFT = "microsoft"


@dataclass
class SourceTokens:
    access_token: str
    api_domain: Optional[str] = None
    organization_id: Optional[str] = None


class TokenProvider(Protocol):
    async def get_tokens(self, service: str) -> Optional[SourceTokens]: ...


class StaticTokenProvider:
    """Returns fixed tokens keyed by service name."""

    def __init__(self, tokens: Dict[str, SourceTokens] = None):
        self._tokens = dict(tokens or {})

    async def get_tokens(self, service: str) -> Optional[SourceTokens]:
        return self._tokens.get(service)


class EnvTokenProvider:
    """Tokens from environment variables."""

    def __init__(self):
        region = get_zoho_region_config()
        self.books_token = os.getenv("ZOHO_BOOKS_ACCESS_TOKEN")
        self.books_domain = os.getenv("ZOHO_BOOKS_API_DOMAIN") or region["api_domain"]
        self.books_org = os.getenv("ZOHO_BOOKS_ORGANIZATION_ID")
        self.people_token = os.getenv("ZOHO_PEOPLE_ACCESS_TOKEN")
        self.people_domain = os.getenv("ZOHO_PEOPLE_API_DOMAIN") or region["people_domain"]
        self.graph_token = os.getenv("MICROSOFT_GRAPH_ACCESS_TOKEN")
        self.tenant_id = os.getenv("AZURE_AD_TENANT_ID")
        self.client_id = os.getenv("AZURE_AD_CLIENT_ID")
        self.client_secret = os.getenv("AZURE_AD_CLIENT_SECRET")
        self._graph_expires_at = 0.0

    @property
    def azure_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    def get_status(self) -> Dict[str, bool]:
        return {
            ZOHO_BOOKS: bool(self.books_token),
            ZOHO_PEOPLE: bool(self.people_token),
            MICROSOFT: bool(self.graph_token or self.azure_configured),
        }

    async def get_tokens(self, service: str) -> Optional[SourceTokens]:
        if service == ZOHO_BOOKS:
            if not self.books_token:
                return None
            return SourceTokens(self.books_token, self.books_domain, self.books_org)

        if service == ZOHO_PEOPLE:
            if not self.people_token:
                return None
            return SourceTokens(self.people_token, self.people_domain)

        if service == MICROSOFT:
            if self.graph_token and (not self._graph_expires_at or time.time() < self._graph_expires_at):
                return SourceTokens(self.graph_token)
            if not self.azure_configured:
                return None
            await self._fetch_graph_token()
            return SourceTokens(self.graph_token)

        logger.warning("Unknown service requested: %s", service)
        return None

    async def _fetch_graph_token(self) -> None:
        """Client-credentials grant against Azure AD."""
        url = f"{MICROSOFT_LOGIN_URL}/{self.tenant_id}/oauth2/v2.0/token"
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": "https://graph.microsoft.com/.default",
            "grant_type": "client_credentials",
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, data=form) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise APIError(
                            f"Failed to get access token: {text}",
                            status_code=resp.status, url=url, retryable=False,
                        )
                    payload = await resp.json()
        except aiohttp.ClientError as e:
            raise APIError(f"Failed to get access token: {e}", url=url) from e

        self.graph_token = payload["access_token"]
        # Refresh a minute early
        self._graph_expires_at = time.time() + int(payload.get("expires_in", 3600)) - 60
        logger.info("Microsoft Graph token acquired")
