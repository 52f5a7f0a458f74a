"""
Shared HTTP plumbing for the external source clients.

Every request goes through ``SourceClient.request_json``:
- credentials come from the TokenProvider (NotConnectedError when absent)
- any non-2xx response raises APIError; there is no partial tolerance
- retries follow an explicit RetryPolicy; the default is a single attempt
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from integrations.token_provider import SourceTokens, TokenProvider
from scripts.lib.config import HTTP_TIMEOUT, MAX_PAGES, SYNC_RETRY_ATTEMPTS, SYNC_RETRY_BACKOFF
from scripts.lib.errors import APIAuthError, APIError, APIRateLimitError, NotConnectedError
from scripts.lib.logger import setup_logger

logger = setup_logger("http_client")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try a request and how long to wait in between.

    Only retryable APIErrors (429, 5xx, transport failures) are retried.
    """
    max_attempts: int = SYNC_RETRY_ATTEMPTS
    backoff_seconds: float = SYNC_RETRY_BACKOFF
    max_backoff_seconds: float = 30.0


NO_RETRY = RetryPolicy(max_attempts=1)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.retryable


class SourceClient:
    """Base class for one external service."""

    service: str = "source"
    token_key: str = ""

    def __init__(
        self,
        token_provider: TokenProvider,
        retry_policy: RetryPolicy = None,
        transport: httpx.AsyncBaseTransport = None,
        timeout: float = HTTP_TIMEOUT,
        max_pages: int = MAX_PAGES,
    ):
        self.token_provider = token_provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport
        self.timeout = timeout
        self.max_pages = max_pages

    async def tokens(self) -> SourceTokens:
        tokens = await self.token_provider.get_tokens(self.token_key)
        if not tokens or not tokens.access_token:
            raise NotConnectedError(self.service)
        return tokens

    async def is_connected(self) -> bool:
        tokens = await self.token_provider.get_tokens(self.token_key)
        return bool(tokens and tokens.access_token)

    def auth_headers(self, tokens: SourceTokens) -> Dict[str, str]:
        return {"Authorization": f"Bearer {tokens.access_token}"}

    async def request_json(
        self,
        method: str,
        url: str,
        params: Dict[str, Any] = None,
        tokens: SourceTokens = None,
        headers: Dict[str, str] = None,
    ) -> Dict[str, Any]:
        """Make an authenticated request and decode the JSON body."""
        tokens = tokens or await self.tokens()
        merged = {**self.auth_headers(tokens), **(headers or {})}
        policy = self.retry_policy

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, policy.max_attempts)),
            wait=wait_exponential(multiplier=policy.backoff_seconds, max=policy.max_backoff_seconds),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "%s %s retry %d/%d", method, url,
                        attempt.retry_state.attempt_number, policy.max_attempts,
                    )
                return await self._send(method, url, params, merged)

    async def _send(self, method: str, url: str, params: Optional[Dict], headers: Dict) -> Dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, url, params=params, headers=headers)
            except httpx.HTTPError as e:
                logger.error("%s API %s %s failed: %s", self.service, method, url, e)
                raise APIError(f"{self.service} request failed: {e}", url=url) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise APIRateLimitError(url, int(retry_after) if retry_after and retry_after.isdigit() else None)
        if response.status_code in (401, 403):
            raise APIAuthError(url, response.status_code)
        if not response.is_success:
            text = response.text[:500]
            logger.error("%s API %s %s returned %d: %s", self.service, method, url, response.status_code, text)
            raise APIError(
                f"{self.service} API error {response.status_code}: {text}",
                status_code=response.status_code, url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"{self.service} returned invalid JSON", status_code=response.status_code,
                url=url, retryable=False,
            ) from e
