"""HTTP client for the SAM.gov search API with error classification."""
import logging
from typing import Any, Optional

import httpx

from samharvest.config import config
from samharvest.errors import FetchError, MalformedResponse, RateLimited, TransientError
from samharvest.fetch.rate_limit import RateLimiter
from samharvest.parse.redact import redact_string

logger = logging.getLogger(__name__)

RATE_LIMIT_CODES = ("OVER_RATE_LIMIT", "API_RATE_LIMIT_EXCEEDED")


def is_retryable_status(response: httpx.Response) -> bool:
    """Check if the status code indicates a server-side, transient failure."""
    return response.status_code in (500, 502, 503, 504)


def is_rate_limited(response: httpx.Response) -> bool:
    """Check if the response signals that the call quota is exhausted."""
    if response.status_code == 429:
        return True
    if response.status_code in (200, 403):
        body = response.text or ""
        return any(code in body for code in RATE_LIMIT_CODES)
    return False


class FetchClient:
    """Issues single page requests against the search endpoint.

    Does not retry: a failed request is classified and raised, and the caller
    decides what it means for the current window.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        rate_per_second: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else (config.SAMGOV_API_KEY or "")
        self.base_url = base_url or config.BASE_URL
        self.client = httpx.AsyncClient(
            http2=True,
            timeout=timeout if timeout is not None else config.TIMEOUT,
            follow_redirects=True,
            transport=transport,
        )
        self.rate_limiter = RateLimiter(
            rate_per_second if rate_per_second is not None else config.RATE_PER_SECOND
        )
        self.requests_sent = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    async def get_page(self, params: list[tuple[str, str]]) -> dict[str, Any]:
        """Fetch one page and return its decoded JSON body."""
        await self.rate_limiter.acquire(self.base_url)
        self.requests_sent += 1

        try:
            response = await self.client.get(self.base_url, params=params)
        except httpx.TransportError as e:
            message = redact_string(f"{type(e).__name__}: {e}", self.api_key)
            logger.warning(f"Network error calling search API: {message}")
            raise TransientError(message) from e

        if is_rate_limited(response):
            logger.warning(f"Search API rate limit hit (HTTP {response.status_code})")
            raise RateLimited(f"Rate limited (HTTP {response.status_code})")

        if is_retryable_status(response):
            raise TransientError(f"Search API returned {response.status_code}")

        if response.status_code != 200:
            body = redact_string(response.text[:500], self.api_key)
            raise FetchError(f"Search API returned {response.status_code}: {body}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse(f"Failed to parse search API response: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedResponse(
                f"Expected a JSON object from search API, got {type(payload).__name__}"
            )
        return payload
