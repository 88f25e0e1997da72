from typing import Any, Dict, Optional

import httpx
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from cfb_reconcile.config.settings import settings

# Define common HTTP status codes that warrant a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class ScraperError(Exception):
    """Custom exception for fetcher-related errors."""

    pass


class AuthenticationError(ScraperError):
    """Exception raised for authentication failures (401, 403)."""

    pass


class RateLimitError(ScraperError):
    """Exception raised for rate limit errors (429)."""

    pass


class BaseClient:
    """Shared async HTTP plumbing for source fetchers."""

    source: str = "unknown"

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.http_timeout_seconds),
            follow_redirects=True,
            headers={
                "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
                "Accept": "application/json",
            },
        )

    @retry(
        stop=stop_after_attempt(4),  # 3 retries after the first attempt
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(
            (httpx.RequestError, httpx.HTTPStatusError, RateLimitError)
        ),
        reraise=True,
    )
    async def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> httpx.Response:
        """Makes an asynchronous HTTP request with retry logic."""
        logger.debug(f"Making request {method} {url} params={params}")
        try:
            response = await self.client.request(method, url, headers=headers, params=params, **kwargs)

            if response.status_code in {401, 403}:
                logger.warning(f"Authentication error ({response.status_code}) for {self.source} at {url}.")
                raise AuthenticationError(f"Authentication failed ({response.status_code}) for {self.source}")

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                logger.warning(f"Rate limit hit (429) for {self.source} at {url}. Retry-After: {retry_after}")
                raise RateLimitError(f"Rate limited by {self.source}")

            response.raise_for_status()
            logger.debug(f"Request successful: {response.status_code} for {url}")
            return response

        except ScraperError:
            raise
        except httpx.HTTPStatusError as e:
            if e.response.status_code in RETRYABLE_STATUS_CODES:
                logger.warning(f"Retrying request for {self.source} due to status {e.response.status_code}: {e}")
                raise  # Re-raise to trigger tenacity retry
            logger.error(f"HTTP error during request for {self.source}: {e.response.status_code} - {e}")
            raise ScraperError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.warning(f"Request error for {self.source}, retrying: {e}")
            raise

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET returning decoded JSON; every failure surfaces as ScraperError."""
        try:
            response = await self._make_request("GET", url, params=params)
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            raise ScraperError(f"Failed request to {self.source} after retries: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise ScraperError(f"Invalid JSON from {url}") from e

    async def close(self):
        """Closes the underlying HTTP client."""
        await self.client.aclose()
        logger.info(f"Closed HTTP client for {self.source}")
