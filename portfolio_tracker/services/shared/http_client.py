"""Base async HTTP client with timeouts and error handling.

All external market data clients inherit from this class to get consistent
behavior for timeouts and error translation. There is no retry here: callers
decide whether a failure moves on to the next provider in a fallback chain.
"""

import logging
from typing import Any, Self

import httpx

logger = logging.getLogger(__name__)


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AsyncHTTPClient:
    """Base async HTTP client.

    Example usage:
        class CoinCapClient(AsyncHTTPClient):
            def __init__(self):
                super().__init__(base_url="https://api.coincap.io/v2", timeout=10.0)

            async def get_asset(self, asset_id: str) -> dict:
                return await self.get_json(f"/assets/{asset_id}")
    """

    error_class: type[HTTPClientError] = HTTPClientError

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.default_headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.default_headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def get(
        self,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """HTTP GET request.

        Args:
            url: URL path (joined with base_url if set) or absolute URL
            params: Query parameters
            headers: Additional headers to merge with defaults

        Returns:
            httpx.Response object

        Raises:
            HTTPClientError: On HTTP errors, timeouts, or connection failures
        """
        merged_headers = {**self.default_headers, **(headers or {})}

        try:
            response = await self.client.get(url, params=params, headers=merged_headers)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"HTTP {e.response.status_code} for GET {url}: {e.response.text[:200]}"
            )
            raise self.error_class(
                f"HTTP {e.response.status_code}: {e.response.reason_phrase}",
                status_code=e.response.status_code,
                response_body=e.response.text,
            ) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout for GET {url}")
            raise self.error_class(f"Request timed out: {url}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Request error for GET {url}: {e}")
            raise self.error_class(f"Request failed: {url}") from e

    async def get_json(self, url: str, params: dict | None = None) -> Any:
        """HTTP GET returning parsed JSON.

        Raises:
            HTTPClientError: On request failure or an undecodable body
        """
        response = await self.get(url, params=params)
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Malformed JSON body for GET {url}")
            raise self.error_class(
                f"Malformed response body: {url}", response_body=response.text
            ) from e
