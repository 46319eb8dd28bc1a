"""
Base HTTP client shared by every source adapter.

Implements bounded concurrency, exponential backoff with jitter and
standardized error classification on top of httpx.
"""
import asyncio
import logging
import random
from abc import ABC
from typing import Dict, Optional, Any

import httpx

from profilebuilder.core.api_errors import (
    APIError,
    FatalError,
    NetworkError,
    RateLimitError,
    RetryableError,
    ValidationError,
    classify_http_error,
)

logger = logging.getLogger(__name__)


class BaseAPIClient(ABC):
    """
    Base class for all external API clients.

    Provides unified:
    - HTTP request handling with retry logic
    - Exponential backoff with jitter
    - Concurrency limiting via semaphore
    - Standardized error classification

    Subclasses set SOURCE_NAME and BASE_URL and override _build_headers()
    when the API needs authentication headers.
    """

    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""

    DEFAULT_MAX_CONCURRENCY: int = 2
    DEFAULT_TIMEOUT: float = 30.0
    DEFAULT_CONNECT_TIMEOUT: float = 10.0
    DEFAULT_MAX_RETRIES: int = 3
    DEFAULT_BACKOFF_FACTOR: float = 2.0
    DEFAULT_MAX_BACKOFF: float = 60.0
    DEFAULT_JITTER_FACTOR: float = 0.25
    MAX_RATE_LIMIT_WAIT: int = 60

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            api_key: Optional API key for authentication
            base_url: Override for BASE_URL (mirrors, proxies)
            max_concurrency: Maximum concurrent requests (semaphore size)
            max_retries: Maximum attempts for a failed request
            backoff_factor: Exponential backoff multiplier
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.api_key = api_key
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.max_concurrency = max_concurrency
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._transport = transport

        self.semaphore = asyncio.Semaphore(max_concurrency)

        self._client: Optional[httpx.AsyncClient] = None

        logger.debug(
            f"Initialized {self.SOURCE_NAME} client: "
            f"api_key_present={api_key is not None}, "
            f"max_concurrency={max_concurrency}, "
            f"max_retries={self.max_retries}"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                follow_redirects=True,
                limits=httpx.Limits(
                    max_connections=self.max_concurrency * 2,
                    max_keepalive_connections=self.max_concurrency
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug(f"{self.SOURCE_NAME} client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _backoff(self, attempt: int, base_delay: float = 1.0) -> None:
        """
        Exponential backoff with jitter.

        Args:
            attempt: Current attempt number (0-indexed)
            base_delay: Base delay in seconds
        """
        delay = min(
            base_delay * (self.backoff_factor ** attempt),
            self.DEFAULT_MAX_BACKOFF
        )
        jitter = delay * self.DEFAULT_JITTER_FACTOR * (2 * random.random() - 1)
        delay_with_jitter = max(0.1, delay + jitter)

        logger.debug(f"Backing off for {delay_with_jitter:.2f}s (attempt {attempt + 1})")
        await asyncio.sleep(delay_with_jitter)

    def _build_headers(self) -> Dict[str, str]:
        """
        Build request headers.

        Override to add API-specific headers (e.g., Authorization).
        """
        return {
            "Accept": "application/json",
            "User-Agent": f"ProfileBuilder/{self.SOURCE_NAME}-client",
        }

    def _resolve_url(self, url: str) -> str:
        if url.startswith("http"):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Send a request with retry logic and return the successful response.

        Raises:
            APIError: On unrecoverable errors or exhausted retries
        """
        url = self._resolve_url(url)
        headers = self._build_headers()
        if extra_headers:
            headers.update(extra_headers)

        async with self.semaphore:
            client = await self._get_client()

            last_error: Optional[APIError] = None

            for attempt in range(self.max_retries):
                is_last = attempt >= self.max_retries - 1
                try:
                    logger.debug(
                        f"[{self.SOURCE_NAME}] {method} {resource_id} "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=json_body,
                        headers=headers,
                    )
                    response.raise_for_status()
                    return response

                except httpx.HTTPStatusError as e:
                    error = classify_http_error(
                        e.response.status_code,
                        e.response.text[:500],
                        self.SOURCE_NAME
                    )

                    if isinstance(error, RateLimitError) and not is_last:
                        retry_after = e.response.headers.get("Retry-After")
                        wait_time = int(retry_after) if retry_after and retry_after.isdigit() else error.retry_after
                        wait_time = min(wait_time, self.MAX_RATE_LIMIT_WAIT)
                        logger.warning(
                            f"[{self.SOURCE_NAME}] Rate limited. Waiting {wait_time}s"
                        )
                        await asyncio.sleep(wait_time)
                        last_error = error
                        continue

                    if error.retryable and not is_last:
                        logger.warning(
                            f"[{self.SOURCE_NAME}] Retryable HTTP error: {error}"
                        )
                        await self._backoff(attempt)
                        last_error = error
                        continue

                    raise error

                except httpx.RequestError as e:
                    last_error = NetworkError(
                        message=f"Request failed: {e}",
                        source=self.SOURCE_NAME,
                    )
                    if not is_last:
                        logger.warning(
                            f"[{self.SOURCE_NAME}] Request error (attempt {attempt + 1}): {e}"
                        )
                        await self._backoff(attempt)
                        continue
                    raise last_error

            if last_error:
                raise last_error
            raise RetryableError(
                message=f"Failed to fetch {resource_id} after {self.max_retries} attempts",
                source=self.SOURCE_NAME
            )

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make an HTTP request and parse the JSON body.

        Returns:
            Parsed JSON response

        Raises:
            APIError: On unrecoverable errors
            ValidationError: When the body is not JSON
        """
        response = await self._send(
            method,
            url,
            params=params,
            json_body=json_body,
            resource_id=resource_id,
            extra_headers=extra_headers,
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ValidationError(
                message=f"Malformed JSON for {resource_id}: {e}",
                source=self.SOURCE_NAME,
                status_code=response.status_code,
            )

        if isinstance(data, dict) and data.get("error"):
            error_msg = data["error"]
            if isinstance(error_msg, dict):
                error_msg = error_msg.get("message", str(error_msg))
            raise FatalError(
                message=str(error_msg),
                source=self.SOURCE_NAME,
                response_data=data,
            )

        logger.debug(f"[{self.SOURCE_NAME}] Successfully fetched {resource_id}")
        return data

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Make GET request and return parsed JSON."""
        return await self._request(
            "GET", url, params=params, resource_id=resource_id, extra_headers=extra_headers
        )

    async def post(
        self,
        url: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
    ) -> Any:
        """Make POST request and return parsed JSON."""
        return await self._request(
            "POST",
            url,
            params=params,
            json_body=json_body,
            resource_id=resource_id,
            extra_headers={"Content-Type": "application/json"},
        )

    async def get_text(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """Make GET request and return the raw body (HTML pages)."""
        response = await self._send(
            "GET", url, params=params, resource_id=resource_id, extra_headers=extra_headers
        )
        return response.text
