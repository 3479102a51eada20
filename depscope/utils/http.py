"""
Shared asynchronous HTTP client for depscope.

One :class:`HTTPClient` serves every remote lookup of a run (PyPI, GitHub,
pypistats, OSV). It owns three policies:

* **Concurrency**: at most ``max_concurrency`` requests are on the wire;
  the rest queue on a semaphore in arrival order.
* **Retries**: timeouts, transport errors and 5xx responses are retried
  with exponential backoff and jitter. 404 and other 4xx fail at once.
* **Throttling**: a 429 waits for ``Retry-After`` and is re-sent without
  using up a retry, up to a fixed number of times.

Failures surface as :class:`NetworkError`, or :class:`RegistryError` for
a missing resource.
"""

from __future__ import annotations

import time
import httpx
import random
import asyncio
from typing import Any, Dict, List, Optional, cast

from depscope.utils.logger import get_logger
from depscope.__version__ import __version__
from depscope.exceptions import NetworkError, RegistryError
from depscope.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_CONCURRENCY,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

# Exceptions worth another attempt.
_TRANSIENT = (httpx.TimeoutException, httpx.TransportError)


class HTTPClient:
    """Async HTTP client with a concurrency cap, retries and 429 handling.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Extra attempts after the first for transient failures.
        rate_limit_delay: Minimum spacing between requests, in seconds.
        verify_ssl: Verify TLS certificates.
        user_agent: ``User-Agent`` header; defaults to the depscope one.
        max_concurrency: Requests allowed in flight at once.

    Example:
        >>> async with HTTPClient(max_concurrency=16) as client:
        ...     data = await client.get_json("https://pypi.org/pypi/rich/json")
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rate_limit_delay: float = 0.0,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit_delay = rate_limit_delay
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.max_concurrency = max_concurrency

        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._spacing_lock = asyncio.Lock()
        self._next_slot: float = 0.0
        self._max_429_retries: int = 5

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool. Safe to call twice."""
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _wait_for_slot(self) -> None:
        """Space requests at least ``rate_limit_delay`` seconds apart."""
        if self.rate_limit_delay <= 0:
            return
        async with self._spacing_lock:
            now = time.monotonic()
            start = max(now, self._next_slot)
            self._next_slot = start + self.rate_limit_delay
        if start > now:
            await asyncio.sleep(start - now)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        """Seconds to wait before re-sending a 429, defaulting to one."""
        try:
            return max(float(response.headers.get("Retry-After", "1")), 0.0)
        except ValueError:
            return 1.0

    @staticmethod
    def _backoff_delay(attempt: int) -> float:
        return (2**attempt) + random.uniform(0.0, 0.3)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send once, re-sending while the server answers 429."""
        client = await self._ensure_client()

        for throttled in range(self._max_429_retries + 1):
            await self._wait_for_slot()
            async with self._semaphore:
                response = await client.request(method, url, **kwargs)
            if response.status_code != 429:
                return response
            if throttled == self._max_429_retries:
                break
            delay = self._retry_after(response)
            logger.warning(
                "Rate limited (429) on %s, retrying after %.1fs (%d/%d)",
                url,
                delay,
                throttled + 1,
                self._max_429_retries,
            )
            await asyncio.sleep(delay)

        raise NetworkError(
            f"Rate limit exceeded after {self._max_429_retries} retries",
            url=url,
            status_code=429,
        )

    @staticmethod
    def _fail_fast(response: httpx.Response, url: str) -> None:
        """Raise for client errors, which a retry cannot fix."""
        status = response.status_code
        if status == 404:
            raise RegistryError(f"Resource not found: {url}", url=url, status_code=404)
        if 400 <= status < 500:
            raise NetworkError(
                f"HTTP {status} error for {url}",
                url=url,
                status_code=status,
                response_body=response.text,
            )

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying timeouts, transport errors and 5xx."""
        clean_url = url.strip().strip("\"'")
        attempts = self.max_retries + 1
        last_exc: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = await self._send(method, clean_url, **kwargs)
                self._fail_fast(response, clean_url)
                response.raise_for_status()
                return response
            except _TRANSIENT as exc:
                last_exc = exc
                logger.warning(
                    "%s on %s (%d/%d)",
                    type(exc).__name__,
                    clean_url,
                    attempt + 1,
                    attempts,
                )
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                logger.warning(
                    "HTTP %d on %s (%d/%d)",
                    exc.response.status_code,
                    clean_url,
                    attempt + 1,
                    attempts,
                )

            if attempt + 1 < attempts:
                delay = self._backoff_delay(attempt)
                logger.debug("Retrying %s in %.2fs", clean_url, delay)
                await asyncio.sleep(delay)

        raise NetworkError(
            f"Request failed after {attempts} attempts: {clean_url}",
            url=clean_url,
        ) from last_exc

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._request_with_retry("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._request_with_retry("POST", url, **kwargs)

    @staticmethod
    def _decode(response: httpx.Response, url: str, expected: type) -> Any:
        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc
        if not isinstance(data, expected):
            kind = "object" if expected is dict else "array"
            raise NetworkError(
                f"Expected JSON {kind} from {url}",
                url=url,
                response_body=response.text,
            )
        return data

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """GET ``url`` and return its JSON object body."""
        response = await self.get(url, **kwargs)
        return cast(Dict[str, Any], self._decode(response, url, dict))

    async def get_json_list(self, url: str, **kwargs: Any) -> List[Any]:
        """GET ``url`` and return its JSON array body."""
        response = await self.get(url, **kwargs)
        return cast(List[Any], self._decode(response, url, list))

    async def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """POST ``payload`` as JSON and return the JSON object response."""
        response = await self.post(url, json=payload, **kwargs)
        return cast(Dict[str, Any], self._decode(response, url, dict))
