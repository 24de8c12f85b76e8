"""Base fetcher interface and shared HTTP client management.

Every source adapter inherits from BaseFetcher and implements fetch_quotes(),
returning the source's current quotes as a list of IncomingQuote. Adapters
own all transport concerns (headers, retries, payload parsing) and raise
FetchError or ParseError when they have nothing usable; they never touch
the snapshot.

A shared httpx.AsyncClient is used across all HTTP fetchers to avoid
connection overhead.

.. code-block:: python

    @register_fetcher
    class MyFeedFetcher(BaseFetcher):
        name = "myfeed"

        async def fetch_quotes(self) -> list[IncomingQuote]:
            payload = await self._get_json(self.url)
            return coerce_quotes(payload)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from ..errors import ConfigError, FetchError, FetchHTTPError, ParseError
from ..RateRecord import IncomingQuote
from ..SourceConfig import SourceConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; ratedesk/1.0)",
    "Accept": "application/json,text/plain,*/*",
}


class BaseFetcher(ABC):
    """Abstract base class for quote source adapters.

    Subclasses must implement:
        - name: Class variable identifying the fetcher (e.g. "goldfeed")
        - fetch_quotes(): Async method returning the source's quotes

    :cvar name: Unique identifier for this fetcher.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :cvar MAX_TRIES: Attempts per HTTP request.
    :cvar RATE_LIMIT_DELAY: Seconds per attempt to wait after HTTP 429.
    :cvar ERROR_DELAY: Seconds per attempt to wait after a network error.
    :cvar REFERER: Referer header sent to upstreams that check it.
    :ivar url: Endpoint the fetcher reads from.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    name: ClassVar[str] = ""

    DEFAULT_TIMEOUT = 10.0
    MAX_TRIES = 3
    RATE_LIMIT_DELAY = 1.5
    ERROR_DELAY = 0.8
    REFERER: ClassVar[str | None] = None

    def __init__(self, url: str, timeout: float | None = None):
        """Initialize the fetcher.

        :param url: Endpoint URL.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.url = url
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch_quotes(self) -> list[IncomingQuote]:
        """Fetch the source's current quotes.

        :returns: Quotes in upstream order.
        :raises FetchError: If the source could not be read.
        :raises ParseError: If the payload is malformed.
        """
        pass

    async def close(self) -> None:
        """Release fetcher-specific resources (HTTP client is shared)."""
        return None

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if self.REFERER:
            headers["Referer"] = self.REFERER
        if extra:
            headers.update(extra)
        return headers

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """GET with retries using the shared client.

        HTTP 429 and network errors are retried after a delay that grows with
        each attempt; other non-2xx answers are retried immediately.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional extra request headers.
        :returns: Successful httpx.Response.
        :raises FetchHTTPError: If the last attempt got a non-2xx response.
        :raises FetchError: If the last attempt failed at the network level.
        """
        client = self.get_shared_client()
        last_error: FetchError = FetchError(f"No attempt made for {url}")

        for attempt in range(1, self.MAX_TRIES + 1):
            delay = 0.0
            try:
                response = await client.get(
                    url,
                    params=params,
                    headers=self._headers(headers),
                    timeout=self.timeout,
                )
            except httpx.TimeoutException as e:
                last_error = FetchError(f"Request timeout: {e}")
                delay = self.ERROR_DELAY * attempt
            except httpx.RequestError as e:
                last_error = FetchError(f"Request failed: {e}")
                delay = self.ERROR_DELAY * attempt
            else:
                if response.is_success:
                    return response
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                last_error = FetchHTTPError(response.status_code, response.text[:200])
                if response.status_code == 429:
                    delay = self.RATE_LIMIT_DELAY * attempt

            if attempt < self.MAX_TRIES:
                logger.debug(f"[{self.name}] Attempt {attempt} failed: {last_error}")
                if delay:
                    await asyncio.sleep(delay)

        raise last_error

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode its JSON body.

        :raises ParseError: If the body is not valid JSON.
        """
        response = await self._get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON from {url}: {e}") from e


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(config: SourceConfig) -> BaseFetcher:
    """Create the fetcher for a configured source.

    :param config: Source configuration.
    :returns: Fetcher instance.
    :raises ConfigError: If the fetcher name is unknown or its options are invalid.
    """
    if config.fetcher not in FETCHER_REGISTRY:
        available = ", ".join(get_available_fetchers())
        raise ConfigError(
            f"Unknown fetcher '{config.fetcher}' for {config.name}. Available: {available}"
        )
    try:
        return FETCHER_REGISTRY[config.fetcher](
            url=config.url, timeout=config.timeout, **config.options
        )
    except TypeError as e:
        raise ConfigError(f"Invalid options for {config.name}: {e}") from e


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
