"""Fetcher adapter contract and shared HTTP plumbing for catalog sources."""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from libris.utils.exceptions import TransientFetchError
from libris.utils.retry import retry_with_exponential_backoff

logger = structlog.get_logger(__name__)

RawBook = dict[str, Any]

DEFAULT_RATE_LIMIT_MS = 1500
DEFAULT_BATCH_SIZE = 30

# Internet Archive item identifiers; Open Library work keys ("/works/OL1W") never match.
ARCHIVE_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# Capabilities a fetcher must expose to be registered.
REQUIRED_CAPABILITIES: tuple[str, ...] = (
    "source_id",
    "metadata",
    "fetch_books",
    "parse_book_document",
    "get_download_url",
)


@dataclass(frozen=True)
class SourceMetadata:
    """Immutable description of a catalog source."""

    source_id: str
    display_name: str
    description: str = ""
    website: str = ""
    supported_formats: tuple[str, ...] = ("pdf",)
    default_rate_limit_ms: int = DEFAULT_RATE_LIMIT_MS
    default_batch_size: int = DEFAULT_BATCH_SIZE


@dataclass
class FetchOptions:
    """Paging and filtering options for one fetch_books call."""

    batch_size: int = DEFAULT_BATCH_SIZE
    page: int = 1
    cursor: str | None = None
    language: str | None = None
    format: str = "pdf"
    source_specific: dict[str, Any] = field(default_factory=dict)


class BookFetcher(ABC):
    """
    Contract every catalog source adapter implements.

    A fetcher pages through one external catalog. Page-numbered sources read
    ``options.page``; cursor-based sources read ``options.cursor`` and set
    ``next_cursor`` after each fetch (None once the listing is exhausted).
    """

    next_cursor: str | None = None

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Stable identifier, e.g. "internet_archive"."""

    @property
    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Display and default-configuration metadata for the source."""

    @abstractmethod
    async def fetch_books(self, options: FetchOptions) -> list[RawBook]:
        """
        Fetch one page of raw records.

        Raises:
            TransientFetchError: If the source could not be reached
        """

    @abstractmethod
    def parse_book_document(self, doc: dict[str, Any]) -> RawBook:
        """Turn one API document into a raw record for the metadata mapper."""

    @abstractmethod
    def get_download_url(self, identifier: str, format: str = "pdf") -> str | None:
        """Direct download URL for a record, or None if the identifier cannot be resolved."""

    async def close(self) -> None:
        """Release network resources held by the fetcher."""


class RateLimitedError(Exception):
    """HTTP 429 from a source; carries the wait in seconds."""

    def __init__(self, url: str, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Rate limited by {url}; retry after {retry_after}s")


class BaseHttpFetcher(BookFetcher):
    """
    Shared HTTP behaviour for JSON catalog APIs.

    Requests are spaced at least ``rate_limit_ms`` apart. HTTP 429 waits for
    the Retry-After header (or twice the rate limit) before retrying;
    transport errors and 5xx responses are retried with exponential backoff.
    Once retries are exhausted the failure surfaces as TransientFetchError.

    Args:
        client: Optional httpx.AsyncClient (tests pass one with a mock transport)
        rate_limit_ms: Minimum spacing between requests
        max_retries: Retries after the first attempt
        retry_delay: Initial backoff delay in seconds
        timeout: Request timeout in seconds
        user_agent: User-Agent header value
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        rate_limit_ms: int = DEFAULT_RATE_LIMIT_MS,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        user_agent: str = "LibrisBot/1.0",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._owns_client = client is None
        self.rate_limit_ms = rate_limit_ms
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.user_agent = user_agent
        self._sleep = sleep
        self._last_request_at = 0.0
        self.request_count = 0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _apply_rate_limit(self) -> None:
        elapsed_ms = (time.monotonic() - self._last_request_at) * 1000
        wait_ms = self.rate_limit_ms - elapsed_ms
        if self._last_request_at and wait_ms > 0:
            await self._sleep(wait_ms / 1000)
        self._last_request_at = time.monotonic()
        self.request_count += 1

    async def _get_once(
        self, url: str, params: dict[str, Any] | None, allow_not_found: bool = False
    ) -> Any:
        await self._apply_rate_limit()
        response = await self._get_client().get(
            url, params=params, headers={"Accept": "application/json"}
        )
        if response.status_code == 404 and allow_not_found:
            return None
        if response.status_code == 429:
            raise RateLimitedError(url, self._retry_after_seconds(response))
        if response.status_code >= 500:
            response.raise_for_status()
        if response.is_error:
            raise TransientFetchError(
                f"{self.source_id} returned HTTP {response.status_code} for {url}"
            )
        return response.json()

    def _retry_after_seconds(self, response: httpx.Response) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        return self.rate_limit_ms * 2 / 1000

    async def fetch_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        GET a JSON document with rate limiting and retries.

        Args:
            url: Absolute URL
            params: Query parameters
            allow_not_found: Return None instead of failing on HTTP 404

        Returns:
            Decoded JSON body

        Raises:
            TransientFetchError: If every attempt failed
        """
        try:
            return await retry_with_exponential_backoff(
                self._get_once,
                url,
                params,
                allow_not_found,
                max_retries=self.max_retries,
                initial_delay=self.retry_delay,
                retry_on_exceptions=(httpx.TransportError, httpx.HTTPStatusError, RateLimitedError),
                sleep=self._sleep,
            )
        except (httpx.HTTPError, RateLimitedError, ValueError) as e:
            logger.error("source_fetch_failed", source_id=self.source_id, url=url, error=str(e))
            raise TransientFetchError(f"{self.source_id} fetch failed: {e}") from e
