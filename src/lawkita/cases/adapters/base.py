"""Base class for source adapters.

Source adapters fetch documents from one kind of external source and
normalize them into RawDocuments. Page-level failures are counted, not
raised; a source that yields nothing at all raises a single
SourceUnavailableError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable

import httpx

from ...config import Settings, get_settings
from ..errors import SourceUnavailableError
from ..models import FetchResult, RawDocument, SourceDescriptor, SourceType, make_document_id

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-MY,en;q=0.9,ms;q=0.8",
}


class BaseSourceAdapter(ABC):
    """Abstract base class for source adapters.

    Subclasses implement `_fetch`; `fetch` applies the shared failure
    policy around it.
    """

    source_type: SourceType

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the adapter.

        Args:
            client: HTTP client to use; one is created per fetch if omitted
            settings: Settings override
            sleep: Sleep coroutine used between requests
        """
        self.settings = settings or get_settings()
        self._client = client
        self._sleep = sleep

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """The injected client, or a fresh one closed on exit."""
        if self._client is not None:
            yield self._client
            return

        async with httpx.AsyncClient(
            timeout=self.settings.crawler_timeout_seconds,
            follow_redirects=True,
            headers={**DEFAULT_HEADERS, "User-Agent": self.settings.crawler_user_agent},
        ) as client:
            yield client

    async def fetch(self, source: SourceDescriptor, limit: int | None = None) -> FetchResult:
        """Fetch documents from a source.

        Args:
            source: The source to fetch
            limit: Maximum number of documents to return

        Returns:
            FetchResult with the documents and a count of pages lost

        Raises:
            SourceUnavailableError: If nothing could be fetched
        """
        limit = limit or source.page_limit
        try:
            result = await self._fetch(source, limit)
        except SourceUnavailableError:
            raise
        except httpx.HTTPError as e:
            raise SourceUnavailableError(source.name, str(e) or type(e).__name__) from e

        if not result.documents and result.unavailable:
            raise SourceUnavailableError(
                source.name,
                f"all {result.unavailable} pages failed",
                unavailable=result.unavailable,
            )

        result.documents = result.documents[:limit]
        logger.info(
            f"Fetched {len(result.documents)} documents from {source.name}"
            + (f" ({result.unavailable} unavailable)" if result.unavailable else "")
        )
        return result

    @abstractmethod
    async def _fetch(self, source: SourceDescriptor, limit: int) -> FetchResult:
        ...

    def make_document(
        self,
        source: SourceDescriptor,
        url: str,
        title: str,
        content: str,
        published_at: datetime | None = None,
    ) -> RawDocument:
        return RawDocument(
            source_id=make_document_id(source.source_type, url),
            url=url,
            title=title or "Untitled",
            content=content,
            published_at=published_at,
            source_name=source.name,
            source_type=source.source_type,
            trust_score=source.trust_score,
        )

    async def get_page(self, client: httpx.AsyncClient, url: str, **params) -> str | None:
        """GET a page, returning None (and logging) on any HTTP failure."""
        try:
            response = await client.get(url, params=params or None)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP {e.response.status_code} for {url}")
            return None
        except httpx.RequestError as e:
            logger.warning(f"Request error for {url}: {e}")
            return None
        return response.text

    async def pause(self) -> None:
        """Politeness delay between requests to the same host."""
        delay = self.settings.crawler_request_delay_seconds
        if delay > 0:
            await self._sleep(delay)
