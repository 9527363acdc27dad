"""News source adapter backed by the Firecrawl API.

Crawls a news site's court and legal sections for article markdown.
When the crawl fails or finds nothing, falls back to scraping a fixed
set of legal-section pages one at a time.
"""

import logging
from typing import Any

import httpx

from ..errors import JobFatalError
from ..models import FetchResult, RawDocument, SourceDescriptor, SourceType
from .base import BaseSourceAdapter
from .content import parse_published

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_PATHS = [
    "/news/courts*",
    "/news/nation/courts*",
    "/tag/court*",
    "/tag/legal*",
    "/courts*",
    "/crime*",
    "/nation/courts*",
]

DEFAULT_EXCLUDE_PATHS = [
    "/sports*",
    "/lifestyle*",
    "/entertainment*",
    "/business/markets*",
    "/tech*",
    "/photos*",
    "/videos*",
]

DEFAULT_FALLBACK_PATHS = [
    "/tag/court",
    "/tag/legal",
    "/news/courts-crime",
    "/nation/courts-crime",
]


class NewsSourceAdapter(BaseSourceAdapter):
    """Fetches news articles through Firecrawl crawl and scrape."""

    source_type = SourceType.NEWS

    # Crawl jobs are asynchronous on Firecrawl's side
    POLL_INTERVAL_SECONDS = 2.0
    MAX_POLLS = 30

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not self.settings.firecrawl_api_key:
            raise JobFatalError("Firecrawl API key not configured")
        self.base_url = self.settings.firecrawl_base_url.rstrip("/")

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.firecrawl_api_key}",
            "Content-Type": "application/json",
        }

    async def _fetch(self, source: SourceDescriptor, limit: int) -> FetchResult:
        result = FetchResult(source_name=source.name)

        async with self.http_client() as client:
            pages = await self._crawl(client, source)
            if pages:
                for page in pages:
                    document = self._page_to_document(source, page)
                    if document is not None:
                        result.documents.append(document)
                    if len(result.documents) >= limit:
                        break

            if not result.documents:
                logger.warning(
                    f"Crawl found nothing for {source.name}, falling back to predefined sections"
                )
                await self._scrape_fallbacks(client, source, limit, result)

        return result

    # =========================
    # Crawl
    # =========================

    async def _crawl(self, client: httpx.AsyncClient, source: SourceDescriptor) -> list[dict[str, Any]] | None:
        payload = {
            "url": source.url,
            "limit": source.page_limit,
            "scrapeOptions": {"formats": ["markdown"]},
            "includePaths": source.include_paths or DEFAULT_INCLUDE_PATHS,
            "excludePaths": source.exclude_paths or DEFAULT_EXCLUDE_PATHS,
            "maxDepth": source.max_depth,
        }

        try:
            response = await client.post(
                f"{self.base_url}/crawl", json=payload, headers=self._auth_headers
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Firecrawl crawl failed for {source.name}: {e}")
            return None

        if not body.get("success", True):
            logger.warning(f"Firecrawl crawl rejected for {source.name}: {body.get('error')}")
            return None

        if body.get("data") is not None:
            return list(body["data"])

        crawl_id = body.get("id")
        if not crawl_id:
            return None
        return await self._poll_crawl(client, crawl_id, source)

    async def _poll_crawl(
        self,
        client: httpx.AsyncClient,
        crawl_id: str,
        source: SourceDescriptor,
    ) -> list[dict[str, Any]] | None:
        for _ in range(self.MAX_POLLS):
            try:
                response = await client.get(
                    f"{self.base_url}/crawl/{crawl_id}", headers=self._auth_headers
                )
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Firecrawl status check failed for {source.name}: {e}")
                return None

            status = body.get("status")
            if status == "completed":
                return list(body.get("data") or [])
            if status in ("failed", "cancelled"):
                logger.warning(f"Firecrawl crawl {crawl_id} for {source.name} ended as {status}")
                return None

            await self._sleep(self.POLL_INTERVAL_SECONDS)

        logger.warning(f"Firecrawl crawl {crawl_id} for {source.name} did not finish in time")
        return None

    def _page_to_document(self, source: SourceDescriptor, page: dict[str, Any]) -> RawDocument | None:
        markdown = page.get("markdown")
        metadata = page.get("metadata") or {}
        url = metadata.get("sourceURL") or metadata.get("url") or page.get("url")
        if not markdown or not url:
            return None
        return self.make_document(
            source,
            url=url,
            title=metadata.get("title") or "Untitled",
            content=markdown,
            published_at=parse_published(metadata.get("publishedAt")),
        )

    # =========================
    # Scrape fallback
    # =========================

    async def _scrape_fallbacks(
        self,
        client: httpx.AsyncClient,
        source: SourceDescriptor,
        limit: int,
        result: FetchResult,
    ) -> None:
        paths = source.fallback_paths or DEFAULT_FALLBACK_PATHS
        for idx, path in enumerate(paths):
            if len(result.documents) >= limit:
                break
            if idx:
                await self.pause()

            url = f"{source.url.rstrip('/')}{path}"
            page = await self._scrape(client, url)
            document = self._page_to_document(source, page) if page else None
            if document is None:
                result.unavailable += 1
                continue
            result.documents.append(document)

    async def _scrape(self, client: httpx.AsyncClient, url: str) -> dict[str, Any] | None:
        try:
            response = await client.post(
                f"{self.base_url}/scrape",
                json={"url": url, "formats": ["markdown"]},
                headers=self._auth_headers,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Firecrawl scrape failed for {url}: {e}")
            return None

        if not body.get("success") or not body.get("data"):
            return None

        data = dict(body["data"])
        metadata = dict(data.get("metadata") or {})
        metadata.setdefault("sourceURL", url)
        data["metadata"] = metadata
        return data
