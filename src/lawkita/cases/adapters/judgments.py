"""Court judgment adapter for the e-Judgment portal (kehakiman.gov.my)."""

import logging
import re

from ..errors import SourceUnavailableError
from ..models import FetchResult, SourceDescriptor, SourceType
from .base import BaseSourceAdapter
from .content import select_links, select_text, select_title

logger = logging.getLogger(__name__)

EJUDGMENT_BASE_URL = "https://efiling.kehakiman.gov.my"
EJUDGMENT_SEARCH_URL = f"{EJUDGMENT_BASE_URL}/ejudgment/search"

# Selectors tried in order on the search listing
LINK_SELECTORS = [
    "a.judgment-link",
    ".search-result a",
    ".case-list a",
    'a[href*="judgment"]',
    'a[href*="case"]',
]

CONTENT_SELECTORS = [
    ".judgment-content",
    ".case-content",
    "#judgment-body",
    "article",
    ".content-area",
    "main",
]

TITLE_SELECTORS = [
    "h1.case-title",
    "h1.judgment-title",
    ".case-header h1",
    "h1",
    "title",
]

_PARTIES_RE = re.compile(r"(?:PP|Public Prosecutor)\s+v\.?\s+([A-Z][a-zA-Z\s]+)")

MAX_SEARCH_LIMIT = 100


class JudgmentSourceAdapter(BaseSourceAdapter):
    """Fetches judgments listed by an e-Judgment search."""

    source_type = SourceType.JUDGMENTS

    def __init__(
        self,
        *args,
        keyword: str | None = None,
        court: str | None = None,
        year: int | None = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.keyword = keyword
        self.court = court
        self.year = year

    def search_params(self, limit: int) -> dict[str, str]:
        params = {"limit": str(min(limit, MAX_SEARCH_LIMIT))}
        if self.keyword:
            params["q"] = self.keyword
        if self.court:
            params["court"] = self.court
        if self.year:
            params["year"] = str(self.year)
        return params

    async def _fetch(self, source: SourceDescriptor, limit: int) -> FetchResult:
        result = FetchResult(source_name=source.name)

        async with self.http_client() as client:
            listing = await self.get_page(client, source.url, **self.search_params(limit))
            if listing is None:
                raise SourceUnavailableError(source.name, "search listing unreachable", unavailable=1)

            urls = select_links(listing, source.url, LINK_SELECTORS)[:limit]
            logger.info(f"Found {len(urls)} judgment links on {source.name}")

            for url in urls:
                await self.pause()
                html = await self.get_page(client, url)
                if html is None:
                    result.unavailable += 1
                    continue

                text = select_text(html, CONTENT_SELECTORS)
                if not text:
                    result.unavailable += 1
                    continue

                result.documents.append(
                    self.make_document(source, url=url, title=self._title(html, text), content=text)
                )

        return result

    @staticmethod
    def _title(html: str, text: str) -> str:
        title = select_title(html, TITLE_SELECTORS)
        if title:
            return title
        match = _PARTIES_RE.search(text)
        if match:
            return f"PP v {match.group(1).strip()}"
        return "Untitled"
