"""Malaysian Bar legal directory adapter.

Fetches directory listing pages state by state. Sabah and Sarawak have
separate Bar associations and are not part of this directory.
"""

import logging

from ..models import FetchResult, SourceDescriptor, SourceType
from .base import BaseSourceAdapter
from .content import html_to_text, select_title

logger = logging.getLogger(__name__)

DIRECTORY_BASE_URL = "https://legaldirectory.malaysianbar.org.my"
DIRECTORY_SEARCH_URL = f"{DIRECTORY_BASE_URL}/v/search-result"

MALAYSIAN_STATES = [
    "Johore",
    "Kedah",
    "Kelantan",
    "Melaka",
    "Negeri Sembilan",
    "Pahang",
    "Penang",
    "Perak",
    "Perlis",
    "Selangor",
    "Terengganu",
    "Wilayah Persekutuan Kuala Lumpur",
    "Wilayah Persekutuan Labuan",
    "Wilayah Persekutuan Putrajaya",
]

STATE_CODES = {
    "Johore": "JH",
    "Kedah": "KD",
    "Kelantan": "KT",
    "Melaka": "MK",
    "Negeri Sembilan": "NS",
    "Pahang": "PH",
    "Penang": "PG",
    "Perak": "PK",
    "Perlis": "PR",
    "Selangor": "SG",
    "Terengganu": "TG",
    "Wilayah Persekutuan Kuala Lumpur": "WPKL",
    "Wilayah Persekutuan Labuan": "WL",
    "Wilayah Persekutuan Putrajaya": "WPP",
}


def state_code(state: str) -> str:
    """Directory code for a state name, accepting the code itself too."""
    if state in STATE_CODES:
        return STATE_CODES[state]
    upper = state.strip().upper()
    if upper in STATE_CODES.values():
        return upper
    for name, code in STATE_CODES.items():
        if name.lower() == state.strip().lower():
            return code
    raise ValueError(f"Unknown state: {state}")


class DirectorySourceAdapter(BaseSourceAdapter):
    """Fetches Bar directory listing pages for each requested state."""

    source_type = SourceType.DIRECTORY

    def __init__(self, *args, max_pages: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_pages = max(max_pages, 1)

    async def _fetch(self, source: SourceDescriptor, limit: int) -> FetchResult:
        result = FetchResult(source_name=source.name)
        states = source.states or MALAYSIAN_STATES
        first = True

        async with self.http_client() as client:
            for state in states:
                code = state_code(state)
                for page in range(1, self.max_pages + 1):
                    if len(result.documents) >= limit:
                        return result
                    if not first:
                        await self.pause()
                    first = False

                    html = await self.get_page(
                        client, source.url, searchtype="Lawyer", state=code, page=str(page)
                    )
                    if html is None:
                        result.unavailable += 1
                        continue

                    text = html_to_text(html, source.url)
                    if not text:
                        break

                    url = f"{source.url}?searchtype=Lawyer&state={code}&page={page}"
                    title = select_title(html, ["h1", "title"]) or f"Lawyers in {state}"
                    result.documents.append(
                        self.make_document(source, url=url, title=f"{title} ({state}, page {page})", content=text)
                    )

        return result
