"""HTML to text helpers shared by the source adapters."""

import logging
from datetime import datetime
from urllib.parse import urljoin

import trafilatura
from bs4 import BeautifulSoup

from ..models import naive_utc

logger = logging.getLogger(__name__)

# Elements that never carry article text
NOISE_TAGS = ["script", "style", "nav", "footer", "header", "noscript", "form"]


def html_to_text(html: str, url: str | None = None) -> str:
    """Extract the main text of a page.

    Uses trafilatura first and falls back to a BeautifulSoup pass when
    it finds nothing (listing pages, unusual markup).
    """
    if not html:
        return ""

    try:
        text = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=True,
            include_links=False,
            output_format="txt",
        )
    except Exception as e:
        logger.warning(f"trafilatura extraction failed for {url}: {e}")
        text = None

    return text or soup_to_text(BeautifulSoup(html, "html.parser"))


def soup_to_text(soup: BeautifulSoup) -> str:
    """Plain text of a parsed page with boilerplate tags removed."""
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    text = soup.get_text(separator="\n", strip=True)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return "\n".join(lines)


def select_text(html: str, selectors: list[str]) -> str:
    """Text of the first selector that matches, else the whole body."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            text = soup_to_text(BeautifulSoup(str(element), "html.parser"))
            if text:
                return text
    body = soup.body or soup
    return soup_to_text(BeautifulSoup(str(body), "html.parser"))


def select_title(html: str, selectors: list[str], min_length: int = 5) -> str:
    """First non-trivial title found by the selectors."""
    soup = BeautifulSoup(html, "html.parser")
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        title = element.get_text(" ", strip=True)
        if len(title) > min_length:
            return title
    return ""


def select_links(html: str, base_url: str, selectors: list[str]) -> list[str]:
    """Absolute, de-duplicated hrefs matched by the selectors, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for selector in selectors:
        for element in soup.select(selector):
            href = element.get("href")
            if not href or href.startswith(("#", "javascript:", "mailto:")):
                continue
            absolute = urljoin(base_url, href)
            if absolute not in links:
                links.append(absolute)
    return links


def parse_published(value: str | None) -> datetime | None:
    """Parse an ISO-8601 publication timestamp into naive UTC, tolerating a trailing Z."""
    if not value:
        return None
    try:
        return naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None
