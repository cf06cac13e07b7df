"""
Page scraper - fetches a link's URL and extracts display metadata.

Provides:
- ScrapeErrorKind / ScrapeError: closed set of failure tags
- PageMetadata: title, description and logo extracted from HTML
- PageScraper: async httpx client with per-request timeout

Extraction rules:
- title: og:title, then <title>
- description: og:description, then meta[name=description]
- logo: first icon <link> (icon, shortcut icon, apple-touch-icon,
  apple-touch-icon-precomposed) made absolute, else /favicon.ico
- non-HTML responses are reachable but carry no metadata
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from linkvault.config.settings import get_settings

logger = logging.getLogger(__name__)

_ICON_RELS = (
    "icon",
    "shortcut icon",
    "apple-touch-icon",
    "apple-touch-icon-precomposed",
)


class ScrapeErrorKind(str, Enum):
    """Why a page fetch failed."""

    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"  # 404 / 410
    SERVER_ERROR = "server_error"  # 5xx
    CONNECTION = "connection"  # refused, DNS, reset
    OTHER = "other"


class ScrapeError(Exception):
    """Raised when a page cannot be fetched."""

    def __init__(
        self,
        message: str,
        kind: ScrapeErrorKind,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass(frozen=True)
class PageMetadata:
    """Metadata scraped from a page. Fields are None when not found."""

    title: str | None = None
    description: str | None = None
    logo: str | None = None


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def extract_title(soup: BeautifulSoup) -> str | None:
    """Extract the page title, preferring og:title."""
    og_title = _meta_content(soup, property="og:title")
    if og_title:
        return og_title

    if soup.title is not None:
        title = soup.title.get_text().strip()
        if title:
            return title
    return None


def extract_description(soup: BeautifulSoup) -> str | None:
    """Extract the page description, preferring og:description."""
    return _meta_content(soup, property="og:description") or _meta_content(
        soup, name="description"
    )


def extract_logo(soup: BeautifulSoup, base_url: str) -> str | None:
    """Extract an absolute favicon URL, falling back to /favicon.ico."""
    links = soup.find_all("link", href=True)
    for rel in _ICON_RELS:
        for tag in links:
            tag_rel = " ".join(tag.get("rel") or []).lower()
            if tag_rel == rel:
                return urljoin(base_url, tag["href"])

    if base_url.startswith(("http://", "https://")):
        return urljoin(base_url, "/favicon.ico")
    return None


def parse_page(html: str, base_url: str) -> PageMetadata:
    """Parse HTML into PageMetadata."""
    soup = BeautifulSoup(html, "html.parser")
    return PageMetadata(
        title=extract_title(soup),
        description=extract_description(soup),
        logo=extract_logo(soup, base_url),
    )


def classify_status(status_code: int) -> ScrapeErrorKind | None:
    """Map an HTTP status to an error kind, or None for success."""
    if status_code in (404, 410):
        return ScrapeErrorKind.NOT_FOUND
    if status_code >= 500:
        return ScrapeErrorKind.SERVER_ERROR
    if status_code >= 400:
        return ScrapeErrorKind.OTHER
    return None


class PageScraper:
    """
    Async page fetcher used by the refresh worker.

    Follows up to ``max_redirects`` redirects and identifies itself with
    the configured User-Agent. Every failure surfaces as ScrapeError with
    a kind the worker can match on.

    Example:
        async with PageScraper() as scraper:
            metadata = await scraper.fetch_page("https://example.com", timeout=10)
    """

    def __init__(
        self,
        user_agent: str | None = None,
        max_redirects: int = 5,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the scraper.

        Args:
            user_agent: User-Agent header (default from settings)
            max_redirects: Redirect limit
            client: Pre-built httpx client (tests); owned by the caller
        """
        self.user_agent = user_agent or get_settings().user_agent
        self.max_redirects = max_redirects
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "PageScraper":
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch_page(self, url: str, timeout: float) -> PageMetadata:
        """
        Fetch a page and extract its metadata.

        Args:
            url: Page URL
            timeout: Request timeout in seconds

        Returns:
            PageMetadata (fields may be None)

        Raises:
            ScrapeError: On timeout, connection failure or error status
        """
        if not self._client:
            raise RuntimeError("PageScraper must be used as async context manager")

        try:
            response = await self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as e:
            raise ScrapeError(f"Timed out fetching {url}", ScrapeErrorKind.TIMEOUT) from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise ScrapeError(
                f"Connection failed for {url}: {e}", ScrapeErrorKind.CONNECTION
            ) from e
        except httpx.HTTPError as e:
            raise ScrapeError(f"Failed to fetch {url}: {e}", ScrapeErrorKind.OTHER) from e

        kind = classify_status(response.status_code)
        if kind is not None:
            raise ScrapeError(
                f"Fetching {url} returned status {response.status_code}",
                kind,
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type:
            logger.debug("Non-HTML response for %s, content-type: %s", url, content_type)
            return PageMetadata()

        return parse_page(response.text, str(response.url))
