"""Page scraping collaborator for the refresh worker."""

from linkvault.scraper.client import (
    PageMetadata,
    PageScraper,
    ScrapeError,
    ScrapeErrorKind,
)

__all__ = ["PageMetadata", "PageScraper", "ScrapeError", "ScrapeErrorKind"]
