"""Links: stored bookmarks and the scheduler-facing repository."""

from linkvault.links.repository import LinkRepository
from linkvault.links.schemas import Link, LinkStatus, MetadataDelta, StatusCounts

__all__ = [
    "Link",
    "LinkRepository",
    "LinkStatus",
    "MetadataDelta",
    "StatusCounts",
]
