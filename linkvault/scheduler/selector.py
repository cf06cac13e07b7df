"""Selection of links due for a metadata refresh.

A link is due when it is refreshable (active or inaccessible, plus GitHub
repo_unavailable links when automatic retry is enabled) and has either never
been checked or was last checked more than one interval ago. The oldest
checks come first so a backlog drains in a fair order.
"""

import logging
from datetime import datetime, timedelta, timezone

from linkvault.errors import StorageError
from linkvault.links.repository import LINK_COLUMNS, STORAGE_ERRORS, record_to_link
from linkvault.links.schemas import Link, LinkStatus
from linkvault.scheduler.config import SchedulerConfig
from linkvault.storage.database import Database

logger = logging.getLogger(__name__)

REFRESHABLE_STATUSES = (LinkStatus.ACTIVE, LinkStatus.INACCESSIBLE)


def build_due_query(
    checked_before: datetime,
    limit: int,
    include_repo_unavailable: bool = False,
) -> tuple[str, list]:
    """
    Build the due-link SELECT.

    Args:
        checked_before: Links checked at or after this instant are not due
        limit: Maximum rows returned
        include_repo_unavailable: Also select repo_unavailable GitHub links

    Returns:
        (query, params) for asyncpg
    """
    status_clause = "status = ANY($1::text[])"
    if include_repo_unavailable:
        status_clause = (
            f"({status_clause} OR "
            f"(status = '{LinkStatus.REPO_UNAVAILABLE.value}' AND is_github_repo))"
        )

    conditions = [
        status_clause,
        "(last_checked IS NULL OR last_checked < $2)",
    ]
    params: list = [[s.value for s in REFRESHABLE_STATUSES], checked_before, limit]

    where_clause = " AND ".join(conditions)
    query = f"""
        SELECT {LINK_COLUMNS}
        FROM links
        WHERE {where_clause}
        ORDER BY last_checked ASC NULLS FIRST, id
        LIMIT $3
    """
    return query, params


class LinkSelector:
    """Queries storage for the next batch of due links."""

    def __init__(self, database: Database, config: SchedulerConfig) -> None:
        self._db = database
        self._config = config

    def staleness_cutoff(self, now: datetime | None = None) -> datetime:
        """Links checked before this instant are due."""
        now = now or datetime.now(timezone.utc)
        return now - timedelta(seconds=self._config.interval_seconds)

    async def select_due(self, batch_size: int, now: datetime | None = None) -> list[Link]:
        """
        Fetch up to batch_size due links, oldest check first.

        Raises:
            StorageError: If storage cannot be queried.
        """
        query, params = build_due_query(
            checked_before=self.staleness_cutoff(now),
            limit=batch_size,
            include_repo_unavailable=self._config.retry_repo_unavailable,
        )
        try:
            rows = await self._db.fetch(query, *params)
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to select due links: {e}", "select_due") from e

        links = [record_to_link(row) for row in rows]
        logger.debug("Selected %d due links (batch_size=%d)", len(links), batch_size)
        return links
