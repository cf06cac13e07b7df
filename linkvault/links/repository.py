"""Database repository for the links table (scheduler-owned columns)."""

import logging
from datetime import datetime
from uuid import UUID

import asyncpg

from linkvault.errors import StorageError
from linkvault.links.schemas import Link, LinkStatus, MetadataDelta, StatusCounts
from linkvault.storage.database import Database

logger = logging.getLogger(__name__)

# The links table is created by the main application; this DDL is idempotent
# and only guarantees the columns the scheduler reads and writes.
_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS links (
    id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    url                  TEXT NOT NULL,
    domain               TEXT NOT NULL,
    path                 TEXT,
    title                TEXT,
    description          TEXT,
    logo                 TEXT,
    is_github_repo       BOOLEAN NOT NULL DEFAULT FALSE,
    status               TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'archived', 'inaccessible', 'repo_unavailable')),
    github_stars         INTEGER,
    github_archived      BOOLEAN,
    github_last_commit   TIMESTAMPTZ,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    refreshed_at         TIMESTAMPTZ
);

ALTER TABLE links ADD COLUMN IF NOT EXISTS last_checked TIMESTAMPTZ;
ALTER TABLE links ADD COLUMN IF NOT EXISTS consecutive_failures INTEGER NOT NULL DEFAULT 0;

CREATE INDEX IF NOT EXISTS idx_links_last_checked
    ON links(last_checked) WHERE last_checked IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_links_unchecked
    ON links(last_checked) WHERE last_checked IS NULL;
CREATE INDEX IF NOT EXISTS idx_links_status ON links(status);
"""

LINK_COLUMNS = (
    "id, url, domain, path, title, description, logo, is_github_repo, status, "
    "github_stars, github_archived, github_last_commit, last_checked, "
    "refreshed_at, consecutive_failures"
)

STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def record_to_link(record) -> Link:
    """Convert an asyncpg Record to a Link dataclass."""
    return Link(
        id=record["id"],
        url=record["url"],
        domain=record["domain"],
        path=record["path"],
        is_github_repo=record["is_github_repo"],
        status=LinkStatus(record["status"]),
        title=record["title"],
        description=record["description"],
        logo=record["logo"],
        github_stars=record["github_stars"],
        github_archived=record["github_archived"],
        github_last_commit=record["github_last_commit"],
        last_checked=record["last_checked"],
        refreshed_at=record["refreshed_at"],
        consecutive_failures=record["consecutive_failures"] or 0,
    )


def build_apply_outcome_query(
    link_id: UUID,
    status: LinkStatus,
    consecutive_failures: int,
    last_checked: datetime,
    refreshed_at: datetime | None = None,
    delta: MetadataDelta | None = None,
) -> tuple[str, list]:
    """Build the single UPDATE that records one refresh outcome.

    Status, failure count, last_checked, refreshed_at and metadata change
    together or not at all. Archived rows are never matched.
    """
    assignments = ["status = $2", "consecutive_failures = $3", "last_checked = $4"]
    params: list = [link_id, status.value, consecutive_failures, last_checked]
    idx = 5

    if refreshed_at is not None:
        assignments.append(f"refreshed_at = ${idx}")
        params.append(refreshed_at)
        idx += 1

    if delta is not None:
        for column, value in delta.as_columns().items():
            assignments.append(f"{column} = ${idx}")
            params.append(value)
            idx += 1

    assignments.append("updated_at = NOW()")
    query = (
        f"UPDATE links SET {', '.join(assignments)} "
        f"WHERE id = $1 AND status <> '{LinkStatus.ARCHIVED.value}'"
    )
    return query, params


class LinkRepository:
    """Reads and scheduler writes against the links table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @property
    def database(self) -> Database:
        return self._db

    async def create_table(self) -> None:
        """Create the links table and scheduler columns (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Links table ensured")

    async def get_by_id(self, link_id: UUID) -> Link | None:
        """Fetch a single link."""
        try:
            row = await self._db.fetchrow(
                f"SELECT {LINK_COLUMNS} FROM links WHERE id = $1", link_id
            )
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to load link {link_id}: {e}", "get_by_id") from e
        return record_to_link(row) if row else None

    async def apply_outcome(
        self,
        link_id: UUID,
        status: LinkStatus,
        consecutive_failures: int,
        last_checked: datetime,
        refreshed_at: datetime | None = None,
        delta: MetadataDelta | None = None,
    ) -> bool:
        """Write one refresh outcome atomically.

        Returns True if a row was updated, False if the link vanished or was
        archived in the meantime.

        Raises:
            StorageError: If the write could not be applied.
        """
        query, params = build_apply_outcome_query(
            link_id,
            status,
            consecutive_failures,
            last_checked,
            refreshed_at=refreshed_at,
            delta=delta,
        )
        try:
            result = await self._db.execute(query, *params)
        except STORAGE_ERRORS as e:
            raise StorageError(
                f"Failed to apply outcome for link {link_id}: {e}", "apply_outcome"
            ) from e

        updated = result.endswith(" 1")
        if not updated:
            logger.debug("Outcome for link %s matched no writable row", link_id)
        return updated

    async def count_by_status(self) -> StatusCounts:
        """Count links grouped by status."""
        try:
            rows = await self._db.fetch(
                "SELECT status, COUNT(*) AS n FROM links GROUP BY status"
            )
        except STORAGE_ERRORS as e:
            raise StorageError(f"Failed to count links: {e}", "count_by_status") from e
        return StatusCounts(counts={r["status"]: r["n"] for r in rows})
