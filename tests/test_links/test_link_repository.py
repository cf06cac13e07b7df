"""Tests for LinkRepository with mocked Database."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import asyncpg
import pytest

from linkvault.errors import StorageError
from linkvault.links.repository import (
    LinkRepository,
    build_apply_outcome_query,
    record_to_link,
)
from linkvault.links.schemas import LinkStatus, MetadataDelta, StatusCounts

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def repo(mock_db):
    return LinkRepository(mock_db)


def _make_db_row(**overrides):
    """Create a mock asyncpg Record as a dict."""
    row = {
        "id": uuid.UUID("00000000-0000-0000-0000-000000000001"),
        "url": "https://github.com/encode/httpx",
        "domain": "github.com",
        "path": "/encode/httpx",
        "title": "httpx",
        "description": None,
        "logo": None,
        "is_github_repo": True,
        "status": "inaccessible",
        "github_stars": 12000,
        "github_archived": False,
        "github_last_commit": None,
        "last_checked": NOW,
        "refreshed_at": None,
        "consecutive_failures": None,
    }
    row.update(overrides)
    return row


class TestRecordToLink:
    def test_basic_conversion(self):
        link = record_to_link(_make_db_row())

        assert link.status is LinkStatus.INACCESSIBLE
        assert link.is_github_repo is True
        assert link.github_stars == 12000
        assert link.consecutive_failures == 0


class TestMetadataDelta:
    def test_empty(self):
        assert MetadataDelta().is_empty
        assert MetadataDelta().as_columns() == {}

    def test_false_is_a_change(self):
        """github_archived=False is a value, not 'unchanged'."""
        delta = MetadataDelta(github_archived=False, github_stars=0)

        assert not delta.is_empty
        assert delta.changed_fields() == ["github_stars", "github_archived"]


class TestStatusCounts:
    def test_get_and_total(self):
        counts = StatusCounts(counts={"active": 7, "inaccessible": 2})

        assert counts.get(LinkStatus.ACTIVE) == 7
        assert counts.get(LinkStatus.REPO_UNAVAILABLE) == 0
        assert counts.total == 9


class TestBuildApplyOutcomeQuery:
    """The UPDATE carries every field of one outcome."""

    def test_failure_write(self):
        link_id = uuid.uuid4()
        query, params = build_apply_outcome_query(link_id, LinkStatus.ACTIVE, 2, NOW)

        assert params == [link_id, "active", 2, NOW]
        assert "refreshed_at" not in query
        assert "status <> 'archived'" in query
        assert query.startswith("UPDATE links SET status = $2")

    def test_success_write_with_delta(self):
        link_id = uuid.uuid4()
        delta = MetadataDelta(title="New", github_stars=5)

        query, params = build_apply_outcome_query(
            link_id, LinkStatus.ACTIVE, 0, NOW, refreshed_at=NOW, delta=delta
        )

        assert "refreshed_at = $5" in query
        assert "title = $6" in query
        assert "github_stars = $7" in query
        assert params == [link_id, "active", 0, NOW, NOW, "New", 5]


class TestApplyOutcome:
    @pytest.mark.asyncio
    async def test_row_updated(self, repo, mock_db):
        mock_db.execute.return_value = "UPDATE 1"

        assert await repo.apply_outcome(uuid.uuid4(), LinkStatus.ACTIVE, 0, NOW) is True
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_archived_or_missing(self, repo, mock_db):
        mock_db.execute.return_value = "UPDATE 0"

        assert await repo.apply_outcome(uuid.uuid4(), LinkStatus.INACCESSIBLE, 3, NOW) is False

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, repo, mock_db):
        mock_db.execute.side_effect = asyncpg.PostgresError("boom")

        with pytest.raises(StorageError) as exc_info:
            await repo.apply_outcome(uuid.uuid4(), LinkStatus.ACTIVE, 0, NOW)

        assert exc_info.value.operation == "apply_outcome"

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self, repo, mock_db):
        mock_db.execute.side_effect = ConnectionRefusedError("refused")

        with pytest.raises(StorageError):
            await repo.apply_outcome(uuid.uuid4(), LinkStatus.ACTIVE, 0, NOW)


class TestReads:
    @pytest.mark.asyncio
    async def test_get_by_id(self, repo, mock_db):
        mock_db.fetchrow.return_value = _make_db_row()

        link = await repo.get_by_id(uuid.UUID("00000000-0000-0000-0000-000000000001"))

        assert link.url == "https://github.com/encode/httpx"

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, repo, mock_db):
        mock_db.fetchrow.return_value = None
        assert await repo.get_by_id(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_count_by_status(self, repo, mock_db):
        mock_db.fetch.return_value = [
            {"status": "active", "n": 10},
            {"status": "repo_unavailable", "n": 1},
        ]

        counts = await repo.count_by_status()

        assert counts.total == 11
        assert counts.get(LinkStatus.REPO_UNAVAILABLE) == 1

    @pytest.mark.asyncio
    async def test_create_table(self, repo, mock_db):
        await repo.create_table()

        sql = mock_db.execute.await_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS links" in sql
        assert "consecutive_failures" in sql
