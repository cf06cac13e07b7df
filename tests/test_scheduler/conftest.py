"""Pytest fixtures for scheduler tests.

InMemoryLinkStore stands in for both the selector and the repository so
coordinator tests can observe writes the way storage would apply them.
"""

import asyncio
import dataclasses
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from linkvault.errors import StorageError
from linkvault.links.schemas import Link, LinkStatus, MetadataDelta
from linkvault.scheduler.config import SchedulerConfig
from linkvault.scheduler.schemas import Outcome, Success
from linkvault.scheduler.state import SchedulerStateStore


def make_link(**kwargs) -> Link:
    """Create a Link with sensible defaults."""
    defaults = dict(
        id=uuid.uuid4(),
        url="https://example.com/article",
        domain="example.com",
        path="/article",
        status=LinkStatus.ACTIVE,
        title="Example",
    )
    defaults.update(kwargs)
    return Link(**defaults)


class InMemoryLinkStore:
    """Selector + repository double with the same semantics as the SQL."""

    def __init__(self, links: list[Link], interval_seconds: float = 3600):
        self.links: dict[uuid.UUID, Link] = {link.id: link for link in links}
        self.interval_seconds = interval_seconds
        self.include_repo_unavailable = False
        self.writes: list[uuid.UUID] = []
        self.fail_writes_for: set[uuid.UUID] = set()
        self.select_error: Exception | None = None

    async def select_due(self, batch_size: int) -> list[Link]:
        if self.select_error is not None:
            raise self.select_error
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self.interval_seconds)

        def is_due(link: Link) -> bool:
            refreshable = link.status in (LinkStatus.ACTIVE, LinkStatus.INACCESSIBLE) or (
                self.include_repo_unavailable
                and link.status is LinkStatus.REPO_UNAVAILABLE
                and link.is_github_repo
            )
            stale = link.last_checked is None or link.last_checked < cutoff
            return refreshable and stale

        due = [dataclasses.replace(link) for link in self.links.values() if is_due(link)]
        due.sort(
            key=lambda l: (
                l.last_checked is not None,
                l.last_checked or datetime.min.replace(tzinfo=timezone.utc),
                str(l.id),
            )
        )
        return due[:batch_size]

    async def get_by_id(self, link_id):
        link = self.links.get(link_id)
        return dataclasses.replace(link) if link else None

    async def apply_outcome(
        self,
        link_id,
        status,
        consecutive_failures,
        last_checked,
        refreshed_at=None,
        delta: MetadataDelta | None = None,
    ) -> bool:
        if link_id in self.fail_writes_for:
            raise StorageError("connection reset", "apply_outcome")
        link = self.links.get(link_id)
        if link is None or link.status is LinkStatus.ARCHIVED:
            return False

        changes = {
            "status": status,
            "consecutive_failures": consecutive_failures,
            "last_checked": last_checked,
        }
        if refreshed_at is not None:
            changes["refreshed_at"] = refreshed_at
        if delta is not None:
            changes.update(delta.as_columns())
        self.links[link_id] = dataclasses.replace(link, **changes)
        self.writes.append(link_id)
        return True

    def age(self, seconds: float) -> None:
        """Move every last_checked back in time so links become due again."""
        for link_id, link in self.links.items():
            if link.last_checked is not None:
                self.links[link_id] = dataclasses.replace(
                    link, last_checked=link.last_checked - timedelta(seconds=seconds)
                )


class ScriptedWorker:
    """Worker double returning scripted outcomes and tracking concurrency."""

    def __init__(self, default: Outcome | None = None, delay: float = 0.0):
        self.default = default or Success()
        self.delay = delay
        self.scripts: dict[uuid.UUID, list[Outcome]] = {}
        self.calls: list[uuid.UUID] = []
        self.active = 0
        self.max_active = 0
        self.on_enter = None

    def script(self, link_id, *outcomes: Outcome) -> None:
        self.scripts.setdefault(link_id, []).extend(outcomes)

    async def refresh(self, link: Link) -> Outcome:
        self.calls.append(link.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.on_enter is not None:
                self.on_enter(self)
            await asyncio.sleep(self.delay)
            queue = self.scripts.get(link.id)
            if queue:
                return queue.pop(0)
            return self.default
        finally:
            self.active -= 1


@pytest.fixture
def link_factory():
    return make_link


@pytest.fixture
def store_factory():
    return InMemoryLinkStore


@pytest.fixture
def worker_factory():
    return ScriptedWorker


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(
        interval_seconds=3600,
        jitter_percent=0,
        min_delay_seconds=0,
        batch_size=50,
        max_concurrency=5,
        failure_threshold=3,
        worker_timeout_seconds=5,
    )


@pytest.fixture
def state_store() -> SchedulerStateStore:
    return SchedulerStateStore()
