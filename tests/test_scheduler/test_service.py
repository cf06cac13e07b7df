"""Tests for RefreshScheduler lifecycle, cycle error handling and manual refresh."""

import asyncio
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from linkvault.errors import LinkNotFoundError, LinkNotRefreshableError, StorageError
from linkvault.links.schemas import LinkStatus
from linkvault.scheduler.config import SchedulerConfig
from linkvault.scheduler.coordinator import BatchCoordinator
from linkvault.scheduler.schemas import RunReport, SchedulerState, Success, TransientFailure
from linkvault.scheduler.service import RefreshScheduler
from linkvault.scheduler.state import SchedulerStateStore


def _report(**kwargs) -> RunReport:
    return RunReport(started_at=datetime.now(timezone.utc), **kwargs)


def _mock_coordinator(side_effect=None) -> MagicMock:
    coordinator = MagicMock()
    coordinator.run_once = AsyncMock(side_effect=side_effect, return_value=_report())
    coordinator.refresh_one = AsyncMock()
    return coordinator


def _scheduler(coordinator, state_store, database=None, **config) -> RefreshScheduler:
    defaults = dict(interval_seconds=0.01, jitter_percent=0, min_delay_seconds=0)
    defaults.update(config)
    return RefreshScheduler(
        database=database or AsyncMock(),
        config=SchedulerConfig(**defaults),
        coordinator=coordinator,
        state_store=state_store,
    )


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestLifecycle:
    """State machine transitions and graceful stop."""

    @pytest.mark.asyncio
    async def test_start_runs_cycles_until_stopped(self, state_store):
        coordinator = _mock_coordinator()
        scheduler = _scheduler(coordinator, state_store)

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: coordinator.run_once.await_count >= 2)

        assert scheduler.status().state is SchedulerState.RUNNING
        assert scheduler.is_running

        await scheduler.stop()
        await asyncio.wait_for(task, 1.0)

        snapshot = scheduler.status()
        assert snapshot.state is SchedulerState.STOPPED
        assert snapshot.cycles_completed >= 2
        assert snapshot.next_run_at is None
        assert snapshot.started_at is not None

    @pytest.mark.asyncio
    async def test_idle_stop_exits_immediately(self, state_store):
        """Stopping during a one-hour wait returns without waiting it out."""
        coordinator = _mock_coordinator()
        scheduler = _scheduler(coordinator, state_store, interval_seconds=3600)

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: scheduler.status().next_run_at is not None)

        await scheduler.stop()
        await asyncio.wait_for(task, 1.0)

        coordinator.run_once.assert_not_awaited()
        assert scheduler.status().state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_run_on_start(self, state_store):
        coordinator = _mock_coordinator()
        scheduler = _scheduler(
            coordinator, state_store, interval_seconds=3600, run_on_start=True
        )

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: coordinator.run_once.await_count == 1)
        await scheduler.stop()
        await asyncio.wait_for(task, 1.0)

        assert state_store.snapshot().cycles_completed == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_cycle(self, state_store):
        """start() only returns after the running cycle drains."""
        release = asyncio.Event()
        finished = []

        async def slow_cycle(stop_event):
            await release.wait()
            finished.append(stop_event.is_set())
            return _report(interrupted=stop_event.is_set())

        coordinator = _mock_coordinator(side_effect=slow_cycle)
        scheduler = _scheduler(coordinator, state_store, interval_seconds=3600, run_on_start=True)

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: coordinator.run_once.await_count == 1)

        await scheduler.stop()
        assert scheduler.status().state is SchedulerState.STOPPING
        assert not task.done()

        release.set()
        await asyncio.wait_for(task, 1.0)

        assert finished == [True]
        assert state_store.snapshot().last_report.interrupted is True
        assert state_store.snapshot().state is SchedulerState.STOPPED

    @pytest.mark.asyncio
    async def test_double_start_rejected(self, state_store):
        scheduler = _scheduler(_mock_coordinator(), state_store, interval_seconds=3600)

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: scheduler.is_running)

        with pytest.raises(RuntimeError):
            await scheduler.start()

        await scheduler.stop()
        await asyncio.wait_for(task, 1.0)

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, state_store):
        coordinator = _mock_coordinator()
        scheduler = _scheduler(coordinator, state_store, interval_seconds=3600)

        for _ in range(2):
            task = asyncio.create_task(scheduler.start())
            await _wait_for(lambda: scheduler.is_running)
            await scheduler.stop()
            await asyncio.wait_for(task, 1.0)

        assert scheduler.status().state is SchedulerState.STOPPED


class TestCycleErrors:
    """Cycle-level failures are recorded, never fatal."""

    @pytest.mark.asyncio
    async def test_storage_outage_recorded_and_loop_continues(self, state_store):
        calls = 0

        async def flaky(stop_event):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise StorageError("connection refused", "select_due")
            return _report(links_attempted=1, links_succeeded=1)

        coordinator = _mock_coordinator(side_effect=flaky)
        scheduler = _scheduler(coordinator, state_store)

        task = asyncio.create_task(scheduler.start())
        await _wait_for(lambda: calls >= 2)
        await scheduler.stop()
        await asyncio.wait_for(task, 1.0)

        snapshot = state_store.snapshot()
        assert snapshot.cycles_failed == 1
        assert snapshot.cycles_completed >= 2
        assert snapshot.last_report.failed is False

    @pytest.mark.asyncio
    async def test_run_once_returns_failed_report(self, state_store):
        coordinator = _mock_coordinator(side_effect=StorageError("db down", "select_due"))
        scheduler = _scheduler(coordinator, state_store)

        report = await scheduler.run_once()

        assert report.failed is True
        assert "db down" in report.error
        assert state_store.snapshot().last_report.error == report.error

    @pytest.mark.asyncio
    async def test_run_once_publishes(self, state_store):
        coordinator = _mock_coordinator()
        coordinator.run_once.return_value = _report(links_attempted=4)
        scheduler = _scheduler(coordinator, state_store)

        report = await scheduler.run_once()

        assert report.links_attempted == 4
        assert state_store.snapshot().cycles_completed == 1
        assert state_store.snapshot().state is SchedulerState.STOPPED


class TestManualRefresh:
    """refresh_link() guards and result."""

    def _database(self, row):
        db = AsyncMock()
        db.fetchrow = AsyncMock(return_value=row)
        return db

    def _row(self, status: str) -> dict:
        return {
            "id": uuid.uuid4(),
            "url": "https://github.com/o/r",
            "domain": "github.com",
            "path": "/o/r",
            "title": "r",
            "description": None,
            "logo": None,
            "is_github_repo": True,
            "status": status,
            "github_stars": 1,
            "github_archived": False,
            "github_last_commit": None,
            "last_checked": None,
            "refreshed_at": None,
            "consecutive_failures": 3,
        }

    @pytest.mark.asyncio
    async def test_missing_link(self, state_store):
        scheduler = _scheduler(_mock_coordinator(), state_store, database=self._database(None))

        with pytest.raises(LinkNotFoundError):
            await scheduler.refresh_link(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_archived_link_refused(self, state_store):
        row = self._row("archived")
        coordinator = _mock_coordinator()
        scheduler = _scheduler(coordinator, state_store, database=self._database(row))

        with pytest.raises(LinkNotRefreshableError):
            await scheduler.refresh_link(row["id"])
        coordinator.refresh_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_repo_unavailable_link_refreshed(self, state_store):
        """Manual refresh works even though the loop does not reselect it."""
        row = self._row("repo_unavailable")
        coordinator = _mock_coordinator()
        update = MagicMock(status=LinkStatus.ACTIVE, consecutive_failures=0)
        coordinator.refresh_one.return_value = (Success(), update)
        scheduler = _scheduler(coordinator, state_store, database=self._database(row))

        result = await scheduler.refresh_link(row["id"])

        link = coordinator.refresh_one.await_args[0][0]
        assert link.status is LinkStatus.REPO_UNAVAILABLE
        assert result.applied is True
        assert result.to_dict()["status"] == "active"
        assert result.to_dict()["outcome"] == "success"


class TestRefreshOne:
    """BatchCoordinator.refresh_one applies the same transitions as a batch."""

    @pytest.mark.asyncio
    async def test_writes_outcome(self, link_factory, store_factory, worker_factory, scheduler_config):
        link = link_factory(status=LinkStatus.REPO_UNAVAILABLE, is_github_repo=True)
        store = store_factory([link])
        coordinator = BatchCoordinator(store, worker_factory(), store, scheduler_config)

        outcome, update = await coordinator.refresh_one(link)

        assert isinstance(outcome, Success)
        assert update.status is LinkStatus.ACTIVE
        assert store.links[link.id].status is LinkStatus.ACTIVE


class _RecordingStateStore(SchedulerStateStore):
    """State store that remembers every state it was set to."""

    def __init__(self) -> None:
        super().__init__()
        self.history: list[SchedulerState] = []

    def set_state(self, state, **kwargs) -> None:
        self.history.append(state)
        super().set_state(state, **kwargs)


class TestStopDuringStartup:
    @pytest.mark.asyncio
    async def test_stop_before_loop_never_reports_running(self):
        store = _RecordingStateStore()
        coordinator = _mock_coordinator()
        scheduler = _scheduler(coordinator, store, interval_seconds=3600)

        await scheduler.stop()
        await asyncio.wait_for(scheduler.start(), 1.0)

        assert SchedulerState.RUNNING not in store.history
        assert store.history[-1] is SchedulerState.STOPPED
        coordinator.run_once.assert_not_awaited()


class TestManualRefreshDuringCycle:
    """A manual refresh waits for the running cycle and sees its write."""

    @pytest.mark.asyncio
    async def test_failures_counted_once_per_attempt(
        self, link_factory, store_factory, worker_factory, state_store
    ):
        link = link_factory(consecutive_failures=0)
        store = store_factory([link])
        worker = worker_factory(default=TransientFailure("timed out"), delay=0.05)
        config = SchedulerConfig(
            interval_seconds=3600,
            jitter_percent=0,
            min_delay_seconds=0,
            failure_threshold=2,
        )
        coordinator = BatchCoordinator(store, worker, store, config)
        scheduler = RefreshScheduler(
            database=AsyncMock(),
            config=config,
            coordinator=coordinator,
            repository=store,
            state_store=state_store,
        )

        cycle = asyncio.create_task(scheduler.run_once())
        await _wait_for(lambda: worker.active == 1)

        result = await scheduler.refresh_link(link.id)
        await cycle

        assert len(worker.calls) == 2
        assert store.links[link.id].consecutive_failures == 2
        assert store.links[link.id].status is LinkStatus.INACCESSIBLE
        assert result.update.status is LinkStatus.INACCESSIBLE
