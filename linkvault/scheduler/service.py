"""
Refresh scheduler service - the long-running loop around the batch coordinator.

Lifecycle: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.

Features:
- Jittered interval between cycles, optional immediate first cycle
- Graceful shutdown: an idle loop exits at once, a running cycle stops
  dispatching and drains its in-flight workers before start() returns
- Cycle-level failures are recorded as failed RunReports, never fatal
- Manual refresh of a single link through the same transition rules
- Status snapshots for the health endpoints
"""

import asyncio
import random
import time
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog

from linkvault.errors import LinkNotFoundError, LinkNotRefreshableError
from linkvault.github.client import GitHubClient
from linkvault.links.repository import LinkRepository
from linkvault.links.schemas import LinkStatus
from linkvault.observability.logging import bind_context, clear_context
from linkvault.observability.metrics import get_metrics
from linkvault.scheduler.clock import JitteredClock
from linkvault.scheduler.config import SchedulerConfig, load_scheduler_config
from linkvault.scheduler.coordinator import BatchCoordinator
from linkvault.scheduler.schemas import (
    ManualRefresh,
    RunReport,
    SchedulerState,
    SchedulerStatus,
)
from linkvault.scheduler.selector import LinkSelector
from linkvault.scheduler.state import SchedulerStateStore, get_state_store
from linkvault.scheduler.worker import RefreshWorker
from linkvault.scraper.client import PageScraper
from linkvault.storage.database import Database

logger = structlog.get_logger(__name__)


class RefreshScheduler:
    """
    Background service that keeps link metadata fresh.

    The database is connected on demand but never closed here; the caller
    owns its lifecycle. Scraper and GitHub clients are opened per start()
    unless injected.

    Usage:
        scheduler = RefreshScheduler(database)
        await scheduler.start()  # Runs until stop()
    """

    def __init__(
        self,
        database: Database | None = None,
        config: SchedulerConfig | None = None,
        scraper: PageScraper | None = None,
        github: GitHubClient | None = None,
        coordinator: BatchCoordinator | None = None,
        repository: LinkRepository | None = None,
        state_store: SchedulerStateStore | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            database: Shared database pool (or create from settings)
            config: Scheduler configuration (or load from environment)
            scraper: Page scraper (or open one per run)
            github: GitHub client (or open one per run)
            coordinator: Prebuilt coordinator, bypassing collaborator setup
            repository: Link repository (default: bound to the database)
            state_store: Health state (default: process-wide store)
            rng: Jitter random source
        """
        self._config = config or load_scheduler_config()
        self._database = database or Database()
        self._scraper = scraper
        self._github = github
        self._injected_coordinator = coordinator
        self._repository = repository or LinkRepository(self._database)
        self._state = state_store or get_state_store()
        self._clock = JitteredClock.from_config(
            self._config, rng=rng, on_schedule=self._state.set_next_run
        )
        self._metrics = get_metrics()

        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._coordinator: BatchCoordinator | None = None

        logger.info(
            "Refresh scheduler initialized",
            interval_seconds=self._config.interval_seconds,
            jitter_percent=self._config.jitter_percent,
            batch_size=self._config.batch_size,
            max_concurrency=self._config.max_concurrency,
            failure_threshold=self._config.failure_threshold,
        )

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._state.snapshot().is_running

    def status(self) -> SchedulerStatus:
        """Snapshot of the scheduler state for health reporting."""
        return self._state.snapshot()

    async def start(self) -> None:
        """
        Run the scheduler loop.

        Returns only after stop() and after any in-flight cycle has drained.
        """
        if self._state.snapshot().state is not SchedulerState.STOPPED:
            raise RuntimeError("Refresh scheduler is already running")

        self._state.set_state(SchedulerState.STARTING, started_at=datetime.now(timezone.utc))
        logger.info("Starting refresh scheduler", run_on_start=self._config.run_on_start)

        try:
            async with self._session() as coordinator:
                self._coordinator = coordinator
                if not self._stop_event.is_set():
                    self._state.set_state(SchedulerState.RUNNING)
                    self._metrics.set_scheduler_running(True)

                async for _ in self._clock.ticks(
                    self._stop_event, immediate=self._config.run_on_start
                ):
                    await self._run_cycle(coordinator)

                self._state.set_state(SchedulerState.STOPPING)
        except asyncio.CancelledError:
            logger.info("Refresh scheduler cancelled")
        except Exception as e:
            logger.error("Refresh scheduler error", error=str(e))
            raise
        finally:
            self._coordinator = None
            self._stop_event.clear()
            self._state.set_state(SchedulerState.STOPPED)
            self._metrics.set_scheduler_running(False)
            logger.info("Refresh scheduler stopped")

    async def stop(self) -> None:
        """
        Request a graceful stop.

        An idle loop exits immediately; a running cycle finishes the workers
        it already dispatched and starts no more.
        """
        logger.info("Stopping refresh scheduler")
        if self._state.snapshot().state in (SchedulerState.STARTING, SchedulerState.RUNNING):
            self._state.set_state(SchedulerState.STOPPING)
        self._stop_event.set()

    async def run_once(self) -> RunReport:
        """Run a single cycle outside the loop and publish its report."""
        async with self._session() as coordinator:
            return await self._run_cycle(coordinator)

    async def refresh_link(self, link_id: UUID) -> ManualRefresh:
        """
        Refresh one link immediately.

        Any non-archived link can be refreshed, including repo_unavailable
        links the loop does not reselect.

        Raises:
            LinkNotFoundError: If the link does not exist
            LinkNotRefreshableError: If the link is archived
            StorageError: If the link cannot be read or the outcome written
        """
        await self._database.connect()

        # Serialized with cycles so the link is read after any batch write
        async with self._cycle_lock:
            link = await self._repository.get_by_id(link_id)
            if link is None:
                raise LinkNotFoundError(link_id)
            if link.status is LinkStatus.ARCHIVED:
                raise LinkNotRefreshableError(link_id, link.status.value)

            async with self._session() as coordinator:
                outcome, update = await coordinator.refresh_one(link)

        logger.info(
            "Manual refresh complete",
            link_id=str(link_id),
            status=update.status.value if update else None,
        )
        return ManualRefresh(link_id=link_id, outcome=outcome, update=update)

    async def _run_cycle(self, coordinator: BatchCoordinator) -> RunReport:
        """Run one cycle, turning cycle-level errors into a failed report."""
        async with self._cycle_lock:
            started_at = datetime.now(timezone.utc)
            start_time = time.monotonic()
            bind_context(cycle_id=uuid4().hex[:12])
            try:
                report = await coordinator.run_once(self._stop_event)
            except Exception as e:
                logger.exception("Refresh cycle failed")
                report = RunReport(
                    started_at=started_at,
                    duration_seconds=time.monotonic() - start_time,
                    error=str(e),
                )
            finally:
                clear_context()

            if report.failed:
                result = "failed"
            elif report.interrupted:
                result = "interrupted"
            else:
                result = "ok"
            self._metrics.record_cycle(result, report.duration_seconds, time.time())
            self._state.publish_report(report)
            return report

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[BatchCoordinator]:
        """Yield a coordinator, reusing the loop's one while it is running."""
        if self._injected_coordinator is not None:
            yield self._injected_coordinator
            return
        if self._coordinator is not None:
            yield self._coordinator
            return

        async with AsyncExitStack() as stack:
            await self._database.connect()
            scraper = self._scraper
            if scraper is None:
                scraper = await stack.enter_async_context(PageScraper())
            github = self._github
            if github is None:
                github = await stack.enter_async_context(GitHubClient())

            worker = RefreshWorker(
                scraper,
                github,
                request_timeout=self._config.request_timeout_seconds,
            )
            yield BatchCoordinator(
                selector=LinkSelector(self._database, self._config),
                worker=worker,
                repository=self._repository,
                config=self._config,
            )
