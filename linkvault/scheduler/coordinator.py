"""
Batch coordinator - one scheduler cycle.

Selects the due batch, refreshes links through a semaphore-bounded pool of
tasks and writes each outcome as soon as its worker finishes. A stop event
is checked before every dispatch: once set, no new worker starts, and the
workers already running finish and have their writes applied.
"""

import asyncio
import time
from datetime import datetime, timezone

import structlog

from linkvault.errors import StorageError
from linkvault.links.repository import LinkRepository
from linkvault.links.schemas import Link, LinkStatus
from linkvault.observability.metrics import get_metrics
from linkvault.observability.tracing import get_tracer, traced
from linkvault.scheduler.config import SchedulerConfig
from linkvault.scheduler.schemas import (
    LinkUpdate,
    Outcome,
    RunReport,
    Success,
    TransientFailure,
)
from linkvault.scheduler.selector import LinkSelector
from linkvault.scheduler.transitions import plan_update
from linkvault.scheduler.worker import RefreshWorker

logger = structlog.get_logger(__name__)
_tracer = get_tracer("linkvault.scheduler")


class BatchCoordinator:
    """
    Runs one refresh cycle over the due batch.

    Usage:
        coordinator = BatchCoordinator(selector, worker, repository, config)
        report = await coordinator.run_once(stop_event)
    """

    def __init__(
        self,
        selector: LinkSelector,
        worker: RefreshWorker,
        repository: LinkRepository,
        config: SchedulerConfig,
    ):
        self._selector = selector
        self._worker = worker
        self._repository = repository
        self._config = config
        self._metrics = get_metrics()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Workers currently executing."""
        return self._in_flight

    async def run_once(self, stop_event: asyncio.Event | None = None) -> RunReport:
        """
        Refresh one batch of due links.

        Args:
            stop_event: Checked before each dispatch; nothing new starts once set

        Returns:
            RunReport for the cycle

        Raises:
            StorageError: If the due batch cannot be selected
        """
        report = RunReport(started_at=datetime.now(timezone.utc))
        start_time = time.monotonic()

        with traced(
            _tracer,
            "refresh_cycle",
            {
                "scheduler.batch_size": self._config.batch_size,
                "scheduler.max_concurrency": self._config.max_concurrency,
            },
        ) as span:
            links = await self._selector.select_due(self._config.batch_size)
            span.set_attribute("scheduler.links_selected", len(links))

            if not links:
                logger.info("No links due for refresh")

            semaphore = asyncio.Semaphore(self._config.max_concurrency)
            tasks: list[asyncio.Task] = []

            for link in links:
                await semaphore.acquire()
                if stop_event is not None and stop_event.is_set():
                    semaphore.release()
                    report.interrupted = True
                    logger.info(
                        "Stop requested, leaving remaining links for the next run",
                        dispatched=len(tasks),
                        remaining=len(links) - len(tasks),
                    )
                    break

                report.links_attempted += 1
                tasks.append(
                    asyncio.create_task(
                        self._process(link, semaphore, report),
                        name=f"refresh-{link.id}",
                    )
                )

            # Writes already in progress are always allowed to complete
            if tasks:
                await asyncio.gather(*tasks)

        report.duration_seconds = time.monotonic() - start_time
        logger.info("Refresh cycle complete", **report.to_dict())
        return report

    async def _process(
        self,
        link: Link,
        semaphore: asyncio.Semaphore,
        report: RunReport,
    ) -> None:
        """Refresh one link and apply its outcome. Holds one pool permit."""
        try:
            outcome = await self._refresh_bounded(link)
            try:
                update = await self.write_outcome(link, outcome)
            except StorageError as e:
                report.write_errors += 1
                self._metrics.record_write_error()
                logger.error(
                    "Failed to write refresh outcome",
                    link_id=str(link.id),
                    error=str(e),
                )
                return
            except Exception:
                report.write_errors += 1
                self._metrics.record_write_error()
                logger.exception("Unexpected error writing refresh outcome", link_id=str(link.id))
                return

            if update is None:
                return
            if isinstance(outcome, Success):
                report.links_succeeded += 1
            else:
                report.links_failed += 1
            self._count_transition(update, report)
        finally:
            semaphore.release()

    async def _refresh_bounded(self, link: Link) -> Outcome:
        self._in_flight += 1
        self._metrics.set_workers_in_flight(self._in_flight)
        try:
            async with asyncio.timeout(self._config.worker_timeout_seconds):
                return await self._worker.refresh(link)
        except TimeoutError:
            logger.warning(
                "Link refresh timed out",
                link_id=str(link.id),
                timeout_seconds=self._config.worker_timeout_seconds,
            )
            return TransientFailure(
                f"refresh exceeded {self._config.worker_timeout_seconds}s"
            )
        except Exception as e:
            logger.exception("Unexpected error refreshing link", link_id=str(link.id))
            return TransientFailure(f"unexpected error: {type(e).__name__}: {e}")
        finally:
            self._in_flight -= 1
            self._metrics.set_workers_in_flight(self._in_flight)

    async def refresh_one(self, link: Link) -> tuple[Outcome, LinkUpdate | None]:
        """Refresh a single link outside a batch and write its outcome.

        Raises:
            StorageError: If the write could not be applied
        """
        outcome = await self._refresh_bounded(link)
        update = await self.write_outcome(link, outcome)
        return outcome, update

    async def write_outcome(self, link: Link, outcome: Outcome) -> LinkUpdate | None:
        """
        Turn an outcome into a LinkUpdate and write it.

        Returns:
            The applied update, or None if the link was deleted or archived
            after selection

        Raises:
            StorageError: If the write could not be applied
        """
        update = plan_update(
            link,
            outcome,
            failure_threshold=self._config.failure_threshold,
            now=datetime.now(timezone.utc),
        )
        applied = await self._repository.apply_outcome(
            link.id,
            update.status,
            update.consecutive_failures,
            update.last_checked,
            refreshed_at=update.refreshed_at,
            delta=update.delta,
        )
        if not applied:
            logger.info("Link no longer refreshable, outcome discarded", link_id=str(link.id))
            return None

        if update.status_changed:
            self._metrics.record_transition(update.status.value)
            logger.info(
                "Link status changed",
                link_id=str(link.id),
                url=link.url,
                from_status=update.previous_status.value,
                to_status=update.status.value,
                consecutive_failures=update.consecutive_failures,
            )
        return update

    @staticmethod
    def _count_transition(update: LinkUpdate, report: RunReport) -> None:
        if not update.status_changed:
            return
        if update.status is LinkStatus.INACCESSIBLE:
            report.links_transitioned_to_inaccessible += 1
        elif update.status is LinkStatus.REPO_UNAVAILABLE:
            report.links_transitioned_to_repo_unavailable += 1
        elif update.status is LinkStatus.ACTIVE:
            report.links_recovered += 1
