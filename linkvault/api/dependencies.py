"""
Dependency injection for FastAPI endpoints.

The API process owns one Database pool and one RefreshScheduler; the
scheduler loop runs as a background task for the lifetime of the app.
"""

import asyncio

import structlog

from linkvault.scheduler.config import load_scheduler_config
from linkvault.scheduler.schemas import SchedulerStatus
from linkvault.scheduler.service import RefreshScheduler
from linkvault.scheduler.state import get_state_store
from linkvault.storage.database import Database

logger = structlog.get_logger(__name__)

# Global instances (initialized on first use)
_database: Database | None = None
_scheduler: RefreshScheduler | None = None
_scheduler_task: asyncio.Task | None = None


async def get_database() -> Database:
    """Get the shared database, connecting on first use."""
    global _database

    if _database is None:
        _database = Database()
        await _database.connect()

    return _database


async def get_scheduler() -> RefreshScheduler:
    """Get the scheduler instance bound to the shared database."""
    global _scheduler

    if _scheduler is None:
        _scheduler = RefreshScheduler(database=await get_database())

    return _scheduler


def get_scheduler_status() -> SchedulerStatus:
    """Current scheduler snapshot (readable without a scheduler instance)."""
    return get_state_store().snapshot()


async def start_scheduler() -> bool:
    """
    Start the scheduler loop in the background if enabled.

    Returns:
        True if the loop was started
    """
    global _scheduler_task

    if not load_scheduler_config().enabled:
        logger.info("Refresh scheduler disabled")
        return False

    if _scheduler_task is not None and not _scheduler_task.done():
        return True

    scheduler = await get_scheduler()
    _scheduler_task = asyncio.create_task(scheduler.start(), name="refresh-scheduler")
    return True


async def stop_scheduler() -> None:
    """Stop the scheduler and wait for the in-flight batch to drain."""
    global _scheduler_task

    if _scheduler is not None:
        await _scheduler.stop()
    if _scheduler_task is not None:
        try:
            await _scheduler_task
        except Exception as e:
            logger.error("Refresh scheduler exited with error", error=str(e))
        _scheduler_task = None


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _scheduler

    await stop_scheduler()
    _scheduler = None

    if _database is not None:
        await _database.close()
        _database = None
