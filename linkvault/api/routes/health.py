"""
Health check endpoints for the service, the scheduler and the database.
"""

import time

import structlog
from fastapi import APIRouter, Depends, Response, status

from linkvault import __version__
from linkvault.api.dependencies import get_database, get_scheduler_status
from linkvault.api.models import (
    ComponentHealth,
    DatabaseHealthResponse,
    HealthResponse,
    SchedulerHealthResponse,
)
from linkvault.errors import StorageError
from linkvault.links.repository import LinkRepository
from linkvault.scheduler.schemas import SchedulerStatus
from linkvault.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


def _scheduler_component(snapshot: SchedulerStatus) -> ComponentHealth:
    details = {"state": snapshot.state.value, "cycles_failed": snapshot.cycles_failed}
    if snapshot.last_report is not None and snapshot.last_report.error:
        details["last_error"] = snapshot.last_report.error
    return ComponentHealth(
        status="healthy" if snapshot.is_running else "unhealthy",
        details=details,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Liveness plus a summary of the database and scheduler.",
)
async def health_check(
    db: Database = Depends(get_database),
    snapshot: SchedulerStatus = Depends(get_scheduler_status),
) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - degraded: scheduler loop is not running
    - healthy: all components operational
    """
    db_health = await _check_database(db)
    scheduler_health = _scheduler_component(snapshot)

    if db_health.status == "unhealthy":
        overall = "unhealthy"
    elif scheduler_health.status == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        components={"database": db_health, "scheduler": scheduler_health},
    )


@router.get(
    "/health/scheduler",
    response_model=SchedulerHealthResponse,
    summary="Scheduler status",
    description="Latest run report and loop state. Returns 503 when the loop is not running.",
)
async def scheduler_health(
    response: Response,
    snapshot: SchedulerStatus = Depends(get_scheduler_status),
) -> SchedulerHealthResponse:
    if not snapshot.is_running:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return SchedulerHealthResponse.from_status(snapshot)


@router.get(
    "/health/database",
    response_model=DatabaseHealthResponse,
    summary="Database health",
    description="Connectivity check and link counts per status. Returns 503 when unreachable.",
)
async def database_health(
    response: Response,
    db: Database = Depends(get_database),
) -> DatabaseHealthResponse:
    component = await _check_database(db)
    if component.status != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return DatabaseHealthResponse(
            status="unhealthy",
            latency_ms=component.latency_ms or 0.0,
            error=component.details.get("error"),
        )

    link_counts: dict[str, int] = {}
    try:
        counts = await LinkRepository(db).count_by_status()
        link_counts = dict(counts.counts)
    except StorageError as e:
        logger.warning("Failed to count links", error=str(e))

    return DatabaseHealthResponse(
        status="healthy",
        latency_ms=component.latency_ms or 0.0,
        link_counts=link_counts,
    )
