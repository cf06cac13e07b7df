"""
Response models for the linkvault API.
"""

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field

from linkvault.scheduler.schemas import RunReport, SchedulerStatus


class ComponentHealth(BaseModel):
    """Health of a single dependency."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict[str, Any] = Field(default_factory=dict, description="Extra diagnostics")


class HealthResponse(BaseModel):
    """Response model for the service health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    service: str = Field(default="linkvault", description="Service name")
    version: str = Field(..., description="Service version")
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-dependency health",
    )


class RunReportModel(BaseModel):
    """Statistics for one scheduler cycle."""

    started_at: dt.datetime
    duration_seconds: float
    links_attempted: int
    links_succeeded: int
    links_failed: int
    links_transitioned_to_inaccessible: int
    links_transitioned_to_repo_unavailable: int
    links_recovered: int
    write_errors: int
    interrupted: bool
    error: str | None = None

    @classmethod
    def from_report(cls, report: RunReport) -> "RunReportModel":
        return cls(**report.to_dict())


class SchedulerHealthResponse(BaseModel):
    """Scheduler status snapshot."""

    status: str = Field(..., description="healthy when the loop is running, else unhealthy")
    state: str = Field(..., description="stopped, starting, running or stopping")
    is_running: bool
    next_run_at: dt.datetime | None = Field(
        default=None,
        description="When the next cycle is due, if the loop is waiting",
    )
    started_at: dt.datetime | None = None
    cycles_completed: int = 0
    cycles_failed: int = 0
    last_report: RunReportModel | None = None

    @classmethod
    def from_status(cls, snapshot: SchedulerStatus) -> "SchedulerHealthResponse":
        return cls(
            status="healthy" if snapshot.is_running else "unhealthy",
            state=snapshot.state.value,
            is_running=snapshot.is_running,
            next_run_at=snapshot.next_run_at,
            started_at=snapshot.started_at,
            cycles_completed=snapshot.cycles_completed,
            cycles_failed=snapshot.cycles_failed,
            last_report=(
                RunReportModel.from_report(snapshot.last_report)
                if snapshot.last_report
                else None
            ),
        )


class DatabaseHealthResponse(BaseModel):
    """Database connectivity and link counts."""

    status: str = Field(..., description="healthy or unhealthy")
    latency_ms: float = Field(..., description="Round-trip latency in milliseconds")
    link_counts: dict[str, int] = Field(
        default_factory=dict,
        description="Number of links per status",
    )
    error: str | None = None


class ManualRefreshResponse(BaseModel):
    """Result of a manual link refresh."""

    link_id: str
    outcome: str = Field(..., description="success, transient_failure or permanent_failure")
    reason: str | None = Field(default=None, description="Failure reason, if any")
    applied: bool = Field(..., description="Whether the outcome was written")
    status: str | None = Field(default=None, description="Link status after the refresh")
    consecutive_failures: int | None = None
    changed_fields: list[str] = Field(default_factory=list)
