"""Schema definitions for refresh outcomes, run reports and scheduler state.

A refresh produces exactly one Outcome. The batch coordinator folds outcomes
into a RunReport; the scheduler publishes the report as part of an immutable
SchedulerStatus snapshot for health reporting.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union
from uuid import UUID

from linkvault.links.schemas import LinkStatus, MetadataDelta


class FailureSource(str, Enum):
    """Which collaborator a failure came from."""

    PAGE = "page"
    REPO = "repo"


@dataclass(frozen=True)
class Success:
    """Refresh completed; delta holds only the fields that changed."""

    delta: MetadataDelta = field(default_factory=MetadataDelta)


@dataclass(frozen=True)
class TransientFailure:
    """Retryable failure (timeout, connection, 5xx, rate limit)."""

    reason: str
    source: FailureSource = FailureSource.PAGE


@dataclass(frozen=True)
class PermanentFailure:
    """The page or repository definitively no longer exists."""

    reason: str
    source: FailureSource = FailureSource.PAGE


Outcome = Union[Success, TransientFailure, PermanentFailure]


def outcome_label(outcome: Outcome) -> str:
    """Metric/log label for an outcome."""
    if isinstance(outcome, Success):
        return "success"
    if isinstance(outcome, TransientFailure):
        return "transient_failure"
    return "permanent_failure"


@dataclass(frozen=True)
class LinkUpdate:
    """The write a single outcome turns into."""

    status: LinkStatus
    consecutive_failures: int
    last_checked: datetime
    refreshed_at: datetime | None = None
    delta: MetadataDelta | None = None
    previous_status: LinkStatus = LinkStatus.ACTIVE

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


@dataclass(frozen=True)
class ManualRefresh:
    """Result of a user-triggered refresh of one link."""

    link_id: UUID
    outcome: Outcome
    update: LinkUpdate | None

    @property
    def applied(self) -> bool:
        return self.update is not None

    def to_dict(self) -> dict[str, Any]:
        reason = None if isinstance(self.outcome, Success) else self.outcome.reason
        changed = (
            self.outcome.delta.changed_fields() if isinstance(self.outcome, Success) else []
        )
        return {
            "link_id": str(self.link_id),
            "outcome": outcome_label(self.outcome),
            "reason": reason,
            "applied": self.applied,
            "status": self.update.status.value if self.update else None,
            "consecutive_failures": (
                self.update.consecutive_failures if self.update else None
            ),
            "changed_fields": changed,
        }


@dataclass
class RunReport:
    """Statistics for one scheduler cycle.

    Attributes:
        started_at: When the cycle began.
        duration_seconds: Wall time from selection to the last write.
        links_attempted: Workers dispatched.
        links_succeeded: Success outcomes written.
        links_failed: Transient or permanent outcomes written.
        links_transitioned_to_inaccessible: Links whose status became inaccessible.
        links_transitioned_to_repo_unavailable: Links whose status became repo_unavailable.
        links_recovered: Links restored to active.
        write_errors: Outcomes dropped because storage rejected the write.
        interrupted: Shutdown was observed before the batch was fully dispatched.
        error: Set when the cycle itself failed (e.g. storage unreachable).
    """

    started_at: datetime
    duration_seconds: float = 0.0
    links_attempted: int = 0
    links_succeeded: int = 0
    links_failed: int = 0
    links_transitioned_to_inaccessible: int = 0
    links_transitioned_to_repo_unavailable: int = 0
    links_recovered: int = 0
    write_errors: int = 0
    interrupted: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        """True if the cycle as a whole failed."""
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "links_attempted": self.links_attempted,
            "links_succeeded": self.links_succeeded,
            "links_failed": self.links_failed,
            "links_transitioned_to_inaccessible": self.links_transitioned_to_inaccessible,
            "links_transitioned_to_repo_unavailable": self.links_transitioned_to_repo_unavailable,
            "links_recovered": self.links_recovered,
            "write_errors": self.write_errors,
            "interrupted": self.interrupted,
            "error": self.error,
        }


class SchedulerState(str, Enum):
    """Lifecycle of the scheduler loop."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class SchedulerStatus:
    """Point-in-time snapshot of the scheduler, safe to hand to readers."""

    state: SchedulerState = SchedulerState.STOPPED
    next_run_at: datetime | None = None
    last_report: RunReport | None = None
    cycles_completed: int = 0
    cycles_failed: int = 0
    started_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "last_report": self.last_report.to_dict() if self.last_report else None,
            "cycles_completed": self.cycles_completed,
            "cycles_failed": self.cycles_failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
