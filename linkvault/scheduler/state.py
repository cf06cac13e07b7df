"""Process-wide scheduler state behind a lock.

The loop is the only writer; the health API and CLI read snapshots.
Snapshots are immutable and never alias the coordinator's working report.
"""

import dataclasses
import threading
from datetime import datetime

from linkvault.scheduler.schemas import RunReport, SchedulerState, SchedulerStatus


class SchedulerStateStore:
    """Owns the current SchedulerStatus and hands out snapshots."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = SchedulerStatus()

    def snapshot(self) -> SchedulerStatus:
        """Return the current status."""
        with self._lock:
            return self._status

    def set_state(self, state: SchedulerState, *, started_at: datetime | None = None) -> None:
        with self._lock:
            changes: dict = {"state": state}
            if started_at is not None:
                changes["started_at"] = started_at
            if state is SchedulerState.STOPPED:
                changes["next_run_at"] = None
            self._status = dataclasses.replace(self._status, **changes)

    def set_next_run(self, next_run_at: datetime | None) -> None:
        with self._lock:
            self._status = dataclasses.replace(self._status, next_run_at=next_run_at)

    def publish_report(self, report: RunReport) -> None:
        """Replace the last report and bump the cycle counters."""
        published = dataclasses.replace(report)
        with self._lock:
            self._status = dataclasses.replace(
                self._status,
                last_report=published,
                cycles_completed=self._status.cycles_completed + 1,
                cycles_failed=self._status.cycles_failed + (1 if report.failed else 0),
            )


# Global state instance shared by the scheduler and the health endpoints
_state_store: SchedulerStateStore | None = None


def get_state_store() -> SchedulerStateStore:
    """Get the process-wide scheduler state store."""
    global _state_store
    if _state_store is None:
        _state_store = SchedulerStateStore()
    return _state_store
