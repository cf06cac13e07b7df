"""Metadata refresh scheduler: periodically re-fetches link metadata in bounded batches."""

from linkvault.scheduler.clock import JitteredClock
from linkvault.scheduler.config import SchedulerConfig, load_scheduler_config
from linkvault.scheduler.coordinator import BatchCoordinator
from linkvault.scheduler.schemas import (
    FailureSource,
    LinkUpdate,
    ManualRefresh,
    Outcome,
    PermanentFailure,
    RunReport,
    SchedulerState,
    SchedulerStatus,
    Success,
    TransientFailure,
)
from linkvault.scheduler.selector import LinkSelector, build_due_query
from linkvault.scheduler.service import RefreshScheduler
from linkvault.scheduler.state import SchedulerStateStore, get_state_store
from linkvault.scheduler.transitions import plan_update
from linkvault.scheduler.worker import RefreshWorker, compute_delta

__all__ = [
    "BatchCoordinator",
    "FailureSource",
    "JitteredClock",
    "LinkSelector",
    "LinkUpdate",
    "ManualRefresh",
    "Outcome",
    "PermanentFailure",
    "RefreshScheduler",
    "RefreshWorker",
    "RunReport",
    "SchedulerConfig",
    "SchedulerState",
    "SchedulerStateStore",
    "SchedulerStatus",
    "Success",
    "TransientFailure",
    "build_due_query",
    "compute_delta",
    "get_state_store",
    "load_scheduler_config",
    "plan_update",
]
