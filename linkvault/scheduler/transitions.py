"""Status transitions for refresh outcomes.

plan_update() turns one Outcome into the LinkUpdate the coordinator writes.
It is pure: the same link, outcome and threshold always yield the same update.

    Success           -> failures reset, unavailable links restored to active
    TransientFailure  -> failures + 1, unavailable once the threshold is reached
    PermanentFailure  -> unavailable immediately, failures unchanged
"""

from datetime import datetime

from linkvault.links.schemas import Link, LinkStatus
from linkvault.scheduler.schemas import (
    FailureSource,
    LinkUpdate,
    Outcome,
    PermanentFailure,
    Success,
    TransientFailure,
)


def unavailable_status(link: Link, source: FailureSource) -> LinkStatus:
    """Status a failing link moves to, depending on which collaborator failed."""
    if link.is_github_repo and source is FailureSource.REPO:
        return LinkStatus.REPO_UNAVAILABLE
    return LinkStatus.INACCESSIBLE


def plan_update(
    link: Link,
    outcome: Outcome,
    failure_threshold: int,
    now: datetime,
) -> LinkUpdate:
    """
    Compute the write for one refresh outcome.

    Args:
        link: The link as selected (pre-refresh values)
        outcome: Worker result
        failure_threshold: Consecutive transient failures before a status change
        now: Timestamp recorded as last_checked (and refreshed_at on change)

    Returns:
        LinkUpdate carrying the new status, counter and timestamps
    """
    if isinstance(outcome, Success):
        delta = None if outcome.delta.is_empty else outcome.delta
        status = LinkStatus.ACTIVE if link.status.is_unavailable else link.status
        return LinkUpdate(
            status=status,
            consecutive_failures=0,
            last_checked=now,
            refreshed_at=now if delta is not None else None,
            delta=delta,
            previous_status=link.status,
        )

    if isinstance(outcome, TransientFailure):
        failures = link.consecutive_failures + 1
        status = link.status
        if failures >= failure_threshold:
            status = unavailable_status(link, outcome.source)
        return LinkUpdate(
            status=status,
            consecutive_failures=failures,
            last_checked=now,
            previous_status=link.status,
        )

    if isinstance(outcome, PermanentFailure):
        return LinkUpdate(
            status=unavailable_status(link, outcome.source),
            consecutive_failures=link.consecutive_failures,
            last_checked=now,
            previous_status=link.status,
        )

    raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")
