"""Data models for stored links.

Link rows are owned by storage; the scheduler only mutates status,
consecutive_failures, last_checked, refreshed_at and the metadata columns
described by MetadataDelta.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class LinkStatus(str, Enum):
    """Lifecycle status of a link."""

    ACTIVE = "active"
    ARCHIVED = "archived"  # user-controlled, never written by the scheduler
    INACCESSIBLE = "inaccessible"
    REPO_UNAVAILABLE = "repo_unavailable"

    @property
    def is_unavailable(self) -> bool:
        """True for statuses a successful refresh restores to active."""
        return self in (LinkStatus.INACCESSIBLE, LinkStatus.REPO_UNAVAILABLE)


@dataclass
class Link:
    """A stored bookmark as seen by the refresh scheduler."""

    id: UUID
    url: str
    domain: str
    path: str | None = None
    is_github_repo: bool = False
    status: LinkStatus = LinkStatus.ACTIVE
    title: str | None = None
    description: str | None = None
    logo: str | None = None
    github_stars: int | None = None
    github_archived: bool | None = None
    github_last_commit: datetime | None = None
    last_checked: datetime | None = None
    refreshed_at: datetime | None = None
    consecutive_failures: int = 0


@dataclass(frozen=True)
class MetadataDelta:
    """Metadata fields that changed during a refresh.

    A field left as None means "unchanged"; a refresh never clears a value.
    """

    title: str | None = None
    description: str | None = None
    logo: str | None = None
    github_stars: int | None = None
    github_archived: bool | None = None
    github_last_commit: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return not self.changed_fields()

    def changed_fields(self) -> list[str]:
        """Names of the fields carrying a new value."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]

    def as_columns(self) -> dict[str, Any]:
        """Column name -> new value, for the fields that changed."""
        return {name: getattr(self, name) for name in self.changed_fields()}


@dataclass
class StatusCounts:
    """Number of links per status, for health reporting."""

    counts: dict[str, int] = field(default_factory=dict)

    def get(self, status: LinkStatus) -> int:
        return self.counts.get(status.value, 0)

    @property
    def total(self) -> int:
        return sum(self.counts.values())
