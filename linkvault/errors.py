"""Exception hierarchy shared across linkvault packages.

Collaborator-specific errors (ScrapeError, GitHubError) live next to their
clients; this module holds the errors that cross package boundaries.
"""


class LinkvaultError(Exception):
    """Base exception for linkvault."""


class ConfigError(LinkvaultError):
    """Raised when configuration is invalid. Fatal at startup."""


class StorageError(LinkvaultError):
    """Raised when storage cannot serve a read or apply a write."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class LinkNotFoundError(LinkvaultError):
    """Raised when a link id does not exist."""

    def __init__(self, link_id):
        super().__init__(f"Link {link_id} not found")
        self.link_id = link_id


class LinkNotRefreshableError(LinkvaultError):
    """Raised when a manual refresh targets a link the scheduler must not touch."""

    def __init__(self, link_id, status: str):
        super().__init__(f"Link {link_id} has status {status!r} and cannot be refreshed")
        self.link_id = link_id
        self.status = status
