"""GitHub repository metadata collaborator."""

from linkvault.github.client import (
    GitHubClient,
    GitHubError,
    GitHubErrorKind,
    RepoMetadata,
    parse_repo_from_url,
)

__all__ = [
    "GitHubClient",
    "GitHubError",
    "GitHubErrorKind",
    "RepoMetadata",
    "parse_repo_from_url",
]
