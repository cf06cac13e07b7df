"""
GitHub REST client for repository metadata.

Provides:
- parse_repo_from_url: owner/repo extraction
- GitHubErrorKind / GitHubError: closed set of failure tags
- RepoMetadata: stars, archived flag, last push
- GitHubClient: async httpx client with optional token authentication

Unauthenticated requests are limited to 60/hour; set GITHUB_TOKEN for 5000/hour.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from linkvault.config.settings import get_settings

logger = logging.getLogger(__name__)

_GITHUB_REPO_RE = re.compile(
    r"^(?:https?://(?:www\.)?github\.com/|git@github\.com:)"
    r"([^/\s]+)/([^/\s]+?)(?:\.git)?(?:/.*)?$"
)


def parse_repo_from_url(url: str) -> tuple[str, str] | None:
    """
    Parse (owner, repo) from a GitHub repository URL.

    Handles https://github.com/owner/repo, trailing .git, sub-paths such as
    /tree/main, and git@github.com:owner/repo.git.

    Returns:
        (owner, repo) or None if the URL is not a repository URL
    """
    match = _GITHUB_REPO_RE.match(url.strip())
    if match is None:
        return None
    return match.group(1), match.group(2)


class GitHubErrorKind(str, Enum):
    """Why a repository fetch failed."""

    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"  # missing, deleted or blocked
    TIMEOUT = "timeout"
    OTHER = "other"


class GitHubError(Exception):
    """Raised when repository metadata cannot be fetched."""

    def __init__(
        self,
        message: str,
        kind: GitHubErrorKind,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass(frozen=True)
class RepoMetadata:
    """The repository fields a link stores."""

    stars: int
    archived: bool
    last_commit: datetime | None = None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_repo_response(payload: dict[str, Any]) -> RepoMetadata:
    """Convert a /repos/{owner}/{repo} payload to RepoMetadata."""
    return RepoMetadata(
        stars=int(payload.get("stargazers_count") or 0),
        archived=bool(payload.get("archived", False)),
        last_commit=_parse_timestamp(payload.get("pushed_at")),
    )


def classify_response(response: httpx.Response) -> GitHubErrorKind | None:
    """Map a GitHub API response to an error kind, or None for success."""
    status = response.status_code
    if status == 429:
        return GitHubErrorKind.RATE_LIMITED
    if status == 403 and response.headers.get("x-ratelimit-remaining") == "0":
        return GitHubErrorKind.RATE_LIMITED
    # 451: repository disabled (DMCA); treated like a deletion
    if status in (404, 410, 451):
        return GitHubErrorKind.NOT_FOUND
    if status >= 400:
        return GitHubErrorKind.OTHER
    return None


class GitHubClient:
    """
    Async client for the GitHub repository endpoint.

    Example:
        async with GitHubClient() as github:
            meta = await github.fetch_repo("encode", "httpx", timeout=10)
            print(meta.stars)
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the GitHub client.

        Args:
            token: Personal access token (default from settings)
            base_url: API root (default from settings)
            user_agent: User-Agent header (default from settings)
            client: Pre-built httpx client (tests); owned by the caller
        """
        settings = get_settings()
        self.token = token if token is not None else settings.github_token
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.user_agent = user_agent or settings.user_agent
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "GitHubClient":
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_repo(self, owner: str, repo: str, timeout: float) -> RepoMetadata:
        """
        Fetch repository metadata.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            timeout: Request timeout in seconds

        Returns:
            RepoMetadata

        Raises:
            GitHubError: On rate limiting, missing repository, timeout or other failure
        """
        if not self._client:
            raise RuntimeError("GitHubClient must be used as async context manager")

        url = f"{self.base_url}/repos/{owner}/{repo}"
        try:
            response = await self._client.get(url, headers=self._headers(), timeout=timeout)
        except httpx.TimeoutException as e:
            raise GitHubError(
                f"Timed out fetching {owner}/{repo}", GitHubErrorKind.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise GitHubError(
                f"Request for {owner}/{repo} failed: {e}", GitHubErrorKind.OTHER
            ) from e

        kind = classify_response(response)
        if kind is not None:
            if kind is GitHubErrorKind.RATE_LIMITED:
                logger.warning("GitHub API rate limit exceeded (%s/%s)", owner, repo)
            raise GitHubError(
                f"GitHub returned status {response.status_code} for {owner}/{repo}",
                kind,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GitHubError(
                f"Invalid JSON for {owner}/{repo}", GitHubErrorKind.OTHER
            ) from e

        return parse_repo_response(payload)
