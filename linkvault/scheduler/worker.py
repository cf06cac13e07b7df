"""
Refresh worker - fetches fresh metadata for one link and classifies the result.

For each link:
1. Fetch the page through the scraper (title, description, logo)
2. For GitHub repositories, fetch repository metadata (stars, archived, last push)
3. Classify collaborator errors into a TransientFailure or PermanentFailure
4. Otherwise diff the fetched values against the stored link into a Success delta

The worker never writes to storage; the batch coordinator applies outcomes.
"""

import time

import structlog

from linkvault.github.client import (
    GitHubClient,
    GitHubError,
    GitHubErrorKind,
    RepoMetadata,
    parse_repo_from_url,
)
from linkvault.links.schemas import Link, MetadataDelta
from linkvault.observability.metrics import get_metrics
from linkvault.observability.tracing import get_tracer, traced
from linkvault.scheduler.schemas import (
    FailureSource,
    Outcome,
    PermanentFailure,
    Success,
    TransientFailure,
    outcome_label,
)
from linkvault.scraper.client import (
    PageMetadata,
    PageScraper,
    ScrapeError,
    ScrapeErrorKind,
)

logger = structlog.get_logger(__name__)
_tracer = get_tracer("linkvault.scheduler")


def _changed(new, old):
    """New value if it is non-empty and differs from the stored one, else None."""
    if new is None:
        return None
    if isinstance(new, str) and not new.strip():
        return None
    return new if new != old else None


def compute_delta(
    link: Link,
    page: PageMetadata | None,
    repo: RepoMetadata | None = None,
) -> MetadataDelta:
    """
    Diff freshly fetched metadata against the stored link.

    Only non-empty values that differ from the stored ones are kept, so a
    page that lost its title never clears the stored title.
    """
    page = page or PageMetadata()
    return MetadataDelta(
        title=_changed(page.title, link.title),
        description=_changed(page.description, link.description),
        logo=_changed(page.logo, link.logo),
        github_stars=_changed(repo.stars, link.github_stars) if repo else None,
        github_archived=_changed(repo.archived, link.github_archived) if repo else None,
        github_last_commit=_changed(repo.last_commit, link.github_last_commit) if repo else None,
    )


def classify(
    page_error: ScrapeError | None,
    repo_error: GitHubError | None,
) -> Outcome | None:
    """
    Map collaborator errors to a failure outcome.

    Definitive absence outranks transient trouble, and the repository
    outranks the page. Returns None when neither collaborator failed.
    """
    if repo_error is not None and repo_error.kind is GitHubErrorKind.NOT_FOUND:
        return PermanentFailure(str(repo_error), FailureSource.REPO)
    if page_error is not None and page_error.kind is ScrapeErrorKind.NOT_FOUND:
        return PermanentFailure(str(page_error), FailureSource.PAGE)

    if repo_error is not None:
        if repo_error.kind in (
            GitHubErrorKind.RATE_LIMITED,
            GitHubErrorKind.TIMEOUT,
            GitHubErrorKind.OTHER,
        ):
            return TransientFailure(str(repo_error), FailureSource.REPO)
        raise ValueError(f"Unhandled GitHub error kind: {repo_error.kind}")

    if page_error is not None:
        if page_error.kind in (
            ScrapeErrorKind.TIMEOUT,
            ScrapeErrorKind.CONNECTION,
            ScrapeErrorKind.SERVER_ERROR,
            ScrapeErrorKind.OTHER,
        ):
            return TransientFailure(str(page_error), FailureSource.PAGE)
        raise ValueError(f"Unhandled scrape error kind: {page_error.kind}")

    return None


class RefreshWorker:
    """
    Refreshes a single link against the scraper and the GitHub client.

    Usage:
        async with PageScraper() as scraper, GitHubClient() as github:
            worker = RefreshWorker(scraper, github, request_timeout=10)
            outcome = await worker.refresh(link)
    """

    def __init__(
        self,
        scraper: PageScraper,
        github: GitHubClient | None,
        request_timeout: float = 10.0,
    ):
        self._scraper = scraper
        self._github = github
        self._request_timeout = request_timeout
        self._metrics = get_metrics()

    async def refresh(self, link: Link) -> Outcome:
        """Fetch metadata for one link and return its Outcome."""
        start_time = time.monotonic()

        with traced(
            _tracer,
            "refresh_link",
            {"link.id": str(link.id), "link.is_github_repo": link.is_github_repo},
        ) as span:
            page, page_error = await self._fetch_page(link)
            repo, repo_error = await self._fetch_repo(link)

            outcome = classify(page_error, repo_error)
            if outcome is None:
                outcome = Success(compute_delta(link, page, repo))
            span.set_attribute("refresh.outcome", outcome_label(outcome))

        latency = time.monotonic() - start_time
        self._metrics.record_refresh(outcome_label(outcome), latency)

        if isinstance(outcome, Success):
            logger.debug(
                "Link refreshed",
                link_id=str(link.id),
                changed=outcome.delta.changed_fields(),
                latency_seconds=round(latency, 3),
            )
        else:
            logger.info(
                "Link refresh failed",
                link_id=str(link.id),
                url=link.url,
                outcome=outcome_label(outcome),
                source=outcome.source.value,
                reason=outcome.reason,
            )
        return outcome

    async def _fetch_page(self, link: Link) -> tuple[PageMetadata | None, ScrapeError | None]:
        try:
            page = await self._scraper.fetch_page(link.url, timeout=self._request_timeout)
        except ScrapeError as e:
            self._metrics.record_collaborator_error("scraper", e.kind.value)
            return None, e
        return page, None

    async def _fetch_repo(self, link: Link) -> tuple[RepoMetadata | None, GitHubError | None]:
        if not link.is_github_repo or self._github is None:
            return None, None

        parsed = parse_repo_from_url(link.url)
        if parsed is None:
            logger.debug("GitHub link without owner/repo, skipping", link_id=str(link.id))
            return None, None

        owner, repo = parsed
        try:
            metadata = await self._github.fetch_repo(owner, repo, timeout=self._request_timeout)
        except GitHubError as e:
            self._metrics.record_collaborator_error("github", e.kind.value)
            return None, e
        return metadata, None
