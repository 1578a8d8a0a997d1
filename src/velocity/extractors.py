"""Per-repository extraction of pull requests, commits and deployments.

Exclusions from :class:`~velocity.config.Settings` are applied here, before
records are persisted or reach the metrics calculator. A repository whose
extraction stage fails with an API error contributes empty collections for
that stage instead of aborting the whole run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .ai_detection import calculate_ai_stats
from .config import Settings
from .dates import get_date_range, is_within_range, parse_datetime, utc_now
from .errors import ApiError, DataValidationError
from .github_client import GitHubClient
from .models import (
    FAILED_DEPLOYMENT_STATES,
    Commit,
    CommitDocument,
    DateRange,
    Deployment,
    DeploymentDocument,
    PullRequest,
    PullRequestDocument,
    Release,
    RepositoryDeployments,
    Review,
)
from .normalizers import (
    is_excluded_commit,
    is_excluded_pull_request,
    normalize_commit,
    normalize_deployment,
    normalize_pull_request,
    normalize_release,
    normalize_review,
)
from .stats import count_by, rank_counts, round_half_up, safe_ratio

logger = logging.getLogger(__name__)

REWORK_PATTERNS = (
    re.compile(r"^fix[\s:(]", re.IGNORECASE),
    re.compile(r"^revert", re.IGNORECASE),
    re.compile(r"^hotfix", re.IGNORECASE),
    re.compile(r"fixup!", re.IGNORECASE),
    re.compile(r"squash!", re.IGNORECASE),
)


@dataclass(frozen=True)
class ExtractionResult:
    """The three extracted documents for one run."""

    pull_requests: PullRequestDocument
    commits: CommitDocument
    deployments: DeploymentDocument


def fetch_reviews(client: GitHubClient, repo: str, number: int) -> List[Review]:
    """Fetch submitted reviews for a pull request; failures yield no reviews."""
    try:
        raw_reviews = client.list_reviews(repo, number)
    except ApiError as exc:
        logger.debug("Failed to fetch reviews", extra={"repo": repo, "pr_number": number, "error": str(exc)})
        return []

    reviews = []
    for raw in raw_reviews:
        review = normalize_review(raw)
        if review is not None:
            reviews.append(review)
    return reviews


def extract_pull_requests(
    client: GitHubClient,
    repo: str,
    since: datetime,
    settings: Settings,
) -> List[PullRequest]:
    """Extract pull requests updated since ``since``, applying configured exclusions.

    Business logic:
    - List pull requests in every state, newest update first, until older than ``since``.
    - Skip drafts (when configured), excluded authors and excluded labels.
    - Fetch each remaining pull request's details and reviews, then normalize.
    """
    raw_prs = client.list_pull_requests(repo, since=since)
    logger.debug("Fetched pull requests", extra={"repo": repo, "count": len(raw_prs)})

    prs: List[PullRequest] = []
    excluded = 0
    for raw in raw_prs:
        if is_excluded_pull_request(raw, settings):
            excluded += 1
            continue

        number = int(raw.get("number") or 0)
        try:
            details = client.get_pull_request(repo, number)
        except ApiError as exc:
            logger.warning(
                "Skipping pull request whose details could not be fetched",
                extra={"repo": repo, "pr_number": number, "error": str(exc)},
            )
            continue

        try:
            prs.append(normalize_pull_request({**raw, **details}, fetch_reviews(client, repo, number)))
        except DataValidationError as exc:
            logger.warning("Skipping malformed pull request %s#%s: %s", repo, number, exc)

    logger.debug(
        "Processed pull requests",
        extra={"repo": repo, "prs_total": len(prs), "prs_excluded": excluded},
    )
    return prs


def extract_commits(
    client: GitHubClient,
    repo: str,
    since: datetime,
    branch: str,
    settings: Settings,
) -> List[Commit]:
    """Extract commits on ``branch`` since ``since``, skipping excluded authors."""
    raw_commits = client.list_commits(repo, branch=branch, since=since)
    logger.debug("Fetched commits", extra={"repo": repo, "branch": branch, "count": len(raw_commits)})

    commits: List[Commit] = []
    for raw in raw_commits:
        if is_excluded_commit(raw, settings):
            continue
        try:
            commits.append(normalize_commit(raw))
        except DataValidationError as exc:
            logger.warning("Skipping malformed commit in %s: %s", repo, exc)

    return commits


def _deployment_with_state(client: GitHubClient, repo: str, raw: Mapping[str, Any]) -> Dict[str, Any]:
    if raw.get("state"):
        return dict(raw)
    return {**raw, "state": client.get_deployment_state(repo, raw.get("id"))}


def extract_deployments(
    client: GitHubClient,
    repo: str,
    since: datetime,
    until: datetime,
    environment: Optional[str] = None,
) -> RepositoryDeployments:
    """Extract deployments and published releases created within ``[since, until]``.

    Repositories without deployments or releases enabled yield empty
    collections for that part.
    """
    deployments: List[Deployment] = []
    try:
        for raw in client.list_deployments(repo, environment=environment):
            created_at = parse_datetime(raw.get("created_at"))
            if created_at is None or not is_within_range(created_at, since, until):
                continue
            try:
                deployments.append(normalize_deployment(_deployment_with_state(client, repo, raw)))
            except DataValidationError as exc:
                logger.warning("Skipping malformed deployment in %s: %s", repo, exc)
    except ApiError as exc:
        logger.debug("No deployments found", extra={"repo": repo, "error": str(exc)})
        deployments = []

    releases: List[Release] = []
    try:
        for raw in client.list_releases(repo):
            if raw.get("draft"):
                continue
            try:
                release = normalize_release(raw)
            except DataValidationError as exc:
                logger.warning("Skipping malformed release in %s: %s", repo, exc)
                continue
            if is_within_range(release.publishedAt, since, until):
                releases.append(release)
    except ApiError as exc:
        logger.debug("No releases found", extra={"repo": repo, "error": str(exc)})
        releases = []

    return RepositoryDeployments(deployments=tuple(deployments), releases=tuple(releases))


def commit_branch(client: GitHubClient, repo: str, settings: Settings) -> str:
    """Use the repository's default branch unless a different deployment branch is configured."""
    if settings.deployment_branch == "main":
        return client.get_default_branch(repo)
    return settings.deployment_branch


def extract_repositories(
    client: GitHubClient,
    repos: Sequence[str],
    days: int,
    settings: Settings,
    reference: Optional[datetime] = None,
) -> ExtractionResult:
    """Extract all three collections for every repository over the last ``days`` days."""
    start, end = get_date_range(days, reference)
    date_range = DateRange(start=start, end=end)
    extracted_at = utc_now()

    pr_collections: Dict[str, Tuple[PullRequest, ...]] = {}
    commit_collections: Dict[str, Tuple[Commit, ...]] = {}
    deployment_collections: Dict[str, RepositoryDeployments] = {}

    for repo in repos:
        logger.info("Extracting from %s", repo)

        try:
            prs = extract_pull_requests(client, repo, start, settings)
            pr_stats = calculate_pr_stats(prs)
            logger.info(
                "Pull requests: %d total (%d merged, %d open)",
                pr_stats["total"],
                pr_stats["merged"],
                pr_stats["open"],
                extra={"repo": repo},
            )
        except ApiError as exc:
            logger.warning("Failed to fetch pull requests for %s: %s", repo, exc)
            prs = []
        pr_collections[repo] = tuple(prs)

        try:
            commits = extract_commits(client, repo, start, commit_branch(client, repo, settings), settings)
            commit_stats = calculate_commit_stats(commits)
            logger.info(
                "Commits: %d total (%d authors, %d AI-assisted, %d rework)",
                commit_stats["total"],
                commit_stats["uniqueAuthors"],
                commit_stats["aiAssisted"],
                len(detect_rework_commits(commits)),
                extra={"repo": repo},
            )
        except ApiError as exc:
            logger.warning("Failed to fetch commits for %s: %s", repo, exc)
            commits = []
        commit_collections[repo] = tuple(commits)

        repo_deployments = extract_deployments(client, repo, start, end)
        deploy_stats = calculate_deployment_stats(repo_deployments.deployments, repo_deployments.releases)
        logger.info(
            "Deployments: %d deployments, %d releases",
            deploy_stats["totalDeployments"],
            deploy_stats["totalReleases"],
            extra={"repo": repo},
        )
        deployment_collections[repo] = repo_deployments

    commit_document = CommitDocument(extractedAt=extracted_at, dateRange=date_range, repositories=commit_collections)
    all_commits = commit_document.all_commits()
    if all_commits:
        commit_document = CommitDocument(
            extractedAt=extracted_at,
            dateRange=date_range,
            repositories=commit_collections,
            aiSummary=calculate_ai_stats(all_commits),
        )

    return ExtractionResult(
        pull_requests=PullRequestDocument(extractedAt=extracted_at, dateRange=date_range, repositories=pr_collections),
        commits=commit_document,
        deployments=DeploymentDocument(
            extractedAt=extracted_at, dateRange=date_range, repositories=deployment_collections
        ),
    )


def calculate_pr_stats(prs: Sequence[PullRequest]) -> Dict[str, Any]:
    """Summarize pull requests by state with average size and review count."""
    total = len(prs)
    return {
        "total": total,
        "merged": sum(1 for pr in prs if pr.state == "merged"),
        "closed": sum(1 for pr in prs if pr.state == "closed"),
        "open": sum(1 for pr in prs if pr.state == "open"),
        "avgSize": int(round_half_up(sum(pr.size for pr in prs) / total)) if total else 0,
        "avgReviews": safe_ratio(sum(len(pr.reviews) for pr in prs), total, 1),
    }


def calculate_commit_stats(commits: Sequence[Commit]) -> Dict[str, Any]:
    """Summarize commits; ``aiRatio`` here is a percentage with one decimal."""
    total = len(commits)
    merge_commits = sum(1 for commit in commits if commit.isMergeCommit)
    ai_assisted = sum(1 for commit in commits if commit.isAIAssisted)
    author_counts = count_by(commits, lambda commit: commit.author)
    total_size = sum(commit.additions + commit.deletions for commit in commits)

    return {
        "total": total,
        "mergeCommits": merge_commits,
        "regularCommits": total - merge_commits,
        "uniqueAuthors": len(author_counts),
        "avgSize": int(round_half_up(total_size / total)) if total else 0,
        "authors": [{"author": author, "count": count} for author, count in rank_counts(author_counts)],
        "aiAssisted": ai_assisted,
        "aiRatio": round_half_up(ai_assisted / total * 100, 1) if total else 0,
    }


def calculate_deployment_stats(
    deployments: Sequence[Deployment],
    releases: Sequence[Release],
) -> Dict[str, Any]:
    environments = count_by(deployments, lambda deployment: deployment.environment)
    return {
        "totalDeployments": len(deployments),
        "successfulDeployments": sum(1 for deployment in deployments if deployment.state == "success"),
        "failedDeployments": sum(1 for deployment in deployments if deployment.state in FAILED_DEPLOYMENT_STATES),
        "totalReleases": len(releases),
        "environments": [
            {"environment": environment, "count": count} for environment, count in rank_counts(environments)
        ],
    }


def detect_rework_commits(commits: Iterable[Commit]) -> List[Commit]:
    """Return commits whose subject marks them as a fix, revert or fixup."""
    return [commit for commit in commits if any(pattern.search(commit.message) for pattern in REWORK_PATTERNS)]
