"""Metrics calculation over normalized pull requests, commits and deployments.

Every function in this module is pure: it reads the records it is given,
builds local accumulators, and returns new report objects. Empty input never
raises; ratios, averages and percentages fall back to ``0``.

Durations are measured in hours:
- Lead time for changes and time to merge: PR creation to merge.
- Time to first review: PR creation to its earliest submitted review.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .dates import diff_in_hours, format_date
from .models import (
    FAILED_DEPLOYMENT_STATES,
    AIMetrics,
    AISummary,
    AITool,
    AITrendPoint,
    ChangeFailureRate,
    Commit,
    CommitMetrics,
    ContributorCount,
    Contributors,
    DateRange,
    Deployment,
    DoraMetrics,
    DurationMetric,
    Frequency,
    MetricsReport,
    PullRequest,
    PullRequestMetrics,
    ReportSummary,
    Throughput,
    ToolUsage,
    UserAIUsage,
)
from .stats import (
    calculate_size_distribution,
    calculate_stats,
    count_by,
    format_duration,
    rank_counts,
    round_half_up,
    safe_ratio,
)

logger = logging.getLogger(__name__)

TOP_CONTRIBUTORS_LIMIT = 10


def merged_pull_requests(prs: Iterable[PullRequest]) -> List[PullRequest]:
    return [pr for pr in prs if pr.state == "merged" and pr.mergedAt is not None]


def _duration_metric(samples: Sequence[float]) -> DurationMetric:
    stats = calculate_stats(samples)
    return DurationMetric(
        averageHours=stats.average,
        medianHours=stats.median,
        p90Hours=stats.p90,
        formatted=format_duration(stats.median),
    )


def merge_durations(prs: Iterable[PullRequest]) -> List[float]:
    """Return creation-to-merge hours for every merged pull request."""
    return [diff_in_hours(pr.createdAt, pr.mergedAt) for pr in merged_pull_requests(prs)]


def lead_time_for_changes(prs: Iterable[PullRequest]) -> DurationMetric:
    """Compute DORA lead time for changes, approximated by PR creation to merge."""
    return _duration_metric(merge_durations(prs))


def time_to_merge(prs: Iterable[PullRequest]) -> DurationMetric:
    """Compute time to merge (creation to merge) for merged pull requests."""
    return _duration_metric(merge_durations(prs))


def first_review_durations(prs: Iterable[PullRequest]) -> List[float]:
    """Return creation-to-first-review hours for merged pull requests with reviews.

    Business logic:
    - Only merged pull requests with at least one review are eligible.
    - The earliest review by ``submittedAt`` is the first review.
    - Non-positive durations (clock skew, fixtures) are dropped, not clamped.
    """
    durations: List[float] = []
    for pr in merged_pull_requests(prs):
        if not pr.reviews:
            continue

        first_review = min(pr.reviews, key=lambda review: review.submittedAt)
        hours = diff_in_hours(pr.createdAt, first_review.submittedAt)
        if hours <= 0:
            logger.debug(
                "Skipping first review duration due to non-positive value",
                extra={"pr_number": pr.number, "hours": hours},
            )
            continue
        durations.append(hours)

    return durations


def time_to_first_review(prs: Iterable[PullRequest]) -> DurationMetric:
    return _duration_metric(first_review_durations(prs))


def range_days(date_range: DateRange) -> int:
    """Return the number of (partial) days spanned by ``date_range``."""
    seconds = (date_range.end - date_range.start).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def _frequency(count: int, days: int) -> Frequency:
    if days <= 0:
        return Frequency(perDay=0, perWeek=0)
    per_day = count / days
    return Frequency(perDay=round_half_up(per_day, 2), perWeek=round_half_up(per_day * 7, 2))


def deployment_frequency(deployments: Iterable[Deployment], days: int) -> Frequency:
    """Successful deployments per day and per week over ``days``."""
    successful = sum(1 for deployment in deployments if deployment.state == "success")
    return _frequency(successful, days)


def change_failure_rate(deployments: Iterable[Deployment]) -> ChangeFailureRate:
    """Percentage of deployments that ended in ``failure`` or ``error``."""
    deployment_list = list(deployments)
    failed = sum(1 for deployment in deployment_list if deployment.state in FAILED_DEPLOYMENT_STATES)
    total = len(deployment_list)
    percentage = round_half_up(failed / total * 100, 1) if total else 0
    return ChangeFailureRate(percentage=percentage, failed=failed, total=total)


def pr_throughput(prs: Sequence[PullRequest]) -> Throughput:
    return Throughput(
        opened=len(prs),
        merged=len(merged_pull_requests(prs)),
        closed=sum(1 for pr in prs if pr.state == "closed"),
    )


def commit_frequency(commits: Sequence[Commit], days: int) -> Frequency:
    return _frequency(len(commits), days)


def top_contributors(commits: Iterable[Commit], limit: int = TOP_CONTRIBUTORS_LIMIT) -> Contributors:
    """Rank commit authors by commit count; ties keep first-appearance order."""
    counts = count_by(commits, lambda commit: commit.author)
    top = tuple(ContributorCount(author=author, commits=count) for author, count in rank_counts(counts, limit))
    return Contributors(total=len(counts), top=top)


def _primary_tool(tool_counts: Dict[AITool, int]) -> Optional[AITool]:
    # First tool reaching the maximum wins; later ties do not replace it.
    primary: Optional[AITool] = None
    max_count = 0
    for tool, count in tool_counts.items():
        if count > max_count:
            primary = tool
            max_count = count
    return primary


def calculate_ai_metrics(commits: Sequence[Commit]) -> AIMetrics:
    """Summarize AI-assisted commits overall, per tool, per author and per day.

    Business logic:
    - ``byTool`` counts one entry per AI co-author tag on AI-assisted commits,
      with the number of distinct authors using that tool.
    - ``byUser`` lists only authors with AI-assisted commits; ``primaryTool``
      is the tool they were credited with most often.
    - ``trend`` groups all commits by the calendar date in their recorded
      offset, ascending.
    """
    total_commits = len(commits)
    total_ai_commits = sum(1 for commit in commits if commit.isAIAssisted)

    author_totals: Dict[str, int] = {}
    author_ai: Dict[str, int] = {}
    author_tools: Dict[str, Dict[AITool, int]] = {}
    tool_commits: Dict[AITool, int] = {}
    tool_users: Dict[AITool, Set[str]] = {}
    daily_totals: Dict[str, int] = {}
    daily_ai: Dict[str, int] = {}

    for commit in commits:
        author_totals[commit.author] = author_totals.get(commit.author, 0) + 1
        author_ai.setdefault(commit.author, 0)
        tools = author_tools.setdefault(commit.author, {})

        day = format_date(commit.committedAt)
        daily_totals[day] = daily_totals.get(day, 0) + 1
        daily_ai.setdefault(day, 0)

        if not commit.isAIAssisted:
            continue

        author_ai[commit.author] += 1
        daily_ai[day] += 1
        for co_author in commit.aiCoAuthors:
            tools[co_author.tool] = tools.get(co_author.tool, 0) + 1
            tool_commits[co_author.tool] = tool_commits.get(co_author.tool, 0) + 1
            tool_users.setdefault(co_author.tool, set()).add(commit.author)

    by_tool = tuple(
        ToolUsage(tool=tool, commits=count, users=len(tool_users[tool]))
        for tool, count in rank_counts(tool_commits)
    )

    users = [
        UserAIUsage(
            author=author,
            aiCommits=author_ai[author],
            totalCommits=total,
            ratio=safe_ratio(author_ai[author], total, 2),
            primaryTool=_primary_tool(author_tools[author]),
        )
        for author, total in author_totals.items()
        if author_ai[author] > 0
    ]
    by_user = tuple(sorted(users, key=lambda usage: usage.aiCommits, reverse=True))

    trend = tuple(
        AITrendPoint(
            date=day,
            aiCommits=daily_ai[day],
            totalCommits=total,
            ratio=safe_ratio(daily_ai[day], total, 2),
        )
        for day, total in sorted(daily_totals.items())
    )

    return AIMetrics(
        summary=AISummary(
            totalAICommits=total_ai_commits,
            totalCommits=total_commits,
            aiRatio=safe_ratio(total_ai_commits, total_commits, 2),
            usersWithAI=sum(1 for count in author_ai.values() if count > 0),
            totalUsers=len(author_totals),
        ),
        byTool=by_tool,
        byUser=by_user,
        trend=trend,
    )


def calculate_metrics(
    prs: Sequence[PullRequest],
    commits: Sequence[Commit],
    deployments: Sequence[Deployment],
    date_range: DateRange,
    repositories: int = 0,
    exclude_authors: Iterable[str] = (),
    calculated_at: Optional[datetime] = None,
) -> MetricsReport:
    """Calculate the full metrics report for one date range.

    Args:
        prs: Normalized pull requests, already filtered by the extractors.
        commits: Normalized commits.
        deployments: Normalized deployments.
        date_range: Window the records were extracted for.
        repositories: Number of repositories the records came from.
        exclude_authors: Commit authors (for example bots) to ignore when
            aggregating commit and AI metrics.
        calculated_at: Report timestamp; defaults to the current UTC time.

    Returns:
        A ``MetricsReport`` that depends only on the inputs, apart from
        ``calculatedAt``.
    """
    excluded = set(exclude_authors)
    if excluded:
        commits = [commit for commit in commits if commit.author not in excluded]

    days = range_days(date_range)
    report = MetricsReport(
        calculatedAt=calculated_at or datetime.now(timezone.utc),
        dateRange=date_range,
        summary=ReportSummary(
            repositories=repositories,
            totalPRs=len(prs),
            totalCommits=len(commits),
            totalDeployments=len(deployments),
        ),
        dora=DoraMetrics(
            leadTimeForChanges=lead_time_for_changes(prs),
            deploymentFrequency=deployment_frequency(deployments, days),
            changeFailureRate=change_failure_rate(deployments),
        ),
        pullRequests=PullRequestMetrics(
            timeToFirstReview=time_to_first_review(prs),
            timeToMerge=time_to_merge(prs),
            throughput=pr_throughput(prs),
            sizeDistribution=calculate_size_distribution(prs),
        ),
        commits=CommitMetrics(
            total=len(commits),
            frequency=commit_frequency(commits, days),
            contributors=top_contributors(commits),
        ),
        ai=calculate_ai_metrics(commits),
    )

    logger.info(
        "Calculated metrics",
        extra={
            "range_days": days,
            "prs_total": len(prs),
            "commits_total": len(commits),
            "deployments_total": len(deployments),
        },
    )
    return report
