"""Statistics and formatting helpers for velocity reporting.

This module provides utilities for:
- Rounding values the way the published metrics present them (ties away from zero).
- Aggregating duration samples into average, median and P90.
- Formatting hour-based durations as ``30m``, ``5.0h``, ``2.0d`` or ``1.0w``.
- Bucketing pull requests by size and ranking grouped counts.
- Building a human-readable summary of a metrics report.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .models import DurationStats, MetricsReport, PullRequest, SizeDistribution

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

# Upper bounds (exclusive) of each size bucket; anything larger is ``xl``.
SIZE_BUCKETS: Tuple[Tuple[str, int], ...] = (
    ("xs", 10),
    ("s", 100),
    ("m", 500),
    ("l", 1000),
)


def _quantize(value: float, digits: int) -> Decimal:
    exponent = Decimal(1).scaleb(-digits)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round ``value`` to ``digits`` decimals with ties away from zero.

    The exact binary value of the float is rounded, so ``2.675`` rounds to
    ``2.67`` while ``0.25`` rounds to ``0.3``.
    """
    return float(_quantize(value, digits))


def to_fixed(value: float, digits: int) -> str:
    """Format ``value`` with exactly ``digits`` decimals using :func:`round_half_up` rounding."""
    return str(_quantize(value, digits))


def safe_ratio(numerator: float, denominator: float, digits: int = 2) -> float:
    """Return ``numerator / denominator`` rounded, or ``0`` when the denominator is zero."""
    if not denominator:
        return 0
    return round_half_up(numerator / denominator, digits)


def calculate_stats(values: Sequence[float]) -> DurationStats:
    """Compute average, median and P90 for duration samples in hours.

    - Empty input yields zeros for every statistic.
    - ``median`` is the upper median ``sorted[n // 2]``; no interpolation.
    - ``p90`` is ``sorted[floor(n * 0.9)]``.
    - All three values are rounded to one decimal.
    """
    if not values:
        return DurationStats(average=0, median=0, p90=0)

    ordered = sorted(values)
    count = len(ordered)

    return DurationStats(
        average=round_half_up(sum(ordered) / count, 1),
        median=round_half_up(ordered[count // 2], 1),
        p90=round_half_up(ordered[math.floor(count * 0.9)], 1),
    )


def format_duration(hours: float) -> str:
    """Format a duration in hours as minutes, hours, days or weeks."""
    if hours < 1:
        return f"{to_fixed(hours * 60, 0)}m"
    if hours < 24:
        return f"{to_fixed(hours, 1)}h"

    days = hours / 24
    if days < 7:
        return f"{to_fixed(days, 1)}d"

    return f"{to_fixed(days / 7, 1)}w"


def size_bucket(size: int) -> str:
    """Return the size bucket for a change of ``size`` lines (additions + deletions)."""
    for bucket, upper_bound in SIZE_BUCKETS:
        if size < upper_bound:
            return bucket
    return "xl"


def calculate_size_distribution(prs: Iterable[PullRequest]) -> SizeDistribution:
    counts = {"xs": 0, "s": 0, "m": 0, "l": 0, "xl": 0}
    for pr in prs:
        counts[size_bucket(pr.size)] += 1
    return SizeDistribution(**counts)


def count_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, int]:
    """Count items per key, keeping keys in order of first appearance."""
    counts: Dict[K, int] = {}
    for item in items:
        group = key(item)
        counts[group] = counts.get(group, 0) + 1
    return counts


def rank_counts(counts: Dict[K, int], limit: Optional[int] = None) -> List[Tuple[K, int]]:
    """Sort grouped counts descending, keeping first-appearance order for ties."""
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    if limit is not None:
        return ranked[:limit]
    return ranked


def generate_report(report: MetricsReport) -> str:
    """Generate the human-readable console summary of a metrics report.

    The summary covers DORA headline numbers, pull request flow, commit
    activity and, when any AI-assisted commits exist, the top AI tools and
    users.
    """
    dora = report.dora
    prs = report.pullRequests
    commits = report.commits
    ai = report.ai

    lines = [
        "Metrics Summary",
        "",
        "DORA Metrics",
        f"  Lead Time (median): {dora.leadTimeForChanges.formatted}",
        f"  Deploy Frequency: {dora.deploymentFrequency.perWeek:g}/week",
        f"  Change Failure Rate: {dora.changeFailureRate.percentage:g}%",
        "",
        "Pull Requests",
        f"  Time to First Review: {prs.timeToFirstReview.formatted}",
        f"  Time to Merge: {prs.timeToMerge.formatted}",
        f"  Throughput: {prs.throughput.merged} merged",
        "",
        "Commits",
        f"  Total: {commits.total}",
        f"  Frequency: {commits.frequency.perDay:g}/day",
        f"  Contributors: {commits.contributors.total}",
    ]

    if ai.summary.totalAICommits > 0:
        lines.extend(
            [
                "",
                "AI-Assisted Development",
                f"  AI Commits: {ai.summary.totalAICommits} ({to_fixed(ai.summary.aiRatio * 100, 1)}%)",
                f"  Users with AI: {ai.summary.usersWithAI}/{ai.summary.totalUsers}",
            ]
        )
        if ai.byTool:
            top_tools = ", ".join(f"{usage.tool.value}: {usage.commits}" for usage in ai.byTool[:3])
            lines.append(f"  Top Tools: {top_tools}")
        if ai.byUser:
            top_users = ", ".join(f"{usage.author}: {usage.aiCommits}" for usage in ai.byUser[:3])
            lines.append(f"  Top AI Users: {top_users}")

    return "\n".join(lines)
