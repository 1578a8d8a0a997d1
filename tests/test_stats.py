"""Tests for statistical calculations and report rendering."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from velocity.calculator import calculate_metrics
from velocity.models import AICoAuthor, AITool, Commit, DateRange, DurationStats
from velocity.stats import (
    calculate_stats,
    count_by,
    format_duration,
    generate_report,
    rank_counts,
    round_half_up,
    safe_ratio,
    size_bucket,
    to_fixed,
)

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_calculate_stats_empty_returns_zeros():
    """Verify empty samples produce zero statistics."""
    assert calculate_stats([]) == DurationStats(average=0, median=0, p90=0)


def test_calculate_stats_single_value():
    """Verify every statistic equals the only sample."""
    assert calculate_stats([5.0]) == DurationStats(average=5.0, median=5.0, p90=5.0)


def test_calculate_stats_even_count_uses_upper_median():
    """Verify the median is sorted[n // 2] without interpolation."""
    stats = calculate_stats([4.0, 1.0, 3.0, 2.0])

    assert stats.average == 2.5
    assert stats.median == 3.0
    assert stats.p90 == 4.0


def test_calculate_stats_ten_values():
    """Verify P90 indexes floor(n * 0.9) into the sorted samples."""
    stats = calculate_stats([float(value) for value in range(10, 0, -1)])

    assert stats.average == 5.5
    assert stats.median == 6.0
    assert stats.p90 == 10.0


def test_calculate_stats_rounds_to_one_decimal():
    """Verify results are rounded to one decimal place."""
    stats = calculate_stats([1.04, 1.06, 1.26])

    assert stats.median == 1.1
    assert stats.average == 1.1


@pytest.mark.parametrize(
    "hours,expected",
    [
        (0, "0m"),
        (0.5, "30m"),
        (0.99, "59m"),
        (1.0, "1.0h"),
        (5, "5.0h"),
        (23.99, "24.0h"),
        (24, "1.0d"),
        (48, "2.0d"),
        (167.99, "7.0d"),
        (168, "1.0w"),
        (336, "2.0w"),
    ],
)
def test_format_duration_boundaries(hours, expected):
    """Verify unit selection and rounding at each boundary."""
    assert format_duration(hours) == expected


def test_round_half_up_rounds_ties_away_from_zero():
    """Verify ties round up and the exact binary value is respected."""
    assert round_half_up(2.5) == 3.0
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.675, 2) == 2.67
    assert to_fixed(0.25, 1) == "0.3"
    assert to_fixed(3, 1) == "3.0"


def test_safe_ratio_guards_zero_denominator():
    """Verify ratios fall back to zero instead of dividing by zero."""
    assert safe_ratio(3, 0) == 0
    assert safe_ratio(1, 3) == 0.33
    assert safe_ratio(1, 3, 1) == 0.3


@pytest.mark.parametrize(
    "size,expected",
    [(0, "xs"), (9, "xs"), (10, "s"), (99, "s"), (100, "m"), (499, "m"), (500, "l"), (999, "l"), (1000, "xl")],
)
def test_size_bucket_boundaries(size, expected):
    """Verify bucket upper bounds are exclusive."""
    assert size_bucket(size) == expected


def test_rank_counts_keeps_first_appearance_for_ties():
    """Verify ranking is descending and stable for equal counts."""
    counts = count_by(["a", "b", "c", "b", "c"], lambda item: item)

    assert rank_counts(counts) == [("b", 2), ("c", 2), ("a", 1)]
    assert rank_counts(counts, limit=1) == [("b", 2)]


def test_generate_report_without_ai_commits_omits_ai_section():
    """Verify the summary has DORA, PR and commit sections and no AI section."""
    report = calculate_metrics([], [], [], DateRange(start=START, end=START + timedelta(days=7)))

    text = generate_report(report)

    assert "DORA Metrics" in text
    assert "Lead Time (median): 0m" in text
    assert "Change Failure Rate: 0%" in text
    assert "Pull Requests" in text
    assert "Commits" in text
    assert "AI-Assisted Development" not in text


def test_generate_report_lists_top_ai_tools_and_users():
    """Verify the AI section appears when AI-assisted commits exist."""
    co_author = AICoAuthor(name="Claude", email="noreply@anthropic.com", tool=AITool.CLAUDE)
    commits = [
        Commit(
            sha="abc1234",
            shortSha="abc1234",
            message="feat: x",
            author="alice",
            authorEmail="alice@example.com",
            committedAt=START,
            aiCoAuthors=(co_author,),
            isAIAssisted=True,
        ),
        Commit(
            sha="def5678",
            shortSha="def5678",
            message="fix: y",
            author="bob",
            authorEmail="bob@example.com",
            committedAt=START,
        ),
    ]
    report = calculate_metrics([], commits, [], DateRange(start=START, end=START + timedelta(days=7)))

    text = generate_report(report)

    assert "AI-Assisted Development" in text
    assert "AI Commits: 1 (50.0%)" in text
    assert "Users with AI: 1/2" in text
    assert "Top Tools: claude: 1" in text
    assert "Top AI Users: alice: 1" in text


def test_calculate_stats_odd_count_median():
    """Verify the middle element is the median for odd sample counts."""
    assert calculate_stats([5.0, 3.0, 1.0, 4.0, 2.0]).median == 3.0
