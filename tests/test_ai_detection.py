"""Tests for AI co-author detection."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from velocity.ai_detection import (
    calculate_ai_stats,
    detect_ai_co_authors,
    get_ai_tool_display_name,
    has_ai_indicators,
    identify_ai_tool,
    is_excluded_bot,
)
from velocity.models import AICoAuthor, AITool, Commit


def _commit(sha: str, author: str, tools=()) -> Commit:
    co_authors = tuple(AICoAuthor(name=tool.value, email=f"{tool.value}@example.com", tool=tool) for tool in tools)
    return Commit(
        sha=sha,
        shortSha=sha[:7],
        message="change",
        author=author,
        authorEmail=f"{author}@example.com",
        committedAt=datetime(2026, 1, 1, tzinfo=timezone.utc),
        aiCoAuthors=co_authors,
        isAIAssisted=bool(co_authors),
    )


@pytest.mark.parametrize(
    "name,email,expected",
    [
        ("Claude", "noreply@anthropic.com", AITool.CLAUDE),
        ("Claude Sonnet 4", "noreply@example.com", AITool.CLAUDE),
        ("GitHub Copilot", "copilot@github.com", AITool.COPILOT),
        ("Copilot", "198982749+Copilot@users.noreply.github.com", AITool.COPILOT),
        ("Cursor", "cursoragent@cursor.com", AITool.CURSOR),
        ("Windsurf", "bot@codeium.com", AITool.CODEIUM),
        ("Amazon Q", "q@amazon.com", AITool.AMAZON_Q),
        ("Gemini", "gemini@google.com", AITool.GEMINI),
        ("ChatGPT", "assistant@example.com", AITool.OTHER),
    ],
)
def test_identify_ai_tool_known_identities(name, email, expected):
    """Verify known AI co-author identities map to their tool."""
    assert identify_ai_tool(name, email) == expected


def test_identify_ai_tool_is_case_insensitive():
    """Verify matching ignores case in both name and email."""
    assert identify_ai_tool("CLAUDE", "NOREPLY@ANTHROPIC.COM") == AITool.CLAUDE


def test_identify_ai_tool_bot_exclusion_takes_precedence():
    """Verify an automation bot is rejected even when its email looks like an AI tool."""
    assert identify_ai_tool("release-bot", "claude@anthropic.com") is None


@pytest.mark.parametrize(
    "name,email",
    [
        ("dependabot[bot]", "support@github.com"),
        ("github-actions[bot]", "41898282+github-actions[bot]@users.noreply.github.com"),
        ("renovate[bot]", "bot@renovateapp.com"),
    ],
)
def test_identify_ai_tool_ignores_automation_bots(name, email):
    """Verify dependency and CI bots are never counted as AI assistants."""
    assert is_excluded_bot(name, email)
    assert identify_ai_tool(name, email) is None


def test_identify_ai_tool_requires_both_parts_when_pattern_has_both():
    """Verify patterns with a name and an email match only when both match."""
    assert identify_ai_tool("Q", "dev@amazon.com") == AITool.AMAZON_Q
    assert identify_ai_tool("Q", "q-team@example.com") is None
    assert identify_ai_tool("Gemini Helper", "dev@google.com") == AITool.GEMINI
    assert identify_ai_tool("Someone", "dev@google.com") is None


@pytest.mark.parametrize(
    "name,email",
    [
        ("Jane Doe", "jane@example.com"),
        ("Kai", "kai@example.com"),
        ("Claude", ""),
        ("", "noreply@anthropic.com"),
        (None, None),
    ],
)
def test_identify_ai_tool_returns_none_for_humans_and_missing_parts(name, email):
    """Verify humans, short 'ai' substrings and incomplete identities are not matched."""
    assert identify_ai_tool(name, email) is None


def test_detect_ai_co_authors_deduplicates_case_insensitively():
    """Verify repeated trailers for the same identity are reported once."""
    message = (
        "feat: add thing\n"
        "\n"
        "Co-Authored-By: Claude <noreply@anthropic.com>\n"
        "co-authored-by: claude <NOREPLY@anthropic.com>\n"
        "Co-authored-by: Jane Doe <jane@example.com>\n"
    )

    co_authors = detect_ai_co_authors(message)

    assert co_authors == [AICoAuthor(name="Claude", email="noreply@anthropic.com", tool=AITool.CLAUDE)]


def test_detect_ai_co_authors_keeps_first_appearance_order():
    """Verify multiple AI co-authors are returned in message order."""
    message = (
        "fix: thing\n\n"
        "Co-authored-by: GitHub Copilot <copilot@github.com>\n"
        "Co-authored-by: Claude <noreply@anthropic.com>"
    )

    tools = [co_author.tool for co_author in detect_ai_co_authors(message)]

    assert tools == [AITool.COPILOT, AITool.CLAUDE]


def test_detect_ai_co_authors_requires_trailer_at_line_start():
    """Verify trailers quoted mid-line are ignored."""
    assert detect_ai_co_authors("see Co-Authored-By: Claude <noreply@anthropic.com>") == []


@pytest.mark.parametrize("message", [None, "", "chore: bump version"])
def test_detect_ai_co_authors_empty_results(message):
    """Verify messages without trailers yield no co-authors."""
    assert detect_ai_co_authors(message) == []


def test_has_ai_indicators():
    """Verify inline AI tags are detected and plain messages are not."""
    assert has_ai_indicators("[AI] refactor parser")
    assert has_ai_indicators("docs: Generated by Copilot")
    assert has_ai_indicators("feat: ai-assisted migration")
    assert not has_ai_indicators("fix: handle empty input")
    assert not has_ai_indicators(None)


def test_get_ai_tool_display_name():
    """Verify display names for tools."""
    assert get_ai_tool_display_name(AITool.AMAZON_Q) == "Amazon Q"
    assert get_ai_tool_display_name(AITool.COPILOT) == "GitHub Copilot"


def test_calculate_ai_stats_summarizes_tools_and_authors():
    """Verify the extraction-time AI summary counts tools and per-author ratios."""
    commits = [
        _commit("a1", "alice", [AITool.CLAUDE]),
        _commit("a2", "alice"),
        _commit("b1", "bob", [AITool.COPILOT]),
    ]

    stats = calculate_ai_stats(commits)

    assert stats["totalCommits"] == 3
    assert stats["aiAssistedCommits"] == 2
    assert stats["aiRatio"] == 0.67
    assert stats["byTool"] == [{"tool": "claude", "count": 1}, {"tool": "copilot", "count": 1}]
    assert stats["byAuthor"] == [
        {"author": "alice", "aiCommits": 1, "totalCommits": 2, "ratio": 0.5},
        {"author": "bob", "aiCommits": 1, "totalCommits": 1, "ratio": 1.0},
    ]


def test_calculate_ai_stats_empty():
    """Verify empty input does not divide by zero."""
    stats = calculate_ai_stats([])

    assert stats["aiRatio"] == 0
    assert stats["byTool"] == []
