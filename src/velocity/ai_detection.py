"""AI co-author detection for commit messages.

Classification of a ``(name, email)`` pair runs in a fixed order:

1. Known automation bots (dependency updaters, CI/CD, release tooling) are
   rejected first, even when they also look like an AI tool.
2. The known-tool table is scanned in order; the first matching pattern wins.
3. A narrow set of generic AI markers maps to ``AITool.OTHER``.

Nothing in this module raises for malformed input; unmatched input yields
``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Set, Tuple

from .models import AICoAuthor, AITool, Commit
from .stats import rank_counts, safe_ratio


def _ci(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


EXCLUDED_BOT_PATTERNS: Tuple[Pattern[str], ...] = (
    # Dependency update bots
    _ci(r"dependabot"),
    _ci(r"renovate"),
    _ci(r"maven-dependency-updater"),
    _ci(r"snyk"),
    _ci(r"greenkeeper"),
    # CI/CD bots
    _ci(r"github-actions"),
    _ci(r"vercel\[bot\]"),
    _ci(r"netlify"),
    _ci(r"circleci"),
    _ci(r"travis"),
    # Internal automation bots
    _ci(r"registry-file-exporter"),
    _ci(r"devex-bazel-targets-disabler"),
    _ci(r"devex-bca"),
    _ci(r"flynt-manager"),
    _ci(r"babel-app"),
    _ci(r"confidence-infra"),
    _ci(r"uncle-bot"),
    _ci(r"bca\[bot\]"),
    # Documentation bots
    _ci(r"docs-bot"),
    _ci(r"nextjs-bot"),
    # Generic automation
    _ci(r"\binfra\[bot\]"),
    _ci(r"\bci\[bot\]"),
    _ci(r"\bcd\[bot\]"),
    _ci(r"\bdeploy"),
    _ci(r"\brelease"),
    _ci(r"\bmerge"),
    _ci(r"\bsync"),
)


@dataclass(frozen=True)
class CoAuthorPattern:
    """Email and/or name expression; when both are set, both must match."""

    email: Optional[Pattern[str]] = None
    name: Optional[Pattern[str]] = None

    def matches(self, name: str, email: str) -> bool:
        if self.email is not None and self.name is not None:
            return bool(self.email.search(email)) and bool(self.name.search(name))
        if self.email is not None:
            return bool(self.email.search(email))
        if self.name is not None:
            return bool(self.name.search(name))
        return False


# Scanned in this order; the first tool with a matching pattern wins.
AI_TOOL_PATTERNS: Tuple[Tuple[AITool, Tuple[CoAuthorPattern, ...]], ...] = (
    (
        AITool.COPILOT,
        (
            CoAuthorPattern(email=_ci(r"copilot@github\.com")),
            CoAuthorPattern(email=_ci(r"github-copilot")),
            CoAuthorPattern(name=_ci(r"github\s*copilot")),
            CoAuthorPattern(name=_ci(r"copilot-swe-agent")),
            CoAuthorPattern(email=_ci(r"copilot@users\.noreply\.github\.com")),
        ),
    ),
    (
        AITool.CLAUDE,
        (
            CoAuthorPattern(email=_ci(r"@anthropic\.com")),
            CoAuthorPattern(email=_ci(r"claude@")),
            CoAuthorPattern(name=_ci(r"^claude$")),
            CoAuthorPattern(name=_ci(r"claude\s*(sonnet|opus|haiku)")),
            CoAuthorPattern(name=_ci(r"anthropic")),
        ),
    ),
    (
        AITool.CURSOR,
        (
            CoAuthorPattern(email=_ci(r"@cursor\.(sh|com)")),
            CoAuthorPattern(email=_ci(r"cursor@")),
            CoAuthorPattern(name=_ci(r"^cursor$")),
            CoAuthorPattern(name=_ci(r"cursor\s*ai")),
        ),
    ),
    (
        AITool.CODEIUM,
        (
            CoAuthorPattern(email=_ci(r"@codeium\.com")),
            CoAuthorPattern(email=_ci(r"codeium@")),
            CoAuthorPattern(name=_ci(r"^codeium$")),
            CoAuthorPattern(name=_ci(r"windsurf")),
        ),
    ),
    (
        AITool.AMAZON_Q,
        (
            CoAuthorPattern(email=_ci(r"q@amazon\.com")),
            CoAuthorPattern(email=_ci(r"amazon-q")),
            CoAuthorPattern(name=_ci(r"amazon\s*q")),
            CoAuthorPattern(email=_ci(r"@amazon\.com"), name=_ci(r"^q$")),
        ),
    ),
    (
        AITool.GEMINI,
        (
            CoAuthorPattern(email=_ci(r"@google\.com"), name=_ci(r"gemini")),
            CoAuthorPattern(email=_ci(r"gemini@")),
            CoAuthorPattern(name=_ci(r"^gemini$")),
            CoAuthorPattern(name=_ci(r"google\s*gemini")),
        ),
    ),
)

# Deliberately narrower than a bare "ai" token.
GENERIC_AI_PATTERNS: Tuple[Pattern[str], ...] = (
    _ci(r"\bai[-_\s]?assistant\b"),
    _ci(r"\bai[-_\s]?helper\b"),
    _ci(r"\bai[-_\s]?coder\b"),
    _ci(r"\bartificial\s*intelligence\b"),
    _ci(r"\bllm\b"),
    _ci(r"\bgpt\b"),
    _ci(r"\bchatgpt\b"),
    _ci(r"\bopenai\b"),
    _ci(r"\bcodegen\b"),
    _ci(r"\bauto[-_]?code\b"),
)

AI_INDICATOR_PATTERNS: Tuple[Pattern[str], ...] = (
    _ci(r"\[ai\]"),
    _ci(r"\[ai-generated\]"),
    _ci(r"generated\s+by\s+(ai|copilot|claude|cursor|codeium)"),
    _ci(r"ai-assisted"),
)

CO_AUTHOR_REGEX = re.compile(r"^co-authored-by:\s*(.+?)\s*<([^>]+)>\s*$", re.IGNORECASE | re.MULTILINE)

AI_TOOL_DISPLAY_NAMES: Dict[AITool, str] = {
    AITool.COPILOT: "GitHub Copilot",
    AITool.CLAUDE: "Claude",
    AITool.CURSOR: "Cursor",
    AITool.CODEIUM: "Codeium",
    AITool.AMAZON_Q: "Amazon Q",
    AITool.GEMINI: "Google Gemini",
    AITool.OTHER: "Other AI",
}


def is_excluded_bot(name: str, email: str) -> bool:
    """Check whether a co-author identity belongs to a known non-AI automation bot."""
    combined = f"{name} {email}"
    return any(pattern.search(combined) for pattern in EXCLUDED_BOT_PATTERNS)


def identify_ai_tool(name: Optional[str], email: Optional[str]) -> Optional[AITool]:
    """Identify which AI tool, if any, a co-author identity belongs to."""
    name = (name or "").strip()
    email = (email or "").strip()
    if not name or not email:
        return None

    if is_excluded_bot(name, email):
        return None

    for tool, patterns in AI_TOOL_PATTERNS:
        if any(pattern.matches(name, email) for pattern in patterns):
            return tool

    for pattern in GENERIC_AI_PATTERNS:
        if pattern.search(name) or pattern.search(email):
            return AITool.OTHER

    return None


def detect_ai_co_authors(commit_message: Optional[str]) -> List[AICoAuthor]:
    """Return the distinct AI co-authors credited in a commit message.

    Duplicate trailers (same name and email, ignoring case) are reported once,
    in order of first appearance.
    """
    if not commit_message:
        return []

    co_authors: List[AICoAuthor] = []
    seen: Set[Tuple[str, str]] = set()

    for match in CO_AUTHOR_REGEX.finditer(commit_message):
        name = match.group(1).strip()
        email = match.group(2).strip().lower()
        key = (name.lower(), email)
        if key in seen:
            continue
        seen.add(key)

        tool = identify_ai_tool(name, email)
        if tool is not None:
            co_authors.append(AICoAuthor(name=name, email=email, tool=tool))

    return co_authors


def has_ai_indicators(commit_message: Optional[str]) -> bool:
    """Check a commit message for inline AI-generation tags beyond co-author trailers."""
    if not commit_message:
        return False
    return any(pattern.search(commit_message) for pattern in AI_INDICATOR_PATTERNS)


def get_ai_tool_display_name(tool: AITool) -> str:
    return AI_TOOL_DISPLAY_NAMES[tool]


def calculate_ai_stats(commits: Iterable[Commit]) -> Dict[str, Any]:
    """Summarize AI assistance across commits for the extracted commit document."""
    commit_list = list(commits)
    total_commits = len(commit_list)
    ai_assisted = sum(1 for commit in commit_list if commit.isAIAssisted)

    tool_counts: Dict[str, int] = {}
    for commit in commit_list:
        for co_author in commit.aiCoAuthors:
            tool_counts[co_author.tool.value] = tool_counts.get(co_author.tool.value, 0) + 1

    author_stats: Dict[str, List[int]] = {}
    for commit in commit_list:
        stats = author_stats.setdefault(commit.author, [0, 0])
        stats[1] += 1
        if commit.isAIAssisted:
            stats[0] += 1

    by_author = sorted(
        (
            {
                "author": author,
                "aiCommits": ai,
                "totalCommits": total,
                "ratio": safe_ratio(ai, total, 2),
            }
            for author, (ai, total) in author_stats.items()
        ),
        key=lambda item: item["aiCommits"],
        reverse=True,
    )

    return {
        "totalCommits": total_commits,
        "aiAssistedCommits": ai_assisted,
        "aiRatio": safe_ratio(ai_assisted, total_commits, 2),
        "byTool": [{"tool": tool, "count": count} for tool, count in rank_counts(tool_counts)],
        "byAuthor": by_author,
    }
