"""Domain models for velocity data extraction and metrics reporting.

All records are immutable. Field names follow the camelCase keys of the
persisted JSON documents so that serialization is a direct field walk.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dates import format_datetime, parse_datetime


class AITool(str, Enum):
    """AI coding assistants recognized by co-author detection."""

    COPILOT = "copilot"
    CLAUDE = "claude"
    CURSOR = "cursor"
    CODEIUM = "codeium"
    AMAZON_Q = "amazon-q"
    GEMINI = "gemini"
    OTHER = "other"


PR_STATES = ("open", "closed", "merged")
REVIEW_STATES = ("APPROVED", "CHANGES_REQUESTED", "COMMENTED", "PENDING", "DISMISSED")
DEPLOYMENT_STATES = ("success", "failure", "pending", "in_progress", "queued", "error", "inactive")
FAILED_DEPLOYMENT_STATES = ("failure", "error")


def to_json_value(value: Any) -> Any:
    """Convert models (and containers of them) into JSON-compatible values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_json_value(getattr(value, item.name)) for item in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    return value


def _required_datetime(data: Mapping[str, Any], key: str) -> datetime:
    parsed = parse_datetime(data.get(key))
    if parsed is None:
        raise ValueError(f"Missing or invalid timestamp field '{key}'")
    return parsed


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive time window covered by a dataset or report."""

    start: datetime
    end: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DateRange:
        return cls(start=_required_datetime(data, "start"), end=_required_datetime(data, "end"))


@dataclass(frozen=True, slots=True)
class AICoAuthor:
    """An AI assistant credited through a ``Co-Authored-By`` trailer."""

    name: str
    email: str
    tool: AITool

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AICoAuthor:
        return cls(
            name=str(data.get("name", "")),
            email=str(data.get("email", "")).lower(),
            tool=AITool(data.get("tool", AITool.OTHER.value)),
        )


@dataclass(frozen=True, slots=True)
class Review:
    """A submitted pull request review."""

    author: str
    state: str
    submittedAt: datetime

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Review:
        return cls(
            author=str(data.get("author") or "unknown"),
            state=str(data.get("state") or "COMMENTED"),
            submittedAt=_required_datetime(data, "submittedAt"),
        )


@dataclass(frozen=True, slots=True)
class PullRequest:
    """A normalized pull request."""

    number: int
    title: str
    author: str
    state: str
    isDraft: bool
    createdAt: datetime
    updatedAt: datetime
    mergedAt: Optional[datetime]
    closedAt: Optional[datetime]
    additions: int = 0
    deletions: int = 0
    changedFiles: int = 0
    labels: Tuple[str, ...] = ()
    reviews: Tuple[Review, ...] = ()
    commits: int = 0
    comments: int = 0
    baseBranch: str = "main"
    headBranch: str = ""
    url: str = ""

    @property
    def size(self) -> int:
        return self.additions + self.deletions

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PullRequest:
        created_at = _required_datetime(data, "createdAt")
        return cls(
            number=int(data.get("number", 0)),
            title=str(data.get("title") or ""),
            author=str(data.get("author") or "unknown"),
            state=str(data.get("state") or "open"),
            isDraft=bool(data.get("isDraft", False)),
            createdAt=created_at,
            updatedAt=parse_datetime(data.get("updatedAt")) or created_at,
            mergedAt=parse_datetime(data.get("mergedAt")),
            closedAt=parse_datetime(data.get("closedAt")),
            additions=int(data.get("additions") or 0),
            deletions=int(data.get("deletions") or 0),
            changedFiles=int(data.get("changedFiles") or 0),
            labels=tuple(str(label) for label in data.get("labels") or ()),
            reviews=tuple(Review.from_dict(item) for item in data.get("reviews") or ()),
            commits=int(data.get("commits") or 0),
            comments=int(data.get("comments") or 0),
            baseBranch=str(data.get("baseBranch") or "main"),
            headBranch=str(data.get("headBranch") or ""),
            url=str(data.get("url") or ""),
        )


@dataclass(frozen=True, slots=True)
class Commit:
    """A normalized commit with AI-assistance attribution."""

    sha: str
    shortSha: str
    message: str
    author: str
    authorEmail: str
    committedAt: datetime
    additions: int = 0
    deletions: int = 0
    changedFiles: int = 0
    parents: Tuple[str, ...] = ()
    isMergeCommit: bool = False
    aiCoAuthors: Tuple[AICoAuthor, ...] = ()
    isAIAssisted: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Commit:
        sha = str(data.get("sha") or "")
        parents = tuple(str(parent) for parent in data.get("parents") or ())
        return cls(
            sha=sha,
            shortSha=str(data.get("shortSha") or sha[:7]),
            message=str(data.get("message") or ""),
            author=str(data.get("author") or "unknown"),
            authorEmail=str(data.get("authorEmail") or ""),
            committedAt=_required_datetime(data, "committedAt"),
            additions=int(data.get("additions") or 0),
            deletions=int(data.get("deletions") or 0),
            changedFiles=int(data.get("changedFiles") or 0),
            parents=parents,
            isMergeCommit=len(parents) > 1,
            aiCoAuthors=tuple(AICoAuthor.from_dict(item) for item in data.get("aiCoAuthors") or ()),
            isAIAssisted=bool(data.get("isAIAssisted", False)),
        )


@dataclass(frozen=True, slots=True)
class Deployment:
    """A normalized deployment with its latest reported state."""

    id: str
    environment: str
    state: str
    createdAt: datetime
    updatedAt: datetime
    sha: str
    ref: str
    creator: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Deployment:
        created_at = _required_datetime(data, "createdAt")
        state = str(data.get("state") or "pending")
        return cls(
            id=str(data.get("id", "")),
            environment=str(data.get("environment") or ""),
            state=state if state in DEPLOYMENT_STATES else "pending",
            createdAt=created_at,
            updatedAt=parse_datetime(data.get("updatedAt")) or created_at,
            sha=str(data.get("sha") or ""),
            ref=str(data.get("ref") or ""),
            creator=str(data.get("creator") or "unknown"),
            description=data.get("description"),
        )


@dataclass(frozen=True, slots=True)
class Release:
    """A published release, used as a deployment signal for repos without deployments."""

    id: int
    tagName: str
    name: str
    createdAt: datetime
    publishedAt: datetime
    author: str
    isDraft: bool
    isPrerelease: bool
    targetCommitish: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Release:
        created_at = _required_datetime(data, "createdAt")
        tag_name = str(data.get("tagName") or "")
        return cls(
            id=int(data.get("id", 0)),
            tagName=tag_name,
            name=str(data.get("name") or tag_name),
            createdAt=created_at,
            publishedAt=parse_datetime(data.get("publishedAt")) or created_at,
            author=str(data.get("author") or "unknown"),
            isDraft=bool(data.get("isDraft", False)),
            isPrerelease=bool(data.get("isPrerelease", False)),
            targetCommitish=str(data.get("targetCommitish") or ""),
        )


@dataclass(frozen=True, slots=True)
class RepositoryDeployments:
    """Deployments and releases extracted from one repository."""

    deployments: Tuple[Deployment, ...] = ()
    releases: Tuple[Release, ...] = ()


@dataclass(frozen=True)
class PullRequestDocument:
    """Persisted pull request collection keyed by ``owner/repo``."""

    extractedAt: datetime
    dateRange: DateRange
    repositories: Dict[str, Tuple[PullRequest, ...]] = field(default_factory=dict)

    def all_pull_requests(self) -> List[PullRequest]:
        return [pr for prs in self.repositories.values() for pr in prs]


@dataclass(frozen=True)
class CommitDocument:
    """Persisted commit collection keyed by ``owner/repo``."""

    extractedAt: datetime
    dateRange: DateRange
    repositories: Dict[str, Tuple[Commit, ...]] = field(default_factory=dict)
    aiSummary: Optional[Dict[str, Any]] = None

    def all_commits(self) -> List[Commit]:
        return [commit for commits in self.repositories.values() for commit in commits]


@dataclass(frozen=True)
class DeploymentDocument:
    """Persisted deployment and release collection keyed by ``owner/repo``."""

    extractedAt: datetime
    dateRange: DateRange
    repositories: Dict[str, RepositoryDeployments] = field(default_factory=dict)

    def all_deployments(self) -> List[Deployment]:
        return [item for repo in self.repositories.values() for item in repo.deployments]

    def all_releases(self) -> List[Release]:
        return [item for repo in self.repositories.values() for item in repo.releases]


# Metrics report


@dataclass(frozen=True, slots=True)
class DurationStats:
    average: float
    median: float
    p90: float


@dataclass(frozen=True, slots=True)
class DurationMetric:
    averageHours: float
    medianHours: float
    p90Hours: float
    formatted: str


@dataclass(frozen=True, slots=True)
class Frequency:
    perDay: float
    perWeek: float


@dataclass(frozen=True, slots=True)
class ChangeFailureRate:
    percentage: float
    failed: int
    total: int


@dataclass(frozen=True, slots=True)
class DoraMetrics:
    leadTimeForChanges: DurationMetric
    deploymentFrequency: Frequency
    changeFailureRate: ChangeFailureRate
    # Mean time to recovery is not derived from the extracted data.
    meanTimeToRecovery: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Throughput:
    opened: int
    merged: int
    closed: int


@dataclass(frozen=True, slots=True)
class SizeDistribution:
    xs: int = 0
    s: int = 0
    m: int = 0
    l: int = 0  # noqa: E741
    xl: int = 0


@dataclass(frozen=True, slots=True)
class PullRequestMetrics:
    timeToFirstReview: DurationMetric
    timeToMerge: DurationMetric
    throughput: Throughput
    sizeDistribution: SizeDistribution


@dataclass(frozen=True, slots=True)
class ContributorCount:
    author: str
    commits: int


@dataclass(frozen=True, slots=True)
class Contributors:
    total: int
    top: Tuple[ContributorCount, ...]


@dataclass(frozen=True, slots=True)
class CommitMetrics:
    total: int
    frequency: Frequency
    contributors: Contributors


@dataclass(frozen=True, slots=True)
class AISummary:
    totalAICommits: int
    totalCommits: int
    aiRatio: float
    usersWithAI: int
    totalUsers: int


@dataclass(frozen=True, slots=True)
class ToolUsage:
    tool: AITool
    commits: int
    users: int


@dataclass(frozen=True, slots=True)
class UserAIUsage:
    author: str
    aiCommits: int
    totalCommits: int
    ratio: float
    primaryTool: Optional[AITool]


@dataclass(frozen=True, slots=True)
class AITrendPoint:
    date: str
    aiCommits: int
    totalCommits: int
    ratio: float


@dataclass(frozen=True, slots=True)
class AIMetrics:
    summary: AISummary
    byTool: Tuple[ToolUsage, ...]
    byUser: Tuple[UserAIUsage, ...]
    trend: Tuple[AITrendPoint, ...]


@dataclass(frozen=True, slots=True)
class ReportSummary:
    repositories: int
    totalPRs: int
    totalCommits: int
    totalDeployments: int


@dataclass(frozen=True, slots=True)
class MetricsReport:
    """The calculated metrics snapshot written to ``metrics.json``."""

    calculatedAt: datetime
    dateRange: DateRange
    summary: ReportSummary
    dora: DoraMetrics
    pullRequests: PullRequestMetrics
    commits: CommitMetrics
    ai: AIMetrics

    def to_dict(self) -> Dict[str, Any]:
        return to_json_value(self)
