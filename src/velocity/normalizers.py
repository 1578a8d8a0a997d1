"""Normalization of raw GitHub REST records into velocity models.

Each ``normalize_*`` function maps one raw API record to one immutable model,
filling missing counts with ``0`` and missing people with ``"unknown"``.
Nullable timestamps (``merged_at``, ``closed_at``) and descriptions stay
``None``. A record without any usable creation timestamp cannot be placed in
a date range and raises :class:`DataValidationError`; the extractors skip it.

The ``is_excluded_*`` predicates implement the configured exclusions and are
applied by the extractors before records reach the metrics calculator.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Tuple

from .ai_detection import detect_ai_co_authors, has_ai_indicators
from .config import Settings
from .dates import parse_datetime
from .errors import DataValidationError
from .models import DEPLOYMENT_STATES, REVIEW_STATES, Commit, Deployment, PullRequest, Release, Review

UNKNOWN_AUTHOR = "unknown"


def _login(user: Any) -> Optional[str]:
    if isinstance(user, Mapping):
        login = user.get("login")
        if login:
            return str(login)
    return None


def _count(value: Any) -> int:
    if isinstance(value, Mapping):
        value = value.get("totalCount")
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _timestamp(raw: Mapping[str, Any], *keys: str) -> datetime:
    for key in keys:
        parsed = parse_datetime(raw.get(key))
        if parsed is not None:
            return parsed
    raise DataValidationError(f"Record is missing a valid timestamp ({', '.join(keys)}): {dict(raw)}")


def _labels(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    labels = []
    for label in raw.get("labels") or ():
        name = label.get("name") if isinstance(label, Mapping) else label
        if name:
            labels.append(str(name))
    return tuple(labels)


def derive_pr_state(raw: Mapping[str, Any]) -> str:
    """Derive ``merged``/``closed``/``open`` from merge and close timestamps.

    A merge timestamp always wins over the host's reported state.
    """
    if raw.get("merged_at"):
        return "merged"
    if str(raw.get("state") or "").lower() == "closed" or raw.get("closed_at"):
        return "closed"
    return "open"


def normalize_review(raw: Mapping[str, Any]) -> Optional[Review]:
    """Normalize a pull request review; unsubmitted reviews yield ``None``."""
    submitted_at = parse_datetime(raw.get("submitted_at"))
    if submitted_at is None:
        return None

    state = str(raw.get("state") or "").upper()
    return Review(
        author=_login(raw.get("user")) or UNKNOWN_AUTHOR,
        state=state if state in REVIEW_STATES else "COMMENTED",
        submittedAt=submitted_at,
    )


def normalize_pull_request(raw: Mapping[str, Any], reviews: Iterable[Review] = ()) -> PullRequest:
    created_at = _timestamp(raw, "created_at")
    base = raw.get("base") or {}
    head = raw.get("head") or {}

    return PullRequest(
        number=int(raw.get("number") or 0),
        title=str(raw.get("title") or ""),
        author=_login(raw.get("user")) or UNKNOWN_AUTHOR,
        state=derive_pr_state(raw),
        isDraft=bool(raw.get("draft", False)),
        createdAt=created_at,
        updatedAt=parse_datetime(raw.get("updated_at")) or created_at,
        mergedAt=parse_datetime(raw.get("merged_at")),
        closedAt=parse_datetime(raw.get("closed_at")),
        additions=_count(raw.get("additions")),
        deletions=_count(raw.get("deletions")),
        changedFiles=_count(raw.get("changed_files")),
        labels=_labels(raw),
        reviews=tuple(reviews),
        commits=_count(raw.get("commits")),
        comments=_count(raw.get("comments")),
        baseBranch=str(base.get("ref") or "main"),
        headBranch=str(head.get("ref") or ""),
        url=str(raw.get("html_url") or ""),
    )


def commit_author(raw: Mapping[str, Any]) -> str:
    """Return the GitHub login of a raw commit, falling back to the git author name."""
    git_author = (raw.get("commit") or {}).get("author") or {}
    return _login(raw.get("author")) or str(git_author.get("name") or UNKNOWN_AUTHOR)


def normalize_commit(raw: Mapping[str, Any]) -> Commit:
    """Normalize a commit, detecting AI co-authors from the full message."""
    details = raw.get("commit") or {}
    git_author = details.get("author") or {}
    committer = details.get("committer") or {}

    committed_at = parse_datetime(git_author.get("date")) or parse_datetime(committer.get("date"))
    if committed_at is None:
        raise DataValidationError(f"Commit {raw.get('sha')} is missing an author date")

    sha = str(raw.get("sha") or "")
    full_message = str(details.get("message") or "")
    parents = tuple(
        str(parent.get("sha")) for parent in raw.get("parents") or () if isinstance(parent, Mapping)
    )
    stats = raw.get("stats") or {}
    ai_co_authors = tuple(detect_ai_co_authors(full_message))

    return Commit(
        sha=sha,
        shortSha=sha[:7],
        message=full_message.split("\n", 1)[0],
        author=commit_author(raw),
        authorEmail=str(git_author.get("email") or ""),
        committedAt=committed_at,
        additions=_count(stats.get("additions")),
        deletions=_count(stats.get("deletions")),
        changedFiles=len(raw.get("files") or ()),
        parents=parents,
        isMergeCommit=len(parents) > 1,
        aiCoAuthors=ai_co_authors,
        isAIAssisted=bool(ai_co_authors) or has_ai_indicators(full_message),
    )


def normalize_deployment_state(state: Optional[str]) -> str:
    """Map a raw deployment state to a known state; unknown values become ``pending``."""
    normalized = str(state or "").lower()
    return normalized if normalized in DEPLOYMENT_STATES else "pending"


def normalize_deployment(raw: Mapping[str, Any]) -> Deployment:
    created_at = _timestamp(raw, "created_at")
    description = raw.get("description")

    return Deployment(
        id=str(raw.get("id", "")),
        environment=str(raw.get("environment") or ""),
        state=normalize_deployment_state(raw.get("state")),
        createdAt=created_at,
        updatedAt=parse_datetime(raw.get("updated_at")) or created_at,
        sha=str(raw.get("sha") or ""),
        ref=str(raw.get("ref") or ""),
        creator=_login(raw.get("creator")) or UNKNOWN_AUTHOR,
        description=str(description) if description is not None else None,
    )


def normalize_release(raw: Mapping[str, Any]) -> Release:
    created_at = _timestamp(raw, "created_at", "published_at")
    tag_name = str(raw.get("tag_name") or "")

    return Release(
        id=int(raw.get("id") or 0),
        tagName=tag_name,
        name=str(raw.get("name") or tag_name),
        createdAt=created_at,
        publishedAt=parse_datetime(raw.get("published_at")) or created_at,
        author=_login(raw.get("author")) or UNKNOWN_AUTHOR,
        isDraft=bool(raw.get("draft", False)),
        isPrerelease=bool(raw.get("prerelease", False)),
        targetCommitish=str(raw.get("target_commitish") or ""),
    )


def is_excluded_pull_request(raw: Mapping[str, Any], settings: Settings) -> bool:
    """Apply draft, author and label exclusions to a raw pull request."""
    if settings.exclude_draft_prs and raw.get("draft"):
        return True

    if (_login(raw.get("user")) or UNKNOWN_AUTHOR) in settings.exclude_authors:
        return True

    labels = _labels(raw)
    return any(excluded in labels for excluded in settings.exclude_labels)


def is_excluded_commit(raw: Mapping[str, Any], settings: Settings) -> bool:
    return commit_author(raw) in settings.exclude_authors
