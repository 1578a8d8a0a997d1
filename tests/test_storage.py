"""Tests for reading and writing extraction and metrics documents."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from velocity.calculator import calculate_metrics
from velocity.errors import DataValidationError
from velocity.extractors import ExtractionResult
from velocity.models import (
    AICoAuthor,
    AITool,
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
from velocity.storage import (
    COMMITS_FILENAME,
    DEPLOYMENTS_FILENAME,
    PRS_FILENAME,
    load_deployment_document,
    load_extraction,
    load_pr_document,
    write_extraction,
    write_metrics,
)

START = datetime(2026, 1, 1, tzinfo=timezone.utc)
DATE_RANGE = DateRange(start=START, end=START + timedelta(days=30))


def _extraction() -> ExtractionResult:
    pr = PullRequest(
        number=1,
        title="Add feature",
        author="alice",
        state="merged",
        isDraft=False,
        createdAt=START,
        updatedAt=START + timedelta(hours=5),
        mergedAt=START + timedelta(hours=4),
        closedAt=START + timedelta(hours=4),
        additions=12,
        deletions=3,
        labels=("feature",),
        reviews=(Review(author="bob", state="APPROVED", submittedAt=START + timedelta(hours=1)),),
    )
    commit = Commit(
        sha="abcdef1234567890",
        shortSha="abcdef1",
        message="feat: add feature",
        author="alice",
        authorEmail="alice@example.com",
        committedAt=START + timedelta(hours=2),
        parents=("p1",),
        aiCoAuthors=(AICoAuthor(name="Claude", email="noreply@anthropic.com", tool=AITool.CLAUDE),),
        isAIAssisted=True,
    )
    deployment = Deployment(
        id="9",
        environment="production",
        state="success",
        createdAt=START + timedelta(days=1),
        updatedAt=START + timedelta(days=1),
        sha="abcdef1234567890",
        ref="main",
        creator="deployer",
    )
    release = Release(
        id=3,
        tagName="v1.0.0",
        name="v1.0.0",
        createdAt=START + timedelta(days=2),
        publishedAt=START + timedelta(days=2),
        author="alice",
        isDraft=False,
        isPrerelease=False,
        targetCommitish="main",
    )
    extracted_at = START + timedelta(days=30)
    return ExtractionResult(
        pull_requests=PullRequestDocument(
            extractedAt=extracted_at, dateRange=DATE_RANGE, repositories={"acme/api": (pr,)}
        ),
        commits=CommitDocument(
            extractedAt=extracted_at,
            dateRange=DATE_RANGE,
            repositories={"acme/api": (commit,)},
            aiSummary={"totalCommits": 1, "aiAssistedCommits": 1, "aiRatio": 1.0, "byTool": [], "byAuthor": []},
        ),
        deployments=DeploymentDocument(
            extractedAt=extracted_at,
            dateRange=DATE_RANGE,
            repositories={"acme/api": RepositoryDeployments(deployments=(deployment,), releases=(release,))},
        ),
    )


def test_write_extraction_persists_camel_case_documents(tmp_path):
    """Verify the persisted JSON uses camelCase keys and Z timestamps."""
    paths = write_extraction(tmp_path / "data", _extraction())

    assert paths["prs"] == tmp_path / "data" / PRS_FILENAME
    payload = json.loads(paths["prs"].read_text(encoding="utf-8"))
    pr = payload["repositories"]["acme/api"][0]
    assert payload["dateRange"]["start"] == "2026-01-01T00:00:00Z"
    assert pr["mergedAt"] == "2026-01-01T04:00:00Z"
    assert pr["reviews"][0]["submittedAt"] == "2026-01-01T01:00:00Z"

    commits = json.loads((tmp_path / "data" / COMMITS_FILENAME).read_text(encoding="utf-8"))
    assert commits["repositories"]["acme/api"][0]["aiCoAuthors"][0]["tool"] == "claude"
    assert commits["aiSummary"]["aiAssistedCommits"] == 1


def test_load_extraction_restores_written_documents(tmp_path):
    """Verify documents written by extraction load back into equal models."""
    written = _extraction()
    write_extraction(tmp_path, written)

    loaded = load_extraction(tmp_path)

    assert loaded == written


def test_load_extraction_missing_file_suggests_extract(tmp_path):
    """Verify a missing data file raises a data error mentioning extract."""
    with pytest.raises(DataValidationError, match="velocity extract"):
        load_extraction(tmp_path)


def test_load_pr_document_invalid_json(tmp_path):
    """Verify unparseable files raise a data error."""
    path = tmp_path / PRS_FILENAME
    path.write_text("{", encoding="utf-8")

    with pytest.raises(DataValidationError, match="Invalid JSON"):
        load_pr_document(path)


def test_load_pr_document_without_repositories(tmp_path):
    """Verify documents without a repositories object are rejected."""
    path = tmp_path / PRS_FILENAME
    path.write_text(json.dumps({"extractedAt": "2026-01-01T00:00:00Z"}), encoding="utf-8")

    with pytest.raises(DataValidationError, match="repositories"):
        load_pr_document(path)


def test_load_pr_document_with_malformed_record(tmp_path):
    """Verify records missing required timestamps are reported as malformed."""
    path = tmp_path / PRS_FILENAME
    path.write_text(
        json.dumps(
            {
                "extractedAt": "2026-01-31T00:00:00Z",
                "dateRange": {"start": "2026-01-01T00:00:00Z", "end": "2026-01-31T00:00:00Z"},
                "repositories": {"acme/api": [{"number": 1, "title": "No dates"}]},
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(DataValidationError, match="Malformed"):
        load_pr_document(path)


def test_write_metrics_creates_parent_directories(tmp_path):
    """Verify the metrics report is written as JSON, creating directories as needed."""
    extraction = _extraction()
    report = calculate_metrics(
        extraction.pull_requests.all_pull_requests(),
        extraction.commits.all_commits(),
        extraction.deployments.all_deployments(),
        DATE_RANGE,
        repositories=1,
        calculated_at=START + timedelta(days=30),
    )

    path = write_metrics(tmp_path / "out" / "metrics.json", report)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["calculatedAt"] == "2026-01-31T00:00:00Z"
    assert payload["dora"]["leadTimeForChanges"]["formatted"] == "4.0h"
    assert payload["dora"]["meanTimeToRecovery"] is None
    assert payload["ai"]["byTool"] == [{"tool": "claude", "commits": 1, "users": 1}]
    assert payload["pullRequests"]["sizeDistribution"] == {"xs": 0, "s": 1, "m": 0, "l": 0, "xl": 0}


def test_load_pr_document_with_non_object_record(tmp_path):
    """Verify records that are not JSON objects are reported as malformed."""
    path = tmp_path / PRS_FILENAME
    path.write_text(
        json.dumps(
            {
                "extractedAt": "2026-01-31T00:00:00Z",
                "dateRange": {"start": "2026-01-01T00:00:00Z", "end": "2026-01-31T00:00:00Z"},
                "repositories": {"acme/api": ["oops"]},
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(DataValidationError, match="Malformed"):
        load_pr_document(path)


def test_load_deployment_document_with_list_per_repository(tmp_path):
    """Verify a repository entry that is not a deployments object is rejected."""
    path = tmp_path / DEPLOYMENTS_FILENAME
    path.write_text(
        json.dumps(
            {
                "extractedAt": "2026-01-31T00:00:00Z",
                "dateRange": {"start": "2026-01-01T00:00:00Z", "end": "2026-01-31T00:00:00Z"},
                "repositories": {"acme/api": []},
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(DataValidationError, match="Malformed"):
        load_deployment_document(path)


def test_load_pr_document_with_invalid_utf8(tmp_path):
    """Verify undecodable bytes raise a data error instead of a decode error."""
    path = tmp_path / PRS_FILENAME
    path.write_bytes(b'{"repositories": {}}\xff')

    with pytest.raises(DataValidationError, match="UTF-8"):
        load_pr_document(path)
