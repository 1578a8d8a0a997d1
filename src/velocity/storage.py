"""Reading and writing the JSON documents exchanged between commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, TypeVar, Union

from .dates import parse_datetime
from .errors import DataValidationError
from .extractors import ExtractionResult
from .models import (
    Commit,
    CommitDocument,
    DateRange,
    Deployment,
    DeploymentDocument,
    MetricsReport,
    PullRequest,
    PullRequestDocument,
    Release,
    RepositoryDeployments,
    to_json_value,
)

logger = logging.getLogger(__name__)

PRS_FILENAME = "prs.json"
COMMITS_FILENAME = "commits.json"
DEPLOYMENTS_FILENAME = "deployments.json"

PathLike = Union[str, Path]
D = TypeVar("D")


def write_document(path: PathLike, document: Any) -> Path:
    """Serialize a document or report as indented JSON."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(to_json_value(document), indent=2) + "\n", encoding="utf-8")
    logger.debug("Wrote document", extra={"path": str(target)})
    return target


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise DataValidationError(
            f"Data file not found: {path}\nRun 'velocity extract' before calculating metrics."
        ) from exc
    except UnicodeDecodeError as exc:
        raise DataValidationError(f"Data file {path} is not valid UTF-8: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise DataValidationError(f"Invalid JSON in data file {path}: {exc}") from exc
    except OSError as exc:
        raise DataValidationError(f"Unable to read data file {path}: {exc}") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("repositories"), dict):
        raise DataValidationError(f"Data file {path} does not contain a 'repositories' object")
    return payload


def _envelope(payload: Mapping[str, Any]) -> Dict[str, Any]:
    extracted_at = parse_datetime(payload.get("extractedAt"))
    if extracted_at is None:
        raise ValueError("Missing or invalid 'extractedAt'")
    return {"extractedAt": extracted_at, "dateRange": DateRange.from_dict(payload.get("dateRange") or {})}


def _load(path: PathLike, build: Callable[[Dict[str, Any]], D]) -> D:
    source = Path(path)
    payload = _read_json(source)
    try:
        return build(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DataValidationError(f"Malformed data file {source}: {exc}") from exc


def load_pr_document(path: PathLike) -> PullRequestDocument:
    def build(payload: Dict[str, Any]) -> PullRequestDocument:
        return PullRequestDocument(
            repositories={
                repo: tuple(PullRequest.from_dict(item) for item in items)
                for repo, items in payload["repositories"].items()
            },
            **_envelope(payload),
        )

    return _load(path, build)


def load_commit_document(path: PathLike) -> CommitDocument:
    def build(payload: Dict[str, Any]) -> CommitDocument:
        return CommitDocument(
            repositories={
                repo: tuple(Commit.from_dict(item) for item in items)
                for repo, items in payload["repositories"].items()
            },
            aiSummary=payload.get("aiSummary"),
            **_envelope(payload),
        )

    return _load(path, build)


def load_deployment_document(path: PathLike) -> DeploymentDocument:
    def build(payload: Dict[str, Any]) -> DeploymentDocument:
        return DeploymentDocument(
            repositories={
                repo: RepositoryDeployments(
                    deployments=tuple(Deployment.from_dict(item) for item in data.get("deployments") or ()),
                    releases=tuple(Release.from_dict(item) for item in data.get("releases") or ()),
                )
                for repo, data in payload["repositories"].items()
            },
            **_envelope(payload),
        )

    return _load(path, build)


def write_extraction(output_dir: PathLike, result: ExtractionResult) -> Dict[str, Path]:
    """Write the three extraction documents into ``output_dir``."""
    directory = Path(output_dir)
    return {
        "prs": write_document(directory / PRS_FILENAME, result.pull_requests),
        "commits": write_document(directory / COMMITS_FILENAME, result.commits),
        "deployments": write_document(directory / DEPLOYMENTS_FILENAME, result.deployments),
    }


def load_extraction(input_dir: PathLike) -> ExtractionResult:
    """Load the three extraction documents from ``input_dir``.

    Raises:
        DataValidationError: If a file is missing, not JSON, or malformed.
    """
    directory = Path(input_dir)
    return ExtractionResult(
        pull_requests=load_pr_document(directory / PRS_FILENAME),
        commits=load_commit_document(directory / COMMITS_FILENAME),
        deployments=load_deployment_document(directory / DEPLOYMENTS_FILENAME),
    )


def write_metrics(path: PathLike, report: MetricsReport) -> Path:
    return write_document(path, report)
