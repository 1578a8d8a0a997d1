"""Configuration parsing and validation for the velocity metrics tool."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "velocity.config.json"
TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

_REPO_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+$")

DEFAULT_EXCLUDED_AUTHORS = ("dependabot[bot]", "renovate[bot]", "github-actions[bot]")


@dataclass(frozen=True)
class Settings:
    """Extraction settings; exclusions are applied before metrics are calculated."""

    default_date_range: int = 30
    deployment_branch: str = "main"
    exclude_authors: Tuple[str, ...] = ()
    exclude_labels: Tuple[str, ...] = ()
    exclude_draft_prs: bool = True


@dataclass(frozen=True)
class TeamConfig:
    """A named group of contributors and, optionally, the repositories they own."""

    members: Tuple[str, ...]
    display_name: Optional[str] = None
    repositories: Tuple[str, ...] = ()
    color: Optional[str] = None


@dataclass(frozen=True)
class VelocityConfig:
    """Validated contents of ``velocity.config.json``."""

    repositories: Tuple[str, ...] = ()
    teams: Dict[str, TeamConfig] = field(default_factory=dict)
    settings: Settings = field(default_factory=Settings)


def validate_repo_format(repo: str) -> bool:
    """Check that ``repo`` has the ``owner/name`` form."""
    return bool(_REPO_PATTERN.match(repo))


def _expect_string_list(value: Any, path: str, issues: List[str]) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        issues.append(f"{path}: expected a list of strings")
        return ()
    return tuple(value)


def _parse_settings(raw: Any, issues: List[str]) -> Settings:
    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        issues.append("settings: expected an object")
        return Settings()

    defaults = Settings()
    date_range = raw.get("defaultDateRange", defaults.default_date_range)
    if isinstance(date_range, bool) or not isinstance(date_range, int) or date_range <= 0:
        issues.append("settings.defaultDateRange: expected a positive integer")
        date_range = defaults.default_date_range

    branch = raw.get("deploymentBranch", defaults.deployment_branch)
    if not isinstance(branch, str) or not branch:
        issues.append("settings.deploymentBranch: expected a non-empty string")
        branch = defaults.deployment_branch

    exclude_drafts = raw.get("excludeDraftPRs", defaults.exclude_draft_prs)
    if not isinstance(exclude_drafts, bool):
        issues.append("settings.excludeDraftPRs: expected a boolean")
        exclude_drafts = defaults.exclude_draft_prs

    return Settings(
        default_date_range=date_range,
        deployment_branch=branch,
        exclude_authors=_expect_string_list(raw.get("excludeAuthors", []), "settings.excludeAuthors", issues),
        exclude_labels=_expect_string_list(raw.get("excludeLabels", []), "settings.excludeLabels", issues),
        exclude_draft_prs=exclude_drafts,
    )


def _parse_teams(raw: Any, issues: List[str]) -> Dict[str, TeamConfig]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        issues.append("teams: expected an object")
        return {}

    teams: Dict[str, TeamConfig] = {}
    for team_name, team in raw.items():
        path = f"teams.{team_name}"
        if not isinstance(team, dict):
            issues.append(f"{path}: expected an object")
            continue
        if "members" not in team:
            issues.append(f"{path}.members: required")
            continue
        display_name = team.get("displayName")
        color = team.get("color")
        teams[team_name] = TeamConfig(
            members=_expect_string_list(team["members"], f"{path}.members", issues),
            display_name=display_name if isinstance(display_name, str) else None,
            repositories=_expect_string_list(team.get("repositories", []), f"{path}.repositories", issues),
            color=color if isinstance(color, str) else None,
        )
    return teams


def parse_config(data: Mapping[str, Any], source: str = CONFIG_FILENAME) -> VelocityConfig:
    """Validate raw configuration data.

    Raises:
        ConfigurationError: Listing every invalid field, one per line.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid configuration in {source}: expected a JSON object.")

    issues: List[str] = []
    if "repositories" not in data:
        issues.append("repositories: required")
        repositories: Tuple[str, ...] = ()
    else:
        repositories = _expect_string_list(data["repositories"], "repositories", issues)

    teams = _parse_teams(data.get("teams"), issues)
    settings = _parse_settings(data.get("settings"), issues)

    if issues:
        details = "\n".join(f"  - {issue}" for issue in issues)
        raise ConfigurationError(f"Invalid configuration in {source}:\n{details}")

    return VelocityConfig(repositories=repositories, teams=teams, settings=settings)


def config_exists(directory: Union[str, Path, None] = None) -> bool:
    return (Path(directory or Path.cwd()) / CONFIG_FILENAME).is_file()


def load_config(config_path: Union[str, Path, None] = None) -> VelocityConfig:
    """Load and validate the configuration file.

    Args:
        config_path: Explicit file path; defaults to ``velocity.config.json``
            in the current working directory.

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON, or
            fails validation.
    """
    path = Path(config_path) if config_path else Path.cwd() / CONFIG_FILENAME

    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"Configuration file not found: {path}\n"
            "Run 'velocity init' to create a configuration file."
        ) from exc
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file {path}: {exc}") from exc

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in configuration file: {path}\n{exc}") from exc

    config = parse_config(data, source=str(path))
    logger.debug("Loaded configuration", extra={"config_path": str(path)})
    return config


def default_config_data() -> Dict[str, Any]:
    settings = Settings(exclude_authors=DEFAULT_EXCLUDED_AUTHORS)
    return {
        "repositories": [],
        "teams": {},
        "settings": {
            "defaultDateRange": settings.default_date_range,
            "deploymentBranch": settings.deployment_branch,
            "excludeAuthors": list(settings.exclude_authors),
            "excludeLabels": list(settings.exclude_labels),
            "excludeDraftPRs": settings.exclude_draft_prs,
        },
    }


def create_config(directory: Union[str, Path, None] = None) -> Path:
    """Write a default configuration file and return its path."""
    path = Path(directory or Path.cwd()) / CONFIG_FILENAME
    path.write_text(json.dumps(default_config_data(), indent=2) + "\n", encoding="utf-8")
    return path


def load_github_token() -> str:
    """Read the GitHub token from the environment.

    Raises:
        AuthenticationError: If neither ``GITHUB_TOKEN`` nor ``GH_TOKEN`` is set.
    """
    for name in TOKEN_ENV_VARS:
        token = os.getenv(name, "").strip()
        if token:
            return token

    raise AuthenticationError(
        "Missing required GitHub token. "
        "Set the 'GITHUB_TOKEN' environment variable before running extraction."
    )
