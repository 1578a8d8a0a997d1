"""Application entrypoint for the velocity metrics tool."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from .calculator import calculate_metrics
from .cli import parse_args
from .config import (
    CONFIG_FILENAME,
    VelocityConfig,
    config_exists,
    create_config,
    load_config,
    load_github_token,
    validate_repo_format,
)
from .errors import ApiError, AuthenticationError, ConfigurationError, DataValidationError
from .extractors import ExtractionResult, extract_repositories
from .github_client import GitHubClient
from .stats import generate_report, to_fixed
from .storage import load_extraction, write_extraction, write_metrics

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_UNEXPECTED_ERROR = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_AUTHENTICATION_ERROR = 3
EXIT_API_ERROR = 4
EXIT_DATA_ERROR = 5


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_init(args: argparse.Namespace) -> int:
    """Create the default configuration file unless one exists and ``--force`` is not set."""
    if config_exists() and not args.force:
        logger.warning("Configuration file already exists: %s (use --force to overwrite)", CONFIG_FILENAME)
        return EXIT_SUCCESS

    path = create_config()
    print(f"Created configuration file: {path}")
    print("Next steps:")
    print("  1. Add repositories (owner/repo) to the 'repositories' list.")
    print("  2. Run: velocity extract")
    print("  3. Run: velocity metrics")
    return EXIT_SUCCESS


def _resolve_extract_config(args: argparse.Namespace) -> VelocityConfig:
    try:
        return load_config(args.config)
    except ConfigurationError:
        if not args.repos:
            raise
        logger.debug("No usable configuration file; using defaults with --repos")
        return VelocityConfig()


def _resolve_repositories(args: argparse.Namespace, config: VelocityConfig) -> List[str]:
    repos = list(args.repos) if args.repos else list(config.repositories)
    if not repos:
        raise ConfigurationError(
            f"No repositories specified. Add repositories to {CONFIG_FILENAME} or use --repos."
        )

    invalid = [repo for repo in repos if not validate_repo_format(repo)]
    if invalid:
        raise ConfigurationError(
            f"Invalid repository format: {', '.join(invalid)}. Expected format: owner/repo-name"
        )
    return repos


def generate_extraction_summary(result: ExtractionResult, days: int) -> str:
    """Generate the human-readable summary printed after extraction."""
    deployments = result.deployments
    lines = [
        "Extraction Summary",
        f"  Time period: Last {days} days",
        f"  Repositories: {len(result.pull_requests.repositories)}",
        f"  Pull Requests: {len(result.pull_requests.all_pull_requests())}",
        f"  Commits: {len(result.commits.all_commits())}",
        f"  Deployments: {len(deployments.all_deployments())}",
        f"  Releases: {len(deployments.all_releases())}",
    ]

    ai_summary = result.commits.aiSummary
    if ai_summary and ai_summary.get("aiAssistedCommits"):
        lines.append("")
        lines.append("AI-Assisted Development")
        lines.append(
            f"  AI Commits: {ai_summary['aiAssistedCommits']} ({to_fixed(ai_summary['aiRatio'] * 100, 1)}%)"
        )
        if ai_summary.get("byTool"):
            tools = ", ".join(f"{item['tool']}: {item['count']}" for item in ai_summary["byTool"])
            lines.append(f"  By Tool: {tools}")

    return "\n".join(lines)


def run_extract(args: argparse.Namespace) -> int:
    """Extract pull requests, commits and deployments into the output directory."""
    config = _resolve_extract_config(args)
    repos = _resolve_repositories(args, config)
    settings = config.settings
    days = args.days or settings.default_date_range

    token = load_github_token()
    logger.info(
        "Starting extraction",
        extra={"repositories": len(repos), "days": days, "output_dir": args.output},
    )

    with GitHubClient(token=token) as client:
        accessible = [repo for repo in repos if client.check_repo_access(repo)]
        inaccessible = [repo for repo in repos if repo not in accessible]
        if inaccessible:
            logger.warning("Cannot access %d repositories: %s", len(inaccessible), ", ".join(inaccessible))
        if not accessible:
            raise ApiError("No accessible repositories found.")

        result = extract_repositories(client, accessible, days, settings)

    write_extraction(args.output, result)
    print(generate_extraction_summary(result, days))
    print("Run 'velocity metrics' to calculate metrics from the extracted data.")
    return EXIT_SUCCESS


def run_metrics(args: argparse.Namespace) -> int:
    """Calculate the metrics report from previously extracted data files."""
    exclude_authors: Sequence[str] = ()
    if args.config or config_exists():
        exclude_authors = load_config(args.config).settings.exclude_authors

    extraction = load_extraction(args.input)
    prs = extraction.pull_requests

    report = calculate_metrics(
        prs=prs.all_pull_requests(),
        commits=extraction.commits.all_commits(),
        deployments=extraction.deployments.all_deployments(),
        date_range=prs.dateRange,
        repositories=len(prs.repositories),
        exclude_authors=exclude_authors,
    )

    path = write_metrics(args.output, report)
    print(generate_report(report))
    print(f"Metrics written to {path}")
    return EXIT_SUCCESS


COMMANDS = {
    "init": run_init,
    "extract": run_extract,
    "metrics": run_metrics,
}


def orchestrate(argv: Optional[Sequence[str]] = None) -> int:
    """Run the selected command and map failures to exit codes.

    Returns:
        ``0`` on success, ``2`` for configuration errors, ``3`` for
        authentication errors, ``4`` for GitHub API errors, ``5`` for invalid
        data files and ``1`` for anything unexpected.
    """
    try:
        args = parse_args(argv)
        _setup_logging(args.verbose)
        return COMMANDS[args.command](args)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIGURATION_ERROR
    except AuthenticationError as exc:
        logger.error("Authentication error: %s", exc)
        return EXIT_AUTHENTICATION_ERROR
    except ApiError as exc:
        logger.error("GitHub API error: %s", exc)
        return EXIT_API_ERROR
    except DataValidationError as exc:
        logger.error("Data error: %s", exc)
        return EXIT_DATA_ERROR
    except Exception:
        logger.exception("Unexpected error")
        return EXIT_UNEXPECTED_ERROR


def main() -> None:
    sys.exit(orchestrate())


if __name__ == "__main__":
    main()
