"""Command-line argument parsing for the velocity metrics tool."""

from __future__ import annotations

import argparse
from typing import List, Optional, Sequence

from . import __version__


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _repo_list(value: str) -> List[str]:
    """Split a comma-separated ``owner/repo`` list, dropping empty entries."""
    return [repo.strip() for repo in value.split(",") if repo.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="velocity",
        description="Developer velocity metrics extraction and analysis tool.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create a velocity.config.json file.")
    init_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite an existing configuration file.",
    )

    extract_parser = subparsers.add_parser("extract", help="Extract data from GitHub repositories.")
    extract_parser.add_argument(
        "-r",
        "--repos",
        type=_repo_list,
        default=None,
        help="Comma-separated list of repositories (owner/repo); overrides the config file.",
    )
    extract_parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to the configuration file (default: ./velocity.config.json).",
    )
    extract_parser.add_argument(
        "-d",
        "--days",
        type=_positive_int,
        default=None,
        help="Number of days to extract (default: settings.defaultDateRange, or 30).",
    )
    extract_parser.add_argument(
        "-o",
        "--output",
        default="./data",
        help="Output directory for data files (default: ./data).",
    )

    metrics_parser = subparsers.add_parser("metrics", help="Calculate metrics from extracted data.")
    metrics_parser.add_argument(
        "-i",
        "--input",
        default="./data",
        help="Input directory containing data files (default: ./data).",
    )
    metrics_parser.add_argument(
        "-o",
        "--output",
        default="./data/metrics.json",
        help="Output file for metrics (default: ./data/metrics.json).",
    )
    metrics_parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Configuration file whose excludeAuthors are ignored when aggregating commits.",
    )

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments with the selected ``command`` and its options.
    """
    return build_parser().parse_args(argv)
