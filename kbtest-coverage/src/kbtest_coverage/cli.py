"""Command-line interface for kbtest-coverage.

Runs the backend and frontend coverage suites, then prints one summary of
both coverage artifacts.

Usage:
    # Run both suites and summarize
    kbtest-coverage

    # Only summarize artifacts from an earlier run
    kbtest-coverage --skip-tests

    # Use another config and list the ten weakest files
    kbtest-coverage --config ci/kbtest.yaml --top 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from kbtest_core.config import load_config
from kbtest_core.errors import ConfigError, CoverageArtifactError
from kbtest_coverage.report import build_report, render_report
from kbtest_coverage.runner import banner, run_suites

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kbtest-coverage",
        description="Run coverage suites and summarize backend/frontend coverage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to kbtest YAML config (default: $KBTEST_CONFIG or ./kbtest.yaml)",
    )
    parser.add_argument(
        "--root", "-r",
        help="Project root (default: config file directory or current directory)",
    )
    parser.add_argument(
        "--skip-tests",
        action="store_true",
        help="Skip running suites, only summarize existing artifacts",
    )
    parser.add_argument(
        "--top", "-n",
        type=int,
        default=None,
        help="Number of lowest-coverage files to list",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    if args.top is not None and args.top < 0:
        parser.error("--top must not be negative")

    try:
        config = load_config(args.config, root=args.root)
    except (ConfigError, FileNotFoundError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if not args.skip_tests:
        exit_code = run_suites(config.coverage.suites, config.root)
        if exit_code != 0:
            return exit_code

    print(banner("SUMMARY"))
    try:
        report = build_report(config, weakest_limit=args.top)
    except CoverageArtifactError as e:
        logger.error("malformed coverage artifact %s", e)
        return 1

    if not report.has_data:
        logger.warning("no coverage data found; run the suites first")
    text = render_report(report)
    if text:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
