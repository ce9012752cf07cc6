"""Runs the coverage-producing test suites."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from kbtest_core.config import SuiteConfig

logger = logging.getLogger(__name__)

BANNER_WIDTH = 20


def banner(title: str) -> str:
    """Return a section banner such as ``==== SUMMARY ====``."""
    line = "=" * BANNER_WIDTH
    return f"\n{line} {title} {line}"


def run_suite(suite: SuiteConfig, root: Path) -> int:
    """Run one suite and return its exit status.

    Args:
        suite: The suite to run. Its command runs without a shell.
        root: Project root; the suite's cwd is resolved against it.

    Returns:
        The command's exit status, or 127 if it could not be started.
    """
    cwd = suite.cwd if suite.cwd.is_absolute() else root / suite.cwd
    print(banner(suite.title), flush=True)
    logger.debug("Running %s in %s: %s", suite.name, cwd, " ".join(suite.command))

    try:
        result = subprocess.run(list(suite.command), cwd=cwd)
    except FileNotFoundError as e:
        logger.error("Cannot start suite %s: %s", suite.name, e)
        return 127

    if result.returncode != 0:
        logger.error("Suite %s failed with exit status %d", suite.name, result.returncode)
    return result.returncode


def run_suites(suites: Sequence[SuiteConfig], root: Path) -> int:
    """Run suites in order, stopping at the first failure.

    Args:
        suites: Suites to run.
        root: Project root.

    Returns:
        0 if every suite passed, else the first failing exit status.
    """
    for suite in suites:
        returncode = run_suite(suite, root)
        if returncode != 0:
            return returncode
    return 0
