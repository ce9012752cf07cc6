"""Shared foundations for the kbtest tools.

This package holds the pieces used by both the test fixture lifecycle
(kbtest-db) and the coverage aggregator (kbtest-coverage):

    - Errors: Hierarchy of exception types rooted at KbtestError.
    - Config: YAML configuration with environment overrides, including
      worker id resolution for parallel test runs.

Example:
    >>> from kbtest_core import load_config, resolve_worker_id
    >>> config = load_config()
    >>> worker_id = resolve_worker_id(config.fixture)
"""

from kbtest_core.config import (
    CoverageConfig,
    FixtureConfig,
    KbtestConfig,
    SuiteConfig,
    find_config_file,
    load_config,
    parse_config,
    resolve_worker_id,
)
from kbtest_core.errors import (
    ConfigError,
    CoverageArtifactError,
    FixtureSetupError,
    KbtestError,
    StateError,
    TruncationError,
)

__all__ = [
    # Config
    "CoverageConfig",
    "FixtureConfig",
    "KbtestConfig",
    "SuiteConfig",
    "find_config_file",
    "load_config",
    "parse_config",
    "resolve_worker_id",
    # Errors
    "ConfigError",
    "CoverageArtifactError",
    "FixtureSetupError",
    "KbtestError",
    "StateError",
    "TruncationError",
]
