"""Configuration loading for kbtest tools.

A single YAML file configures both the test fixture lifecycle and the
coverage aggregator. Every section and key is optional.

Example YAML:

    fixture:
      db_dir: "prisma/test-dbs"
      default_worker_id: "1"
      worker_id_env: [KBTEST_WORKER_ID, PYTEST_XDIST_WORKER]
      truncate_retries: 3
      retry_delay: 0.2

    coverage:
      backend_summary: "backend/coverage/coverage-summary.json"
      frontend_hit_map: "frontend/coverage/coverage-final.json"
      source_marker: "frontend/src"
      weakest_limit: 5
      suites:
        - name: backend
          title: "BACKEND (Jest)"
          command: [npm, run, "test:backend:coverage"]

Config file lookup order:
    1. Explicit path passed to load_config()
    2. KBTEST_CONFIG environment variable
    3. kbtest.yaml in the current directory
    4. Built-in defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from kbtest_core.errors import ConfigError

CONFIG_ENV_VAR = "KBTEST_CONFIG"
DEFAULT_CONFIG_NAME = "kbtest.yaml"


@dataclass(frozen=True)
class FixtureConfig:
    """Settings for the per-worker test database.

    Attributes:
        db_dir: Directory holding one database file per worker.
        default_worker_id: Worker id used when no environment variable is set.
        worker_id_env: Environment variables consulted for the worker id,
            in priority order.
        truncate_retries: Attempts made to clear the tables before a test.
        retry_delay: Seconds to wait between truncation attempts.
    """

    db_dir: Path = Path("test-dbs")
    default_worker_id: str = "1"
    worker_id_env: tuple[str, ...] = ("KBTEST_WORKER_ID", "PYTEST_XDIST_WORKER")
    truncate_retries: int = 3
    retry_delay: float = 0.2

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.default_worker_id:
            raise ConfigError("fixture.default_worker_id must not be empty")
        if self.truncate_retries < 1:
            raise ConfigError("fixture.truncate_retries must be at least 1")
        if self.retry_delay < 0:
            raise ConfigError("fixture.retry_delay must not be negative")


@dataclass(frozen=True)
class SuiteConfig:
    """A test suite that produces a coverage artifact.

    Attributes:
        name: Short identifier (e.g., "backend").
        title: Banner printed before the suite runs.
        command: Argument vector executed without a shell.
        cwd: Working directory relative to the project root.
    """

    name: str
    title: str
    command: tuple[str, ...]
    cwd: Path = Path(".")


def _default_suites() -> tuple[SuiteConfig, ...]:
    return (
        SuiteConfig(
            name="backend",
            title="BACKEND (Jest)",
            command=("npm", "run", "test:backend:coverage"),
        ),
        SuiteConfig(
            name="frontend",
            title="FRONTEND (Vitest)",
            command=("npm", "run", "test:frontend:coverage"),
        ),
    )


@dataclass(frozen=True)
class CoverageConfig:
    """Settings for the coverage aggregator.

    Attributes:
        backend_summary: Pre-aggregated summary artifact.
        frontend_hit_map: Raw per-file hit map artifact.
        source_marker: Path segment a hit map entry must contain to count.
        weakest_limit: Number of lowest-coverage files to list.
        suites: Suites run before summarizing, in order.
    """

    backend_summary: Path = Path("backend/coverage/coverage-summary.json")
    frontend_hit_map: Path = Path("frontend/coverage/coverage-final.json")
    source_marker: str = "frontend/src"
    weakest_limit: int = 5
    suites: tuple[SuiteConfig, ...] = field(default_factory=_default_suites)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.source_marker.strip("/"):
            raise ConfigError("coverage.source_marker must not be empty")
        if self.weakest_limit < 0:
            raise ConfigError("coverage.weakest_limit must not be negative")


@dataclass(frozen=True)
class KbtestConfig:
    """Complete kbtest configuration.

    Attributes:
        root: Project root; relative paths resolve against it.
        fixture: Test database settings.
        coverage: Coverage aggregator settings.
        source_path: YAML file the config was loaded from, if any.
    """

    root: Path = field(default_factory=Path.cwd)
    fixture: FixtureConfig = field(default_factory=FixtureConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    source_path: Path | None = None

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the project root.

        Args:
            path: Absolute or root-relative path.

        Returns:
            Absolute path.
        """
        if path.is_absolute():
            return path
        return self.root / path

    @property
    def db_dir(self) -> Path:
        """Absolute directory for per-worker test databases."""
        return self.resolve(self.fixture.db_dir)

    def with_root(self, root: str | Path) -> KbtestConfig:
        """Return a copy with a different project root."""
        return KbtestConfig(
            root=Path(root),
            fixture=self.fixture,
            coverage=self.coverage,
            source_path=self.source_path,
        )


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _parse_fixture(data: Mapping[str, Any]) -> FixtureConfig:
    defaults = FixtureConfig()
    env_names = data.get("worker_id_env", defaults.worker_id_env)
    if isinstance(env_names, str):
        env_names = [env_names]
    try:
        return FixtureConfig(
            db_dir=Path(data.get("db_dir", defaults.db_dir)),
            default_worker_id=str(data.get("default_worker_id", defaults.default_worker_id)),
            worker_id_env=tuple(str(name) for name in env_names),
            truncate_retries=int(data.get("truncate_retries", defaults.truncate_retries)),
            retry_delay=float(data.get("retry_delay", defaults.retry_delay)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid fixture setting: {e}") from e


def _parse_suites(data: Any) -> tuple[SuiteConfig, ...]:
    if not isinstance(data, list):
        raise ConfigError("coverage.suites must be a list")

    suites: list[SuiteConfig] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ConfigError("Each coverage suite must be a mapping")
        name = entry.get("name")
        if not name:
            raise ConfigError("Coverage suite missing required field: name")
        command = entry.get("command")
        if isinstance(command, str):
            command = command.split()
        if not command:
            raise ConfigError(f"Coverage suite '{name}' missing required field: command")
        suites.append(
            SuiteConfig(
                name=str(name),
                title=str(entry.get("title", str(name).upper())),
                command=tuple(str(arg) for arg in command),
                cwd=Path(entry.get("cwd", ".")),
            )
        )
    return tuple(suites)


def _parse_coverage(data: Mapping[str, Any]) -> CoverageConfig:
    defaults = CoverageConfig()
    suites = defaults.suites
    if "suites" in data:
        suites = _parse_suites(data["suites"])
    try:
        return CoverageConfig(
            backend_summary=Path(data.get("backend_summary", defaults.backend_summary)),
            frontend_hit_map=Path(data.get("frontend_hit_map", defaults.frontend_hit_map)),
            source_marker=str(data.get("source_marker", defaults.source_marker)),
            weakest_limit=int(data.get("weakest_limit", defaults.weakest_limit)),
            suites=suites,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid coverage setting: {e}") from e


def parse_config(
    data: Mapping[str, Any] | None,
    root: str | Path | None = None,
    source_path: Path | None = None,
) -> KbtestConfig:
    """Build a config from an already-parsed YAML mapping.

    Args:
        data: Parsed YAML, or None for defaults.
        root: Project root. Defaults to the current directory.
        source_path: File the data came from.

    Returns:
        Parsed KbtestConfig.

    Raises:
        ConfigError: If the data has the wrong shape or invalid values.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("kbtest config must be a YAML mapping")

    return KbtestConfig(
        root=Path(root) if root is not None else Path.cwd(),
        fixture=_parse_fixture(_section(data, "fixture")),
        coverage=_parse_coverage(_section(data, "coverage")),
        source_path=source_path,
    )


def find_config_file(environ: Mapping[str, str] | None = None) -> Path | None:
    """Locate the config file from the environment or working directory.

    Args:
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        Path to the config file, or None to use defaults.
    """
    if environ is None:
        environ = os.environ

    env_path = environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return candidate
    return None


def load_config(
    path: str | Path | None = None,
    root: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> KbtestConfig:
    """Load the kbtest configuration.

    Args:
        path: Explicit config file. If None, searched via find_config_file().
        root: Project root. Defaults to the config file's directory, or the
            current directory when no file is used.
        environ: Environment mapping used for the lookup.

    Returns:
        Parsed KbtestConfig.

    Raises:
        FileNotFoundError: If an explicitly requested file doesn't exist.
        ConfigError: If the file is not valid YAML or has invalid values.
    """
    config_path = Path(path) if path is not None else find_config_file(environ)
    if config_path is None:
        return parse_config(None, root=root)

    if not config_path.exists():
        raise FileNotFoundError(f"kbtest config not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise ConfigError(f"{config_path}: {e}") from e

    if root is None:
        root = config_path.resolve().parent
    return parse_config(data, root=root, source_path=config_path)


def resolve_worker_id(
    config: FixtureConfig,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Determine the id of the current test worker.

    Args:
        config: Fixture settings naming the environment variables to check.
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        The first non-empty configured variable, else the default worker id.
    """
    if environ is None:
        environ = os.environ

    for name in config.worker_id_env:
        value = environ.get(name)
        if value:
            return value
    return config.default_worker_id
