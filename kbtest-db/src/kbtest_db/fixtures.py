"""Reusable pytest fixtures for tests that need the Kanban database.

Enable them from the rootdir conftest.py with
pytest_plugins = ["kbtest_db.fixtures"]

Each pytest worker gets its own database file. The connection is opened once
per session, every table is cleared before each test that requests
``kanban_db``, and the worker's files are removed when the session ends.

Environment variables:
    KBTEST_CONFIG: Path to the kbtest YAML config (default: ./kbtest.yaml)
    KBTEST_WORKER_ID, PYTEST_XDIST_WORKER: Worker id (default: 1)
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from kbtest_core.config import KbtestConfig, load_config, resolve_worker_id
from kbtest_db.handle import TestDatabaseHandle
from kbtest_db.lifecycle import FixtureLifecycle, cleanup_worker_files
from kbtest_db.repositories import KanbanRepository

logger = logging.getLogger(__name__)

kbtest_config_key = pytest.StashKey[KbtestConfig]()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register the config file option."""
    group = parser.getgroup("kbtest")
    group.addoption(
        "--kbtest-config",
        action="store",
        default=None,
        help="Path to the kbtest YAML config",
    )


def pytest_sessionstart(session: pytest.Session) -> None:
    """Load the kbtest config and create the test database directory."""
    path = session.config.getoption("kbtest_config")
    kbtest_config = load_config(path)
    session.config.stash[kbtest_config_key] = kbtest_config
    kbtest_config.db_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Test database directory: %s", kbtest_config.db_dir)


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Remove this worker's database files.

    Runs after the session fixtures are finalized. Cleanup is best-effort and
    never changes the exit status.
    """
    kbtest_config = session.config.stash.get(kbtest_config_key, None)
    if kbtest_config is None:
        return
    worker_id = resolve_worker_id(kbtest_config.fixture)
    try:
        handle = TestDatabaseHandle.for_worker(worker_id, kbtest_config.db_dir)
    except ValueError as e:
        logger.error("cleanup failed for worker %s: %s", worker_id, e)
        return
    report = cleanup_worker_files(handle)
    if not report.ok:
        logger.warning("Test database cleanup for worker %s left %d error(s)", handle.worker_id, len(report.errors))


@pytest.fixture(scope="session")
def kbtest_config(pytestconfig: pytest.Config) -> KbtestConfig:
    """Return the kbtest config loaded at session start."""
    return pytestconfig.stash[kbtest_config_key]


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def kanban_lifecycle(kbtest_config: KbtestConfig) -> AsyncGenerator[FixtureLifecycle, None]:
    """Provide the worker's connected test database for the whole session.

    A setup failure aborts every test that depends on it.

    Yields:
        Connected FixtureLifecycle.
    """
    lifecycle = FixtureLifecycle.from_config(kbtest_config)
    await lifecycle.setup()
    try:
        yield lifecycle
    finally:
        await lifecycle.disconnect_quietly()


@pytest_asyncio.fixture
async def kanban_db(kanban_lifecycle: FixtureLifecycle) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide the worker's connection with every table cleared.

    Yields:
        Open aiosqlite connection with empty domain tables.

    Example:
        async def test_create_board(kanban_db):
            repo = KanbanRepository(kanban_db)
            seeded = await repo.seed_board()
            assert await repo.count("board") == 1
    """
    await kanban_lifecycle.truncate_all()
    yield kanban_lifecycle.connection


@pytest.fixture
def kanban_repo(kanban_db: aiosqlite.Connection) -> KanbanRepository:
    """Provide a repository bound to the cleared test database."""
    return KanbanRepository(kanban_db)
