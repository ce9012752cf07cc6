"""Per-worker test database lifecycle.

Each parallel test worker owns one SQLite file, ``test-{worker_id}.db``. The
lifecycle runs around the worker's test session:

    UNINITIALIZED -> CONNECTED -> (RUNNING)* -> DISCONNECTED -> FILES_REMOVED

    - setup(): open one connection for the whole session (fatal on failure)
    - truncate_all(): clear every domain table child-first before each test
      (fatal for the current test on failure)
    - teardown(): close the connection, then remove the database file and
      its -journal/-wal/-shm sidecars (best-effort, never raises)

Example:
    async with FixtureLifecycle("1", "test-dbs") as lifecycle:
        await lifecycle.truncate_all()
        await lifecycle.connection.execute(...)

Within one worker, truncation and test execution must be strictly
sequential: the connection is shared by every test the worker runs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Sequence

import aiosqlite

from kbtest_core.config import KbtestConfig, resolve_worker_id
from kbtest_core.errors import FixtureSetupError, StateError, TruncationError
from kbtest_db.connection import get_schema_sql, list_tables, open_database
from kbtest_db.handle import TestDatabaseHandle
from kbtest_db.models import TRUNCATION_ORDER

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Phase of a worker's test database."""

    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    RUNNING = "running"
    DISCONNECTED = "disconnected"
    FILES_REMOVED = "files_removed"


@dataclass(frozen=True)
class CleanupError:
    """A failure recorded during teardown.

    Attributes:
        path: File that could not be removed, or None for a disconnect failure.
        message: Description of the failure.
    """

    path: Path | None
    message: str


@dataclass
class CleanupReport:
    """Outcome of a best-effort teardown.

    Attributes:
        worker_id: Worker whose files were cleaned up.
        removed: Files that existed and were deleted.
        errors: Failures that were logged and swallowed.
    """

    worker_id: str
    removed: list[Path] = field(default_factory=list)
    errors: list[CleanupError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return True if nothing failed."""
        return not self.errors


def _remove_file(path: Path, report: CleanupReport) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        logger.error("cleanup failed for worker %s: cannot remove %s: %s", report.worker_id, path, e)
        report.errors.append(CleanupError(path=path, message=str(e)))
        return

    report.removed.append(path)
    logger.info("Removed test database file for worker %s: %s", report.worker_id, path)


def cleanup_worker_files(
    handle: TestDatabaseHandle,
    report: CleanupReport | None = None,
) -> CleanupReport:
    """Remove a worker's database file and sidecars.

    Each file is handled independently: a missing file is skipped silently
    and a failure on one file does not stop the others. Nothing is raised.

    Args:
        handle: The worker's database handle.
        report: Report to append to. A new one is created if None.

    Returns:
        Report listing removed files and logged failures.
    """
    if report is None:
        report = CleanupReport(worker_id=handle.worker_id)

    for path in handle.all_paths:
        _remove_file(path, report)

    return report


class FixtureLifecycle:
    """Manages one worker's test database across a test session."""

    def __init__(
        self,
        worker_id: str | int,
        db_dir: str | Path,
        *,
        truncate_retries: int = 3,
        retry_delay: float = 0.2,
    ) -> None:
        """Initialize the lifecycle.

        Args:
            worker_id: Id of the test worker that owns the database.
            db_dir: Directory holding the per-worker database files.
            truncate_retries: Attempts made by truncate_all() before failing.
            retry_delay: Seconds to wait between truncation attempts.
        """
        if truncate_retries < 1:
            raise ValueError("truncate_retries must be at least 1")
        self._handle = TestDatabaseHandle.for_worker(worker_id, db_dir)
        self._truncate_retries = truncate_retries
        self._retry_delay = retry_delay
        self._connection: aiosqlite.Connection | None = None
        self._state = LifecycleState.UNINITIALIZED

    @classmethod
    def from_config(
        cls,
        config: KbtestConfig,
        environ: Mapping[str, str] | None = None,
    ) -> FixtureLifecycle:
        """Create the lifecycle for the current worker.

        Args:
            config: kbtest configuration.
            environ: Environment used to resolve the worker id.

        Returns:
            Lifecycle bound to the resolved worker id.
        """
        return cls(
            resolve_worker_id(config.fixture, environ),
            config.db_dir,
            truncate_retries=config.fixture.truncate_retries,
            retry_delay=config.fixture.retry_delay,
        )

    @property
    def handle(self) -> TestDatabaseHandle:
        """Return the worker's database handle."""
        return self._handle

    @property
    def worker_id(self) -> str:
        """Return the worker id."""
        return self._handle.worker_id

    @property
    def state(self) -> LifecycleState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def connection(self) -> aiosqlite.Connection:
        """Return the open connection.

        Raises:
            StateError: If the fixture is not connected.
        """
        return self._require_connection()

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None or self._state not in (
            LifecycleState.CONNECTED,
            LifecycleState.RUNNING,
        ):
            raise StateError(f"Test database for worker {self.worker_id} is {self._state.value}")
        return self._connection

    async def setup(self) -> aiosqlite.Connection:
        """Open the worker's database and ensure the schema exists.

        An existing file left behind by an interrupted run is reused; the
        schema script only creates what is missing.

        Returns:
            The connection shared by every test of this worker.

        Raises:
            StateError: If setup() was already called.
            FixtureSetupError: If the database cannot be opened or verified.
        """
        if self._state is not LifecycleState.UNINITIALIZED:
            raise StateError(f"Test database for worker {self.worker_id} is already {self._state.value}")

        path = self._handle.primary_path
        if path.exists():
            logger.info("Reusing existing test database for worker %s: %s", self.worker_id, path)
        else:
            logger.info("Creating test database for worker %s: %s", self.worker_id, path)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            connection = await open_database(path)
        except (OSError, aiosqlite.Error) as e:
            raise FixtureSetupError(self.worker_id, f"cannot open {path}: {e}") from e

        try:
            await connection.executescript(await get_schema_sql())
            await connection.commit()
            await connection.execute("SELECT 1")
            tables = await list_tables(connection)
        except aiosqlite.Error as e:
            await connection.close()
            raise FixtureSetupError(self.worker_id, f"cannot initialize {path}: {e}") from e

        missing = [table for table in TRUNCATION_ORDER if table not in tables]
        if missing:
            await connection.close()
            raise FixtureSetupError(self.worker_id, f"missing tables in {path}: {', '.join(missing)}")

        logger.info("Database tables for worker %s: %s", self.worker_id, ", ".join(tables))
        self._connection = connection
        self._state = LifecycleState.CONNECTED
        return connection

    async def truncate(self, table: str) -> None:
        """Delete every row of one domain table.

        Args:
            table: A table named in TRUNCATION_ORDER.

        Raises:
            ValueError: If the table is not a domain table.
            StateError: If the fixture is not connected.
            aiosqlite.Error: If the delete fails (e.g., a foreign key violation).
        """
        if table not in TRUNCATION_ORDER:
            raise ValueError(f"Unknown table: {table!r}")
        connection = self._require_connection()
        await connection.execute(f'DELETE FROM "{table}"')

    async def truncate_tables(self, tables: Sequence[str]) -> None:
        """Delete every row of the given tables, in order, in one transaction.

        The transaction is rolled back if any delete fails.

        Args:
            tables: Tables to clear, in the order given.

        Raises:
            aiosqlite.Error: If a delete or the commit fails.
        """
        connection = self._require_connection()
        try:
            for table in tables:
                await self.truncate(table)
            await connection.commit()
        except aiosqlite.Error:
            await connection.rollback()
            raise

    async def row_counts(self) -> dict[str, int]:
        """Count the rows of every domain table.

        Returns:
            Mapping of table name to row count, in truncation order.
        """
        connection = self._require_connection()
        counts: dict[str, int] = {}
        for table in TRUNCATION_ORDER:
            cursor = await connection.execute(f'SELECT COUNT(*) FROM "{table}"')
            row = await cursor.fetchone()
            counts[table] = int(row[0]) if row is not None else 0
        return counts

    async def truncate_all(self) -> None:
        """Clear every domain table before a test.

        Tables are cleared child-first in TRUNCATION_ORDER, then verified
        empty. Failed attempts are rolled back and retried.

        Raises:
            StateError: If the fixture is not connected.
            TruncationError: If the tables are not empty after the last attempt.
        """
        self._require_connection()

        last_error: aiosqlite.Error | None = None
        leftover: dict[str, int] = {}
        for attempt in range(1, self._truncate_retries + 1):
            logger.debug("Cleaning database for worker %s (attempt %d)", self.worker_id, attempt)
            try:
                await self.truncate_tables(TRUNCATION_ORDER)
                counts = await self.row_counts()
            except aiosqlite.Error as e:
                last_error = e
                logger.warning(
                    "Truncation attempt %d failed for worker %s: %s", attempt, self.worker_id, e
                )
            else:
                leftover = {table: count for table, count in counts.items() if count}
                if not leftover:
                    self._state = LifecycleState.RUNNING
                    return
                last_error = None
                logger.warning(
                    "Database not clean for worker %s after attempt %d: %s",
                    self.worker_id,
                    attempt,
                    leftover,
                )

            if attempt < self._truncate_retries:
                await asyncio.sleep(self._retry_delay)

        if last_error is not None:
            message = f"cannot clear tables after {self._truncate_retries} attempts: {last_error}"
        else:
            message = f"tables not empty after {self._truncate_retries} attempts: {leftover}"
        raise TruncationError(self.worker_id, message) from last_error

    async def disconnect(self) -> None:
        """Close the connection. Safe to call more than once."""
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        finally:
            self._state = LifecycleState.DISCONNECTED
            logger.debug("Disconnected test database for worker %s", self.worker_id)

    async def disconnect_quietly(self, report: CleanupReport | None = None) -> CleanupReport:
        """Close the connection, logging and recording a failure instead of raising.

        Args:
            report: Report to append to. A new one is created if None.

        Returns:
            Report holding the disconnect failure, if any.
        """
        if report is None:
            report = CleanupReport(worker_id=self.worker_id)
        try:
            await self.disconnect()
        except Exception as e:
            logger.error("cleanup failed for worker %s: cannot disconnect: %s", self.worker_id, e)
            report.errors.append(CleanupError(path=None, message=str(e)))
        return report

    def remove_files(self, report: CleanupReport | None = None) -> CleanupReport:
        """Remove the database file and sidecars. Never raises."""
        return cleanup_worker_files(self._handle, report)

    async def teardown(self) -> CleanupReport:
        """Disconnect and remove the worker's files.

        File removal is attempted even if disconnecting fails. Failures are
        logged and recorded in the returned report, never raised.

        Returns:
            Report of removed files and swallowed failures.
        """
        report = await self.disconnect_quietly()
        self.remove_files(report)
        self._state = LifecycleState.FILES_REMOVED
        return report

    async def __aenter__(self) -> FixtureLifecycle:
        """Set up the fixture."""
        await self.setup()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Tear down the fixture."""
        await self.teardown()
