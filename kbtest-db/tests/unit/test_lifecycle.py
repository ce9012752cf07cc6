"""Unit tests for the per-worker test database lifecycle."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from kbtest_core.config import parse_config
from kbtest_core.errors import FixtureSetupError, StateError, TruncationError
from kbtest_db import (
    TRUNCATION_ORDER,
    FixtureLifecycle,
    KanbanRepository,
    LifecycleState,
    TestDatabaseHandle,
    cleanup_worker_files,
)


@pytest.fixture
async def lifecycle(tmp_path: Path):
    """Create a connected lifecycle for worker 1 in a temporary directory."""
    lc = FixtureLifecycle("1", tmp_path / "test-dbs", truncate_retries=1, retry_delay=0)
    await lc.setup()
    yield lc
    await lc.teardown()


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


class TestSetup:
    """Tests for FixtureLifecycle.setup()."""

    @pytest.mark.asyncio
    async def test_creates_database(self, tmp_path: Path) -> None:
        """Test setup creates the directory, file and schema."""
        lc = FixtureLifecycle("2", tmp_path / "test-dbs")

        connection = await lc.setup()
        try:
            assert lc.state is LifecycleState.CONNECTED
            assert lc.connection is connection
            assert (tmp_path / "test-dbs" / "test-2.db").exists()
            assert await lc.row_counts() == {table: 0 for table in TRUNCATION_ORDER}
        finally:
            await lc.teardown()

    @pytest.mark.asyncio
    async def test_reuses_existing_database(self, tmp_path: Path) -> None:
        """Test a file left by an earlier run is reused, rows included."""
        first = FixtureLifecycle("1", tmp_path)
        await first.setup()
        await KanbanRepository(first.connection).seed_board()
        await first.disconnect()

        second = FixtureLifecycle("1", tmp_path)
        await second.setup()
        try:
            counts = await second.row_counts()
            assert counts["card"] == 1
        finally:
            await second.teardown()

    @pytest.mark.asyncio
    async def test_corrupt_file_is_fatal(self, tmp_path: Path) -> None:
        """Test a file that is not a database aborts setup."""
        (tmp_path / "test-1.db").write_bytes(b"definitely not sqlite " * 100)
        lc = FixtureLifecycle("1", tmp_path)

        with pytest.raises(FixtureSetupError, match="worker 1"):
            await lc.setup()

        assert lc.state is LifecycleState.UNINITIALIZED
        with pytest.raises(StateError):
            lc.connection

    @pytest.mark.asyncio
    async def test_unopenable_path_is_fatal(self, tmp_path: Path) -> None:
        """Test setup fails when the database directory cannot be created."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        lc = FixtureLifecycle("1", blocker / "test-dbs")

        with pytest.raises(FixtureSetupError):
            await lc.setup()

    @pytest.mark.asyncio
    async def test_setup_twice(self, lifecycle: FixtureLifecycle) -> None:
        """Test setup cannot run twice."""
        with pytest.raises(StateError, match="already connected"):
            await lifecycle.setup()

    def test_from_config(self, tmp_path: Path) -> None:
        """Test the worker id and settings come from the config."""
        config = parse_config(
            {"fixture": {"db_dir": "dbs", "truncate_retries": 5}},
            root=tmp_path,
        )

        lc = FixtureLifecycle.from_config(config, environ={"PYTEST_XDIST_WORKER": "gw4"})

        assert lc.worker_id == "gw4"
        assert lc.handle.primary_path == tmp_path / "dbs" / "test-gw4.db"

    def test_invalid_retries(self, tmp_path: Path) -> None:
        """Test at least one truncation attempt is required."""
        with pytest.raises(ValueError, match="truncate_retries"):
            FixtureLifecycle("1", tmp_path, truncate_retries=0)


class TestTruncation:
    """Tests for truncate(), truncate_tables() and truncate_all()."""

    @pytest.mark.asyncio
    async def test_truncate_all_empty_tables(self, lifecycle: FixtureLifecycle) -> None:
        """Test truncation is idempotent on empty tables."""
        await lifecycle.truncate_all()
        await lifecycle.truncate_all()

        assert lifecycle.state is LifecycleState.RUNNING
        assert sum((await lifecycle.row_counts()).values()) == 0

    @pytest.mark.asyncio
    async def test_truncate_all_clears_rows(self, lifecycle: FixtureLifecycle) -> None:
        """Test every seeded row is removed."""
        repo = KanbanRepository(lifecycle.connection)
        await repo.seed_board("-a")
        await repo.seed_board("-b")

        await lifecycle.truncate_all()

        assert await lifecycle.row_counts() == {"card": 0, "column": 0, "board": 0, "user": 0}

    @pytest.mark.asyncio
    async def test_forward_order_succeeds(self, lifecycle: FixtureLifecycle) -> None:
        """Test child-first order satisfies the foreign keys."""
        await KanbanRepository(lifecycle.connection).seed_board()

        await lifecycle.truncate_tables(["card", "column", "board", "user"])

        assert sum((await lifecycle.row_counts()).values()) == 0

    @pytest.mark.asyncio
    async def test_reverse_order_fails(self, lifecycle: FixtureLifecycle) -> None:
        """Test parent-first order violates a foreign key and is rolled back."""
        await KanbanRepository(lifecycle.connection).seed_board()

        with pytest.raises(aiosqlite.IntegrityError, match="FOREIGN KEY"):
            await lifecycle.truncate_tables(list(reversed(TRUNCATION_ORDER)))

        assert await lifecycle.row_counts() == {"card": 1, "column": 1, "board": 1, "user": 1}

    @pytest.mark.asyncio
    async def test_unknown_table(self, lifecycle: FixtureLifecycle) -> None:
        """Test only domain tables can be truncated."""
        with pytest.raises(ValueError, match="Unknown table"):
            await lifecycle.truncate("sqlite_master")

    @pytest.mark.asyncio
    async def test_truncate_before_setup(self, tmp_path: Path) -> None:
        """Test truncation requires a connection."""
        lc = FixtureLifecycle("1", tmp_path)

        with pytest.raises(StateError, match="uninitialized"):
            await lc.truncate_all()

    @pytest.mark.asyncio
    async def test_truncate_after_disconnect(self, lifecycle: FixtureLifecycle) -> None:
        """Test truncation is refused once disconnected."""
        await lifecycle.disconnect()

        with pytest.raises(StateError, match="disconnected"):
            await lifecycle.truncate_all()

    @pytest.mark.asyncio
    async def test_failure_is_retried_then_raised(self, tmp_path: Path) -> None:
        """Test a persistent failure is retried and then propagated."""
        lc = FixtureLifecycle("1", tmp_path, truncate_retries=3, retry_delay=0.5)
        await lc.setup()
        try:
            error = aiosqlite.OperationalError("database is locked")
            with patch.object(lc, "truncate_tables", AsyncMock(side_effect=error)) as truncate:
                with patch("kbtest_db.lifecycle.asyncio.sleep", AsyncMock()) as sleep:
                    with pytest.raises(TruncationError, match="database is locked") as exc_info:
                        await lc.truncate_all()

            assert truncate.await_count == 3
            assert sleep.await_count == 2
            sleep.assert_awaited_with(0.5)
            assert exc_info.value.__cause__ is error
        finally:
            await lc.teardown()

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, tmp_path: Path) -> None:
        """Test a failure followed by success does not raise."""
        lc = FixtureLifecycle("1", tmp_path, truncate_retries=3, retry_delay=0)
        await lc.setup()
        try:
            real = lc.truncate_tables
            side_effects = [aiosqlite.OperationalError("busy"), None]

            async def flaky(tables):
                effect = side_effects.pop(0)
                if effect is not None:
                    raise effect
                await real(tables)

            with patch.object(lc, "truncate_tables", flaky):
                await lc.truncate_all()

            assert lc.state is LifecycleState.RUNNING
        finally:
            await lc.teardown()

    @pytest.mark.asyncio
    async def test_rows_left_behind(self, tmp_path: Path) -> None:
        """Test leftover rows after truncation are reported."""
        lc = FixtureLifecycle("1", tmp_path, truncate_retries=2, retry_delay=0)
        await lc.setup()
        try:
            counts = {"card": 2, "column": 0, "board": 0, "user": 0}
            with patch.object(lc, "row_counts", AsyncMock(return_value=counts)):
                with pytest.raises(TruncationError, match="not empty"):
                    await lc.truncate_all()
        finally:
            await lc.teardown()


class TestTeardown:
    """Tests for teardown() and cleanup_worker_files()."""

    @pytest.mark.asyncio
    async def test_teardown_removes_files(self, tmp_path: Path) -> None:
        """Test teardown disconnects and removes the database."""
        lc = FixtureLifecycle("1", tmp_path)
        await lc.setup()

        report = await lc.teardown()

        assert report.ok
        assert lc.handle.primary_path in report.removed
        assert not lc.handle.primary_path.exists()
        assert lc.state is LifecycleState.FILES_REMOVED

    @pytest.mark.asyncio
    async def test_teardown_twice(self, tmp_path: Path) -> None:
        """Test a second teardown is a no-op."""
        lc = FixtureLifecycle("1", tmp_path)
        await lc.setup()

        await lc.teardown()
        report = await lc.teardown()

        assert report.ok
        assert report.removed == []

    @pytest.mark.asyncio
    async def test_teardown_without_setup(self, tmp_path: Path) -> None:
        """Test teardown removes orphaned files from an interrupted run."""
        orphan = _touch(tmp_path / "test-1.db-journal")
        lc = FixtureLifecycle("1", tmp_path)

        report = await lc.teardown()

        assert report.removed == [orphan]
        assert not orphan.exists()

    @pytest.mark.asyncio
    async def test_disconnect_failure_still_removes_files(self, tmp_path: Path) -> None:
        """Test file removal is attempted even if closing fails."""
        lc = FixtureLifecycle("1", tmp_path)
        connection = await lc.setup()
        real_close = connection.close

        with patch.object(connection, "close", AsyncMock(side_effect=aiosqlite.OperationalError("boom"))):
            report = await lc.teardown()
        await real_close()

        assert not report.ok
        assert report.errors[0].path is None
        assert "boom" in report.errors[0].message
        assert not lc.handle.primary_path.exists()
        assert lc.state is LifecycleState.FILES_REMOVED

    @pytest.mark.asyncio
    async def test_disconnect_quietly_records_failure(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a close failure is logged and recorded, not raised."""
        lc = FixtureLifecycle("3", tmp_path)
        connection = await lc.setup()
        real_close = connection.close

        with patch.object(connection, "close", AsyncMock(side_effect=aiosqlite.OperationalError("close failed"))):
            report = await lc.disconnect_quietly()
        await real_close()

        assert report.worker_id == "3"
        assert [error.message for error in report.errors] == ["close failed"]
        assert "cleanup failed for worker 3" in caplog.text
        assert lc.state is LifecycleState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_quietly_when_closed(self, tmp_path: Path) -> None:
        """Test nothing is recorded when there is no connection."""
        report = await FixtureLifecycle("3", tmp_path).disconnect_quietly()

        assert report.ok

    @pytest.mark.asyncio
    async def test_context_manager(self, tmp_path: Path) -> None:
        """Test async with sets up and tears down."""
        async with FixtureLifecycle("5", tmp_path) as lc:
            await lc.truncate_all()
            path = lc.handle.primary_path
            assert path.exists()

        assert not path.exists()

    def test_idempotent_cleanup(self, tmp_path: Path) -> None:
        """Test cleanup twice in succession never raises."""
        handle = TestDatabaseHandle.for_worker("1", tmp_path)
        for path in handle.all_paths:
            _touch(path)

        first = cleanup_worker_files(handle)
        second = cleanup_worker_files(handle)

        assert len(first.removed) == 4
        assert second.ok
        assert second.removed == []

    def test_only_wal_sidecar(self, tmp_path: Path) -> None:
        """Test a lone -wal sidecar is removed without error."""
        handle = TestDatabaseHandle.for_worker("1", tmp_path)
        wal = _touch(handle.sidecar_paths[1])

        report = cleanup_worker_files(handle)

        assert report.ok
        assert report.removed == [wal]
        assert not wal.exists()

    def test_worker_two_scenario(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Test primary and -wal present, journal and shm absent."""
        db_dir = tmp_path / "test-dbs"
        primary = _touch(db_dir / "test-2.db")
        wal = _touch(db_dir / "test-2.db-wal")
        handle = TestDatabaseHandle.for_worker("2", db_dir)

        with caplog.at_level(logging.DEBUG, logger="kbtest_db.lifecycle"):
            report = cleanup_worker_files(handle)

        assert report.removed == [primary, wal]
        assert report.errors == []
        assert not primary.exists()
        assert not wal.exists()
        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []
        messages = [r.getMessage() for r in caplog.records]
        assert len(messages) == 2
        assert not any("journal" in m or "shm" in m for m in messages)

    def test_removal_failure_is_recorded(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Test a failing file is logged and the others are still removed."""
        handle = TestDatabaseHandle.for_worker("3", tmp_path)
        primary = _touch(handle.primary_path)
        shm = _touch(handle.sidecar_paths[2])
        # A directory cannot be unlinked
        handle.sidecar_paths[1].mkdir()

        with caplog.at_level(logging.ERROR, logger="kbtest_db.lifecycle"):
            report = cleanup_worker_files(handle)

        assert report.removed == [primary, shm]
        assert len(report.errors) == 1
        assert report.errors[0].path == handle.sidecar_paths[1]
        assert "cleanup failed for worker 3" in caplog.text
        assert str(handle.sidecar_paths[1]) in caplog.text
