"""Per-worker test database file naming."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Files SQLite may keep next to the primary database file.
SIDECAR_SUFFIXES: tuple[str, ...] = ("-journal", "-wal", "-shm")


@dataclass(frozen=True)
class TestDatabaseHandle:
    """Identifies the database file owned by one parallel test worker.

    Attributes:
        worker_id: Identifier of the test worker process.
        primary_path: The SQLite database file for that worker.
    """

    __test__ = False  # not a pytest test class

    worker_id: str
    primary_path: Path

    @classmethod
    def for_worker(cls, worker_id: str | int, db_dir: str | Path) -> TestDatabaseHandle:
        """Derive the handle for a worker.

        Args:
            worker_id: Worker identifier (e.g., "1" or "gw0").
            db_dir: Directory holding the per-worker database files.

        Returns:
            Handle whose primary path is ``db_dir/test-{worker_id}.db``.

        Raises:
            ValueError: If the worker id is empty or contains a path separator.
        """
        worker = str(worker_id)
        if not worker or "/" in worker or "\\" in worker:
            raise ValueError(f"Invalid worker id: {worker_id!r}")
        return cls(worker_id=worker, primary_path=Path(db_dir) / f"test-{worker}.db")

    @property
    def sidecar_paths(self) -> tuple[Path, ...]:
        """Journal, write-ahead log and shared-memory paths, in that order."""
        return tuple(Path(f"{self.primary_path}{suffix}") for suffix in SIDECAR_SUFFIXES)

    @property
    def all_paths(self) -> tuple[Path, ...]:
        """Primary path followed by every sidecar path."""
        return (self.primary_path, *self.sidecar_paths)

    @property
    def url(self) -> str:
        """Database URL in the ``file:`` form ORMs expect."""
        return f"file:{self.primary_path}"
