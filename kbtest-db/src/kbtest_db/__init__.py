"""Per-worker Kanban test database lifecycle for kbtest."""

from kbtest_db.connection import Database, list_tables, open_database
from kbtest_db.handle import SIDECAR_SUFFIXES, TestDatabaseHandle
from kbtest_db.lifecycle import (
    CleanupError,
    CleanupReport,
    FixtureLifecycle,
    LifecycleState,
    cleanup_worker_files,
)
from kbtest_db.models import (
    TRUNCATION_ORDER,
    Board,
    Card,
    Column,
    Priority,
    SeededBoard,
    User,
)
from kbtest_db.repositories import KanbanRepository

__all__ = [
    # Connection management
    "Database",
    "list_tables",
    "open_database",
    # Lifecycle
    "CleanupError",
    "CleanupReport",
    "FixtureLifecycle",
    "LifecycleState",
    "SIDECAR_SUFFIXES",
    "TestDatabaseHandle",
    "cleanup_worker_files",
    # Models
    "TRUNCATION_ORDER",
    "Board",
    "Card",
    "Column",
    "Priority",
    "SeededBoard",
    "User",
    # Repositories
    "KanbanRepository",
]
