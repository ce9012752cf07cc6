"""Database connection management."""

from __future__ import annotations

import importlib.resources
from pathlib import Path

import aiosqlite


async def get_schema_sql() -> str:
    """Load the Kanban schema SQL from package resources."""
    schema_path = importlib.resources.files("kbtest_db.schema").joinpath("kanban_schema.sql")
    return schema_path.read_text(encoding="utf-8")


async def open_database(db_path: str | Path) -> aiosqlite.Connection:
    """Open an existing database connection.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open database connection. Caller is responsible for closing.

    Note:
        Foreign keys are enabled automatically.
    """
    db = await aiosqlite.connect(db_path)
    try:
        await db.execute("PRAGMA foreign_keys = ON")
    except aiosqlite.Error:
        await db.close()
        raise
    db.row_factory = aiosqlite.Row
    return db


async def list_tables(db: aiosqlite.Connection) -> list[str]:
    """List user tables in the database, sorted by name."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' "
        "ORDER BY name"
    )
    rows = await cursor.fetchall()
    return [row[0] for row in rows]


class Database:
    """Async context manager for database connections.

    Usage:
        async with Database("test-dbs/test-1.db") as db:
            # Use db connection
            pass

        # Or for in-memory testing:
        async with Database(":memory:", create=True) as db:
            # Fresh database with schema
            pass
    """

    def __init__(self, db_path: str | Path, *, create: bool = False) -> None:
        """Initialize database connection manager.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
            create: If True, apply the schema on the connection.
        """
        self._db_path = db_path
        self._create = create
        self._connection: aiosqlite.Connection | None = None

    async def __aenter__(self) -> aiosqlite.Connection:
        """Open the database connection."""
        self._connection = await open_database(self._db_path)

        if self._create:
            schema_sql = await get_schema_sql()
            await self._connection.executescript(schema_sql)
            await self._connection.commit()

        return self._connection

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
