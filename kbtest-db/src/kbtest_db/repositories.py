"""Repository for seeding and inspecting Kanban test data."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from kbtest_db.models import (
    TRUNCATION_ORDER,
    Board,
    Card,
    Column,
    Priority,
    SeededBoard,
    User,
)

if TYPE_CHECKING:
    import aiosqlite


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse SQLite timestamp string to datetime."""
    if value is None:
        return None
    # SQLite stores as "YYYY-MM-DD HH:MM:SS"
    return datetime.fromisoformat(value)


class KanbanRepository:
    """Repository for users, boards, columns and cards."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    # --- Users ---

    async def create_user(self, user: User) -> int:
        """Create a user and return its ID."""
        cursor = await self._db.execute(
            'INSERT INTO "user" (clerk_id, email, name) VALUES (?, ?, ?)',
            (user.clerk_id, user.email, user.name),
        )
        await self._db.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_user(self, user_id: int) -> User | None:
        """Get a user by ID."""
        cursor = await self._db.execute(
            'SELECT id, clerk_id, email, name, created_at FROM "user" WHERE id = ?',
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            clerk_id=row["clerk_id"],
            email=row["email"],
            name=row["name"],
            created_at=_parse_datetime(row["created_at"]),
        )

    # --- Boards ---

    async def create_board(self, board: Board) -> int:
        """Create a board and return its ID."""
        cursor = await self._db.execute(
            'INSERT INTO "board" (title, description, owner_id) VALUES (?, ?, ?)',
            (board.title, board.description, board.owner_id),
        )
        await self._db.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_board(self, board_id: int) -> Board | None:
        """Get a board by ID."""
        cursor = await self._db.execute(
            'SELECT id, title, description, owner_id, created_at FROM "board" WHERE id = ?',
            (board_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Board(
            id=row["id"],
            title=row["title"],
            owner_id=row["owner_id"],
            description=row["description"],
            created_at=_parse_datetime(row["created_at"]),
        )

    # --- Columns ---

    async def create_column(self, column: Column) -> int:
        """Create a column and return its ID."""
        cursor = await self._db.execute(
            'INSERT INTO "column" (title, position, board_id) VALUES (?, ?, ?)',
            (column.title, column.position, column.board_id),
        )
        await self._db.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_columns(self, board_id: int) -> list[Column]:
        """List the columns of a board, ordered by position."""
        cursor = await self._db.execute(
            'SELECT id, title, position, board_id FROM "column" WHERE board_id = ? '
            "ORDER BY position, id",
            (board_id,),
        )
        rows = await cursor.fetchall()
        return [
            Column(id=row["id"], title=row["title"], board_id=row["board_id"], position=row["position"])
            for row in rows
        ]

    # --- Cards ---

    async def create_card(self, card: Card) -> int:
        """Create a card and return its ID."""
        cursor = await self._db.execute(
            """
            INSERT INTO "card" (title, description, priority, position, column_id, created_by_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                card.title,
                card.description,
                card.priority.value,
                card.position,
                card.column_id,
                card.created_by_id,
            ),
        )
        await self._db.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_card(self, card_id: int) -> Card | None:
        """Get a card by ID."""
        cursor = await self._db.execute(
            """
            SELECT id, title, description, priority, position, column_id, created_by_id, created_at
            FROM "card" WHERE id = ?
            """,
            (card_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Card(
            id=row["id"],
            title=row["title"],
            column_id=row["column_id"],
            created_by_id=row["created_by_id"],
            description=row["description"],
            priority=Priority(row["priority"]),
            position=row["position"],
            created_at=_parse_datetime(row["created_at"]),
        )

    # --- Inspection ---

    async def count(self, table: str) -> int:
        """Count the rows of a domain table."""
        if table not in TRUNCATION_ORDER:
            raise ValueError(f"Unknown table: {table!r}")
        cursor = await self._db.execute(f'SELECT COUNT(*) FROM "{table}"')
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def seed_board(self, suffix: str = "") -> SeededBoard:
        """Create one user, board, column and card linked together.

        Args:
            suffix: Appended to unique fields so several chains can coexist.

        Returns:
            The created rows with their assigned IDs.
        """
        user = User(
            id=None,
            clerk_id=f"test-clerk-id{suffix}",
            email=f"test{suffix}@example.com",
            name="Test User",
        )
        user.id = await self.create_user(user)

        board = Board(id=None, title="Test Board", owner_id=user.id, description="Test board")
        board.id = await self.create_board(board)

        column = Column(id=None, title="Test Column", board_id=board.id, position=0)
        column.id = await self.create_column(column)

        card = Card(
            id=None,
            title="Test Card",
            column_id=column.id,
            created_by_id=user.id,
            description="Test card description",
            priority=Priority.MEDIUM,
        )
        card.id = await self.create_card(card)

        return SeededBoard(user=user, board=board, column=column, card=card)
