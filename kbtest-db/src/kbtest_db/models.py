"""Database models for the Kanban test fixture.

These dataclasses map to the tables defined in schema/kanban_schema.sql.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Child-first order for clearing the domain tables. Deleting in any other
# order violates a foreign key. Fixed; never derived from the schema.
TRUNCATION_ORDER: tuple[str, ...] = ("card", "column", "board", "user")


class Priority(Enum):
    """Priority of a card."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class User:
    """A board user, keyed by the external auth provider id."""

    id: int | None
    clerk_id: str
    email: str
    name: str | None = None
    created_at: datetime | None = None


@dataclass
class Board:
    """A Kanban board owned by a user."""

    id: int | None
    title: str
    owner_id: int
    description: str | None = None
    created_at: datetime | None = None


@dataclass
class Column:
    """A column on a board."""

    id: int | None
    title: str
    board_id: int
    position: int = 0


@dataclass
class Card:
    """A card in a column."""

    id: int | None
    title: str
    column_id: int
    created_by_id: int
    description: str | None = None
    priority: Priority = Priority.MEDIUM
    position: int = 0
    created_at: datetime | None = None


@dataclass
class SeededBoard:
    """One user/board/column/card chain created for a test."""

    user: User
    board: Board
    column: Column
    card: Card
