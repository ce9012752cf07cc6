"""Coverage metric types."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable


def round_pct(covered: int, total: int) -> float:
    """Percentage of covered units, rounded half-up to two decimals.

    Args:
        covered: Units with at least one hit.
        total: All instrumented units.

    Returns:
        0.0 when there is nothing to cover, else ``covered / total * 100``.
    """
    if total == 0:
        return 0.0
    return math.floor(covered / total * 10000 + 0.5) / 100


def count_hits(hits: Iterable[Any]) -> CoverageCounts:
    """Count hit entries, treating every value above zero as covered."""
    values = [float(hit) for hit in hits]
    return CoverageCounts(covered=sum(1 for v in values if v > 0), total=len(values))


@dataclass(frozen=True)
class CoverageCounts:
    """Covered and total units for one metric.

    Counts add up across files; percentages are only derived at the end so
    large files weigh more than small ones.
    """

    covered: int = 0
    total: int = 0

    def __add__(self, other: CoverageCounts) -> CoverageCounts:
        return CoverageCounts(covered=self.covered + other.covered, total=self.total + other.total)

    @property
    def pct(self) -> float:
        """Rounded coverage percentage."""
        return round_pct(self.covered, self.total)


@dataclass(frozen=True)
class FileCoverage:
    """Statement, branch and function counts for one source file."""

    file_path: str
    statements: CoverageCounts
    branches: CoverageCounts
    functions: CoverageCounts


@dataclass(frozen=True)
class CoverageSummary:
    """Normalized coverage percentages for one source tree.

    Attributes:
        statements: Statement coverage in percent.
        branches: Branch-arm coverage in percent.
        functions: Function coverage in percent.
        lines: Line coverage in percent, or None when the source has no line
            accounting.
    """

    statements: float
    branches: float
    functions: float
    lines: float | None = None

    def __post_init__(self) -> None:
        """Validate percentages."""
        for name in ("statements", "branches", "functions", "lines"):
            value = getattr(self, name)
            if value is not None and not 0 <= value <= 100:
                raise ValueError(f"{name} must be within [0, 100], got {value}")

    @classmethod
    def from_counts(
        cls,
        statements: CoverageCounts,
        branches: CoverageCounts,
        functions: CoverageCounts,
    ) -> CoverageSummary:
        """Build a summary from aggregated counts."""
        return cls(statements=statements.pct, branches=branches.pct, functions=functions.pct)


@dataclass(frozen=True)
class CoverageFileEntry:
    """Statement coverage of one file, used for ranking.

    Attributes:
        file_path: Path relative to the repository root.
        statement_pct: Statement coverage in percent.
    """

    file_path: str
    statement_pct: float
