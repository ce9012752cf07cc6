"""Coverage artifacts written by the backend and frontend test runners.

Two artifact shapes are reconciled into one CoverageSummary:

    SummaryArtifact
        A pre-aggregated summary (``coverage-summary.json``)::

            {"total": {"lines": {"pct": 81.2}, "statements": {"pct": 80.5},
                       "branches": {"pct": 70.1}, "functions": {"pct": 75.0}}}

    HitMapArtifact
        Raw per-file hit counts (``coverage-final.json``), keyed by absolute
        path. ``s`` and ``f`` map statement/function ids to hit counts; ``b``
        maps branch ids to one hit count per arm::

            {"/repo/frontend/src/api.ts": {"s": {"0": 3, "1": 0},
                                           "f": {"0": 1},
                                           "b": {"0": [2, 0]}}}

A missing artifact means the suite has not run yet and yields None. An
artifact that exists but cannot be parsed raises CoverageArtifactError.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Mapping

from kbtest_core.errors import CoverageArtifactError
from kbtest_coverage.models import (
    CoverageCounts,
    CoverageFileEntry,
    CoverageSummary,
    FileCoverage,
    count_hits,
)

logger = logging.getLogger(__name__)

SUMMARY_METRICS: tuple[str, ...] = ("lines", "statements", "branches", "functions")


class CoverageArtifact(ABC):
    """A coverage artifact that can be normalized into a summary."""

    kind: ClassVar[str]

    @abstractmethod
    def normalize(self) -> CoverageSummary:
        """Return the artifact's coverage as percentages."""


@dataclass(frozen=True)
class SummaryArtifact(CoverageArtifact):
    """Pre-aggregated coverage summary.

    Attributes:
        totals: Percentage per metric name.
        source_path: File the artifact was read from.
    """

    kind: ClassVar[str] = "summary"

    totals: Mapping[str, float]
    source_path: Path | None = None

    @classmethod
    def from_json(cls, data: Any, source_path: Path | None = None) -> SummaryArtifact:
        """Parse the ``total`` block of a summary document.

        Raises:
            CoverageArtifactError: If a metric or its ``pct`` is missing.
        """
        total = data.get("total") if isinstance(data, dict) else None
        if not isinstance(total, dict):
            raise CoverageArtifactError(source_path, "missing 'total' object")

        totals: dict[str, float] = {}
        for metric in SUMMARY_METRICS:
            entry = total.get(metric)
            pct = entry.get("pct") if isinstance(entry, dict) else None
            if pct == "Unknown":
                # Written for metrics with nothing to cover
                pct = 0
            if isinstance(pct, bool) or not isinstance(pct, (int, float)):
                raise CoverageArtifactError(source_path, f"missing total.{metric}.pct")
            if not 0 <= pct <= 100:
                raise CoverageArtifactError(source_path, f"total.{metric}.pct out of range: {pct}")
            totals[metric] = float(pct)
        return cls(totals=totals, source_path=source_path)

    def normalize(self) -> CoverageSummary:
        return CoverageSummary(
            lines=self.totals["lines"],
            statements=self.totals["statements"],
            branches=self.totals["branches"],
            functions=self.totals["functions"],
        )


def _marker_segment(marker: str) -> str:
    """Turn ``frontend/src`` into ``<sep>frontend<sep>src<sep>``."""
    parts = [part for part in marker.replace("\\", "/").split("/") if part]
    return os.sep + os.sep.join(parts) + os.sep


def _relative_to_root(file_path: str, root: Path | None) -> str:
    if root is None:
        return file_path
    prefix = str(root) + os.sep
    if file_path.startswith(prefix):
        return file_path[len(prefix):]
    return file_path


@dataclass(frozen=True)
class HitMapArtifact(CoverageArtifact):
    """Raw per-file hit counts, restricted to one source tree.

    Attributes:
        files: Hit records keyed by absolute file path.
        root: Repository root used to shorten paths for display.
        source_marker: Path segment (e.g., "frontend/src") a file must contain
            to be counted. Build output, dependencies and anything outside the
            source tree are excluded.
        source_path: File the artifact was read from.
    """

    kind: ClassVar[str] = "hit_map"

    files: Mapping[str, Any]
    root: Path | None = None
    source_marker: str = "frontend/src"
    source_path: Path | None = None
    _coverage: tuple[FileCoverage, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Compute per-file counts once."""
        object.__setattr__(self, "_coverage", tuple(self._compute()))

    @classmethod
    def from_json(
        cls,
        data: Any,
        root: Path | None = None,
        source_marker: str = "frontend/src",
        source_path: Path | None = None,
    ) -> HitMapArtifact:
        """Wrap a parsed hit map document.

        Raises:
            CoverageArtifactError: If the document or a file record is malformed.
        """
        if not isinstance(data, dict):
            raise CoverageArtifactError(source_path, "hit map must be a JSON object")
        try:
            return cls(files=data, root=root, source_marker=source_marker, source_path=source_path)
        except (AttributeError, TypeError, ValueError) as e:
            raise CoverageArtifactError(source_path, f"malformed hit map: {e}") from e

    def _compute(self) -> list[FileCoverage]:
        marker = _marker_segment(self.source_marker)
        result: list[FileCoverage] = []
        for file_path, record in self.files.items():
            if marker not in file_path:
                continue
            branches = CoverageCounts()
            for arms in (record.get("b") or {}).values():
                # Every arm of a branch is its own unit
                branches += count_hits(arms if isinstance(arms, list) else [])
            result.append(
                FileCoverage(
                    file_path=_relative_to_root(file_path, self.root),
                    statements=count_hits((record.get("s") or {}).values()),
                    branches=branches,
                    functions=count_hits((record.get("f") or {}).values()),
                )
            )
        return result

    @property
    def file_coverage(self) -> tuple[FileCoverage, ...]:
        """Counts for every included file, in artifact order."""
        return self._coverage

    def totals(self) -> tuple[CoverageCounts, CoverageCounts, CoverageCounts]:
        """Sum statement, branch and function counts across included files."""
        statements = branches = functions = CoverageCounts()
        for entry in self._coverage:
            statements += entry.statements
            branches += entry.branches
            functions += entry.functions
        return statements, branches, functions

    def normalize(self) -> CoverageSummary:
        statements, branches, functions = self.totals()
        return CoverageSummary.from_counts(statements, branches, functions)

    def file_entries(self) -> list[CoverageFileEntry]:
        """Statement percentage of every included file, in artifact order."""
        return [
            CoverageFileEntry(file_path=entry.file_path, statement_pct=entry.statements.pct)
            for entry in self._coverage
        ]

    def weakest_files(self, limit: int = 5) -> list[CoverageFileEntry]:
        """Files with the lowest statement coverage, lowest first.

        Ties keep artifact order.
        """
        ranked = sorted(self.file_entries(), key=lambda entry: entry.statement_pct)
        return ranked[:limit]


def _read_json(path: Path) -> Any | None:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("no coverage data at %s (suite not run yet?)", path)
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CoverageArtifactError(path, f"invalid JSON: {e}") from e
    except OSError as e:
        raise CoverageArtifactError(path, f"cannot read: {e}") from e


def load_summary_artifact(path: str | Path) -> SummaryArtifact | None:
    """Load a pre-aggregated summary artifact.

    Args:
        path: Path to ``coverage-summary.json``.

    Returns:
        The parsed artifact, or None if the file does not exist.

    Raises:
        CoverageArtifactError: If the file is not a valid summary.
    """
    path = Path(path)
    data = _read_json(path)
    if data is None:
        return None
    return SummaryArtifact.from_json(data, source_path=path)


def load_hit_map_artifact(
    path: str | Path,
    root: Path | None = None,
    source_marker: str = "frontend/src",
) -> HitMapArtifact | None:
    """Load a raw per-file hit map artifact.

    Args:
        path: Path to ``coverage-final.json``.
        root: Repository root used to shorten file paths.
        source_marker: Path segment a file must contain to be counted.

    Returns:
        The parsed artifact, or None if the file does not exist.

    Raises:
        CoverageArtifactError: If the file is not a valid hit map.
    """
    path = Path(path)
    data = _read_json(path)
    if data is None:
        return None
    return HitMapArtifact.from_json(data, root=root, source_marker=source_marker, source_path=path)
