"""Combined backend/frontend coverage report."""

from __future__ import annotations

from dataclasses import dataclass, field

from kbtest_core.config import KbtestConfig
from kbtest_coverage.artifacts import load_hit_map_artifact, load_summary_artifact
from kbtest_coverage.models import CoverageFileEntry, CoverageSummary


@dataclass(frozen=True)
class CoverageReport:
    """Coverage of both source trees.

    Attributes:
        backend: Backend summary, or None if its suite has not run.
        frontend: Frontend summary, or None if its suite has not run.
        weakest: Frontend files with the lowest statement coverage.
    """

    backend: CoverageSummary | None = None
    frontend: CoverageSummary | None = None
    weakest: tuple[CoverageFileEntry, ...] = field(default_factory=tuple)

    @property
    def has_data(self) -> bool:
        """Return True if at least one side produced coverage."""
        return self.backend is not None or self.frontend is not None


def build_report(config: KbtestConfig, weakest_limit: int | None = None) -> CoverageReport:
    """Read both coverage artifacts and summarize them.

    Args:
        config: kbtest configuration naming the artifact paths.
        weakest_limit: Number of weakest files to keep. Defaults to the
            configured limit.

    Returns:
        Report with a None side for every missing artifact.

    Raises:
        CoverageArtifactError: If an artifact exists but is malformed.
    """
    coverage = config.coverage
    if weakest_limit is None:
        weakest_limit = coverage.weakest_limit

    summary = load_summary_artifact(config.resolve(coverage.backend_summary))
    hit_map = load_hit_map_artifact(
        config.resolve(coverage.frontend_hit_map),
        root=config.root,
        source_marker=coverage.source_marker,
    )

    return CoverageReport(
        backend=summary.normalize() if summary is not None else None,
        frontend=hit_map.normalize() if hit_map is not None else None,
        weakest=tuple(hit_map.weakest_files(weakest_limit)) if hit_map is not None else (),
    )


def format_pct(value: float) -> str:
    """Format a percentage with two decimals."""
    return f"{value:.2f}%"


def render_report(report: CoverageReport) -> str:
    """Render the report as text, one line per available side.

    Example output:

        - Backend: Lines 81.20% | Branches 70.10% | Functions 75.00% | Statements 80.50%
        - Frontend (src): Statements 70.00% | Branches 75.00% | Functions 50.00%

        Lowest coverage (by statements)
        - frontend/src/api.ts: 0.00%
    """
    lines: list[str] = []

    backend = report.backend
    if backend is not None:
        parts = []
        if backend.lines is not None:
            parts.append(f"Lines {format_pct(backend.lines)}")
        parts.extend(
            [
                f"Branches {format_pct(backend.branches)}",
                f"Functions {format_pct(backend.functions)}",
                f"Statements {format_pct(backend.statements)}",
            ]
        )
        lines.append("- Backend: " + " | ".join(parts))

    frontend = report.frontend
    if frontend is not None:
        lines.append(
            f"- Frontend (src): Statements {format_pct(frontend.statements)}"
            f" | Branches {format_pct(frontend.branches)}"
            f" | Functions {format_pct(frontend.functions)}"
        )

    if report.weakest:
        lines.append("")
        lines.append("Lowest coverage (by statements)")
        for entry in report.weakest:
            lines.append(f"- {entry.file_path}: {format_pct(entry.statement_pct)}")

    return "\n".join(lines)
