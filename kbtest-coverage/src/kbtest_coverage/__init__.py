"""Backend/frontend coverage aggregation for kbtest.

Reads a pre-aggregated coverage summary and a raw per-file hit map, normalizes
both into statement/branch/function percentages, and ranks the frontend files
with the weakest statement coverage.

Example usage:

    from kbtest_core import load_config
    from kbtest_coverage import build_report, render_report

    report = build_report(load_config())
    print(render_report(report))
"""

from kbtest_coverage.artifacts import (
    CoverageArtifact,
    HitMapArtifact,
    SummaryArtifact,
    load_hit_map_artifact,
    load_summary_artifact,
)
from kbtest_coverage.models import (
    CoverageCounts,
    CoverageFileEntry,
    CoverageSummary,
    FileCoverage,
    count_hits,
    round_pct,
)
from kbtest_coverage.report import CoverageReport, build_report, format_pct, render_report
from kbtest_coverage.runner import banner, run_suite, run_suites

__all__ = [
    # Artifacts
    "CoverageArtifact",
    "HitMapArtifact",
    "SummaryArtifact",
    "load_hit_map_artifact",
    "load_summary_artifact",
    # Metrics
    "CoverageCounts",
    "CoverageFileEntry",
    "CoverageSummary",
    "FileCoverage",
    "count_hits",
    "round_pct",
    # Reporting
    "CoverageReport",
    "build_report",
    "format_pct",
    "render_report",
    # Suite execution
    "banner",
    "run_suite",
    "run_suites",
]
