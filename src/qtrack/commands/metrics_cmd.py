"""
qtrack.commands.metrics_cmd - Release health report.
"""

from __future__ import annotations

import argparse
import json
import sys

from qtrack.models import ReleaseMetrics


def run(args: argparse.Namespace) -> int:
    from qtrack.pipeline import build_pipeline
    from qtrack.store.datastore import load_snapshot_file

    pipeline = build_pipeline(load_snapshot_file(args.snapshot), args.loaded_config)
    metrics = pipeline.release_metrics(args.release)
    if metrics is None:
        print(f"Release not found: {args.release}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(metrics.to_dict(), indent=2))
    else:
        print(format_metrics(metrics))
    return 0


def format_metrics(metrics: ReleaseMetrics) -> str:
    """Render metrics as a plain-text report."""
    version = metrics.version
    lines = [
        f"Release {version.name or version.id} ({version.status or 'no status'})",
        f"  Health score:            {metrics.health_score:g}",
        f"  Pass rate:               {metrics.pass_rate}%",
        f"  Sufficient coverage:     {metrics.sufficient_coverage_percentage}%",
        f"  Test case coverage:      {metrics.overall_test_case_coverage}%",
        f"  Automation rate:         {metrics.automation_rate}%",
        f"  Requirements:            {metrics.total_requirements} "
        + " / ".join(f"{k} {v}" for k, v in metrics.req_by_priority.items()),
        f"  Tests:                   {metrics.total_tests_for_version} "
        f"({metrics.total_automated_tests} automated, {metrics.total_manual_tests} manual)",
    ]
    if metrics.days_to_release:
        lines.append(f"  Days to release:         {metrics.days_to_release}")

    if metrics.risk_areas:
        lines.append("")
        lines.append("Risk areas:")
        for risk in metrics.risk_areas:
            lines.append(
                f"  {risk.id:<12} impact {risk.impact}  pass {risk.pass_rate}%  "
                f"coverage {risk.coverage}%  {risk.reason}"
            )
    return "\n".join(lines)
