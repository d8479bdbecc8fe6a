"""Derived metrics: coverage statistics, quality gates and release health."""

from qtrack.metrics.coverage import (
    UNASSIGNED,
    calculate_coverage,
    get_cell_status,
    percent,
    round_half_up,
    test_case_applies_to,
)
from qtrack.metrics.gates import (
    DEFAULT_CATALOG,
    PREDEFINED_QUALITY_GATES,
    GateDefinition,
    QualityGateRefresher,
    calculate_quality_gates,
    evaluate_gate_status,
    refresh_quality_gates,
    update_all_version_quality_gates,
)
from qtrack.metrics.release import (
    HealthWeights,
    calculate_release_metrics,
    days_to_release,
    health_score,
    rank_risk_areas,
)

__all__ = [
    "UNASSIGNED",
    "calculate_coverage",
    "get_cell_status",
    "percent",
    "round_half_up",
    "test_case_applies_to",
    "DEFAULT_CATALOG",
    "PREDEFINED_QUALITY_GATES",
    "GateDefinition",
    "QualityGateRefresher",
    "calculate_quality_gates",
    "evaluate_gate_status",
    "refresh_quality_gates",
    "update_all_version_quality_gates",
    "HealthWeights",
    "calculate_release_metrics",
    "days_to_release",
    "health_score",
    "rank_risk_areas",
]
