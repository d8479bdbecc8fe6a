"""
qtrack.metrics.release - Release health score and risk ranking.

Combines per-requirement coverage of one release into dashboard figures:
requirement counts by priority, pass / automation / coverage rates, a
weighted health score and the top risk areas.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from qtrack.exceptions import ConfigError
from qtrack.metrics.coverage import DEFAULT_ZERO_MINIMUM_RATIO, calculate_coverage, percent
from qtrack.metrics.gates import version_requirements
from qtrack.models import (
    PRIORITIES,
    ReleaseMetrics,
    Requirement,
    RequirementCoverageStat,
    RiskArea,
    TestCaseRecord,
    Version,
)

IN_PROGRESS = "In Progress"

FAILING_TESTS = "Failing Tests"
INSUFFICIENT_COVERAGE = "Insufficient Coverage"

DEFAULT_RISK_MIN_IMPACT = 4
DEFAULT_RISK_LIMIT = 5

CoverageFn = Callable[[str], list[RequirementCoverageStat]]


@dataclass(frozen=True)
class HealthWeights:
    """Weights of the health score components; they must sum to 1.0."""

    pass_rate: float = 0.30
    sufficient_coverage: float = 0.25
    test_case_coverage: float = 0.25
    automation: float = 0.20

    def __post_init__(self) -> None:
        total = math.fsum(
            (self.pass_rate, self.sufficient_coverage, self.test_case_coverage, self.automation)
        )
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ConfigError(
                f"Health weights must sum to 1.0, got {total}",
                error_code="CONFIG_003",
                context={"weights": self.to_dict()},
            )

    def to_dict(self) -> dict[str, float]:
        return {
            "pass_rate": self.pass_rate,
            "sufficient_coverage": self.sufficient_coverage,
            "test_case_coverage": self.test_case_coverage,
            "automation": self.automation,
        }

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> HealthWeights:
        """Read weights from the ``[health.weights]`` table of a config dict."""
        weights = dict(config.get("health", {}).get("weights", {}))
        defaults = cls()
        return cls(
            pass_rate=float(weights.get("pass_rate", defaults.pass_rate)),
            sufficient_coverage=float(
                weights.get("sufficient_coverage", defaults.sufficient_coverage)
            ),
            test_case_coverage=float(
                weights.get("test_case_coverage", defaults.test_case_coverage)
            ),
            automation=float(weights.get("automation", defaults.automation)),
        )


def health_score(
    pass_rate: float,
    sufficient_coverage_percentage: float,
    overall_test_case_coverage: float,
    automation_rate: float,
    weights: HealthWeights | None = None,
) -> float:
    """Weighted mean of the four component rates, rounded to two decimals.

    Not clamped: ``overall_test_case_coverage`` may exceed 100 when a
    release has more tests than its requirements ask for.
    """
    w = weights or HealthWeights()
    return round(
        math.fsum(
            (
                w.pass_rate * pass_rate,
                w.sufficient_coverage * sufficient_coverage_percentage,
                w.test_case_coverage * overall_test_case_coverage,
                w.automation * automation_rate,
            )
        ),
        2,
    )


def rank_risk_areas(
    coverage: Sequence[RequirementCoverageStat],
    requirements: Sequence[Requirement],
    min_impact: int = DEFAULT_RISK_MIN_IMPACT,
    limit: int = DEFAULT_RISK_LIMIT,
) -> list[RiskArea]:
    """High-impact requirements with failing tests or too few tests.

    Ordered by business impact (highest first), then pass percentage
    (lowest first); at most ``limit`` entries.
    """
    by_id = {r.id: r for r in requirements}

    candidates = []
    for stat in coverage:
        req = by_id.get(stat.req_id)
        if req is None or req.business_impact < min_impact:
            continue
        if stat.pass_percentage < 100 or not stat.meets_minimum:
            candidates.append((req, stat))

    candidates.sort(key=lambda pair: (-pair[0].business_impact, pair[1].pass_percentage))

    return [
        RiskArea(
            id=stat.req_id,
            name=req.name,
            reason=FAILING_TESTS if stat.pass_percentage < 100 else INSUFFICIENT_COVERAGE,
            impact=req.business_impact,
            coverage=stat.coverage_ratio,
            pass_rate=stat.pass_percentage,
        )
        for req, stat in candidates[:limit]
    ]


def _parse_release_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_to_release(version: Version, now: Optional[datetime] = None) -> int:
    """Whole days (rounded up) until the release date of an in-progress release.

    Returns 0 for releases in any other state or without a usable date.
    """
    if version.status != IN_PROGRESS:
        return 0
    release = _parse_release_date(version.release_date)
    if release is None:
        return 0
    now = now or datetime.now(timezone.utc)
    return math.ceil((release - now).total_seconds() / 86400)


def calculate_release_metrics(
    version_id: str,
    versions: Sequence[Version],
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCaseRecord] = (),
    mapping: Optional[Mapping[str, list[str]]] = None,
    coverage_fn: Optional[CoverageFn] = None,
    weights: HealthWeights | None = None,
    risk_min_impact: int = DEFAULT_RISK_MIN_IMPACT,
    risk_limit: int = DEFAULT_RISK_LIMIT,
    zero_minimum_ratio: int = DEFAULT_ZERO_MINIMUM_RATIO,
    now: Optional[datetime] = None,
) -> ReleaseMetrics | None:
    """Compute dashboard metrics for one release.

    Args:
        version_id: Release to report on.
        versions: All releases.
        requirements: All requirements; the release's subset is those
            tagged with ``version_id``.
        test_cases: Test case records used when ``coverage_fn`` is not given.
        mapping: Requirement to test case mapping used when ``coverage_fn``
            is not given.
        coverage_fn: Returns coverage stats for a release id. Defaults to
            :func:`calculate_coverage` over the release's requirements.
        weights: Health score weights.
        risk_min_impact: Minimum business impact for a risk area.
        risk_limit: Maximum number of risk areas reported.
        zero_minimum_ratio: Passed to the default coverage calculation.
        now: Reference time for ``daysToRelease``.

    Returns:
        The metrics, or None when ``version_id`` is not a known release.
    """
    version = next((v for v in versions if v.id == version_id), None)
    if version is None:
        return None

    reqs = version_requirements(requirements, version_id)

    if coverage_fn is None:
        coverage = calculate_coverage(
            reqs, mapping or {}, test_cases, version_id, zero_minimum_ratio=zero_minimum_ratio
        )
    else:
        coverage = coverage_fn(version_id)

    req_by_priority = {p: sum(1 for r in reqs if r.priority == p) for p in PRIORITIES}

    total_requirements = len(reqs)
    sufficient = sum(1 for c in coverage if c.meets_minimum)
    sufficient_coverage_percentage = percent(sufficient, total_requirements)

    total_tests = sum(c.total_tests for c in coverage)
    total_passing = sum(c.passed_tests for c in coverage)
    total_automated = sum(c.automated_tests for c in coverage)
    total_manual = total_tests - total_automated
    total_min_required = sum(c.min_test_cases for c in coverage)

    pass_rate = percent(total_passing, total_tests)
    automation_rate = percent(total_automated, total_tests)
    manual_test_rate = percent(total_manual, total_tests)
    overall_test_case_coverage = percent(total_tests, total_min_required)

    return ReleaseMetrics(
        version=version,
        req_by_priority=req_by_priority,
        total_requirements=total_requirements,
        sufficient_coverage_percentage=sufficient_coverage_percentage,
        pass_rate=pass_rate,
        automation_rate=automation_rate,
        manual_test_rate=manual_test_rate,
        overall_test_case_coverage=overall_test_case_coverage,
        total_min_required_tests=total_min_required,
        total_tests_for_version=total_tests,
        total_automated_tests=total_automated,
        total_manual_tests=total_manual,
        health_score=health_score(
            pass_rate,
            sufficient_coverage_percentage,
            overall_test_case_coverage,
            automation_rate,
            weights,
        ),
        risk_areas=rank_risk_areas(coverage, requirements, risk_min_impact, risk_limit),
        quality_gates=list(version.quality_gates),
        days_to_release=days_to_release(version, now),
        version_coverage=coverage,
    )
