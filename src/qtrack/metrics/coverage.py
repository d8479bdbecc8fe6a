"""
qtrack.metrics.coverage - Per-requirement coverage statistics.

Everything here is a pure function of a requirements / mapping / test
case snapshot. Statistics are recomputed from scratch on every call and
never updated incrementally.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Optional

from qtrack.models import (
    AUTOMATED,
    FAILED,
    PASSED,
    Requirement,
    RequirementCoverageStat,
    TestCaseRecord,
)

# Version filter value meaning "no filter"
UNASSIGNED = "unassigned"

# Coverage ratio reported for a requirement that asks for zero tests
DEFAULT_ZERO_MINIMUM_RATIO = 100


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def percent(numerator: float, denominator: float) -> int:
    """Zero-safe whole-number percentage."""
    return round_half_up(numerator / denominator * 100) if denominator else 0


def _active_filter(version_filter: Optional[str]) -> Optional[str]:
    if not version_filter or version_filter == UNASSIGNED:
        return None
    return version_filter


def test_case_applies_to(test_case: TestCaseRecord, version_id: str) -> bool:
    """Whether ``test_case`` counts towards release ``version_id``.

    Records with an ``applicableVersions`` list apply when the list is empty
    or names the version. Legacy records without the list apply when their
    single ``version`` is empty or equal to ``version_id``.
    """
    if test_case.applicable_versions is not None:
        if not test_case.applicable_versions:
            return True
        return version_id in test_case.applicable_versions
    return not test_case.version or test_case.version == version_id


def calculate_coverage(
    requirements: Iterable[Requirement],
    mapping: Mapping[str, list[str]],
    test_cases: Iterable[TestCaseRecord],
    version_filter: Optional[str] = None,
    zero_minimum_ratio: int = DEFAULT_ZERO_MINIMUM_RATIO,
) -> list[RequirementCoverageStat]:
    """Compute coverage statistics for each requirement.

    Args:
        requirements: Requirements, in the order the result should follow.
        mapping: Requirement id to linked test case ids.
        test_cases: Current test case records.
        version_filter: Release id. Requirements not tagged with it are
            omitted and linked test cases that do not apply to it are not
            counted. ``None`` or ``"unassigned"`` disables filtering.
        zero_minimum_ratio: ``coverageRatio`` for requirements whose
            ``minTestCases`` is 0.

    Returns:
        One stat per requirement that passed the version filter. Linked ids
        with no matching test case record are not counted.
    """
    version = _active_filter(version_filter)
    by_id = {tc.id: tc for tc in test_cases}

    stats: list[RequirementCoverageStat] = []
    for req in requirements:
        if version is not None and version not in req.versions:
            continue

        linked = [by_id[tc_id] for tc_id in mapping.get(req.id, []) if tc_id in by_id]
        if version is not None:
            linked = [tc for tc in linked if test_case_applies_to(tc, version)]

        total = len(linked)
        automated = sum(1 for tc in linked if tc.automation_status == AUTOMATED)
        passed = sum(1 for tc in linked if tc.status == PASSED)

        if req.min_test_cases > 0:
            coverage_ratio = percent(total, req.min_test_cases)
        else:
            coverage_ratio = zero_minimum_ratio

        stats.append(
            RequirementCoverageStat(
                req_id=req.id,
                total_tests=total,
                automated_tests=automated,
                passed_tests=passed,
                min_test_cases=req.min_test_cases,
                test_depth_factor=req.test_depth_factor,
                meets_minimum=total >= req.min_test_cases,
                coverage_ratio=coverage_ratio,
                automation_percentage=percent(automated, total),
                pass_percentage=percent(passed, total),
                priority=req.priority,
                business_impact=req.business_impact,
            )
        )
    return stats


def get_cell_status(test_case_id: str, test_cases: Iterable[TestCaseRecord]) -> str:
    """Traceability matrix cell state: passed, failed, not-run or none."""
    for tc in test_cases:
        if tc.id == test_case_id:
            if tc.status == PASSED:
                return "passed"
            if tc.status == FAILED:
                return "failed"
            return "not-run"
    return "none"
