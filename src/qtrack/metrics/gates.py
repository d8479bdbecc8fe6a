"""
qtrack.metrics.gates - Quality gate catalog and evaluation.

A release lists the gates it must pass as ``{id, target}`` pairs. The
catalog supplies, per gate id, how to compute the actual value and whether
lower values are better. Gate ids missing from the catalog are passed
through untouched.
"""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from loguru import logger

from qtrack.metrics.coverage import (
    DEFAULT_ZERO_MINIMUM_RATIO,
    calculate_coverage,
    percent,
    test_case_applies_to,
)
from qtrack.models import (
    AUTOMATED,
    PASSED,
    QualityGate,
    Requirement,
    RequirementCoverageStat,
    TestCaseRecord,
    Version,
)
from qtrack.store.datastore import DataStore
from qtrack.store.events import TEST_CASE_COMMITTED, EventChannel

GATE_PASSED = "passed"
GATE_FAILED = "failed"

HIGH_IMPACT = 4
# Share of passing tests at which a risk area counts as mitigated
MITIGATION_PASS_SHARE = 0.8

ActualCalculator = Callable[
    [
        Sequence[Requirement],
        Sequence[TestCaseRecord],
        Mapping[str, list[str]],
        Sequence[RequirementCoverageStat],
    ],
    int,
]


@dataclass(frozen=True)
class GateDefinition:
    """Catalog entry describing how a gate is measured."""

    id: str
    name: str
    description: str
    category: str
    default_target: float
    calculate_actual: ActualCalculator
    is_inverted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "defaultTarget": self.default_target,
            "isInverted": self.is_inverted,
        }


def _meets_minimum_share(
    requirements: Sequence[Requirement], coverage: Sequence[RequirementCoverageStat]
) -> int:
    covered = {c.req_id for c in coverage if c.meets_minimum}
    return percent(sum(1 for r in requirements if r.id in covered), len(requirements))


def _critical_req_coverage(requirements, test_cases, mapping, coverage) -> int:
    high = [r for r in requirements if r.priority == "High"]
    return _meets_minimum_share(high, coverage)


def _overall_req_coverage(requirements, test_cases, mapping, coverage) -> int:
    return percent(sum(1 for c in coverage if c.meets_minimum), len(requirements))


def _test_pass_rate(requirements, test_cases, mapping, coverage) -> int:
    return percent(sum(1 for tc in test_cases if tc.status == PASSED), len(test_cases))


def _automation_coverage(requirements, test_cases, mapping, coverage) -> int:
    automated = sum(1 for tc in test_cases if tc.automation_status == AUTOMATED)
    return percent(automated, len(test_cases))


def _high_priority_automation(requirements, test_cases, mapping, coverage) -> int:
    linked: dict[str, None] = {}
    for req in requirements:
        if req.priority == "High":
            for tc_id in mapping.get(req.id, []):
                linked[tc_id] = None

    automated_ids = {tc.id for tc in test_cases if tc.automation_status == AUTOMATED}
    return percent(sum(1 for tc_id in linked if tc_id in automated_ids), len(linked))


def _business_impact_coverage(requirements, test_cases, mapping, coverage) -> int:
    high_impact = [r for r in requirements if r.business_impact >= HIGH_IMPACT]
    return _meets_minimum_share(high_impact, coverage)


def _risk_area_mitigation(requirements, test_cases, mapping, coverage) -> int:
    risk_areas = [
        r for r in requirements if r.priority == "High" and r.business_impact >= HIGH_IMPACT
    ]
    if not risk_areas:
        return 0

    status_by_id = {tc.id: tc.status for tc in test_cases}
    mitigated = 0
    for req in risk_areas:
        linked = mapping.get(req.id, [])
        if not linked:
            continue
        passing = sum(1 for tc_id in linked if status_by_id.get(tc_id) == PASSED)
        if passing / len(linked) >= MITIGATION_PASS_SHARE:
            mitigated += 1
    return percent(mitigated, len(risk_areas))


def _test_depth_compliance(requirements, test_cases, mapping, coverage) -> int:
    return _meets_minimum_share(requirements, coverage)


PREDEFINED_QUALITY_GATES: tuple[GateDefinition, ...] = (
    GateDefinition(
        id="critical_req_coverage",
        name="Critical Requirements Test Coverage",
        description="Percentage of high-priority requirements that have sufficient test coverage",
        category="Coverage",
        default_target=100,
        calculate_actual=_critical_req_coverage,
    ),
    GateDefinition(
        id="overall_req_coverage",
        name="Overall Requirements Coverage",
        description="Percentage of all requirements that meet their minimum test case threshold",
        category="Coverage",
        default_target=90,
        calculate_actual=_overall_req_coverage,
    ),
    GateDefinition(
        id="test_pass_rate",
        name="Test Pass Rate",
        description="Percentage of test cases that are passing",
        category="Execution",
        default_target=95,
        calculate_actual=_test_pass_rate,
    ),
    GateDefinition(
        id="automation_coverage",
        name="Automation Coverage",
        description="Percentage of test cases that are automated",
        category="Automation",
        default_target=80,
        calculate_actual=_automation_coverage,
    ),
    GateDefinition(
        id="high_priority_automation",
        name="High-Priority Automation",
        description="Percentage of high-priority requirement tests that are automated",
        category="Automation",
        default_target=90,
        calculate_actual=_high_priority_automation,
    ),
    GateDefinition(
        id="business_impact_coverage",
        name="High Business Impact Coverage",
        description="Test coverage for requirements with high business impact rating (4-5)",
        category="Risk",
        default_target=95,
        calculate_actual=_business_impact_coverage,
    ),
    GateDefinition(
        id="risk_area_mitigation",
        name="Risk Area Mitigation",
        description="Percentage of identified risk areas with passing tests",
        category="Risk",
        default_target=90,
        calculate_actual=_risk_area_mitigation,
    ),
    GateDefinition(
        id="test_depth_compliance",
        name="Test Depth Factor Compliance",
        description="Percentage of requirements meeting their test depth factor targets",
        category="Technical",
        default_target=85,
        calculate_actual=_test_depth_compliance,
    ),
)

GateCatalog = Mapping[str, GateDefinition]

DEFAULT_CATALOG: GateCatalog = {g.id: g for g in PREDEFINED_QUALITY_GATES}


def evaluate_gate_status(actual: float, target: float, is_inverted: bool = False) -> str:
    """Pass when ``actual`` reaches ``target``; for inverted gates, when it stays at or below."""
    if is_inverted:
        return GATE_PASSED if actual <= target else GATE_FAILED
    return GATE_PASSED if actual >= target else GATE_FAILED


def calculate_quality_gates(
    gates: Sequence[QualityGate],
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCaseRecord],
    mapping: Mapping[str, list[str]],
    coverage: Sequence[RequirementCoverageStat],
    catalog: Optional[GateCatalog] = None,
) -> list[QualityGate]:
    """Evaluate each configured gate against the given snapshot.

    Returns:
        New gate objects with ``actual`` and ``status`` filled in; gates
        whose id is not in the catalog are returned unchanged.
    """
    catalog = DEFAULT_CATALOG if catalog is None else catalog

    evaluated: list[QualityGate] = []
    for gate in gates:
        definition = catalog.get(gate.id)
        if definition is None:
            evaluated.append(gate)
            continue

        actual = definition.calculate_actual(requirements, test_cases, mapping, coverage)
        evaluated.append(
            dataclasses.replace(
                gate,
                name=gate.name or definition.name,
                actual=actual,
                is_inverted=definition.is_inverted,
                status=evaluate_gate_status(actual, gate.target, definition.is_inverted),
            )
        )
    return evaluated


def version_requirements(requirements: Sequence[Requirement], version_id: str) -> list[Requirement]:
    return [r for r in requirements if version_id in r.versions]


def update_all_version_quality_gates(
    versions: Sequence[Version],
    requirements: Sequence[Requirement],
    test_cases: Sequence[TestCaseRecord],
    mapping: Mapping[str, list[str]],
    catalog: Optional[GateCatalog] = None,
    zero_minimum_ratio: int = DEFAULT_ZERO_MINIMUM_RATIO,
) -> list[Version]:
    """Re-evaluate the gates of every release against its own subset.

    Each release sees only the requirements tagged with it, the coverage
    computed for it, and the test cases that apply to it.
    """
    updated: list[Version] = []
    for version in versions:
        reqs = version_requirements(requirements, version.id)
        coverage = calculate_coverage(
            reqs, mapping, test_cases, version.id, zero_minimum_ratio=zero_minimum_ratio
        )
        applicable = [tc for tc in test_cases if test_case_applies_to(tc, version.id)]
        gates = calculate_quality_gates(
            version.quality_gates, reqs, applicable, mapping, coverage, catalog
        )
        updated.append(dataclasses.replace(version, quality_gates=gates))
    return updated


# Serializes snapshot read and write-back across all refreshes in the process.
_refresh_lock = threading.RLock()


def refresh_quality_gates(
    store: DataStore,
    catalog: Optional[GateCatalog] = None,
    zero_minimum_ratio: int = DEFAULT_ZERO_MINIMUM_RATIO,
) -> list[Version] | None:
    """Recompute gates for all releases in ``store`` and write them back.

    Refreshes run one at a time, each reading the store snapshot after the
    previous one has written back, so a slow refresh cannot overwrite the
    gates of a later one with stale values.

    Best-effort: any failure is logged and ``None`` is returned.
    """
    with _refresh_lock:
        try:
            versions = update_all_version_quality_gates(
                store.get_versions(),
                store.get_requirements(),
                store.get_test_cases(),
                store.get_mapping(),
                catalog,
                zero_minimum_ratio,
            )
            store.set_versions(versions)
        except Exception:
            logger.exception("Error refreshing quality gates")
            return None

    logger.debug("Refreshed quality gates for {} releases", len(versions))
    return versions


class QualityGateRefresher:
    """Refreshes quality gates after every committed test case write.

    Attach it to an event channel with :meth:`attach`; detach it to stop
    refreshing, for example while bulk-loading data.
    """

    def __init__(
        self,
        store: DataStore,
        catalog: Optional[GateCatalog] = None,
        zero_minimum_ratio: int = DEFAULT_ZERO_MINIMUM_RATIO,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.zero_minimum_ratio = zero_minimum_ratio
        self.refresh_count = 0
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, events: EventChannel) -> QualityGateRefresher:
        self.detach()
        self._unsubscribe = events.subscribe(TEST_CASE_COMMITTED, self)
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, _event: Any) -> None:
        if refresh_quality_gates(self.store, self.catalog, self.zero_minimum_ratio) is not None:
            self.refresh_count += 1
