"""
qtrack.models - Data models for test results, test cases and release metrics.

Wire-facing models convert to and from the camelCase JSON shape used by
webhook senders and dashboard consumers via ``from_dict()`` / ``to_dict()``.
Unknown keys on incoming records are kept in ``extra`` so a round trip
through the store never drops fields this package does not interpret.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Test case statuses
PASSED = "Passed"
FAILED = "Failed"
SKIPPED = "Skipped"
NOT_STARTED = "Not Started"
NOT_RUN = "Not Run"
UNKNOWN = "Unknown"

TEST_STATUSES = (PASSED, FAILED, SKIPPED, NOT_STARTED, NOT_RUN, UNKNOWN)

# Statuses that count as an execution and advance lastExecuted
EXECUTED_STATUSES = frozenset({PASSED, FAILED})

AUTOMATED = "Automated"
MANUAL = "Manual"

PRIORITIES = ("High", "Medium", "Low")


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def _split_known(data: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    """Return the entries of ``data`` whose keys are not in ``known``."""
    return {k: v for k, v in data.items() if k not in known}


# =============================================================================
# Failure details
# =============================================================================


@dataclass
class AssertionDetail:
    """An assertion expression pulled out of a failure message."""

    available: bool = True
    expression: str = ""
    actual: str = ""
    expected: str = ""
    operator: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "expression": self.expression,
            "actual": self.actual,
            "expected": self.expected,
            "operator": self.operator,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssertionDetail:
        return cls(
            available=bool(data.get("available", True)),
            expression=data.get("expression", ""),
            actual=data.get("actual", ""),
            expected=data.get("expected", ""),
            operator=data.get("operator", ""),
        )


@dataclass
class ExecutionErrorInfo:
    """Classification of an ``<error>`` result (environment rather than assertion)."""

    error_type: str = "ExecutionError"
    root_cause: str = ""
    location: str = ""
    suggestion: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorType": self.error_type,
            "rootCause": self.root_cause,
            "location": self.location,
            "suggestion": self.suggestion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionErrorInfo:
        return cls(
            error_type=data.get("errorType", "ExecutionError"),
            root_cause=data.get("rootCause", ""),
            location=data.get("location", ""),
            suggestion=data.get("suggestion", ""),
        )


@dataclass
class FailureInfo:
    """
    Failure or error details for one JUnit ``<testcase>``.

    Attributes:
        type: Failure type attribute (``TestFailure``/``ExecutionError`` if absent)
        message: Failure message attribute
        stack_trace: Text content of the failure element
        file: Best-effort source location (see ``extract_file_location``)
        classname: Test class name
        method: Test method name
        parsing_source: Where the failure came from (always ``junit-xml`` here)
        parsing_confidence: Confidence of the parse (always ``high`` here)
        assertion_type: Raw ``type`` attribute, empty when absent
        category: Coarse failure category (webdriver, timeout, ...)
        assertion: Parsed assertion for ``<failure>`` elements
        execution_error: Error classification for ``<error>`` elements
    """

    type: str
    message: str = ""
    stack_trace: str = ""
    file: str = "N/A"
    classname: str = ""
    method: str = ""
    parsing_source: str = "junit-xml"
    parsing_confidence: str = "high"
    assertion_type: str = ""
    category: str = "general"
    assertion: Optional[AssertionDetail] = None
    execution_error: Optional[ExecutionErrorInfo] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "stackTrace": self.stack_trace,
            "file": self.file,
            "classname": self.classname,
            "method": self.method,
            "parsingSource": self.parsing_source,
            "parsingConfidence": self.parsing_confidence,
            "assertionType": self.assertion_type,
            "category": self.category,
        }
        if self.assertion is not None:
            data["assertion"] = self.assertion.to_dict()
        if self.execution_error is not None:
            data["executionError"] = self.execution_error.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureInfo:
        assertion = data.get("assertion")
        execution_error = data.get("executionError")
        return cls(
            type=data.get("type", "TestFailure"),
            message=data.get("message", ""),
            stack_trace=data.get("stackTrace", ""),
            file=data.get("file", "N/A"),
            classname=data.get("classname", ""),
            method=data.get("method", ""),
            parsing_source=data.get("parsingSource", "junit-xml"),
            parsing_confidence=data.get("parsingConfidence", "high"),
            assertion_type=data.get("assertionType", "") or "",
            category=data.get("category", "general"),
            assertion=AssertionDetail.from_dict(assertion) if assertion else None,
            execution_error=(
                ExecutionErrorInfo.from_dict(execution_error) if execution_error else None
            ),
        )


@dataclass
class ParsedXmlTest:
    """One ``<testcase>`` node flattened out of a JUnit document."""

    name: str
    classname: str
    time: float
    status: str
    failure: Optional[FailureInfo] = None
    system_out: str = ""
    system_err: str = ""
    file: str = "N/A"


# =============================================================================
# Webhook payloads
# =============================================================================


@dataclass
class JUnitXmlAttachment:
    """The optional ``junitXml`` block of a webhook result."""

    available: bool = False
    content: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return bool(self.available and self.content)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"available": self.available, "content": self.content})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JUnitXmlAttachment:
        return cls(available=bool(data.get("available", False)), content=data.get("content"))


_RESULT_KEYS = (
    "id",
    "name",
    "status",
    "duration",
    "logs",
    "junitXml",
    "failure",
    "classname",
    "framework",
    "time",
    "system_out",
    "system_err",
    "method",
    "file",
    "rawOutput",
    "parsingSource",
    "parsingConfidence",
    "requestId",
    "receivedAt",
)


@dataclass
class TestCaseResult:
    """
    A single test case result as delivered by a webhook.

    The first block of fields comes from the sender; the enrichment block
    is filled in from attached JUnit XML; ``request_id`` and ``received_at``
    are stamped when the result is stored.
    """

    __test__ = False  # not a pytest test class

    id: str
    status: Optional[str] = None
    name: Optional[str] = None
    duration: Optional[float] = None
    logs: Optional[str] = None
    junit_xml: Optional[JUnitXmlAttachment] = None
    # Enrichment from JUnit XML
    failure: Optional[FailureInfo] = None
    classname: Optional[str] = None
    framework: Optional[str] = None
    time: Optional[float] = None
    system_out: Optional[str] = None
    system_err: Optional[str] = None
    method: Optional[str] = None
    file: Optional[str] = None
    raw_output: Optional[str] = None
    parsing_source: Optional[str] = None
    parsing_confidence: Optional[str] = None
    # Storage stamps
    request_id: Optional[str] = None
    received_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            _drop_none(
                {
                    "id": self.id,
                    "name": self.name,
                    "status": self.status,
                    "duration": self.duration,
                    "logs": self.logs,
                    "junitXml": self.junit_xml.to_dict() if self.junit_xml else None,
                    "failure": self.failure.to_dict() if self.failure else None,
                    "classname": self.classname,
                    "framework": self.framework,
                    "time": self.time,
                    "system_out": self.system_out,
                    "system_err": self.system_err,
                    "method": self.method,
                    "file": self.file,
                    "rawOutput": self.raw_output,
                    "parsingSource": self.parsing_source,
                    "parsingConfidence": self.parsing_confidence,
                    "requestId": self.request_id,
                    "receivedAt": self.received_at,
                }
            )
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestCaseResult:
        junit = data.get("junitXml")
        failure = data.get("failure")
        return cls(
            id=str(data["id"]),
            status=data.get("status"),
            name=data.get("name"),
            duration=data.get("duration"),
            logs=data.get("logs"),
            junit_xml=JUnitXmlAttachment.from_dict(junit) if isinstance(junit, dict) else None,
            failure=FailureInfo.from_dict(failure) if isinstance(failure, dict) else None,
            classname=data.get("classname"),
            framework=data.get("framework"),
            time=data.get("time"),
            system_out=data.get("system_out"),
            system_err=data.get("system_err"),
            method=data.get("method"),
            file=data.get("file"),
            raw_output=data.get("rawOutput"),
            parsing_source=data.get("parsingSource"),
            parsing_confidence=data.get("parsingConfidence"),
            request_id=data.get("requestId"),
            received_at=data.get("receivedAt"),
            extra=_split_known(data, _RESULT_KEYS),
        )


@dataclass
class WebhookEnvelope:
    """A webhook delivery: one result on the canonical path, many on the bulk path."""

    request_id: str
    timestamp: Optional[str] = None
    results: list[TestCaseResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "requestId": self.request_id,
                "timestamp": self.timestamp,
                "results": [r.to_dict() for r in self.results],
            }
        )


# =============================================================================
# Canonical store records
# =============================================================================

_RECORD_KEYS = (
    "id",
    "name",
    "description",
    "status",
    "automationStatus",
    "priority",
    "lastExecuted",
    "executionTime",
    "logs",
    "requirementIds",
    "version",
    "tags",
    "assignee",
    "applicableVersions",
    "file",
)


@dataclass
class TestCaseRecord:
    """
    Canonical test case as held by the data store.

    Attributes:
        id: Unique test case identifier
        name: Display name
        description: Free-text description
        status: Latest execution status
        automation_status: "Automated" or "Manual"
        priority: High / Medium / Low
        last_executed: ISO timestamp of the last Passed/Failed execution
        execution_time: Duration of the last execution in milliseconds
        logs: Log text of the last execution
        requirement_ids: Requirements this test case verifies
        version: Legacy single version assignment ("" = all versions)
        tags: Free-form tags
        assignee: Owner
        applicable_versions: Versions the test case applies to; ``None`` marks
            a legacy record that only has ``version``; empty list = all versions
        file: Source location reported by the last execution, if any
    """

    __test__ = False

    id: str
    name: str = ""
    description: str = ""
    status: str = NOT_RUN
    automation_status: str = MANUAL
    priority: str = "Medium"
    last_executed: str = ""
    execution_time: float = 0
    logs: str = ""
    requirement_ids: list[str] = field(default_factory=list)
    version: str = ""
    tags: list[str] = field(default_factory=list)
    assignee: str = ""
    applicable_versions: Optional[list[str]] = None
    file: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "status": self.status,
                "automationStatus": self.automation_status,
                "priority": self.priority,
                "lastExecuted": self.last_executed,
                "executionTime": self.execution_time,
                "logs": self.logs,
                "requirementIds": list(self.requirement_ids),
                "version": self.version,
                "tags": list(self.tags),
                "assignee": self.assignee,
            }
        )
        if self.applicable_versions is not None:
            data["applicableVersions"] = list(self.applicable_versions)
        if self.file:
            data["file"] = self.file
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestCaseRecord:
        applicable = data.get("applicableVersions")
        return cls(
            id=str(data["id"]),
            name=data.get("name", "") or "",
            description=data.get("description", "") or "",
            status=data.get("status", NOT_RUN) or NOT_RUN,
            automation_status=data.get("automationStatus", MANUAL) or MANUAL,
            priority=data.get("priority", "Medium") or "Medium",
            last_executed=data.get("lastExecuted", "") or "",
            execution_time=data.get("executionTime", 0) or 0,
            logs=data.get("logs", "") or "",
            requirement_ids=list(data.get("requirementIds") or []),
            version=data.get("version", "") or "",
            tags=list(data.get("tags") or []),
            assignee=data.get("assignee", "") or "",
            applicable_versions=list(applicable) if applicable is not None else None,
            file=data.get("file", "") or "",
            extra=_split_known(data, _RECORD_KEYS),
        )


_REQUIREMENT_KEYS = (
    "id",
    "name",
    "description",
    "priority",
    "businessImpact",
    "minTestCases",
    "testDepthFactor",
    "versions",
)


@dataclass
class Requirement:
    """A requirement with its test-depth expectations."""

    id: str
    name: str = ""
    description: str = ""
    priority: str = "Medium"
    business_impact: int = 0
    min_test_cases: int = 1
    test_depth_factor: float = 1
    versions: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "priority": self.priority,
                "businessImpact": self.business_impact,
                "minTestCases": self.min_test_cases,
                "testDepthFactor": self.test_depth_factor,
                "versions": list(self.versions),
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Requirement:
        return cls(
            id=str(data["id"]),
            name=data.get("name", "") or "",
            description=data.get("description", "") or "",
            priority=data.get("priority", "Medium") or "Medium",
            business_impact=int(data.get("businessImpact") or 0),
            min_test_cases=int(data.get("minTestCases", 1) or 0),
            test_depth_factor=data.get("testDepthFactor", 1) or 1,
            versions=list(data.get("versions") or []),
            extra=_split_known(data, _REQUIREMENT_KEYS),
        )


# =============================================================================
# Quality gates and releases
# =============================================================================


@dataclass
class QualityGate:
    """A configured gate on a release: target threshold and last evaluation."""

    id: str
    target: float
    actual: float = 0
    status: str = "failed"
    name: str = ""
    is_inverted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "target": self.target,
            "actual": self.actual,
            "status": self.status,
            "isInverted": self.is_inverted,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QualityGate:
        return cls(
            id=str(data["id"]),
            target=data.get("target", 0),
            actual=data.get("actual", 0),
            status=data.get("status", "failed"),
            name=data.get("name", ""),
            is_inverted=bool(data.get("isInverted", False)),
        )


_VERSION_KEYS = ("id", "name", "releaseDate", "status", "qualityGates")


@dataclass
class Version:
    """A release, with the quality gates it is judged against."""

    id: str
    name: str = ""
    release_date: str = ""
    status: str = ""
    quality_gates: list[QualityGate] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "releaseDate": self.release_date,
                "status": self.status,
                "qualityGates": [g.to_dict() for g in self.quality_gates],
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Version:
        return cls(
            id=str(data["id"]),
            name=data.get("name", "") or "",
            release_date=data.get("releaseDate", "") or "",
            status=data.get("status", "") or "",
            quality_gates=[QualityGate.from_dict(g) for g in data.get("qualityGates") or []],
            extra=_split_known(data, _VERSION_KEYS),
        )


# =============================================================================
# Derived metrics
# =============================================================================


@dataclass
class RequirementCoverageStat:
    """Coverage, automation and pass statistics for one requirement."""

    req_id: str
    total_tests: int
    automated_tests: int
    passed_tests: int
    min_test_cases: int
    test_depth_factor: float
    meets_minimum: bool
    coverage_ratio: int
    automation_percentage: int
    pass_percentage: int
    priority: str
    business_impact: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "reqId": self.req_id,
            "totalTests": self.total_tests,
            "automatedTests": self.automated_tests,
            "passedTests": self.passed_tests,
            "minTestCases": self.min_test_cases,
            "testDepthFactor": self.test_depth_factor,
            "meetsMinimum": self.meets_minimum,
            "coverageRatio": self.coverage_ratio,
            "automationPercentage": self.automation_percentage,
            "passPercentage": self.pass_percentage,
            "priority": self.priority,
            "businessImpact": self.business_impact,
        }


@dataclass
class RiskArea:
    """A high-impact requirement with failing tests or too few tests."""

    id: str
    name: str
    reason: str
    impact: int
    coverage: int
    pass_rate: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "reason": self.reason,
            "impact": self.impact,
            "coverage": self.coverage,
            "passRate": self.pass_rate,
        }


@dataclass
class ReleaseMetrics:
    """Dashboard metrics for one release."""

    version: Version
    req_by_priority: dict[str, int]
    total_requirements: int
    sufficient_coverage_percentage: int
    pass_rate: int
    automation_rate: int
    manual_test_rate: int
    overall_test_case_coverage: int
    total_min_required_tests: int
    total_tests_for_version: int
    total_automated_tests: int
    total_manual_tests: int
    health_score: float
    risk_areas: list[RiskArea]
    quality_gates: list[QualityGate]
    days_to_release: int
    version_coverage: list[RequirementCoverageStat]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version.to_dict(),
            "reqByPriority": dict(self.req_by_priority),
            "totalRequirements": self.total_requirements,
            "sufficientCoveragePercentage": self.sufficient_coverage_percentage,
            "passRate": self.pass_rate,
            "automationRate": self.automation_rate,
            "manualTestRate": self.manual_test_rate,
            "overallTestCaseCoverage": self.overall_test_case_coverage,
            "totalMinRequiredTests": self.total_min_required_tests,
            "totalTestsForVersion": self.total_tests_for_version,
            "totalAutomatedTests": self.total_automated_tests,
            "totalManualTests": self.total_manual_tests,
            "healthScore": self.health_score,
            "riskAreas": [r.to_dict() for r in self.risk_areas],
            "qualityGates": [g.to_dict() for g in self.quality_gates],
            "daysToRelease": self.days_to_release,
            "versionCoverage": [c.to_dict() for c in self.version_coverage],
        }


__all__ = [
    "PASSED",
    "FAILED",
    "SKIPPED",
    "NOT_STARTED",
    "NOT_RUN",
    "UNKNOWN",
    "TEST_STATUSES",
    "EXECUTED_STATUSES",
    "AUTOMATED",
    "MANUAL",
    "PRIORITIES",
    "utc_now_iso",
    "AssertionDetail",
    "ExecutionErrorInfo",
    "FailureInfo",
    "ParsedXmlTest",
    "JUnitXmlAttachment",
    "TestCaseResult",
    "WebhookEnvelope",
    "TestCaseRecord",
    "Requirement",
    "QualityGate",
    "Version",
    "RequirementCoverageStat",
    "RiskArea",
    "ReleaseMetrics",
]
