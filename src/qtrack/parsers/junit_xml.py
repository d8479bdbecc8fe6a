"""JUnit XML result extractor.

Parses JUnit-style XML (as written by pytest ``--junitxml``) into flat
``ParsedXmlTest`` records, resolves the record belonging to one test case
identifier, and transforms it into the fields a webhook result is enriched
with.

Matching is two-stage: an exact ``name`` match wins; otherwise the first
record in document order that fuzzily matches is taken. No match is not an
error, it means the XML has nothing to add for that test case.
"""

from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from qtrack.exceptions import ParseError
from qtrack.models import FAILED, PASSED, SKIPPED, FailureInfo, ParsedXmlTest
from qtrack.parsers.failures import (
    TESTS_LOCATION,
    categorize_failure,
    extract_execution_error_info,
    parse_assertion,
)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024

NO_LOCATION = "N/A"

_PY_LOCATION = re.compile(r"([^/\n]+\.py):(\d+)")


def extract_file_location(stack_trace: str, classname: str) -> str:
    """Best-effort source location for a test result.

    Tries, in order:
    1. ``tests/<path>:<line>`` in the stack trace, returned as ``<path>:<line>``
    2. any ``<file>.py:<line>`` in the stack trace
    3. the second dot-separated segment of ``classname`` plus ``.py``
       (``tests.test_login.TestLogin`` gives ``test_login.py``)

    This is a heuristic. Traces from other layouts or classnames that do
    not mirror the module path produce plausible but wrong answers.

    Returns:
        The location, or ``"N/A"`` when nothing applies.
    """
    if stack_trace:
        match = TESTS_LOCATION.search(stack_trace)
        if match:
            return f"{match.group(1)}:{match.group(2)}"
        match = _PY_LOCATION.search(stack_trace)
        if match:
            return f"{match.group(1)}:{match.group(2)}"

    if classname and "." in classname:
        parts = classname.split(".")
        if len(parts) >= 2 and parts[1]:
            return f"{parts[1]}.py"

    return NO_LOCATION


class MatchKind(Enum):
    """How a parsed test was matched to the requested identifier."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass
class MatchResult:
    """Tagged result of resolving a test case identifier."""

    kind: MatchKind
    test: Optional[ParsedXmlTest] = None

    @property
    def found(self) -> bool:
        return self.test is not None


@dataclass
class ExtractedResult:
    """Fields a webhook result is enriched with from its matched XML record."""

    status: str
    duration: float
    logs: str
    raw_output: str
    failure: Optional[FailureInfo]
    classname: str
    framework: str
    time: float
    system_out: str
    system_err: str
    method: str
    file: str
    match: MatchKind


def _fuzzy_matches(test: ParsedXmlTest, test_id: str) -> bool:
    name = test.name or ""
    classname = test.classname or ""
    # An unnamed testcase would otherwise be "contained" in every identifier
    contained = bool(name) and name in test_id
    return (
        test_id in name
        or test_id in classname
        or contained
        or (name.startswith("test_") and contained)
    )


class JUnitXMLParser:
    """Extractor for JUnit XML attached to webhook results.

    Args:
        max_bytes: Documents larger than this (UTF-8 encoded) are rejected
            before parsing.
        framework: Framework label stamped on every extracted result. It is
            an assumption about the sender, not detected from content.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES, framework: str = "pytest") -> None:
        self.max_bytes = max_bytes
        self.framework = framework

    def parse(self, content: str) -> list[ParsedXmlTest]:
        """Parse a JUnit document into one record per ``<testcase>``.

        Both ``<testsuites>`` and ``<testsuite>`` roots are accepted; nested
        suites are walked in document order.

        Raises:
            ParseError: If the content is not text, too large or not
                well-formed XML.
        """
        if not isinstance(content, str):
            raise ParseError(
                f"JUnit XML content must be a string, got {type(content).__name__}",
                error_code="PARSE_003",
                context={"type": type(content).__name__},
            )

        size = len(content.encode("utf-8"))
        if size > self.max_bytes:
            raise ParseError(
                f"JUnit XML too large: {size} bytes (limit {self.max_bytes})",
                error_code="PARSE_002",
                context={"size": size, "limit": self.max_bytes},
            )

        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ParseError(f"XML parsing failed: {e}", error_code="PARSE_001") from e

        tests: list[ParsedXmlTest] = []
        for testsuite in root.iter("testsuite"):
            for testcase in testsuite.findall("testcase"):
                tests.append(self._parse_testcase(testcase))
        return tests

    def _parse_testcase(self, testcase: ET.Element) -> ParsedXmlTest:
        name = testcase.get("name", "")
        classname = testcase.get("classname", "")
        try:
            time = float(testcase.get("time", "0"))
        except ValueError:
            time = 0.0
        if not math.isfinite(time) or time < 0:
            time = 0.0

        status = PASSED
        failure_info: FailureInfo | None = None

        failure = testcase.find("failure")
        error = testcase.find("error")
        if failure is not None:
            status = FAILED
            failure_info = self._failure_info(failure, "TestFailure", name, classname)
            failure_info.assertion = parse_assertion(
                failure_info.message, failure_info.stack_trace
            )
        elif error is not None:
            status = FAILED
            failure_info = self._failure_info(error, "ExecutionError", name, classname)
            failure_info.execution_error = extract_execution_error_info(
                failure_info.stack_trace, failure_info.message
            )
        elif testcase.find("skipped") is not None:
            status = SKIPPED

        return ParsedXmlTest(
            name=name,
            classname=classname,
            time=time,
            status=status,
            failure=failure_info,
            system_out=self._text(testcase.find("system-out")),
            system_err=self._text(testcase.find("system-err")),
            file=extract_file_location(
                failure_info.stack_trace if failure_info else "", classname
            ),
        )

    def _failure_info(
        self, element: ET.Element, default_type: str, name: str, classname: str
    ) -> FailureInfo:
        raw_type = element.get("type") or ""
        message = element.get("message") or ""
        stack_trace = self._text(element)
        return FailureInfo(
            type=raw_type or default_type,
            message=message,
            stack_trace=stack_trace,
            file=extract_file_location(stack_trace, classname),
            classname=classname,
            method=name,
            assertion_type=raw_type,
            category=categorize_failure(raw_type or default_type, message),
        )

    @staticmethod
    def _text(element: ET.Element | None) -> str:
        if element is None:
            return ""
        return "".join(element.itertext())

    def resolve(self, tests: list[ParsedXmlTest], test_id: str) -> MatchResult:
        """Find the record for ``test_id``: exact name first, then first fuzzy match."""
        for test in tests:
            if test.name == test_id:
                return MatchResult(MatchKind.EXACT, test)

        for test in tests:
            if _fuzzy_matches(test, test_id):
                return MatchResult(MatchKind.FUZZY, test)

        return MatchResult(MatchKind.NONE)

    def transform(self, match: MatchResult, test_id: str) -> ExtractedResult:
        """Turn a matched record into enrichment fields.

        Logs are assembled as STDOUT, STDERR and FAILURE blocks in that order;
        when none apply a one-line summary of the status is used instead.
        """
        test = match.test
        if test is None:
            raise ValueError(f"No matched test to transform for {test_id}")

        logs = ""
        if test.system_out:
            logs += f"STDOUT:\n{test.system_out}\n"
        if test.system_err:
            logs += f"STDERR:\n{test.system_err}\n"
        if test.failure is not None:
            failure_text = test.failure.stack_trace or test.failure.message
            logs += f"FAILURE:\n{failure_text}\n"
        if not logs:
            if test.status == PASSED:
                logs = f"Test {test_id} executed successfully"
            else:
                logs = f"Test {test_id} completed with status: {test.status}"
        logs = logs.strip()

        return ExtractedResult(
            status=test.status,
            duration=test.time * 1000,
            logs=logs,
            raw_output=logs,
            failure=test.failure,
            classname=test.classname,
            framework=self.framework,
            time=test.time,
            system_out=test.system_out,
            system_err=test.system_err,
            method=test.name,
            file=test.file,
            match=match.kind,
        )

    def extract(self, content: str, test_id: str) -> ExtractedResult | None:
        """Parse ``content`` and return enrichment for ``test_id``.

        Returns:
            The extracted result, or None when no test in the document matches.

        Raises:
            ParseError: If the document cannot be parsed.
        """
        tests = self.parse(content)
        match = self.resolve(tests, test_id)
        if not match.found:
            logger.info(
                "Test {} not found among {} tests in JUnit XML: {}",
                test_id,
                len(tests),
                ", ".join(t.name for t in tests) or "(none)",
            )
            return None

        logger.debug("Matched {} to {} ({})", test_id, match.test.name, match.kind.value)
        return self.transform(match, test_id)


def create_parser(max_bytes: int = DEFAULT_MAX_BYTES, framework: str = "pytest") -> JUnitXMLParser:
    """Factory function to create a JUnitXMLParser."""
    return JUnitXMLParser(max_bytes=max_bytes, framework=framework)
