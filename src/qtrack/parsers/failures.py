"""Failure analysis helpers for JUnit results.

Heuristics that turn failure text into something a dashboard can group
and act on: assertion operands, environment error classification, and a
coarse failure category.
"""

from __future__ import annotations

import re

from qtrack.models import AssertionDetail, ExecutionErrorInfo

# "assert <lhs> <op> <rhs>" inside a message (operand ends at whitespace)
_ASSERT_IN_MESSAGE = re.compile(r"assert\s+(.+?)\s*(==|!=|<=|>=|<|>)\s*(.+?)(?:\s|$)")
# Same shape inside a stack trace (operand ends at line end)
_ASSERT_IN_TRACE = re.compile(r"assert\s+(.+?)\s*(==|!=|<=|>=|<|>)\s*(.+?)(?:\n|$)")

TESTS_LOCATION = re.compile(r"tests/([^:]+):(\d+)")


def parse_assertion(message: str, stack_trace: str = "") -> AssertionDetail:
    """Extract assertion operands from a failure message or stack trace.

    Looks in the message first, then in the stack trace. When neither holds
    a comparison, returns a detail with only the expression filled in.
    """
    match = _ASSERT_IN_MESSAGE.search(message or "")
    if match is None and stack_trace:
        match = _ASSERT_IN_TRACE.search(stack_trace)

    if match is None:
        return AssertionDetail(available=True, expression=message or "")

    return AssertionDetail(
        available=True,
        expression=message or "",
        actual=match.group(1).strip(),
        expected=match.group(3).strip(),
        operator=match.group(2),
    )


# (marker in stack trace, error type, root cause, suggestion), checked in order
_EXECUTION_ERRORS = (
    (
        ("WebDriverException",),
        "WebDriverException",
        "WebDriver setup or communication issue",
        "Verify WebDriver configuration and browser availability",
    ),
    (
        ("ModuleNotFoundError", "ImportError"),
        "ModuleNotFoundError",
        "Missing Python module or import failure",
        "Install missing dependencies or check Python environment",
    ),
    (
        ("ConnectionError", "TimeoutException"),
        "ConnectionError",
        "Network or connection timeout",
        "Check network connectivity and service availability",
    ),
)


def extract_execution_error_info(stack_trace: str, message: str = "") -> ExecutionErrorInfo:
    """Classify an ``<error>`` element by the exception names in its trace."""
    trace = stack_trace or ""
    info = ExecutionErrorInfo()

    if "SessionNotCreatedException" in trace:
        info.error_type = "SessionNotCreatedException"
        info.root_cause = "Chrome driver session creation failed"
        if "user data directory" in trace:
            info.suggestion = (
                "Chrome user data directory conflict - ensure unique data directories"
            )
        else:
            info.suggestion = "Check Chrome driver installation and browser compatibility"
    else:
        for markers, error_type, root_cause, suggestion in _EXECUTION_ERRORS:
            if any(marker in trace for marker in markers):
                info.error_type = error_type
                info.root_cause = root_cause
                info.suggestion = suggestion
                break
        else:
            info.root_cause = "Test execution environment issue"
            info.suggestion = "Check test setup and environment configuration"

    location = TESTS_LOCATION.search(trace)
    if location:
        info.location = f"{location.group(1)}:{location.group(2)}"

    return info


def categorize_failure(failure_type: str, message: str) -> str:
    """Map a failure to webdriver, timeout, element, network, environment or general."""
    kind = (failure_type or "").lower()
    text = (message or "").lower()

    if "sessionnotcreated" in kind or "webdriver" in kind:
        return "webdriver"
    if "timeout" in kind or "timeout" in text:
        return "timeout"
    if "element" in kind or "element" in text:
        return "element"
    if any(word in kind or word in text for word in ("network", "connection")):
        return "network"
    if any(word in kind or word in text for word in ("import", "module")):
        return "environment"
    return "general"
