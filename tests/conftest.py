"""Shared fixtures for the qtrack test suite."""

from __future__ import annotations

import contextlib
import json
import sys
from pathlib import Path

import pytest
from loguru import logger

from qtrack.models import QualityGate, Requirement, TestCaseRecord, Version
from qtrack.store.datastore import InMemoryDataStore

FIXED_NOW = "2026-01-15T10:00:00.000Z"

# ─────────────────────────────────────────────────────────────────────────────
# JUnit documents
# ─────────────────────────────────────────────────────────────────────────────

LOGIN_SUITE_XML = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest" tests="4" failures="1" errors="1" skipped="1">
    <testcase classname="tests.test_login.TestLogin" name="test_valid_credentials" time="1.25">
      <system-out>logging in as alice</system-out>
    </testcase>
    <testcase classname="tests.test_login.TestLogin" name="test_invalid_password" time="0.5">
      <failure type="AssertionError" message="assert 401 == 200">tests/test_login.py:42: in test_invalid_password
    assert 401 == 200
AssertionError</failure>
      <system-err>warning: slow response</system-err>
    </testcase>
    <testcase classname="tests.test_login.TestLogin" name="test_sso_redirect" time="0.1">
      <error message="driver failed">selenium.common.exceptions.WebDriverException: chrome not reachable
tests/ui/test_sso.py:17</error>
    </testcase>
    <testcase classname="tests.test_login.TestLogin" name="test_remember_me" time="0">
      <skipped message="flaky"/>
    </testcase>
  </testsuite>
</testsuites>
"""


@pytest.fixture
def login_suite_xml() -> str:
    return LOGIN_SUITE_XML


# ─────────────────────────────────────────────────────────────────────────────
# Store snapshot
# ─────────────────────────────────────────────────────────────────────────────


def make_requirements() -> list[Requirement]:
    return [
        Requirement(
            id="REQ-1",
            name="Login",
            priority="High",
            business_impact=5,
            min_test_cases=2,
            versions=["v1"],
        ),
        Requirement(
            id="REQ-2",
            name="Reports",
            priority="Medium",
            business_impact=3,
            min_test_cases=1,
            versions=["v1"],
        ),
        Requirement(
            id="REQ-3",
            name="Audit trail",
            priority="High",
            business_impact=4,
            min_test_cases=3,
            versions=["v1", "v2"],
        ),
        Requirement(
            id="REQ-4",
            name="Export",
            priority="Low",
            business_impact=2,
            min_test_cases=1,
            versions=["v2"],
        ),
    ]


def make_test_cases() -> list[TestCaseRecord]:
    return [
        TestCaseRecord(
            id="TC1",
            name="Login works",
            description="Valid credentials log in",
            status="Passed",
            automation_status="Automated",
            priority="High",
            requirement_ids=["REQ-1"],
            tags=["smoke"],
            assignee="qa-team",
        ),
        TestCaseRecord(
            id="TC2",
            name="Login rejects bad password",
            status="Failed",
            automation_status="Automated",
            requirement_ids=["REQ-1"],
        ),
        TestCaseRecord(
            id="TC3",
            name="Report renders",
            status="Passed",
            automation_status="Manual",
            requirement_ids=["REQ-2"],
        ),
        TestCaseRecord(
            id="TC4",
            name="Audit entry written",
            status="Passed",
            automation_status="Automated",
            requirement_ids=["REQ-3"],
            applicable_versions=["v2"],
        ),
        TestCaseRecord(
            id="TC5",
            name="Export CSV",
            status="Not Run",
            automation_status="Manual",
            requirement_ids=["REQ-4"],
            version="v2",
        ),
    ]


def make_mapping() -> dict[str, list[str]]:
    return {
        "REQ-1": ["TC1", "TC2"],
        "REQ-2": ["TC3"],
        "REQ-3": ["TC4"],
        "REQ-4": ["TC5"],
    }


def make_versions() -> list[Version]:
    return [
        Version(
            id="v1",
            name="Release 1.0",
            release_date="2026-03-01",
            status="In Progress",
            quality_gates=[
                QualityGate(id="test_pass_rate", target=95),
                QualityGate(id="overall_req_coverage", target=50),
                QualityGate(id="custom_gate", target=10, actual=3, status="passed"),
            ],
        ),
        Version(
            id="v2",
            name="Release 2.0",
            release_date="2026-06-01",
            status="Planned",
            quality_gates=[QualityGate(id="automation_coverage", target=50)],
        ),
    ]


@pytest.fixture
def store() -> InMemoryDataStore:
    return InMemoryDataStore(
        requirements=make_requirements(),
        test_cases=make_test_cases(),
        mapping=make_mapping(),
        versions=make_versions(),
    )


@pytest.fixture
def empty_store() -> InMemoryDataStore:
    return InMemoryDataStore()


@pytest.fixture
def snapshot_file(tmp_path: Path, store: InMemoryDataStore) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(store.to_snapshot(), indent=2), encoding="utf-8")
    return path


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def caplog(caplog):
    """Route loguru records into pytest's caplog."""
    handler_id = logger.add(caplog.handler, format="{message}", level=0)
    yield caplog
    with contextlib.suppress(ValueError):
        logger.remove(handler_id)


@pytest.fixture(autouse=True)
def _reset_loguru():
    """Undo sink changes made by code under test (CLI, configure_logging)."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
