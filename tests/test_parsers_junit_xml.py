"""Tests for qtrack.parsers.junit_xml module."""

import pytest

from qtrack.exceptions import ParseError
from qtrack.parsers.junit_xml import JUnitXMLParser, MatchKind, create_parser, extract_file_location


@pytest.fixture
def parser():
    """Create a JUnitXMLParser instance."""
    return JUnitXMLParser()


class TestParse:
    """Tests for JUnitXMLParser.parse()."""

    def test_parse_counts_every_testcase(self, parser, login_suite_xml):
        """Every <testcase> becomes one record, in document order."""
        tests = parser.parse(login_suite_xml)

        assert [t.name for t in tests] == [
            "test_valid_credentials",
            "test_invalid_password",
            "test_sso_redirect",
            "test_remember_me",
        ]

    def test_parse_statuses(self, parser, login_suite_xml):
        """failure/error map to Failed, skipped to Skipped, otherwise Passed."""
        statuses = [t.status for t in parser.parse(login_suite_xml)]
        assert statuses == ["Passed", "Failed", "Failed", "Skipped"]

    def test_parse_time_and_output(self, parser, login_suite_xml):
        """time is read in seconds; system-out/err are captured verbatim."""
        passed, failed, _, _ = parser.parse(login_suite_xml)

        assert passed.time == 1.25
        assert passed.system_out == "logging in as alice"
        assert failed.system_err == "warning: slow response"

    def test_parse_single_testsuite_root(self, parser):
        """A bare <testsuite> root is accepted."""
        xml = '<testsuite><testcase name="t1" classname="a.b" time="0.2"/></testsuite>'
        tests = parser.parse(xml)
        assert len(tests) == 1
        assert tests[0].name == "t1"

    def test_parse_nested_suites(self, parser):
        """Nested suites are walked in document order."""
        xml = """<testsuites>
            <testsuite name="outer">
                <testcase name="first" classname="m.first"/>
                <testsuite name="inner">
                    <testcase name="second" classname="m.second"/>
                </testsuite>
            </testsuite>
        </testsuites>"""
        assert [t.name for t in parser.parse(xml)] == ["first", "second"]

    def test_parse_unparseable_time_defaults_to_zero(self, parser):
        """Missing or invalid time attributes become 0."""
        xml = """<testsuite>
            <testcase name="a" time="abc"/>
            <testcase name="b"/>
        </testsuite>"""
        assert [t.time for t in parser.parse(xml)] == [0.0, 0.0]

    @pytest.mark.parametrize("value", ["NaN", "inf", "-inf", "-1.5"])
    def test_parse_non_finite_or_negative_time_is_zero(self, parser, value):
        """Durations that are not finite and non-negative become 0."""
        xml = f'<testsuite><testcase name="a" time="{value}"/></testsuite>'
        assert parser.parse(xml)[0].time == 0.0

    def test_parse_failure_details(self, parser, login_suite_xml):
        """<failure> produces FailureInfo with parsed assertion and file location."""
        failed = parser.parse(login_suite_xml)[1]
        failure = failed.failure

        assert failure.type == "AssertionError"
        assert failure.message == "assert 401 == 200"
        assert "assert 401 == 200" in failure.stack_trace
        assert failure.file == "test_login.py:42"
        assert failure.classname == "tests.test_login.TestLogin"
        assert failure.method == "test_invalid_password"
        assert failure.parsing_source == "junit-xml"
        assert failure.parsing_confidence == "high"
        assert failure.assertion.actual == "401"
        assert failure.assertion.expected == "200"
        assert failure.assertion.operator == "=="
        assert failure.execution_error is None

    def test_parse_error_details(self, parser, login_suite_xml):
        """<error> defaults its type and carries execution error info."""
        errored = parser.parse(login_suite_xml)[2]
        failure = errored.failure

        assert failure.type == "ExecutionError"
        assert failure.assertion_type == ""
        assert failure.execution_error.error_type == "WebDriverException"
        assert failure.execution_error.location == "ui/test_sso.py:17"
        assert failure.assertion is None
        assert errored.file == "ui/test_sso.py:17"

    def test_failure_without_type_defaults(self, parser):
        """A <failure> without a type attribute is a TestFailure."""
        xml = '<testsuite><testcase name="t"><failure message="boom"/></testcase></testsuite>'
        failure = parser.parse(xml)[0].failure
        assert failure.type == "TestFailure"
        assert failure.message == "boom"

    def test_failure_takes_precedence_over_error(self, parser):
        """Only one of failure/error is considered; failure wins."""
        xml = """<testsuite><testcase name="t">
            <error type="RuntimeError" message="teardown"/>
            <failure type="AssertionError" message="assert 1 == 2"/>
        </testcase></testsuite>"""
        failure = parser.parse(xml)[0].failure
        assert failure.type == "AssertionError"

    def test_malformed_xml_raises_parse_error(self, parser):
        """Non-well-formed XML raises ParseError PARSE_001."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse("<testsuite><testcase name='x'>")
        assert exc_info.value.error_code == "PARSE_001"

    def test_oversized_document_rejected(self, login_suite_xml):
        """Documents above the byte limit are rejected before parsing."""
        small = JUnitXMLParser(max_bytes=64)
        with pytest.raises(ParseError) as exc_info:
            small.parse(login_suite_xml)
        assert exc_info.value.error_code == "PARSE_002"
        assert exc_info.value.context["limit"] == 64

    @pytest.mark.parametrize("content", [12345, {"xml": "<testsuite/>"}, b"<testsuite/>"])
    def test_non_string_content_raises_parse_error(self, parser, content):
        """Content that is not text raises ParseError PARSE_003."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse(content)
        assert exc_info.value.error_code == "PARSE_003"


class TestResolve:
    """Tests for exact/fuzzy match resolution."""

    def test_exact_match(self, parser, login_suite_xml):
        """An identifier equal to a testcase name is an exact match."""
        tests = parser.parse(login_suite_xml)
        match = parser.resolve(tests, "test_valid_credentials")
        assert match.kind is MatchKind.EXACT
        assert match.test.name == "test_valid_credentials"

    def test_exact_match_beats_earlier_fuzzy_candidate(self, parser):
        """Exact matches win even when a fuzzy candidate appears first."""
        xml = """<testsuite>
            <testcase name="TC1_extended" classname="suite.A"/>
            <testcase name="TC1" classname="suite.B"/>
        </testsuite>"""
        match = parser.resolve(parser.parse(xml), "TC1")
        assert match.kind is MatchKind.EXACT
        assert match.test.classname == "suite.B"

    def test_fuzzy_match_on_classname(self, parser, login_suite_xml):
        """The first test whose classname contains the id is taken."""
        match = parser.resolve(parser.parse(login_suite_xml), "TestLogin")
        assert match.kind is MatchKind.FUZZY
        assert match.test.name == "test_valid_credentials"

    def test_fuzzy_match_id_contains_name(self, parser, login_suite_xml):
        """A qualified id matches the test whose name it contains."""
        match = parser.resolve(
            parser.parse(login_suite_xml),
            "tests.test_login.TestLogin::test_invalid_password",
        )
        assert match.kind is MatchKind.FUZZY
        assert match.test.name == "test_invalid_password"

    def test_no_match(self, parser, login_suite_xml):
        """Unrelated ids resolve to NONE rather than raising."""
        match = parser.resolve(parser.parse(login_suite_xml), "TC_LOGIN_01")
        assert match.kind is MatchKind.NONE
        assert not match.found

    def test_unnamed_testcase_never_matches(self, parser):
        """An empty testcase name is not treated as contained in every id."""
        xml = '<testsuite><testcase classname="x.y"/></testsuite>'
        match = parser.resolve(parser.parse(xml), "TC9")
        assert match.kind is MatchKind.NONE


class TestTransformAndExtract:
    """Tests for transform() and extract()."""

    def test_extract_failed_logs_order(self, parser, login_suite_xml):
        """Logs are STDOUT, STDERR, FAILURE blocks; rawOutput mirrors logs."""
        result = parser.extract(login_suite_xml, "test_invalid_password")

        assert result.status == "Failed"
        assert result.duration == 500.0
        assert result.logs.startswith("STDERR:\nwarning: slow response\nFAILURE:\n")
        assert result.logs.endswith("AssertionError")
        assert result.raw_output == result.logs
        assert result.framework == "pytest"
        assert result.file == "test_login.py:42"
        assert result.method == "test_invalid_password"
        assert result.match is MatchKind.EXACT

    def test_extract_passed_with_stdout(self, parser, login_suite_xml):
        result = parser.extract(login_suite_xml, "test_valid_credentials")
        assert result.logs == "STDOUT:\nlogging in as alice"
        assert result.duration == 1250.0
        assert result.file == "test_login.py"

    def test_extract_synthesized_logs(self, parser):
        """Without output or failure the logs fall back to a status sentence."""
        xml = """<testsuite>
            <testcase name="ok" classname="a.b"/>
            <testcase name="skip" classname="a.b"><skipped/></testcase>
        </testsuite>"""
        assert parser.extract(xml, "ok").logs == "Test ok executed successfully"
        assert parser.extract(xml, "skip").logs == "Test skip completed with status: Skipped"

    def test_failure_block_falls_back_to_message(self, parser):
        xml = '<testsuite><testcase name="t"><failure message="only message"/></testcase></testsuite>'
        assert parser.extract(xml, "t").logs == "FAILURE:\nonly message"

    def test_extract_returns_none_without_match(self, parser, login_suite_xml):
        assert parser.extract(login_suite_xml, "TC_LOGIN_01") is None

    def test_framework_is_configurable(self, login_suite_xml):
        result = create_parser(framework="unittest").extract(
            login_suite_xml, "test_valid_credentials"
        )
        assert result.framework == "unittest"

    def test_transform_requires_a_match(self, parser):
        from qtrack.parsers.junit_xml import MatchResult

        with pytest.raises(ValueError):
            parser.transform(MatchResult(MatchKind.NONE), "TC1")


class TestExtractFileLocation:
    """Tests for the best-effort file location heuristic."""

    def test_tests_path_pattern(self):
        trace = "tests/unit/test_a.py:10: AssertionError"
        assert extract_file_location(trace, "x.y") == "unit/test_a.py:10"

    def test_bare_py_pattern(self):
        assert extract_file_location("E   at lib/utils.py:88", "") == "utils.py:88"

    def test_classname_fallback(self):
        assert extract_file_location("", "tests.test_login.TestLogin") == "test_login.py"

    def test_classname_fallback_when_trace_has_no_location(self):
        assert extract_file_location("stack", "tests.t.C") == "t.py"

    def test_not_available(self):
        assert extract_file_location("", "TestLogin") == "N/A"
        assert extract_file_location("", "") == "N/A"
