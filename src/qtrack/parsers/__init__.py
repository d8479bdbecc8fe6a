"""
qtrack.parsers - Test result parsers.
"""

from qtrack.parsers.failures import categorize_failure, extract_execution_error_info, parse_assertion
from qtrack.parsers.junit_xml import (
    ExtractedResult,
    JUnitXMLParser,
    MatchKind,
    MatchResult,
    create_parser,
    extract_file_location,
)

__all__ = [
    "ExtractedResult",
    "JUnitXMLParser",
    "MatchKind",
    "MatchResult",
    "categorize_failure",
    "create_parser",
    "extract_execution_error_info",
    "extract_file_location",
    "parse_assertion",
]
