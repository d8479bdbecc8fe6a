"""
qtrack - Test execution result reconciliation and release quality metrics

qtrack ingests per-test-case webhook results (optionally carrying JUnit
XML), merges them into canonical test case records, and recomputes
requirement coverage, quality gates and release health scores from the
current snapshot.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("qtrack")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed
__license__ = "MIT"

from qtrack.exceptions import ParseError, QTrackError, StoreError, ValidationError
from qtrack.models import ReleaseMetrics, TestCaseRecord, TestCaseResult, WebhookEnvelope

__all__ = [
    "__version__",
    "ParseError",
    "QTrackError",
    "ReleaseMetrics",
    "StoreError",
    "TestCaseRecord",
    "TestCaseResult",
    "ValidationError",
    "WebhookEnvelope",
]
