"""
qtrack.config.defaults - Default configuration values.
"""

DEFAULT_CONFIG = {
    "webhook": {
        # Upper bound on JUnit XML accepted for enrichment
        "max_xml_bytes": 5 * 1024 * 1024,
        "framework": "pytest",
    },
    "coverage": {
        # Coverage ratio reported for requirements that declare minTestCases = 0
        "zero_minimum_ratio": 100,
    },
    "health": {
        "weights": {
            "pass_rate": 0.30,
            "sufficient_coverage": 0.25,
            "test_case_coverage": 0.25,
            "automation": 0.20,
        },
        "risk_min_impact": 4,
        "risk_limit": 5,
    },
    "gates": {
        # Recompute release quality gates after each committed test case update
        "refresh_on_commit": True,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 5050,
        "debug": False,
    },
    "logging": {
        "level": "INFO",
        "file": "",
    },
}
