"""
qtrack.exceptions - Error taxonomy for result ingestion and metrics.

- QTrackError: base class carrying an error code and debugging context
- ValidationError: malformed or incomplete webhook envelope (HTTP 400)
- ParseError: malformed or oversized JUnit XML (recovered locally)
- StoreError: canonical store write failed (reconciliation reports failure)
- ConfigError: invalid configuration file or values
- InternalError: unexpected failure (HTTP 500)

Usage:
    >>> try:
    ...     envelope = validate_envelope(payload)
    ... except ValidationError as e:
    ...     return {"error": e.message, "received": e.context.get("received")}
"""

from __future__ import annotations

from typing import Any


class QTrackError(Exception):
    """Base exception for all qtrack errors.

    Attributes:
        message: Human-readable error description
        error_code: Identifier for programmatic handling
        context: Additional information for debugging
    """

    default_code = "QTRACK_001"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context: dict[str, Any] = dict(context or {})

    def with_context(self, context: dict[str, Any]) -> QTrackError:
        """Add context to the exception and return self for chaining."""
        self.context.update(context)
        return self

    def __str__(self) -> str:
        return f"{self.message} [Error Code: {self.error_code}]"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"context={self.context!r})"
        )


class ValidationError(QTrackError):
    """Webhook envelope failed shape validation.

    Error Codes:
        VALIDATION_001: requestId missing
        VALIDATION_002: results missing, not a list, or wrong length
        VALIDATION_003: result entry has no test case id
        VALIDATION_004: payload is not a JSON object
    """

    default_code = "VALIDATION_001"
    http_status = 400


class ParseError(QTrackError):
    """JUnit XML could not be parsed.

    Error Codes:
        PARSE_001: document is not well-formed XML
        PARSE_002: document exceeds the configured size bound
        PARSE_003: attached content is not a string
    """

    default_code = "PARSE_001"


class StoreError(QTrackError):
    """Canonical test-case store rejected a write."""

    default_code = "STORE_001"


class ConfigError(QTrackError):
    """Configuration could not be loaded or is inconsistent.

    Error Codes:
        CONFIG_001: config file not found
        CONFIG_002: TOML syntax error
        CONFIG_003: invalid value (e.g. health weights not summing to 1.0)
    """

    default_code = "CONFIG_001"


class InternalError(QTrackError):
    """Unexpected failure while processing a request."""

    default_code = "INTERNAL_001"
    http_status = 500


__all__ = [
    "QTrackError",
    "ValidationError",
    "ParseError",
    "StoreError",
    "ConfigError",
    "InternalError",
]
