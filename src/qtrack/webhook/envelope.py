"""Webhook envelope validation and JUnit XML enrichment.

Validation happens at the boundary: a canonical envelope carries a
``requestId`` and exactly one result. Multi-result payloads belong on the
bulk path and are rejected here.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from qtrack.exceptions import ParseError, ValidationError
from qtrack.models import TestCaseResult, WebhookEnvelope
from qtrack.parsers.junit_xml import JUnitXMLParser

JUNIT_SOURCE = "junit-xml"
JUNIT_ERROR_SOURCE = "junit-xml-error"


def _require_object(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError(
            "Webhook payload must be a JSON object",
            error_code="VALIDATION_004",
            context={"received": {"type": type(payload).__name__}},
        )
    return payload


def _parse_results(payload: dict[str, Any], request_id: str | None) -> list[TestCaseResult]:
    results: list[TestCaseResult] = []
    for entry in payload["results"]:
        if not isinstance(entry, dict) or entry.get("id") in (None, ""):
            raise ValidationError(
                "Every result needs a test case id",
                error_code="VALIDATION_003",
                context={"received": {"requestId": request_id, "entry": entry}},
            )
        results.append(TestCaseResult.from_dict(entry))
    return results


def validate_envelope(payload: Any) -> WebhookEnvelope:
    """Validate a canonical single-result envelope.

    Raises:
        ValidationError: If ``requestId`` is missing or ``results`` is not a
            list holding exactly one entry with an id. The ``received``
            context entry describes what was sent.
    """
    payload = _require_object(payload)

    request_id = payload.get("requestId")
    if not request_id:
        raise ValidationError(
            "requestId is required for per-test-case processing",
            error_code="VALIDATION_001",
            context={"received": payload},
        )

    results = payload.get("results")
    if not isinstance(results, list) or len(results) != 1:
        raise ValidationError(
            "Exactly one test case expected per webhook call",
            error_code="VALIDATION_002",
            context={
                "received": {
                    "hasResults": results is not None,
                    "resultsLength": len(results) if isinstance(results, list) else 0,
                }
            },
        )

    return WebhookEnvelope(
        request_id=str(request_id),
        timestamp=payload.get("timestamp"),
        results=_parse_results(payload, str(request_id)),
    )


def validate_bulk_envelope(payload: Any) -> tuple[str | None, str | None, list[dict[str, Any]]]:
    """Validate a legacy bulk envelope.

    Only the ``results`` list is checked here; each entry is validated
    again when it goes through the canonical path.

    Returns:
        ``(request_id, timestamp, raw_results)``
    """
    payload = _require_object(payload)
    results = payload.get("results")
    if not isinstance(results, list):
        raise ValidationError(
            "Invalid results array",
            error_code="VALIDATION_002",
            context={"received": {"hasResults": results is not None}},
        )
    return payload.get("requestId"), payload.get("timestamp"), results


def enrich_result(result: TestCaseResult, parser: JUnitXMLParser) -> TestCaseResult:
    """Fill in result fields from its attached JUnit XML, if any.

    Enrichment is best-effort: when the XML holds no matching test the
    result is returned untouched, and when the XML cannot be parsed the
    result is tagged ``parsingSource='junit-xml-error'`` and returned
    without enrichment. Neither case raises.
    """
    attachment = result.junit_xml
    if attachment is None or not attachment.has_content:
        return result

    try:
        extracted = parser.extract(attachment.content or "", result.id)
    except ParseError as e:
        logger.warning("JUnit XML parsing failed for {}: {}", result.id, e)
        result.parsing_source = JUNIT_ERROR_SOURCE
        result.parsing_confidence = "none"
        return result

    if extracted is None:
        return result

    result.status = extracted.status
    result.duration = extracted.duration
    result.logs = extracted.logs
    result.raw_output = extracted.raw_output
    result.failure = extracted.failure
    result.classname = extracted.classname
    result.framework = extracted.framework
    result.time = extracted.time
    result.system_out = extracted.system_out
    result.system_err = extracted.system_err
    result.method = extracted.method
    result.file = extracted.file
    result.parsing_source = JUNIT_SOURCE
    result.parsing_confidence = "high"
    return result
