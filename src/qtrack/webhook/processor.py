"""Webhook request processing.

``WebhookProcessor`` wires validation, JUnit XML enrichment, result
storage and reconciliation together and turns the outcome into a
transport-neutral ``WebhookResponse``. The Flask app and the CLI both
drive it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from qtrack.exceptions import InternalError, ValidationError
from qtrack.models import UNKNOWN
from qtrack.parsers.junit_xml import JUnitXMLParser
from qtrack.reconcile import TestCaseReconciler
from qtrack.store.events import WEBHOOK_RECEIVED, EventChannel
from qtrack.webhook.envelope import enrich_result, validate_bulk_envelope, validate_envelope
from qtrack.webhook.store import InMemoryWebhookResultStore, WebhookResultStore


@dataclass
class WebhookResponse:
    """HTTP-style status code and JSON body."""

    status: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status == 200


def _validation_response(error: ValidationError) -> WebhookResponse:
    return WebhookResponse(400, {"error": error.message, "received": error.context.get("received")})


class WebhookProcessor:
    """Handle canonical and bulk webhook deliveries.

    Args:
        reconciler: Merges results into the canonical store.
        parser: JUnit XML extractor used for enrichment.
        results: Per-request result store (a fresh in-memory one by default).
        events: Channel receiving ``webhook.received`` for every handled result.
    """

    def __init__(
        self,
        reconciler: TestCaseReconciler,
        parser: JUnitXMLParser | None = None,
        results: WebhookResultStore | None = None,
        events: EventChannel | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.parser = parser or JUnitXMLParser()
        self.results = results if results is not None else InMemoryWebhookResultStore()
        self.events = events or reconciler.events

    def process_test_case_result(self, payload: Any) -> WebhookResponse:
        """Process one canonical single-result envelope."""
        try:
            envelope = validate_envelope(payload)
        except ValidationError as e:
            logger.warning("Rejected webhook: {}", e)
            return _validation_response(e)

        try:
            result = envelope.results[0]
            logger.info("Processing test case {} ({})", result.id, result.status)

            result = enrich_result(result, self.parser)
            envelope.results = [result]

            key = self.results.store(envelope)
            reconciled = self.reconciler.reconcile(result)
            self.events.publish(WEBHOOK_RECEIVED, envelope)
        except Exception as e:
            error = InternalError(
                "Internal server error processing individual test case result",
                context={"testCaseId": envelope.results[0].id, "cause": repr(e)},
            )
            logger.exception("Error processing test case result {}", envelope.results[0].id)
            return WebhookResponse(500, {"error": error.message})

        return WebhookResponse(
            200,
            {
                "success": True,
                "message": "Test case result processed",
                "testCaseId": result.id,
                "status": result.status,
                "storageKey": key,
                "enhanced": bool(result.logs),
                "logsExtracted": bool(result.system_out or result.system_err),
                "parsingSource": result.parsing_source or "none",
                "reconciliation": reconciled.outcome,
            },
        )

    def process_test_results(self, payload: Any) -> WebhookResponse:
        """Process a legacy multi-result envelope.

        Each entry goes through :meth:`process_test_case_result` on its own,
        strictly in input order. Entries without an id are skipped.
        """
        try:
            request_id, timestamp, entries = validate_bulk_envelope(payload)
        except ValidationError as e:
            logger.warning("Rejected bulk webhook: {}", e)
            return _validation_response(e)

        processed: list[dict[str, Any]] = []
        try:
            for entry in entries:
                if not isinstance(entry, dict) or not entry.get("id"):
                    logger.debug("Skipping bulk entry without id: {!r}", entry)
                    continue
                response = self.process_test_case_result(
                    {"requestId": request_id, "timestamp": timestamp, "results": [entry]}
                )
                processed.append(
                    {
                        "testCaseId": entry["id"],
                        "status": response.status,
                        "success": bool(response.body.get("success", False)),
                    }
                )
        except Exception as e:
            error = InternalError(
                "Internal server error processing bulk test results",
                context={"requestId": request_id, "cause": repr(e)},
            )
            logger.exception("Error processing bulk test results for {}", request_id)
            return WebhookResponse(500, {"error": error.message})

        logger.info("Processed {} test cases from bulk webhook", len(processed))
        return WebhookResponse(
            200,
            {
                "success": True,
                "message": f"Converted bulk webhook to {len(processed)} individual test case results",
                "processedResults": processed,
            },
        )

    def receive(self, payload: Any) -> WebhookResponse:
        """Route a payload by its result count: one goes canonical, any other count goes bulk."""
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            return _validation_response(
                ValidationError(
                    "Invalid webhook data format",
                    error_code="VALIDATION_002",
                    context={"received": {"hasResults": results is not None}},
                )
            )
        if len(results) == 1:
            return self.process_test_case_result(payload)
        return self.process_test_results(payload)

    def get_results_for_request(self, request_id: str) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.results.get_results_for_request(request_id)]

    def get_execution_summary(self, request_id: str) -> dict[str, Any]:
        """Status counts and a short listing of the results stored for a request."""
        results = self.results.get_results_for_request(request_id)

        counts: dict[str, int] = {}
        for r in results:
            status = r.status or UNKNOWN
            counts[status] = counts.get(status, 0) + 1

        return {
            "requestId": request_id,
            "totalTests": len(results),
            "summary": counts,
            "testCases": [
                {
                    "id": r.id,
                    "name": r.name,
                    "status": r.status,
                    "duration": r.duration or 0,
                    "receivedAt": r.received_at,
                }
                for r in results
            ],
        }
