"""qtrack.server.app - Flask app factory and REST API routes.

This is a THIN REST wrapper. Webhook handling delegates to
``WebhookProcessor`` and every metrics route recomputes from the current
store snapshot through the ``Pipeline``.

State pattern:
    _state = {"pipeline": pipeline, "start_time": time.time()}
"""

from __future__ import annotations

import time
from typing import Any

from flask import Flask, jsonify, request
from flask_cors import CORS
from loguru import logger

from qtrack import __version__
from qtrack.exceptions import QTrackError
from qtrack.metrics.gates import PREDEFINED_QUALITY_GATES
from qtrack.pipeline import Pipeline, build_pipeline
from qtrack.store.datastore import DataStore
from qtrack.webhook.processor import WebhookResponse


def create_app(
    store: DataStore | None = None,
    config: dict[str, Any] | None = None,
    pipeline: Pipeline | None = None,
) -> Flask:
    """Create the Flask application with REST API routes.

    Args:
        store: Canonical data store (a fresh in-memory store by default).
        config: qtrack configuration dict, merged over defaults.
        pipeline: Pre-built pipeline; takes precedence over store/config.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    CORS(app)

    pipeline = pipeline or build_pipeline(store, config)
    app.config["QTRACK_PIPELINE"] = pipeline

    _state: dict[str, Any] = {
        "pipeline": pipeline,
        "start_time": time.time(),
    }

    def _respond(response: WebhookResponse):
        return jsonify(response.body), response.status

    def _payload() -> Any:
        # silent=True: malformed JSON is reported as a validation error by the processor
        return request.get_json(silent=True)

    # ─────────────────────────────────────────────────────────────────
    # Webhook ingress
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/webhook/test-case", methods=["POST"])
    def api_webhook_test_case():
        """POST /api/webhook/test-case - Canonical single-result envelope."""
        return _respond(_state["pipeline"].processor.process_test_case_result(_payload()))

    @app.route("/api/webhook/test-results", methods=["POST"])
    def api_webhook_test_results():
        """POST /api/webhook/test-results - Single or multi-result envelope."""
        return _respond(_state["pipeline"].processor.receive(_payload()))

    @app.route("/api/webhook/test-results/bulk", methods=["POST"])
    def api_webhook_bulk():
        """POST /api/webhook/test-results/bulk - Legacy multi-result envelope."""
        return _respond(_state["pipeline"].processor.process_test_results(_payload()))

    # ─────────────────────────────────────────────────────────────────
    # Execution queries
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/executions/<request_id>")
    def api_execution_summary(request_id: str):
        """GET /api/executions/<request_id> - Status counts for a request."""
        return jsonify(_state["pipeline"].processor.get_execution_summary(request_id))

    @app.route("/api/executions/<request_id>/results")
    def api_execution_results(request_id: str):
        """GET /api/executions/<request_id>/results - Stored results for a request."""
        return jsonify(_state["pipeline"].processor.get_results_for_request(request_id))

    # ─────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/coverage")
    def api_coverage():
        """GET /api/coverage?version=<id> - Per-requirement coverage."""
        version = request.args.get("version") or None
        return jsonify([c.to_dict() for c in _state["pipeline"].coverage(version)])

    @app.route("/api/releases/<version_id>/metrics")
    def api_release_metrics(version_id: str):
        """GET /api/releases/<version_id>/metrics - Release health and risks."""
        metrics = _state["pipeline"].release_metrics(version_id)
        if metrics is None:
            return jsonify({"error": f"Release not found: {version_id}"}), 404
        return jsonify(metrics.to_dict())

    @app.route("/api/releases/<version_id>/quality-gates")
    def api_release_gates(version_id: str):
        """GET /api/releases/<version_id>/quality-gates - Last evaluated gates."""
        for version in _state["pipeline"].store.get_versions():
            if version.id == version_id:
                return jsonify([g.to_dict() for g in version.quality_gates])
        return jsonify({"error": f"Release not found: {version_id}"}), 404

    @app.route("/api/quality-gates/refresh", methods=["POST"])
    def api_refresh_gates():
        """POST /api/quality-gates/refresh - Re-evaluate gates for all releases."""
        versions = _state["pipeline"].refresh_gates()
        if versions is None:
            return jsonify({"success": False, "error": "Quality gate refresh failed"}), 500
        return jsonify({"success": True, "versions": [v.to_dict() for v in versions]})

    @app.route("/api/quality-gates/catalog")
    def api_gate_catalog():
        """GET /api/quality-gates/catalog - Built-in gate definitions."""
        return jsonify([g.to_dict() for g in PREDEFINED_QUALITY_GATES])

    @app.route("/api/health")
    def api_health():
        """GET /api/health - Liveness."""
        return jsonify(
            {
                "status": "ok",
                "version": __version__,
                "uptime": round(time.time() - _state["start_time"], 3),
            }
        )

    @app.errorhandler(Exception)
    def _internal_error(e: Exception):
        from werkzeug.exceptions import HTTPException

        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        if isinstance(e, QTrackError):
            status = getattr(e, "http_status", 500)
            if status >= 500:
                logger.exception("Error in {}: {}", request.path, e)
            return jsonify({"error": e.message, "code": e.error_code}), status
        logger.exception("Unhandled error in {}", request.path)
        return jsonify({"error": "Internal server error"}), 500

    return app
