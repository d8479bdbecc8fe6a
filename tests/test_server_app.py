"""Tests for the Flask webhook and metrics REST API."""

import pytest
from flask import Flask

from qtrack.pipeline import build_pipeline
from qtrack.server.app import create_app

E2E_XML = (
    '<testsuite><testcase name="TC1" classname="tests.t.C" time="0.5">'
    '<failure type="AssertionError" message="x">stack</failure>'
    "</testcase></testsuite>"
)

# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def app(store):
    """Create a Flask app over the shared sample store."""
    app = create_app(store)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


def single(test_case_id="TC1", request_id="r1", **fields):
    return {"requestId": request_id, "results": [dict(id=test_case_id, **fields)]}


# ─────────────────────────────────────────────────────────────────────────────
# App Factory Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestAppFactory:
    def test_returns_flask_app(self, app):
        assert isinstance(app, Flask)

    def test_pipeline_exposed_on_config(self, app, store):
        assert app.config["QTRACK_PIPELINE"].store is store

    def test_prebuilt_pipeline_used(self, store):
        pipeline = build_pipeline(store, {"gates": {"refresh_on_commit": False}})
        app = create_app(pipeline=pipeline)
        assert app.config["QTRACK_PIPELINE"] is pipeline
        assert pipeline.refresher is None

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["uptime"] >= 0


# ─────────────────────────────────────────────────────────────────────────────
# Webhook Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestWebhookTestCase:
    def test_end_to_end(self, client, store):
        resp = client.post(
            "/api/webhook/test-case",
            json=single(status="Failed", junitXml={"available": True, "content": E2E_XML}),
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["storageKey"] == "r1-TC1"
        assert body["parsingSource"] == "junit-xml"

        record = store.get_test_case("TC1")
        assert record.status == "Failed"
        assert record.execution_time == 500
        assert "FAILURE:\nstack" in record.logs
        assert record.file == "t.py"

    def test_missing_request_id(self, client):
        resp = client.post("/api/webhook/test-case", json={"results": [{"id": "TC1"}]})
        assert resp.status_code == 400
        body = resp.get_json()
        assert "error" in body
        assert body["received"] == {"results": [{"id": "TC1"}]}

    def test_wrong_result_count(self, client):
        resp = client.post(
            "/api/webhook/test-case", json={"requestId": "r1", "results": [{"id": "a"}, {"id": "b"}]}
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Exactly one test case expected per webhook call"

    def test_non_json_body(self, client):
        resp = client.post("/api/webhook/test-case", data="not json", content_type="text/plain")
        assert resp.status_code == 400

    def test_commit_refreshes_gates(self, client, store):
        client.post("/api/webhook/test-case", json=single("TC2", status="Passed"))
        gate = store.get_version("v1").quality_gates[0]
        assert gate.id == "test_pass_rate"
        assert gate.actual == 100


class TestWebhookTestResults:
    def test_single_result_routed_canonical(self, client):
        resp = client.post("/api/webhook/test-results", json=single(status="Passed"))
        assert resp.status_code == 200
        assert resp.get_json()["storageKey"] == "r1-TC1"

    def test_multiple_results_routed_bulk(self, client):
        resp = client.post(
            "/api/webhook/test-results",
            json={
                "requestId": "r2",
                "results": [{"id": "TC1", "status": "Failed"}, {"id": "TC2", "status": "Passed"}],
            },
        )
        assert resp.status_code == 200
        assert [p["testCaseId"] for p in resp.get_json()["processedResults"]] == ["TC1", "TC2"]

    def test_missing_results(self, client):
        resp = client.post("/api/webhook/test-results", json={"requestId": "r2"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid webhook data format"

    def test_bulk_endpoint(self, client):
        resp = client.post(
            "/api/webhook/test-results/bulk",
            json={"requestId": "r3", "results": [{"id": "TC3", "status": "Failed"}]},
        )
        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Converted bulk webhook to 1 individual test case results"


# ─────────────────────────────────────────────────────────────────────────────
# Execution query Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestExecutions:
    def test_summary_and_results(self, client):
        client.post("/api/webhook/test-case", json=single("TC1", status="Passed"))
        client.post("/api/webhook/test-case", json=single("TC2", status="Failed"))

        summary = client.get("/api/executions/r1").get_json()
        assert summary["totalTests"] == 2
        assert summary["summary"] == {"Passed": 1, "Failed": 1}

        results = client.get("/api/executions/r1/results").get_json()
        assert [r["id"] for r in results] == ["TC1", "TC2"]
        assert results[0]["requestId"] == "r1"

    def test_unknown_request(self, client):
        assert client.get("/api/executions/none").get_json()["totalTests"] == 0


# ─────────────────────────────────────────────────────────────────────────────
# Metrics Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestMetricsRoutes:
    def test_coverage(self, client):
        data = client.get("/api/coverage").get_json()
        assert [c["reqId"] for c in data] == ["REQ-1", "REQ-2", "REQ-3", "REQ-4"]

    def test_coverage_for_version(self, client):
        data = client.get("/api/coverage?version=v2").get_json()
        assert [c["reqId"] for c in data] == ["REQ-3", "REQ-4"]

    def test_release_metrics(self, client):
        resp = client.get("/api/releases/v1/metrics")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["version"]["id"] == "v1"
        assert data["totalRequirements"] == 3
        assert data["passRate"] == 67

    def test_release_metrics_not_found(self, client):
        resp = client.get("/api/releases/v9/metrics")
        assert resp.status_code == 404
        assert "v9" in resp.get_json()["error"]

    def test_quality_gates(self, client):
        data = client.get("/api/releases/v2/quality-gates").get_json()
        assert [g["id"] for g in data] == ["automation_coverage"]

    def test_quality_gates_not_found(self, client):
        assert client.get("/api/releases/v9/quality-gates").status_code == 404

    def test_refresh(self, client):
        resp = client.post("/api/quality-gates/refresh")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        v1_gates = data["versions"][0]["qualityGates"]
        assert v1_gates[0]["actual"] == 67
        assert v1_gates[0]["status"] == "failed"

    def test_refresh_failure(self, app, client, monkeypatch):
        pipeline = app.config["QTRACK_PIPELINE"]
        monkeypatch.setattr(pipeline, "refresh_gates", lambda: None)
        resp = client.post("/api/quality-gates/refresh")
        assert resp.status_code == 500
        assert resp.get_json()["success"] is False

    def test_catalog(self, client):
        data = client.get("/api/quality-gates/catalog").get_json()
        assert len(data) == 8
        assert data[0]["id"] == "critical_req_coverage"
        assert "defaultTarget" in data[0]


# ─────────────────────────────────────────────────────────────────────────────
# Error handling and CORS Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestErrors:
    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_unhandled_error_is_500(self, app, client, monkeypatch):
        pipeline = app.config["QTRACK_PIPELINE"]

        def broken(version=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(pipeline, "coverage", broken)
        resp = client.get("/api/coverage")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}

    def test_qtrack_error_uses_its_status(self, app, client, monkeypatch):
        from qtrack.exceptions import StoreError, ValidationError

        pipeline = app.config["QTRACK_PIPELINE"]

        def invalid(version=None):
            raise ValidationError("bad version filter", error_code="VALIDATION_002")

        monkeypatch.setattr(pipeline, "coverage", invalid)
        resp = client.get("/api/coverage")
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "bad version filter", "code": "VALIDATION_002"}

        def unavailable(version=None):
            raise StoreError("store offline")

        monkeypatch.setattr(pipeline, "coverage", unavailable)
        assert client.get("/api/coverage").status_code == 500


class TestCors:
    def test_cors_headers_present(self, client):
        """Response includes CORS Access-Control-Allow-Origin header."""
        resp = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
        assert resp.status_code == 200
        assert "Access-Control-Allow-Origin" in resp.headers
