"""Tests for the FastAPI surface: routes, status mapping, report formats."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from policygraph.api import create_app
from policygraph.errors import CancellationError


def _add(client, policy_id, dependent_type, dependent_id, **kw):
    body = {"dependentType": dependent_type, "dependentId": dependent_id, **kw}
    return client.post(f"/api/policy/{policy_id}/dependencies", json=body)


class TestDependencies:
    def test_create_returns_201(self, client):
        r = _add(client, "pol-1", "workflow", "wf-1")
        assert r.status_code == 201
        data = r.json()
        assert data["policyId"] == "pol-1"
        assert data["dependencyStrength"] == "strong"
        assert data["createdBy"] == "anonymous"

    def test_duplicate_returns_400(self, client):
        _add(client, "pol-1", "workflow", "wf-1")
        r = _add(client, "pol-1", "workflow", "wf-1")
        assert r.status_code == 400
        assert "already exists" in r.json()["error"]

    def test_missing_fields_returns_400(self, client):
        r = client.post("/api/policy/pol-1/dependencies", json={"notes": "x"})
        assert r.status_code == 400
        body = r.json()
        assert body["error"] == "Missing required fields: dependentType, dependentId"
        assert body["fields"] == ["dependentType", "dependentId"]

    def test_invalid_body_returns_400(self, client):
        r = client.post(
            "/api/policy/pol-1/dependencies",
            content=b"not json",
            headers={"content-type": "application/json"},
        )
        assert r.status_code == 400

    def test_list(self, client):
        _add(client, "pol-1", "template", "t1")
        _add(client, "pol-1", "workflow", "w1")
        r = client.get("/api/policy/pol-1/dependencies")
        assert r.status_code == 200
        assert [d["dependentId"] for d in r.json()] == ["w1", "t1"]

    def test_v1_prefix(self, client):
        _add(client, "pol-1", "module", "m1")
        r = client.get("/v1/policy/pol-1/dependencies")
        assert r.status_code == 200
        assert len(r.json()) == 1

    def test_bulk(self, client):
        r = client.post("/api/policy/pol-1/dependencies/bulk", json={"dependencies": [
            {"dependentType": "module", "dependentId": "m1"},
            {"dependentType": "bogus", "dependentId": "x"},
        ]})
        assert r.status_code == 200
        data = r.json()
        assert len(data["created"]) == 1
        assert data["errors"][0]["index"] == 1

    def test_patch_and_delete(self, client):
        dep_id = _add(client, "pol-1", "workflow", "wf-1").json()["id"]
        r = client.patch(f"/api/dependencies/{dep_id}", json={"dependencyStrength": "weak"})
        assert r.status_code == 200
        assert r.json()["dependencyStrength"] == "weak"

        r = client.delete(f"/api/dependencies/{dep_id}")
        assert r.status_code == 200
        assert r.json()["ok"] is True

        assert client.delete(f"/api/dependencies/{dep_id}").status_code == 404
        assert client.patch(f"/api/dependencies/{dep_id}", json={}).status_code == 404


class TestAnalysis:
    def test_impact_analysis_empty_policy(self, client):
        client.put("/api/policy/pol-0", json={"title": "Remote Work"})
        r = client.get("/api/policy/pol-0/impact-analysis")
        assert r.status_code == 200
        data = r.json()
        assert data["policy"]["title"] == "Remote Work"
        assert data["riskAssessment"]["riskLevel"] == "low"
        assert data["riskAssessment"]["requiresApproval"] is False
        assert data["publicationBlocked"] is False
        assert data["dependencyGraph"]["nodes"][0]["id"] == "pol-0"

    def test_impact_analysis_critical(self, client):
        for i in range(12):
            _add(client, "pol-1", "workflow", f"wf-{i}")
        data = client.get("/api/policy/pol-1/impact-analysis").json()
        assert data["riskAssessment"]["overallRiskScore"] == 100
        assert data["riskAssessment"]["riskLevel"] == "critical"
        assert data["publicationBlocked"] is True
        assert len(data["recommendations"]["mitigationStrategies"]) >= 1

    def test_unknown_policy_returns_404(self, client):
        r = client.get("/api/policy/ghost/impact-analysis")
        assert r.status_code == 404
        assert "ghost" in r.json()["error"]

    def test_invalid_policy_id_returns_400(self, client):
        r = client.get("/api/policy/bad%20id/impact-analysis")
        assert r.status_code == 400

    def test_graph_with_max_depth(self, client):
        for i in range(10):
            _add(client, f"n{i}", "module", f"n{i + 1}")
        r = client.get("/api/policy/n0/dependency-graph", params={"maxDepth": 5})
        assert r.status_code == 200
        graph = r.json()
        assert len(graph["nodes"]) == 6
        assert graph["metadata"]["maxDepthReached"] == 5

    @pytest.mark.parametrize("depth", ["-1", "99", "abc"])
    def test_graph_invalid_max_depth(self, client, depth):
        _add(client, "pol-1", "module", "m1")
        r = client.get("/api/policy/pol-1/dependency-graph", params={"maxDepth": depth})
        assert r.status_code == 400

    def test_risk_and_scope(self, client):
        _add(client, "pol-1", "module", "m1")
        client.put("/api/dependents/module/m1/metadata", json={"department": "IT"})
        risk = client.get("/api/policy/pol-1/risk-assessment").json()
        scope = client.get("/api/policy/pol-1/change-scope").json()
        assert risk["overallRiskScore"] == 5
        assert scope["affectedDepartments"] == ["IT"]
        assert scope["impactRadius"] == 1

    def test_metadata_bad_type(self, client):
        r = client.put("/api/dependents/spreadsheet/x1/metadata", json={})
        assert r.status_code == 400


class TestImpactReport:
    def test_json(self, client):
        _add(client, "pol-1", "workflow", "wf-1")
        r = client.get("/api/policy/pol-1/impact-report", params={"format": "json"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/json")
        assert r.json()["riskAssessment"]["overallRiskScore"] == 12

    def test_html(self, client):
        client.put("/api/policy/pol-1", json={"title": "<Travel>"})
        _add(client, "pol-1", "workflow", "wf-1")
        r = client.get("/api/policy/pol-1/impact-report", params={"format": "html"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/html")
        assert "&lt;Travel&gt;" in r.text

    def test_pdf(self, client):
        _add(client, "pol-1", "workflow", "wf-1")
        r = client.get("/api/policy/pol-1/impact-report", params={"format": "pdf"})
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/pdf"
        assert r.content.startswith(b"%PDF-1.4")
        assert "attachment" in r.headers["content-disposition"]

    def test_unknown_format(self, client):
        _add(client, "pol-1", "workflow", "wf-1")
        r = client.get("/api/policy/pol-1/impact-report", params={"format": "docx"})
        assert r.status_code == 400
        assert "docx" in r.json()["error"]

    def test_format_checked_before_analysis(self, client):
        orch = client.app.state.orchestrator
        with patch.object(orch, "get_impact_analysis") as analyze:
            r = client.get("/api/policy/ghost/impact-report", params={"format": "docx"})
        assert r.status_code == 400
        assert "Unsupported report format" in r.json()["error"]
        analyze.assert_not_called()


class TestErrorMapping:
    def test_cancellation_maps_to_499(self, store):
        with patch.dict(os.environ, {"POLICYGRAPH_AUTH_REQUIRED": "0"}):
            app = create_app(store=store)
            client = TestClient(app)
            with patch.object(
                app.state.orchestrator, "build_graph", side_effect=CancellationError("gone"),
            ):
                r = client.get("/api/policy/pol-1/dependency-graph")
        assert r.status_code == 499

    def test_store_failure_maps_to_500(self, store):
        with patch.dict(os.environ, {"POLICYGRAPH_AUTH_REQUIRED": "0"}):
            app = create_app(store=store)
            client = TestClient(app, raise_server_exceptions=False)
            with patch.object(store, "list_dependencies", side_effect=RuntimeError("db down")):
                r = client.get("/api/policy/pol-1/dependencies")
        assert r.status_code == 500
        assert r.json()["error"] == "db down"


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"
        assert client.get("/health/live").json()["status"] == "ok"

    def test_ready(self, client):
        assert client.get("/health/ready").status_code == 200

    def test_ready_unavailable(self, client, store):
        with patch.object(store, "policy_exists", side_effect=RuntimeError("no db")):
            r = client.get("/health/ready")
        assert r.status_code == 503
        assert r.json()["status"] == "unavailable"

    def test_metrics_counts_requests(self, client):
        client.put("/api/policy/pol-0", json={})
        client.get("/api/policy/pol-0/impact-analysis")
        text = client.get("/metrics").text
        assert "policygraph_http_requests_total" in text
        assert 'policygraph_impact_analyses_total{risk_level="low"} 1' in text
