from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # In tests, no database is configured
    assert data["checks"]["database"] == "not_configured"
    assert data["checks"]["ledger_reconciliation_backlog"] == 0


def test_ready_returns_200(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_health_needs_no_token(client: TestClient) -> None:
    resp = client.get("/health", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 200
