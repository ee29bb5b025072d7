# tests/test_metrics_endpoint.py
from fastapi.testclient import TestClient

from nexus_search.app import app
from nexus_search import monitoring


def test_metrics_endpoint_returns_prometheus_format():
    client = TestClient(app)
    client.get("/api/searches/recent")
    r = client.get("/metrics")
    # Should return 200 with prometheus text format (if PROMETHEUS_ENABLED defaults to true)
    assert r.status_code in (200, 404)
    if r.status_code == 200:
        assert "text/plain" in r.headers.get("content-type", "")
        assert "nexus_requests_total" in r.text


def test_metrics_disabled_is_404(monkeypatch):
    monkeypatch.setattr(monitoring, "PROMETHEUS_ENABLED", False)
    client = TestClient(app)
    assert client.get("/metrics").status_code == 404


def test_health_still_works():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
