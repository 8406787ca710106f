"""
Tests for the health checks and the Prometheus scrape endpoint.
"""


def test_live_check(client):
    r = client.get("/live")

    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert r.headers["cache-control"] == "no-store"


def test_health_reports_database(client):
    r = client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["service"] == "consultbook"
    assert body["checks"] == {"database": True}


def test_metrics_endpoint_exposes_consultbook_series(client):
    client.get("/live")

    r = client.get("/metrics")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "no-cache" in r.headers["cache-control"]
    assert "consultbook_http_requests_total" in r.text
    assert "consultbook_booking_outcomes_total" in r.text
