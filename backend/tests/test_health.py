def test_health_endpoints(client):
    live = client.get("/api/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"
    assert "X-Request-Id" in live.headers
    assert live.headers["X-Content-Type-Options"] == "nosniff"

    ready = client.get("/api/health/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ok"
    assert payload["database"]["schema_ok"] is True
    assert payload["database"]["missing_tables"] == []


def test_request_id_is_echoed(client):
    response = client.get("/api/health", headers={"X-Request-Id": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-Id"] == "req-123"
