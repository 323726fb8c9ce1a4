from ortho_backend import main


def test_api_info(client):
    response = client.get("/api")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["endpoints"]["sync"] == "/api/sync"


def test_health_is_healthy_without_cloudinary(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["services"]["database"]["status"] == "healthy"
    assert data["services"]["legacy_database"]["status"] == "healthy"
    assert data["services"]["cloudinary"]["status"] == "disabled"


def test_health_degrades_when_legacy_database_is_down(client, monkeypatch):
    monkeypatch.setattr(main, "check_legacy_connection", lambda: False)
    response = client.get("/api/health")
    assert response.status_code == 503
    body = response.json()
    assert body["success"] is False
    assert body["data"]["status"] == "degraded"
    assert body["data"]["services"]["legacy_database"]["status"] == "unhealthy"


def test_status_counts(client, doctor_headers, create_patient, create_plan):
    patient = create_patient()
    plan = create_plan(patient["id"])
    client.patch(f"/api/treatments/plans/{plan['id']}/status", json={"status": "ACTIVE"}, headers=doctor_headers)

    response = client.get("/api/status")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["counts"]["patients"] == 1
    assert data["counts"]["active_treatment_plans"] == 1
    assert data["counts"]["photos"] == 0
    assert data["last_booking_sync"] is None
    assert data["cloudinary_configured"] is False


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["path"] == "/api/nowhere"
