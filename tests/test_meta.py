def test_root(client):
    assert client.get("/").json() == {"message": "HesapDurağı API running"}


def test_diagnostics_report_database(client, db):
    db["accounts"].insert_one({"title": "x"})
    body = client.get("/test").json()
    assert body["backend"] == "✅ Running"
    assert body["database"] == "✅ Available"
    assert body["database_name"] == "hesapduragi_test"
    assert "accounts" in body["collections"]
    assert body["connection_status"] == "Connected"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found"}


def test_validation_errors_name_the_field(client):
    response = client.post("/api/auth/login", json={"email": "ayse@example.com"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("password:")
