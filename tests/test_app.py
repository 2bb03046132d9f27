def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "message": "VENTECH API is running"}


def test_unknown_route_uses_json_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.get_json() == {"success": False, "message": "Route not found"}


def test_method_not_allowed(client):
    response = client.patch("/health")
    assert response.status_code == 405
    assert response.get_json()["success"] is False


def test_cors_only_for_configured_origins(client):
    allowed = client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert allowed.headers["Access-Control-Allow-Credentials"] == "true"

    other = client.get("/health", headers={"Origin": "https://evil.example.com"})
    assert "Access-Control-Allow-Origin" not in other.headers


def test_admin_token_errors(client, admin_headers):
    assert client.get("/api/orders").status_code == 401
    assert client.get("/api/orders", headers={"Authorization": "Bearer garbage"}).get_json()["message"] == "Invalid token"
    assert client.get("/api/orders", headers=admin_headers).status_code == 200
