from conftest import ADMIN_PASSWORD, hospital_payload, register_and_login


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_register_hospital(client):
    response = client.post("/api/v1/hospitals/register", json=hospital_payload("a"))
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "City Hospital A"
    assert body["registration_number"] == "REG-A-001"
    assert body["is_active"] is True


def test_register_duplicate_hospital_is_rejected(client):
    assert client.post("/api/v1/hospitals/register", json=hospital_payload("a")).status_code == 201
    response = client.post("/api/v1/hospitals/register", json=hospital_payload("a"))
    assert response.status_code == 400


def test_register_rejects_short_password(client):
    payload = hospital_payload("a")
    payload["admin_password"] = "short"
    response = client.post("/api/v1/hospitals/register", json=payload)
    assert response.status_code == 422


def test_login_and_me(client):
    headers = register_and_login(client, "a")
    response = client.get("/api/v1/auth/me", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "admin.a@hospital.example.com"
    assert body["role"] == "admin"
    assert body["hospital"]["name"] == "City Hospital A"
    assert body["last_login"] is not None


def test_login_with_wrong_password(client):
    client.post("/api/v1/hospitals/register", json=hospital_payload("a"))
    response = client.post(
        "/api/v1/auth/login",
        data={"username": "admin.a@hospital.example.com", "password": ADMIN_PASSWORD + "x"},
    )
    assert response.status_code == 401


def test_protected_routes_require_token(client):
    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/prescriptions").status_code == 401
    response = client.get("/api/v1/doctors", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
