from conftest import register_and_login

DOCTOR = {
    "name": "Asha Mehta",
    "qualification": "MBBS, MD",
    "specialization": "General Medicine",
    "regd_no": "MMC-12345",
    "clinic_address": "Shop 4, Lake Road, Pune",
}


def test_doctor_crud(client):
    headers = register_and_login(client, "a")

    response = client.post("/api/v1/doctors", json=DOCTOR, headers=headers)
    assert response.status_code == 201
    doctor_id = response.json()["id"]

    response = client.put(f"/api/v1/doctors/{doctor_id}", json={"specialization": "Cardiology"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["specialization"] == "Cardiology"
    assert response.json()["name"] == "Asha Mehta"

    doctors = client.get("/api/v1/doctors", headers=headers).json()
    assert [d["id"] for d in doctors] == [doctor_id]

    response = client.delete(f"/api/v1/doctors/{doctor_id}", headers=headers)
    assert response.status_code == 200
    assert client.get("/api/v1/doctors", headers=headers).json() == []


def test_duplicate_registration_number_in_same_hospital(client):
    headers = register_and_login(client, "a")
    assert client.post("/api/v1/doctors", json=DOCTOR, headers=headers).status_code == 201
    assert client.post("/api/v1/doctors", json=DOCTOR, headers=headers).status_code == 400


def test_doctors_are_scoped_to_hospital(client):
    headers_a = register_and_login(client, "a")
    headers_b = register_and_login(client, "b")

    doctor_id = client.post("/api/v1/doctors", json=DOCTOR, headers=headers_a).json()["id"]

    assert client.get("/api/v1/doctors", headers=headers_b).json() == []
    assert client.put(f"/api/v1/doctors/{doctor_id}", json={"name": "X"}, headers=headers_b).status_code == 404
    assert client.delete(f"/api/v1/doctors/{doctor_id}", headers=headers_b).status_code == 404
    # Same registration number is fine in another hospital
    assert client.post("/api/v1/doctors", json=DOCTOR, headers=headers_b).status_code == 201
