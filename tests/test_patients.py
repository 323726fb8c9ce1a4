from datetime import date, timedelta

from ortho_backend.services.patient_service import calculate_age


def test_calculate_age():
    today = date(2026, 6, 15)
    assert calculate_age(date(2010, 6, 15), today) == 16
    assert calculate_age(date(2010, 6, 16), today) == 15
    assert calculate_age(None, today) is None


def test_create_patient_lowercases_email(create_patient):
    patient = create_patient(email="Maria.P@Example.GR")
    assert patient["email"] == "maria.p@example.gr"
    assert patient["country"] == "Greece"
    assert patient["is_active"] is True


def test_create_patient_rejects_duplicates(client, doctor_headers, create_patient):
    create_patient(email="dup@example.gr", phone="691111111")

    response = client.post(
        "/api/patients",
        json={"first_name": "A", "last_name": "B", "email": "DUP@example.gr"},
        headers=doctor_headers,
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Patient with this email already exists"

    response = client.post(
        "/api/patients",
        json={"first_name": "A", "last_name": "B", "phone": "691111111"},
        headers=doctor_headers,
    )
    assert response.status_code == 409


def test_phone_validation(client, doctor_headers):
    for phone in ("+30691234567", "691234567", "712345678"):
        response = client.post(
            "/api/patients",
            json={"first_name": "Ok", "last_name": phone, "phone": phone},
            headers=doctor_headers,
        )
        assert response.status_code == 201, phone

    response = client.post(
        "/api/patients",
        json={"first_name": "Bad", "last_name": "Phone", "phone": "2101234567"},
        headers=doctor_headers,
    )
    assert response.status_code == 400
    assert response.json()["issues"][0]["field"] == "phone"


def test_get_patient_with_stats(client, doctor_headers, create_patient):
    patient = create_patient(date_of_birth="2012-03-01")
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    client.post(
        "/api/appointments",
        json={"patient_id": patient["id"], "appointment_date": tomorrow, "appointment_time": "9:30"},
        headers=doctor_headers,
    )

    response = client.get(f"/api/patients/{patient['id']}", headers=doctor_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["patient"]["age"] == calculate_age(date(2012, 3, 1))
    assert data["stats"]["total_appointments"] == 1
    assert data["stats"]["next_appointment"] == tomorrow
    assert data["stats"]["next_appointment_time"] == "09:30"
    assert data["stats"]["last_appointment"] is None


def test_missing_patient_returns_error_envelope(client, doctor_headers):
    response = client.get("/api/patients/9999", headers=doctor_headers)
    assert response.status_code == 404
    body = response.json()
    assert body == {
        "success": False,
        "message": "Patient not found",
        "timestamp": body["timestamp"],
        "path": "/api/patients/9999",
        "method": "GET",
    }


def test_update_patient_conflict(client, doctor_headers, create_patient):
    first = create_patient(email="first@example.gr")
    second = create_patient()

    response = client.put(f"/api/patients/{second['id']}", json={"email": "first@example.gr"},
                          headers=doctor_headers)
    assert response.status_code == 409

    # Own email is not a conflict
    response = client.put(f"/api/patients/{first['id']}", json={"email": "first@example.gr", "city": "Athens"},
                          headers=doctor_headers)
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Athens"


def test_search_and_sorting(client, doctor_headers, create_patient):
    create_patient(first_name="Anna", last_name="Zervou")
    create_patient(first_name="Babis", last_name="Alexiou")
    create_patient(first_name="Kostas", last_name="Mavros")

    response = client.get("/api/patients", params={"query": "ANNA"}, headers=doctor_headers)
    data = response.json()["data"]
    assert [p["last_name"] for p in data["patients"]] == ["Zervou"]
    assert data["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}

    response = client.get("/api/patients", params={"sort_by": "last_name", "sort_order": "desc", "limit": 2},
                          headers=doctor_headers)
    data = response.json()["data"]
    assert [p["last_name"] for p in data["patients"]] == ["Zervou", "Mavros"]
    assert data["pagination"]["pages"] == 2

    response = client.get("/api/patients", params={"sort_by": "password"}, headers=doctor_headers)
    assert response.status_code == 400


def test_deactivate_and_reactivate(client, doctor_headers, create_patient):
    patient = create_patient()

    response = client.delete(f"/api/patients/{patient['id']}", headers=doctor_headers)
    assert response.json()["data"]["is_active"] is False

    listed = client.get("/api/patients", headers=doctor_headers).json()["data"]["patients"]
    assert patient["id"] not in [p["id"] for p in listed]

    # An inactive patient's email can be reused
    response = client.post(
        "/api/patients",
        json={"first_name": "New", "last_name": "Owner", "email": patient["email"]},
        headers=doctor_headers,
    )
    assert response.status_code == 201

    response = client.post(f"/api/patients/{patient['id']}/reactivate", headers=doctor_headers)
    assert response.json()["data"]["is_active"] is True


def test_patient_stats_and_recent(client, doctor_headers, create_patient, create_plan):
    first = create_patient()
    create_patient()
    third = create_patient()
    create_plan(first["id"])
    client.delete(f"/api/patients/{third['id']}", headers=doctor_headers)

    stats = client.get("/api/patients/stats", headers=doctor_headers).json()["data"]
    assert stats["total_patients"] == 3
    assert stats["active_patients"] == 2
    assert stats["inactive_patients"] == 1
    assert stats["patients_with_treatment_plans"] == 1
    assert stats["patients_with_appointments"] == 0

    recent = client.get("/api/patients/recent", params={"limit": 5}, headers=doctor_headers).json()["data"]
    assert len(recent) == 2
    assert third["id"] not in [p["id"] for p in recent]


def test_advanced_search(client, doctor_headers, create_patient, create_plan):
    today = date.today()
    child = create_patient(city="Thessaloniki", date_of_birth=date(today.year - 12, 1, 1).isoformat(),
                           gender="FEMALE")
    adult = create_patient(city="Athens", date_of_birth=(today - timedelta(days=40 * 366)).isoformat(),
                           gender="MALE")
    plan = create_plan(adult["id"])
    client.patch(f"/api/treatments/plans/{plan['id']}/status", json={"status": "ACTIVE"}, headers=doctor_headers)

    response = client.post("/api/patients/search", params={"age_min": 10, "age_max": 14}, headers=doctor_headers)
    assert [p["id"] for p in response.json()["data"]["patients"]] == [child["id"]]

    response = client.post("/api/patients/search", params={"city": "athens"}, headers=doctor_headers)
    assert [p["id"] for p in response.json()["data"]["patients"]] == [adult["id"]]

    response = client.post("/api/patients/search", params={"has_active_treatment": True}, headers=doctor_headers)
    assert [p["id"] for p in response.json()["data"]["patients"]] == [adult["id"]]

    response = client.post("/api/patients/search", params={"gender": "FEMALE"}, headers=doctor_headers)
    assert [p["id"] for p in response.json()["data"]["patients"]] == [child["id"]]


def test_summary_timeline_and_documents(client, doctor_headers, create_patient):
    patient = create_patient(date_of_birth="2011-01-01")
    pid = patient["id"]
    client.post(
        "/api/appointments",
        json={"patient_id": pid, "appointment_date": "2020-01-10", "appointment_time": "10:00",
              "reason_for_visit": "First visit"},
        headers=doctor_headers,
    )
    client.post(
        "/api/appointments",
        json={"patient_id": pid, "appointment_date": "2020-03-10", "appointment_time": "11:00"},
        headers=doctor_headers,
    )

    summary = client.get(f"/api/patients/{pid}/summary", headers=doctor_headers).json()["data"]
    assert summary["basic_info"]["name"] == f"{patient['first_name']} {patient['last_name']}"
    assert summary["status"]["has_active_treatment"] is False

    timeline = client.get(f"/api/patients/{pid}/timeline", headers=doctor_headers).json()["data"]
    assert [e["type"] for e in timeline] == ["appointment", "appointment"]
    assert timeline[0]["date"].startswith("2020-03-10")
    assert timeline[1]["description"] == "First visit"

    limited = client.get(f"/api/patients/{pid}/timeline", params={"limit": 1}, headers=doctor_headers)
    assert len(limited.json()["data"]) == 1

    documents = client.get(f"/api/patients/{pid}/documents", headers=doctor_headers).json()["data"]
    assert documents["photos"]["total"] == 0
    assert set(documents["photos"]["by_category"]) == {
        "INTRAORAL", "EXTRAORAL", "RADIOGRAPH", "MODELS", "CLINICAL", "PROGRESS", "FINAL"
    }


def test_export_csv_and_json(client, doctor_headers, create_patient):
    create_patient(first_name="Eleni", last_name="Alpha")
    inactive = create_patient(first_name="Petros", last_name="Beta")
    client.delete(f"/api/patients/{inactive['id']}", headers=doctor_headers)

    response = client.get("/api/patients/export", params={"format": "csv"}, headers=doctor_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("ID,First Name,Last Name")
    assert len(lines) == 2
    assert lines[1].endswith("Yes")

    response = client.get("/api/patients/export", params={"include_inactive": True}, headers=doctor_headers)
    assert len(response.json()["data"]) == 2


def test_bulk_update(client, doctor_headers, create_patient):
    a = create_patient()
    b = create_patient()

    response = client.put(
        "/api/patients/bulk",
        json={"patient_ids": [a["id"], b["id"], 9999], "updates": {"city": "Patra"}},
        headers=doctor_headers,
    )
    data = response.json()["data"]
    assert data["successful"] == 2
    assert data["failed"] == 1
    assert data["errors"] == ["9999: Patient not found"]

    assert client.get(f"/api/patients/{a['id']}", headers=doctor_headers).json()["data"]["patient"]["city"] == "Patra"
