from datetime import date, timedelta

from ortho_backend.services import payment_service


def _pay(client, headers, patient_id, amount, **overrides):
    payload = {"patient_id": patient_id, "amount": amount}
    payload.update(overrides)
    response = client.post("/api/payments", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_payment_defaults(client, doctor_headers, create_patient):
    patient = create_patient()
    payment = _pay(client, doctor_headers, patient["id"], 150, currency="eur")
    assert payment["currency"] == "EUR"
    assert payment["status"] == "PENDING"
    assert payment["payment_method"] == "CASH"
    assert payment["paid_date"] is None

    paid = _pay(client, doctor_headers, patient["id"], 80, status="PAID", payment_method="CARD")
    assert paid["paid_date"] is not None


def test_create_payment_validation(client, doctor_headers, create_patient, create_plan):
    patient = create_patient()
    other_plan = create_plan(create_patient()["id"])

    response = client.post("/api/payments", json={"patient_id": patient["id"], "amount": 0}, headers=doctor_headers)
    assert response.status_code == 400

    response = client.post(
        "/api/payments",
        json={"patient_id": patient["id"], "amount": 10, "treatment_plan_id": other_plan["id"]},
        headers=doctor_headers,
    )
    assert response.status_code == 400


def test_payment_plan_installments_sum_to_total(client, doctor_headers, create_patient, create_plan):
    patient = create_patient()
    plan = create_plan(patient["id"])

    response = client.post(
        "/api/payments/plan",
        json={"patient_id": patient["id"], "treatment_plan_id": plan["id"], "total_amount": 100,
              "number_of_payments": 3, "first_payment_date": "2025-01-31"},
        headers=doctor_headers,
    )
    assert response.status_code == 201
    installments = response.json()["data"]
    assert [p["amount"] for p in installments] == [33.33, 33.33, 33.34]
    assert round(sum(p["amount"] for p in installments), 2) == 100.0
    assert [p["due_date"] for p in installments] == ["2025-01-31", "2025-02-28", "2025-03-31"]
    assert all(p["status"] == "PENDING" for p in installments)
    assert installments[1]["description"] == "Payment 2 of 3 for treatment plan"

    summary = client.get(f"/api/payments/treatment-plan/{plan['id']}", headers=doctor_headers).json()["data"]
    assert summary["summary"]["total_amount"] == 100.0
    assert summary["summary"]["pending_payments"] == 3


def test_payment_plan_requires_positive_count(client, doctor_headers, create_patient, create_plan):
    patient = create_patient()
    plan = create_plan(patient["id"])
    response = client.post(
        "/api/payments/plan",
        json={"patient_id": patient["id"], "treatment_plan_id": plan["id"], "total_amount": 100,
              "number_of_payments": 0, "first_payment_date": "2025-01-01"},
        headers=doctor_headers,
    )
    assert response.status_code == 400


def test_overdue_and_upcoming(client, doctor_headers, db, create_patient):
    patient = create_patient()
    today = date.today()
    late = _pay(client, doctor_headers, patient["id"], 50, due_date=(today - timedelta(days=5)).isoformat())
    flagged = _pay(client, doctor_headers, patient["id"], 60, status="OVERDUE",
                   due_date=(today - timedelta(days=30)).isoformat())
    soon = _pay(client, doctor_headers, patient["id"], 70, due_date=(today + timedelta(days=3)).isoformat())
    _pay(client, doctor_headers, patient["id"], 80, due_date=(today + timedelta(days=20)).isoformat())
    _pay(client, doctor_headers, patient["id"], 90, status="PAID", due_date=(today - timedelta(days=9)).isoformat())

    overdue = client.get("/api/payments/overdue", headers=doctor_headers).json()["data"]
    assert [p["id"] for p in overdue] == [flagged["id"], late["id"]]

    upcoming = client.get("/api/payments/upcoming", headers=doctor_headers).json()["data"]
    assert [p["id"] for p in upcoming] == [soon["id"]]
    assert len(payment_service.get_upcoming_payments(db, days=30)) == 2


def test_status_changes_and_mark_paid(client, doctor_headers, create_patient):
    patient = create_patient()
    payment = _pay(client, doctor_headers, patient["id"], 200)

    partial = client.patch(f"/api/payments/{payment['id']}/status", json={"status": "PARTIAL"},
                           headers=doctor_headers).json()["data"]
    assert partial["status"] == "PARTIAL"
    assert partial["paid_date"] is None

    paid = client.post(f"/api/payments/{payment['id']}/mark-paid", json={"transaction_id": "TX-991"},
                       headers=doctor_headers).json()["data"]
    assert paid["status"] == "PAID"
    assert paid["transaction_id"] == "TX-991"
    assert paid["paid_date"] is not None

    other = _pay(client, doctor_headers, patient["id"], 20)
    response = client.post(f"/api/payments/{other['id']}/mark-paid", headers=doctor_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "PAID"


def test_payment_stats_and_methods(client, doctor_headers, create_patient):
    patient = create_patient()
    _pay(client, doctor_headers, patient["id"], 100, status="PAID", payment_method="CARD")
    _pay(client, doctor_headers, patient["id"], 50, status="PAID", payment_method="CASH")
    _pay(client, doctor_headers, patient["id"], 300)

    stats = client.get("/api/payments/stats", headers=doctor_headers).json()["data"]
    assert stats["total_payments"] == 3
    assert stats["payments_by_status"]["paid"] == 2
    assert stats["payments_by_status"]["pending"] == 1
    assert stats["payments_by_status"]["refunded"] == 0
    assert stats["revenue"]["total"] == 150.0
    assert stats["revenue"]["monthly"] == 150.0
    assert stats["revenue"]["average"] == 75.0

    methods = client.get("/api/payments/methods-stats", headers=doctor_headers).json()["data"]
    assert methods == [
        {"payment_method": "CARD", "count": 1, "total_amount": 100.0},
        {"payment_method": "CASH", "count": 1, "total_amount": 50.0},
    ]


def test_payment_report(client, doctor, doctor_headers, create_patient):
    first = create_patient()
    second = create_patient()
    _pay(client, doctor_headers, first["id"], 100, status="PAID")
    _pay(client, doctor_headers, first["id"], 40)
    _pay(client, doctor_headers, second["id"], 60)

    report = client.get("/api/payments/report", headers=doctor_headers).json()["data"]
    assert report["period"] == {"start_date": "All time", "end_date": "All time"}
    assert report["summary"] == {"total_payments": 3, "total_amount": 200.0, "average_amount": 66.67}
    assert report["generated_by"] == doctor.id

    filtered = client.get("/api/payments/report", params={"patient_id": first["id"], "status": "PENDING"},
                          headers=doctor_headers).json()["data"]
    assert filtered["summary"]["total_amount"] == 40.0

    dated = client.get("/api/payments/report", params={"start_date": "2000-01-01"},
                       headers=doctor_headers).json()["data"]
    assert dated["period"]["start_date"] == "2000-01-01"
    assert dated["summary"]["total_payments"] == 3


def test_patient_listing_update_and_delete(client, doctor_headers, create_patient):
    patient = create_patient()
    payment = _pay(client, doctor_headers, patient["id"], 75)

    updated = client.put(f"/api/payments/{payment['id']}", json={"amount": 85, "currency": "usd"},
                         headers=doctor_headers).json()["data"]
    assert updated["amount"] == 85.0
    assert updated["currency"] == "USD"

    listing = client.get(f"/api/payments/patient/{patient['id']}", headers=doctor_headers).json()["data"]
    assert listing["pagination"]["total"] == 1

    assert client.delete(f"/api/payments/{payment['id']}", headers=doctor_headers).status_code == 200
    assert client.get(f"/api/payments/{payment['id']}", headers=doctor_headers).status_code == 404
