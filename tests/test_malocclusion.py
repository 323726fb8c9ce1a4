import pytest

from ortho_backend.services.malocclusion import score_measurements, severity_for


def test_normal_occlusion_scores_zero():
    result = score_measurements({"overjet": 2.5, "overbite": 30, "upper_space_analysis": 0.5})
    assert result == {"score": 0, "severity": "mild", "breakdown": []}


@pytest.mark.parametrize("overjet, points", [(3, 0), (4, 0), (4.5, 2), (6.5, 4), (10, 5), (-10, 5)])
def test_overjet_tiers(overjet, points):
    assert score_measurements({"overjet": overjet})["score"] == points


@pytest.mark.parametrize("overbite, points", [(30, 0), (5, 2), (60, 2), (110, 4), (-5, 4)])
def test_overbite_bands(overbite, points):
    assert score_measurements({"overbite": overbite})["score"] == points


def test_crowding_uses_worst_arch():
    assert score_measurements({"upper_space_analysis": -2, "lower_space_analysis": 5})["score"] == 2
    assert score_measurements({"upper_space_analysis": -8})["score"] == 4


def test_teeth_and_crossbites():
    result = score_measurements({
        "anterior_crossbite": True,
        "posterior_crossbite_left": True,
        "upper_midline_deviation": 3.5,
        "congenitally_missing_teeth": ["12", "22"],
        "impacted_teeth": ["13"],
    })
    points = {item["id"]: item["points"] for item in result["breakdown"]}
    assert points == {
        "ANTERIOR_CROSSBITE": 3,
        "POSTERIOR_CROSSBITE": 2,
        "MIDLINE": 2,
        "MISSING_TEETH": 2,
        "IMPACTED_TEETH": 2,
    }
    assert result["score"] == 11
    assert result["severity"] == "moderate"


@pytest.mark.parametrize("score, severity", [(0, "mild"), (7, "mild"), (8, "moderate"), (14, "moderate"),
                                             (15, "severe")])
def test_severity_thresholds(score, severity):
    assert severity_for(score) == severity


def test_score_route(client, assistant_headers):
    response = client.post("/api/assessments/score", json={"overjet": 9.5, "overbite": 120, "anterior_crossbite": True,
                                                           "impacted_teeth": ["13", "23"]},
                           headers=assistant_headers)
    assert response.status_code == 200
    assert response.json()["data"]["score"] == 16
    assert response.json()["data"]["severity"] == "severe"


def test_store_and_list_assessments(client, doctor, doctor_headers, create_patient):
    patient = create_patient()

    older = client.post(
        "/api/assessments",
        json={"patient_id": patient["id"], "assessment_date": "2024-05-01", "overjet": 7, "angle_class": "II/1"},
        headers=doctor_headers,
    )
    assert older.status_code == 201
    older = older.json()["data"]
    assert older["severity_score"] == 4
    assert older["severity"] == "mild"
    assert older["assessed_by"] == doctor.id

    newer = client.post(
        "/api/assessments",
        json={"patient_id": patient["id"], "assessment_date": "2025-05-01", "overjet": 2},
        headers=doctor_headers,
    ).json()["data"]

    listing = client.get(f"/api/assessments/patient/{patient['id']}", headers=doctor_headers).json()["data"]
    assert [a["id"] for a in listing] == [newer["id"], older["id"]]

    fetched = client.get(f"/api/assessments/{older['id']}", headers=doctor_headers).json()["data"]
    assert fetched["angle_class"] == "II/1"

    assert client.get("/api/assessments/999", headers=doctor_headers).status_code == 404
    response = client.post("/api/assessments", json={"patient_id": 999}, headers=doctor_headers)
    assert response.status_code == 404
