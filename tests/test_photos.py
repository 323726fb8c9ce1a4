import re

import pytest
from cloudinary.exceptions import Error as CloudinaryError

from ortho_backend.models import Photo, PhotoCategory
from ortho_backend.services import photo_service
from ortho_backend.services.photo_service import build_filename

JPEG = b"\xff\xd8\xff\xe0" + b"0" * 2048


def _upload(client, headers, patient_id, category="INTRAORAL", name="upper arch.jpg", content_type="image/jpeg",
            content=JPEG, **fields):
    data = {"patient_id": str(patient_id), "category": category}
    data.update({k: str(v) for k, v in fields.items()})
    return client.post(
        "/api/photos/upload",
        data=data,
        files={"file": (name, content, content_type)},
        headers=headers,
    )


def test_build_filename():
    name = build_filename(PhotoCategory.EXTRAORAL, "Profile left (1).JPG", timestamp_ms=1700000000000, suffix=7)
    assert name == "extraoral_Profile_left__1__1700000000000_7.jpg"

    long_name = build_filename(PhotoCategory.MODELS, "x" * 80 + ".png")
    assert re.fullmatch(r"models_x{50}_\d+_\d{1,3}\.png", long_name)


def test_upload_photo(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    response = _upload(client, doctor_headers, patient["id"], tags="bracket, upper", description="Day one")
    assert response.status_code == 201, response.text

    photo = response.json()["data"]
    assert photo["category"] == "INTRAORAL"
    assert photo["tags"] == ["bracket", "upper"]
    assert photo["file_size"] == len(JPEG)
    assert photo["width"] == 1024
    assert photo["cloudinary_id"].startswith(f"orthodontic-app/patients/{patient['id']}/intraoral/")
    # Unconfigured delivery falls back to the stored URL
    assert photo["urls"]["thumbnail"] == photo["cloudinary_url"]

    assert fake_cloudinary.uploads[0]["category"] == "intraoral"
    assert fake_cloudinary.uploads[0]["patient_id"] == patient["id"]


def test_upload_rejects_bad_files(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()

    response = _upload(client, doctor_headers, patient["id"], name="notes.pdf", content_type="application/pdf")
    assert response.status_code == 400
    assert "not an allowed image type" in response.json()["message"]

    response = _upload(client, doctor_headers, patient["id"], content=b"")
    assert response.status_code == 400

    response = _upload(client, doctor_headers, 999)
    assert response.status_code == 404

    response = _upload(client, doctor_headers, patient["id"], category="SELFIE")
    assert response.status_code == 400
    assert fake_cloudinary.uploads == []


def test_upload_checks_phase_belongs_to_patient(client, doctor_headers, create_patient, create_plan,
                                                fake_cloudinary):
    owner = create_patient()
    plan = create_plan(owner["id"])
    phase = client.post(
        "/api/treatments/phases",
        json={"treatment_plan_id": plan["id"], "patient_id": owner["id"], "phase_number": 1, "title": "Leveling"},
        headers=doctor_headers,
    ).json()["data"]
    stranger = create_patient()

    response = _upload(client, doctor_headers, stranger["id"], phase_id=phase["id"])
    assert response.status_code == 400

    response = _upload(client, doctor_headers, owner["id"], phase_id=phase["id"], category="PROGRESS")
    assert response.status_code == 201
    phase_photos = client.get(f"/api/photos/phase/{phase['id']}", headers=doctor_headers).json()["data"]
    assert len(phase_photos) == 1


def test_upload_without_cloudinary_is_unavailable(client, doctor_headers, create_patient):
    patient = create_patient()
    response = _upload(client, doctor_headers, patient["id"])
    assert response.status_code == 503
    assert response.json()["message"] == "Cloudinary is not configured"


def test_upload_multiple(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    files = [("files", (f"shot{i}.png", JPEG, "image/png")) for i in range(3)]
    response = client.post(
        "/api/photos/upload-multiple",
        data={"patient_id": str(patient["id"]), "category": "EXTRAORAL"},
        files=files,
        headers=doctor_headers,
    )
    assert response.status_code == 201
    assert len(response.json()["data"]) == 3

    # One bad file rejects the whole batch before anything is stored
    files = [("files", ("ok.png", JPEG, "image/png")), ("files", ("bad.txt", b"text", "text/plain"))]
    response = client.post(
        "/api/photos/upload-multiple",
        data={"patient_id": str(patient["id"]), "category": "EXTRAORAL"},
        files=files,
        headers=doctor_headers,
    )
    assert response.status_code == 400
    assert len(fake_cloudinary.uploads) == 3


def test_batch_upload_failure_removes_stored_photos(db, create_patient, fake_cloudinary):
    patient = create_patient()
    fake_cloudinary.fail_upload_after = 2
    files = [{"original_name": f"shot{i}.png", "content_type": "image/png", "content": JPEG} for i in range(3)]

    with pytest.raises(CloudinaryError):
        photo_service.upload_photos(db, patient["id"], PhotoCategory.EXTRAORAL, files)

    assert db.query(Photo).count() == 0
    assert len(fake_cloudinary.uploads) == 2
    folder = f"orthodontic-app/patients/{patient['id']}/extraoral"
    assert sorted(fake_cloudinary.deleted) == sorted(f"{folder}/{u['public_id']}" for u in fake_cloudinary.uploads)


def test_search_and_summaries(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    pid = patient["id"]
    first = _upload(client, doctor_headers, pid, tags="bracket,upper").json()["data"]
    _upload(client, doctor_headers, pid, category="RADIOGRAPH", subcategory="panoramic", tags="xray")
    _upload(client, doctor_headers, pid, category="RADIOGRAPH", subcategory="cephalometric")

    response = client.get("/api/photos/search", params={"patient_id": pid, "tags": "upper,xray"},
                          headers=doctor_headers)
    data = response.json()["data"]
    assert data["pagination"]["total"] == 2

    response = client.get("/api/photos/search", params={"category": "RADIOGRAPH", "limit": 1},
                          headers=doctor_headers)
    data = response.json()["data"]
    assert data["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}

    assert client.get("/api/photos/search", params={"sort_by": "size"}, headers=doctor_headers).status_code == 400

    categories = client.get(f"/api/photos/patient/{pid}/categories", headers=doctor_headers).json()["data"]
    assert categories["RADIOGRAPH"]["count"] == 2
    assert categories["RADIOGRAPH"]["subcategories"] == ["cephalometric", "panoramic"]
    assert categories["INTRAORAL"]["latest_photo"]["id"] == first["id"]
    assert categories["FINAL"] == {"count": 0, "latest_photo": None, "subcategories": []}

    only_xrays = client.get(f"/api/photos/patient/{pid}", params={"category": "RADIOGRAPH"},
                            headers=doctor_headers).json()["data"]
    assert len(only_xrays) == 2

    stats = client.get("/api/photos/stats", headers=doctor_headers).json()["data"]
    assert stats["total_photos"] == 3
    assert stats["photos_by_category"]["RADIOGRAPH"] == 2
    assert stats["photos_this_month"] == 3
    assert stats["total_file_size"] == 3 * len(JPEG)

    recent = client.get("/api/photos/recent", params={"limit": 2}, headers=doctor_headers).json()["data"]
    assert len(recent) == 2


def test_update_and_batch(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    photo = _upload(client, doctor_headers, patient["id"]).json()["data"]

    updated = client.put(f"/api/photos/{photo['id']}", json={"description": "Bonded", "tags": ["day1"]},
                         headers=doctor_headers).json()["data"]
    assert updated["description"] == "Bonded"
    assert updated["tags"] == ["day1"]

    response = client.put(
        "/api/photos/batch",
        json={"updates": [{"id": photo["id"], "category": "PROGRESS"}, {"id": 999, "description": "ghost"}]},
        headers=doctor_headers,
    )
    data = response.json()["data"]
    assert data["successful"] == 1
    assert data["failed"] == 1
    assert data["errors"] == ["999: Photo not found"]
    assert data["photos"][0]["category"] == "PROGRESS"


def test_download_redirects_to_original(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    photo = _upload(client, doctor_headers, patient["id"]).json()["data"]

    response = client.get(f"/api/photos/{photo['id']}/download", headers=doctor_headers, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == photo["cloudinary_url"]


def test_delete_survives_cloudinary_failure(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    photo = _upload(client, doctor_headers, patient["id"]).json()["data"]
    fake_cloudinary.fail_deletes = True

    response = client.delete(f"/api/photos/{photo['id']}", headers=doctor_headers)
    assert response.status_code == 200
    assert client.get(f"/api/photos/{photo['id']}", headers=doctor_headers).status_code == 404


def test_bulk_delete(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    photos = [_upload(client, doctor_headers, patient["id"]).json()["data"] for _ in range(2)]

    response = client.post("/api/photos/bulk-delete", json={"photo_ids": [p["id"] for p in photos] + [999]},
                           headers=doctor_headers)
    assert response.json()["data"] == {"deleted": 2}
    assert sorted(fake_cloudinary.deleted) == sorted(p["cloudinary_id"] for p in photos)

    response = client.post("/api/photos/bulk-delete", json={"photo_ids": [999]}, headers=doctor_headers)
    assert response.status_code == 404


def test_before_after_pairs(client, doctor_headers, create_patient, fake_cloudinary):
    patient = create_patient()
    before = _upload(client, doctor_headers, patient["id"]).json()["data"]
    after = _upload(client, doctor_headers, patient["id"], category="FINAL").json()["data"]
    other = _upload(client, doctor_headers, create_patient()["id"]).json()["data"]

    response = client.post("/api/photos/before-after",
                           json={"before_photo_id": before["id"], "after_photo_id": before["id"]},
                           headers=doctor_headers)
    assert response.status_code == 400

    response = client.post("/api/photos/before-after",
                           json={"before_photo_id": before["id"], "after_photo_id": other["id"]},
                           headers=doctor_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Before and after photos must belong to the same patient"

    response = client.post("/api/photos/before-after",
                           json={"before_photo_id": before["id"], "after_photo_id": after["id"]},
                           headers=doctor_headers)
    assert response.status_code == 201
    pair_id = response.json()["data"]["pair_id"]
    assert re.fullmatch(r"pair_\d+_\d{1,3}", pair_id)

    pairs = client.get(f"/api/photos/patient/{patient['id']}/before-after", headers=doctor_headers).json()["data"]
    assert len(pairs) == 1
    assert pairs[0]["pair_id"] == pair_id
    assert [p["id"] for p in pairs[0]["photos"]] == [before["id"], after["id"]]
    assert all(p["is_before_after"] for p in pairs[0]["photos"])
