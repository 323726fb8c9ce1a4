"""
Shared fixtures: in-memory SQLite for both the practice and the legacy booking
database, seeded staff accounts with bearer tokens, and a fake Cloudinary.
"""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="ortho-tests-")

# Must be set before ortho_backend.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LEGACY_DATABASE_URL"] = "sqlite://"
os.environ["RECEIPTS_DIR"] = os.path.join(_TMP_DIR, "receipts")
os.environ["LOG_FILE"] = os.path.join(_TMP_DIR, "ortho-tests.log")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SYNC_INTERVAL_MINUTES"] = "0"
os.environ["CLOUDINARY_CLOUD_NAME"] = ""
os.environ["CLOUDINARY_API_KEY"] = ""
os.environ["CLOUDINARY_API_SECRET"] = ""
os.environ["CLOUDINARY_FOLDER"] = "orthodontic-app"

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from cloudinary.exceptions import Error as CloudinaryError  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import text  # noqa: E402

from ortho_backend.db import Base, SessionLocal, engine, legacy_engine, init_db  # noqa: E402
from ortho_backend.main import app  # noqa: E402
from ortho_backend.models import User, UserRole  # noqa: E402
from ortho_backend.security import hash_password, create_access_token  # noqa: E402
from ortho_backend.services import media_storage  # noqa: E402

PASSWORD = "Secret123"

BOOKINGS_DDL = """
    CREATE TABLE bookings (
        id INTEGER PRIMARY KEY,
        booking_number VARCHAR(50),
        first_name VARCHAR(100),
        last_name VARCHAR(100),
        email VARCHAR(255),
        phone VARCHAR(20),
        appointment_date DATE,
        appointment_time VARCHAR(8),
        service_type VARCHAR(50),
        status VARCHAR(20),
        notes TEXT,
        created_at DATETIME,
        updated_at DATETIME
    )
"""


@pytest.fixture(autouse=True)
def reset_databases():
    Base.metadata.drop_all(bind=engine)
    init_db()
    with legacy_engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS bookings"))
        conn.execute(text(BOOKINGS_DDL))
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # No context manager: startup hooks (connection checks, periodic sync) stay off
    return TestClient(app)


def _make_user(db, role: UserRole, email: str) -> User:
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        first_name=role.value.title(),
        last_name="Tester",
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user: User) -> dict:
    token = create_access_token(str(user.id), {"email": user.email, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    return _make_user(db, UserRole.ADMIN, "admin@clinic.gr")


@pytest.fixture
def doctor(db):
    return _make_user(db, UserRole.DOCTOR, "doctor@clinic.gr")


@pytest.fixture
def assistant(db):
    return _make_user(db, UserRole.ASSISTANT, "assistant@clinic.gr")


@pytest.fixture
def admin_headers(admin):
    return _headers(admin)


@pytest.fixture
def doctor_headers(doctor):
    return _headers(doctor)


@pytest.fixture
def assistant_headers(assistant):
    return _headers(assistant)


@pytest.fixture
def create_patient(client, doctor_headers):
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        payload = {
            "first_name": "Maria",
            "last_name": f"Papadopoulou{counter['n']}",
            "email": f"maria{counter['n']}@example.gr",
            "phone": f"69{counter['n']:07d}",
        }
        payload.update(overrides)
        response = client.post("/api/patients", json=payload, headers=doctor_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return factory


@pytest.fixture
def create_plan(client, doctor_headers):
    def factory(patient_id: int, **overrides):
        payload = {
            "patient_id": patient_id,
            "title": "Fixed appliance therapy",
            "diagnosis": "Class II division 1",
            "estimated_duration": 24,
            "total_cost": 3000,
        }
        payload.update(overrides)
        response = client.post("/api/treatments/plans", json=payload, headers=doctor_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return factory


@pytest.fixture
def add_booking():
    """Insert a row into the legacy bookings table"""
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        row = {
            "id": counter["n"],
            "booking_number": f"BK{counter['n']:05d}",
            "first_name": "Nikos",
            "last_name": f"Georgiou{counter['n']}",
            "email": f"nikos{counter['n']}@example.gr",
            "phone": f"6{counter['n'] + 50000000:08d}",
            "appointment_date": (date.today() + timedelta(days=3)).isoformat(),
            "appointment_time": "10:00:00",
            "service_type": "consultation",
            "status": "confirmed",
            "notes": None,
            "created_at": None,
            "updated_at": None,
        }
        row.update(overrides)
        with legacy_engine.begin() as conn:
            conn.execute(
                text(
                    "INSERT INTO bookings (id, booking_number, first_name, last_name, email, phone, "
                    "appointment_date, appointment_time, service_type, status, notes, created_at, updated_at) "
                    "VALUES (:id, :booking_number, :first_name, :last_name, :email, :phone, :appointment_date, "
                    ":appointment_time, :service_type, :status, :notes, :created_at, :updated_at)"
                ),
                row,
            )
        return row

    return factory


class FakeCloudinary:
    """Stands in for the Cloudinary wrapper's network calls"""

    def __init__(self):
        self.uploads = []
        self.deleted = []
        self.fail_deletes = False
        self.fail_upload_after = None

    def upload_photo(self, content, public_id=None, patient_id=None, category=None):
        if self.fail_upload_after is not None and len(self.uploads) >= self.fail_upload_after:
            raise CloudinaryError("Upload timed out")
        self.uploads.append({"public_id": public_id, "patient_id": patient_id, "category": category,
                             "size": len(content)})
        full_id = f"{media_storage.build_folder(patient_id, category)}/{public_id}"
        return {
            "public_id": full_id,
            "secure_url": f"https://res.cloudinary.com/demo/image/upload/{full_id}.jpg",
            "width": 1024,
            "height": 768,
        }

    def delete_photo(self, public_id):
        if self.fail_deletes:
            raise CloudinaryError("Resource not found")
        self.deleted.append(public_id)
        return True

    def bulk_delete(self, public_ids):
        if self.fail_deletes:
            raise CloudinaryError("Rate limited")
        self.deleted.extend(public_ids)
        return {"deleted": {public_id: "deleted" for public_id in public_ids}}


@pytest.fixture
def fake_cloudinary(monkeypatch):
    fake = FakeCloudinary()
    monkeypatch.setattr(media_storage, "upload_photo", fake.upload_photo)
    monkeypatch.setattr(media_storage, "delete_photo", fake.delete_photo)
    monkeypatch.setattr(media_storage, "bulk_delete", fake.bulk_delete)
    return fake
