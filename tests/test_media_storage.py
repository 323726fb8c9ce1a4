import cloudinary
import pytest
from cloudinary.exceptions import Error as CloudinaryError

from ortho_backend.errors import ServiceUnavailableError
from ortho_backend.services import media_storage


@pytest.fixture
def configured(monkeypatch):
    cloudinary.config(cloud_name="demo", api_key="key", api_secret="secret", secure=True)
    monkeypatch.setattr(media_storage, "_configured", True)


def test_folders_and_tags():
    assert media_storage.build_folder() == "orthodontic-app"
    assert media_storage.build_folder(7) == "orthodontic-app/patients/7"
    assert media_storage.build_folder(7, "radiograph") == "orthodontic-app/patients/7/radiograph"
    assert media_storage.build_tags(7, "radiograph") == ["orthodontic", "patient_7", "radiograph"]
    assert media_storage.build_tags() == ["orthodontic", "general", "uncategorized"]


def test_unconfigured_wrapper():
    assert media_storage.optimized_urls("x") is None
    assert media_storage.transformation_url("x") is None
    assert media_storage.health()["status"] == "disabled"
    with pytest.raises(ServiceUnavailableError):
        media_storage.upload_photo(b"data")
    with pytest.raises(ServiceUnavailableError):
        media_storage.bulk_delete(["a"])


def test_upload_passes_folder_tags_and_context(configured, monkeypatch):
    calls = {}

    def fake_upload(file, **options):
        calls["content"] = file.read()
        calls["options"] = options
        return {"public_id": f"{options['folder']}/{options['public_id']}", "secure_url": "https://cdn/x.jpg",
                "width": 640, "height": 480}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

    result = media_storage.upload_photo(b"jpeg-bytes", public_id="intraoral_a_1_2", patient_id=3,
                                        category="intraoral")
    assert result["public_id"] == "orthodontic-app/patients/3/intraoral/intraoral_a_1_2"
    assert result["width"] == 640
    assert calls["content"] == b"jpeg-bytes"
    assert calls["options"]["tags"] == ["orthodontic", "patient_3", "intraoral"]
    assert calls["options"]["context"]["patient_id"] == "3"
    assert calls["options"]["resource_type"] == "image"


def test_delete_and_bulk_delete(configured, monkeypatch):
    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id: {"result": "ok"})
    assert media_storage.delete_photo("a") is True

    monkeypatch.setattr(cloudinary.uploader, "destroy", lambda public_id: {"result": "not found"})
    assert media_storage.delete_photo("a") is False

    monkeypatch.setattr(cloudinary.api, "delete_resources",
                        lambda ids: {"deleted": {i: "deleted" for i in ids}})
    assert media_storage.bulk_delete(["a", "b"])["deleted"] == {"a": "deleted", "b": "deleted"}


def test_optimized_urls(configured):
    urls = media_storage.optimized_urls("orthodontic-app/patients/1/final/shot")
    assert set(urls) == {"thumbnail", "medium", "high", "original"}
    assert "c_fill" in urls["thumbnail"] and "w_200" in urls["thumbnail"]
    assert "q_auto:best" in urls["high"]
    assert urls["original"].startswith("https://res.cloudinary.com/demo/image/upload/")


def test_search_builds_expression(configured, monkeypatch):
    captured = {}

    class FakeSearch:
        def expression(self, value):
            captured["expression"] = value
            return self

        def sort_by(self, field, direction):
            captured["sort"] = (field, direction)
            return self

        def max_results(self, value):
            captured["max_results"] = value
            return self

        def with_field(self, value):
            captured.setdefault("fields", []).append(value)
            return self

        def execute(self):
            return {"resources": [{"public_id": "p1"}]}

    monkeypatch.setattr(cloudinary, "Search", FakeSearch)

    resources = media_storage.search_photos(patient_id=5, category="final", max_results=10)
    assert resources == [{"public_id": "p1"}]
    assert captured["expression"] == "resource_type:image AND tags:patient_5 AND tags:final"
    assert captured["sort"] == ("created_at", "desc")
    assert captured["fields"] == ["context", "tags"]


def test_health_reports_ping_failure(configured, monkeypatch):
    def failing_ping():
        raise CloudinaryError("Invalid credentials")

    monkeypatch.setattr(cloudinary.api, "ping", failing_ping)
    assert media_storage.health() == {"status": "unhealthy", "message": "Invalid credentials"}

    monkeypatch.setattr(cloudinary.api, "ping", lambda: {"status": "ok"})
    assert media_storage.health()["status"] == "healthy"
