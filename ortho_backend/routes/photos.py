"""
=============================================================================
PHOTOS API ROUTES
=============================================================================

Clinical photos stored on Cloudinary, metadata in the practice database

ENDPOINTS:
    POST   /api/photos/upload                    - Upload one photo (multipart)
    POST   /api/photos/upload-multiple           - Upload several photos (multipart)
    GET    /api/photos/search                    - Filter photos (paged)
    GET    /api/photos/recent                    - Latest uploads
    GET    /api/photos/stats                     - Totals, by category, this month, bytes
    PUT    /api/photos/batch                     - Batch metadata update
    POST   /api/photos/bulk-delete               - Delete many photos
    POST   /api/photos/before-after              - Pair two photos
    GET    /api/photos/patient/{id}              - Photos for a patient
    GET    /api/photos/patient/{id}/categories   - Per-category summary
    GET    /api/photos/patient/{id}/before-after - Before/after pairs
    GET    /api/photos/phase/{id}                - Photos for a treatment phase
    GET    /api/photos/{id}                      - Photo with optimized URLs
    GET    /api/photos/{id}/download             - Redirect to original
    PUT    /api/photos/{id}                      - Update metadata
    DELETE /api/photos/{id}                      - Delete photo

=============================================================================
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..config import MAX_PHOTO_SIZE
from ..db import get_db
from ..models import User, PhotoCategory
from ..responses import ok
from ..schemas import PhotoUpdate, PhotoBatchUpdate, PhotoBulkDelete, BeforeAfterPairRequest
from ..services import photo_service

logger = logging.getLogger("ortho.upload")

router = APIRouter(prefix="/api/photos", tags=["Photos"])


def _split_tags(tags: Optional[str]) -> List[str]:
    return [t.strip() for t in (tags or "").split(",") if t.strip()]


async def _read_upload(file: UploadFile) -> dict:
    # One byte past the limit is enough for the size check
    content = await file.read(MAX_PHOTO_SIZE + 1)
    return {"original_name": file.filename or "photo", "content_type": file.content_type, "content": content}


@router.post("/upload", status_code=201)
async def upload_photo(
    file: UploadFile = File(...),
    patient_id: int = Form(...),
    category: PhotoCategory = Form(...),
    subcategory: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma separated"),
    phase_id: Optional[int] = Form(None),
    appointment_id: Optional[int] = Form(None),
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    upload = await _read_upload(file)
    photo = photo_service.upload_photo(
        db, patient_id, category, upload["original_name"], upload["content_type"], upload["content"],
        subcategory=subcategory,
        description=description,
        tags=_split_tags(tags),
        phase_id=phase_id,
        appointment_id=appointment_id,
        uploaded_by=user.id,
    )
    return ok(photo_service.with_urls(photo), "Photo uploaded successfully")


@router.post("/upload-multiple", status_code=201)
async def upload_photos(
    files: List[UploadFile] = File(...),
    patient_id: int = Form(...),
    category: PhotoCategory = Form(...),
    subcategory: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma separated"),
    phase_id: Optional[int] = Form(None),
    appointment_id: Optional[int] = Form(None),
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    uploads = [await _read_upload(f) for f in files]
    photos = photo_service.upload_photos(
        db, patient_id, category, uploads,
        subcategory=subcategory,
        description=description,
        tags=_split_tags(tags),
        phase_id=phase_id,
        appointment_id=appointment_id,
        uploaded_by=user.id,
    )
    return ok([photo_service.with_urls(p) for p in photos], f"{len(photos)} photos uploaded successfully")


@router.get("/search")
async def search_photos(
    patient_id: Optional[int] = None,
    category: Optional[PhotoCategory] = None,
    tags: Optional[str] = Query(None, description="Comma separated; matches any"),
    phase_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("uploaded_at", description="uploaded_at, category, filename"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    photos, pagination = photo_service.search_photos(
        db, patient_id, category, _split_tags(tags), phase_id, page, limit, sort_by, sort_order
    )
    return ok(
        {"photos": [photo_service.with_urls(p) for p in photos], "pagination": pagination},
        "Photos retrieved successfully",
    )


@router.get("/recent")
async def recent_photos(
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    photos = photo_service.get_recent_photos(db, limit)
    return ok([photo_service.with_urls(p) for p in photos], "Recent photos retrieved successfully")


@router.get("/stats")
async def photo_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(photo_service.get_photo_stats(db), "Photo statistics retrieved successfully")


@router.put("/batch")
async def batch_update(payload: PhotoBatchUpdate, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    items = [item.model_dump(exclude_unset=True) for item in payload.updates]
    results = photo_service.batch_update_photos(db, items)
    results["photos"] = [photo_service.with_urls(p) for p in results["photos"]]
    return ok(results, f"Batch update completed: {results['successful']} successful, {results['failed']} failed")


@router.post("/bulk-delete")
async def bulk_delete(payload: PhotoBulkDelete, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    deleted = photo_service.bulk_delete_photos(db, payload.photo_ids)
    return ok({"deleted": deleted}, f"{deleted} photos deleted successfully")


@router.post("/before-after", status_code=201)
async def create_before_after_pair(
    payload: BeforeAfterPairRequest,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    pair = photo_service.create_before_after_pair(db, payload.before_photo_id, payload.after_photo_id)
    return ok(pair, "Before/after pair created successfully")


@router.get("/patient/{patient_id}")
async def patient_photos(
    patient_id: int,
    category: Optional[PhotoCategory] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    photos = photo_service.get_photos_for_patient(db, patient_id, category)
    return ok([photo_service.with_urls(p) for p in photos], "Patient photos retrieved successfully")


@router.get("/patient/{patient_id}/categories")
async def patient_categories(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    summary = photo_service.get_categories_summary(db, patient_id)
    for entry in summary.values():
        if entry["latest_photo"] is not None:
            entry["latest_photo"] = photo_service.with_urls(entry["latest_photo"])
    return ok(summary, "Photo categories summary retrieved successfully")


@router.get("/patient/{patient_id}/before-after")
async def patient_before_after(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    pairs = photo_service.get_before_after_pairs(db, patient_id)
    return ok(
        [{"pair_id": p["pair_id"], "photos": [photo_service.with_urls(ph) for ph in p["photos"]]} for p in pairs],
        "Before/after pairs retrieved successfully",
    )


@router.get("/phase/{phase_id}")
async def phase_photos(phase_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    photos = photo_service.get_photos_for_phase(db, phase_id)
    return ok([photo_service.with_urls(p) for p in photos], "Phase photos retrieved successfully")


@router.get("/{photo_id}")
async def get_photo(photo_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(photo_service.with_urls(photo_service.get_photo(db, photo_id)), "Photo retrieved successfully")


@router.get("/{photo_id}/download")
async def download_photo(photo_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    photo = photo_service.with_urls(photo_service.get_photo(db, photo_id))
    return RedirectResponse(photo["urls"]["original"], status_code=302)


@router.put("/{photo_id}")
async def update_photo(
    photo_id: int,
    payload: PhotoUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    photo = photo_service.update_photo(db, photo_id, payload.model_dump(exclude_unset=True))
    return ok(photo_service.with_urls(photo), "Photo updated successfully")


@router.delete("/{photo_id}")
async def delete_photo(photo_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    photo_service.delete_photo(db, photo_id)
    return ok(None, "Photo deleted successfully")
