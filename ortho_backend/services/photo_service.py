"""
Orthodontic Practice Backend - Photo Service
Clinical photo upload, categorization, search and before/after pairing
"""
import logging
import os
import random
import re
import time
from datetime import date, datetime
from typing import Dict, Any, List, Optional

from cloudinary.exceptions import Error as CloudinaryError
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import ALLOWED_IMAGE_TYPES, MAX_PHOTO_SIZE, MAX_PHOTOS_PER_UPLOAD
from ..errors import NotFoundError, BadRequestError, ServiceUnavailableError
from ..models import Patient, Photo, TreatmentPhase, Appointment, PhotoCategory
from ..schemas import PhotoResponse
from . import media_storage
from .common import apply_updates

logger = logging.getLogger("ortho.upload")

SORT_FIELDS = {
    "uploaded_at": Photo.uploaded_at,
    "category": Photo.category,
    "filename": Photo.filename,
}


# ==================== Helpers ====================

def build_filename(category: PhotoCategory, original_name: str, timestamp_ms: Optional[int] = None,
                   suffix: Optional[int] = None) -> str:
    """<category>_<safe original name, max 50 chars>_<timestamp ms>_<random 0-999><ext>"""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    suffix = suffix if suffix is not None else random.randint(0, 999)
    stem, extension = os.path.splitext(original_name or "photo")
    safe_name = re.sub(r"[^a-zA-Z0-9]", "_", stem)[:50]
    return f"{category.value.lower()}_{safe_name}_{timestamp_ms}_{suffix}{extension.lower()}"


def validate_image(original_name: str, content_type: Optional[str], size: int):
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise BadRequestError(f"File type {content_type} is not an allowed image type")
    if size == 0:
        raise BadRequestError(f"File {original_name} is empty")
    if size > MAX_PHOTO_SIZE:
        raise BadRequestError(
            f"File {original_name} exceeds the maximum size of {MAX_PHOTO_SIZE // (1024 * 1024)}MB"
        )


def with_urls(photo: Photo) -> Dict[str, Any]:
    """Photo fields plus delivery URLs; falls back to the stored URL"""
    data = PhotoResponse.model_validate(photo).model_dump()
    data["urls"] = media_storage.optimized_urls(photo.cloudinary_id) or {
        "thumbnail": photo.cloudinary_url,
        "medium": photo.cloudinary_url,
        "high": photo.cloudinary_url,
        "original": photo.cloudinary_url,
    }
    return data


def _require_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


def _check_links(db: Session, patient_id: int, phase_id: Optional[int], appointment_id: Optional[int]):
    if phase_id:
        phase = db.get(TreatmentPhase, phase_id)
        if not phase or phase.patient_id != patient_id:
            raise BadRequestError("Treatment phase not found for this patient")
    if appointment_id:
        appointment = db.get(Appointment, appointment_id)
        if not appointment or appointment.patient_id != patient_id:
            raise BadRequestError("Appointment not found for this patient")


# ==================== Upload ====================

def upload_photo(
    db: Session,
    patient_id: int,
    category: PhotoCategory,
    original_name: str,
    content_type: Optional[str],
    content: bytes,
    subcategory: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    phase_id: Optional[int] = None,
    appointment_id: Optional[int] = None,
    uploaded_by: Optional[int] = None
) -> Photo:
    _require_patient(db, patient_id)
    _check_links(db, patient_id, phase_id, appointment_id)
    validate_image(original_name, content_type, len(content))

    filename = build_filename(category, original_name)
    public_id = os.path.splitext(filename)[0]

    try:
        stored = media_storage.upload_photo(
            content,
            public_id=public_id,
            patient_id=patient_id,
            category=category.value.lower(),
        )
    except Exception as e:
        logger.error(f"❌ Photo upload failed for patient {patient_id} ({original_name}): {e}")
        raise

    photo = Photo(
        patient_id=patient_id,
        filename=filename,
        original_name=original_name,
        cloudinary_id=stored["public_id"],
        cloudinary_url=stored["secure_url"],
        category=category,
        subcategory=subcategory,
        description=description,
        tags=tags or [],
        file_size=len(content),
        mime_type=content_type,
        width=stored.get("width"),
        height=stored.get("height"),
        phase_id=phase_id,
        appointment_id=appointment_id,
        uploaded_by=uploaded_by,
    )
    db.add(photo)
    db.commit()
    db.refresh(photo)

    logger.info(f"📸 Photo {photo.id} uploaded for patient {patient_id} ({category.value}, {len(content)} bytes)")
    return photo


def upload_photos(db: Session, patient_id: int, category: PhotoCategory, files: List[Dict[str, Any]],
                  **metadata) -> List[Photo]:
    """files: dicts with original_name, content_type, content"""
    if not files:
        raise BadRequestError("No files uploaded")
    if len(files) > MAX_PHOTOS_PER_UPLOAD:
        raise BadRequestError(f"Too many files. Maximum is {MAX_PHOTOS_PER_UPLOAD}")
    for f in files:
        validate_image(f["original_name"], f["content_type"], len(f["content"]))

    photos = []
    try:
        for f in files:
            photos.append(upload_photo(db, patient_id, category, f["original_name"], f["content_type"],
                                       f["content"], **metadata))
    except Exception:
        # All or nothing: drop what this batch already stored
        if photos:
            logger.warning(f"⚠️ Batch upload for patient {patient_id} failed, removing {len(photos)} stored photos")
            _remove_remote([p.cloudinary_id for p in photos])
            for photo in photos:
                db.delete(photo)
            db.commit()
        raise

    logger.info(f"📸 {len(photos)} photos uploaded for patient {patient_id}")
    return photos


# ==================== Read ====================

def get_photo(db: Session, photo_id: int) -> Photo:
    photo = db.get(Photo, photo_id)
    if not photo:
        raise NotFoundError("Photo not found")
    return photo


def search_photos(
    db: Session,
    patient_id: Optional[int] = None,
    category: Optional[PhotoCategory] = None,
    tags: Optional[List[str]] = None,
    phase_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "uploaded_at",
    sort_order: str = "desc"
):
    """Filter photos; a tag filter matches photos carrying any of the tags"""
    q = db.query(Photo)
    if patient_id:
        q = q.filter(Photo.patient_id == patient_id)
    if category:
        q = q.filter(Photo.category == category)
    if phase_id:
        q = q.filter(Photo.phase_id == phase_id)

    column = SORT_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort by '{sort_by}'")
    q = q.order_by(column.desc() if sort_order == "desc" else column.asc(), Photo.id.desc())

    page, limit = max(page, 1), max(limit, 1)
    if tags:
        wanted = set(tags)
        matches = [p for p in q.all() if wanted.intersection(p.tags or [])]
        total = len(matches)
        items = matches[(page - 1) * limit:page * limit]
    else:
        total = q.order_by(None).count()
        items = q.offset((page - 1) * limit).limit(limit).all()

    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": -(-total // limit) if total else 0,
    }


def get_photos_for_patient(db: Session, patient_id: int, category: Optional[PhotoCategory] = None) -> List[Photo]:
    _require_patient(db, patient_id)
    q = db.query(Photo).filter(Photo.patient_id == patient_id)
    if category:
        q = q.filter(Photo.category == category)
    return q.order_by(Photo.uploaded_at.desc(), Photo.id.desc()).all()


def get_photos_for_phase(db: Session, phase_id: int) -> List[Photo]:
    if not db.get(TreatmentPhase, phase_id):
        raise NotFoundError("Treatment phase not found")
    return (
        db.query(Photo)
        .filter(Photo.phase_id == phase_id)
        .order_by(Photo.uploaded_at.desc(), Photo.id.desc())
        .all()
    )


def get_recent_photos(db: Session, limit: int = 20) -> List[Photo]:
    return db.query(Photo).order_by(Photo.uploaded_at.desc(), Photo.id.desc()).limit(limit).all()


# ==================== Update & Delete ====================

def update_photo(db: Session, photo_id: int, updates: Dict[str, Any]) -> Photo:
    photo = get_photo(db, photo_id)
    _check_links(db, photo.patient_id, updates.get("phase_id"), updates.get("appointment_id"))

    changed = apply_updates(photo, updates)
    db.commit()
    db.refresh(photo)
    if changed:
        logger.info(f"📝 Updated photo {photo.id}: {', '.join(changed)}")
    return photo


def batch_update_photos(db: Session, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    results = {"successful": 0, "failed": 0, "errors": [], "photos": []}
    for item in items:
        item = dict(item)
        photo_id = item.pop("id")
        try:
            results["photos"].append(update_photo(db, photo_id, item))
            results["successful"] += 1
        except (NotFoundError, BadRequestError) as e:
            db.rollback()
            results["failed"] += 1
            results["errors"].append(f"{photo_id}: {e.message}")
    return results


def _remove_remote(public_ids: List[str]):
    """Best-effort Cloudinary cleanup; database rows are removed regardless"""
    try:
        if len(public_ids) == 1:
            media_storage.delete_photo(public_ids[0])
        else:
            media_storage.bulk_delete(public_ids)
    except (CloudinaryError, ServiceUnavailableError) as e:
        logger.warning(f"⚠️ Could not delete {', '.join(public_ids)} from Cloudinary: {e}")


def delete_photo(db: Session, photo_id: int):
    photo = get_photo(db, photo_id)
    _remove_remote([photo.cloudinary_id])

    db.delete(photo)
    db.commit()
    logger.info(f"🗑️ Photo {photo_id} deleted")


def bulk_delete_photos(db: Session, photo_ids: List[int]) -> int:
    photos = db.query(Photo).filter(Photo.id.in_(photo_ids)).all()
    if not photos:
        raise NotFoundError("No photos found")

    _remove_remote([p.cloudinary_id for p in photos])
    for photo in photos:
        db.delete(photo)
    db.commit()

    logger.info(f"🗑️ Bulk deleted {len(photos)} photos")
    return len(photos)


# ==================== Before / After ====================

def create_before_after_pair(db: Session, before_photo_id: int, after_photo_id: int) -> Dict[str, Any]:
    if before_photo_id == after_photo_id:
        raise BadRequestError("A photo cannot be paired with itself")

    before = get_photo(db, before_photo_id)
    after = get_photo(db, after_photo_id)
    if before.patient_id != after.patient_id:
        raise BadRequestError("Before and after photos must belong to the same patient")

    pair_id = f"pair_{int(time.time() * 1000)}_{random.randint(0, 999)}"
    for photo in (before, after):
        photo.is_before_after = True
        photo.before_after_pair_id = pair_id
    db.commit()

    logger.info(f"🔗 Before/after pair {pair_id}: {before.id} -> {after.id}")
    return {"pair_id": pair_id, "before_photo_id": before.id, "after_photo_id": after.id}


def _sort_key(photo: Photo):
    return (photo.uploaded_at.replace(tzinfo=None) if photo.uploaded_at else datetime.min, photo.id)


def get_before_after_pairs(db: Session, patient_id: int) -> List[Dict[str, Any]]:
    """Pairs grouped by pair id; photos oldest first, pairs newest first"""
    _require_patient(db, patient_id)
    photos = (
        db.query(Photo)
        .filter(Photo.patient_id == patient_id, Photo.before_after_pair_id.isnot(None))
        .all()
    )

    groups: Dict[str, List[Photo]] = {}
    for photo in photos:
        groups.setdefault(photo.before_after_pair_id, []).append(photo)

    pairs = []
    for pair_id, members in groups.items():
        members.sort(key=_sort_key)
        pairs.append({"pair_id": pair_id, "photos": members, "_first": _sort_key(members[0])})

    pairs.sort(key=lambda p: p["_first"], reverse=True)
    for pair in pairs:
        del pair["_first"]
    return pairs


# ==================== Summaries ====================

def get_categories_summary(db: Session, patient_id: int) -> Dict[str, Any]:
    _require_patient(db, patient_id)
    summary = {}
    for category in PhotoCategory:
        photos = (
            db.query(Photo)
            .filter(Photo.patient_id == patient_id, Photo.category == category)
            .order_by(Photo.uploaded_at.desc(), Photo.id.desc())
            .all()
        )
        summary[category.value] = {
            "count": len(photos),
            "latest_photo": photos[0] if photos else None,
            "subcategories": sorted({p.subcategory for p in photos if p.subcategory}),
        }
    return summary


def get_photo_stats(db: Session) -> Dict[str, Any]:
    today = date.today()
    month_start = datetime(today.year, today.month, 1)

    by_category = {category.value: 0 for category in PhotoCategory}
    for category, count in db.query(Photo.category, func.count(Photo.id)).group_by(Photo.category).all():
        by_category[category.value] = count

    return {
        "total_photos": sum(by_category.values()),
        "photos_by_category": by_category,
        "photos_this_month": db.query(Photo).filter(Photo.uploaded_at >= month_start).count(),
        "total_file_size": int(db.query(func.coalesce(func.sum(Photo.file_size), 0)).scalar() or 0),
    }
