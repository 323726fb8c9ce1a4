"""
Orthodontic Practice Backend - Patient Service
Patient records, search, statistics, timeline and export
"""
import csv
import io
import logging
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Tuple

from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from ..errors import ConflictError, NotFoundError, BadRequestError
from ..models import (
    Patient, TreatmentPlan, Appointment, Payment, Photo, ClinicalNote,
    PlanStatus, AppointmentStatus, PhotoCategory
)
from .common import paginate, apply_updates

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "first_name": Patient.first_name,
    "last_name": Patient.last_name,
    "created_at": Patient.created_at,
    "updated_at": Patient.updated_at,
}

UPCOMING_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)

EXPORT_HEADERS = [
    "ID", "First Name", "Last Name", "Email", "Phone", "Date of Birth",
    "Gender", "City", "Created At", "Is Active",
]


# ==================== Helpers ====================

def calculate_age(date_of_birth: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years, using 365.25-day years"""
    if not date_of_birth:
        return None
    today = today or date.today()
    return int((today - date_of_birth).days // 365.25)


def _years_ago(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:  # Feb 29
        return today.replace(year=today.year - years, day=28)


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    if data.get("email"):
        data["email"] = data["email"].strip().lower()
    return data


def _check_duplicates(db: Session, email: Optional[str], phone: Optional[str], exclude_id: Optional[int] = None):
    """Raise ConflictError if another active patient shares the email or phone"""
    if email:
        query = db.query(Patient).filter(func.lower(Patient.email) == email.lower(), Patient.is_active.is_(True))
        if exclude_id:
            query = query.filter(Patient.id != exclude_id)
        if query.first():
            raise ConflictError("Patient with this email already exists")
    if phone:
        query = db.query(Patient).filter(Patient.phone == phone, Patient.is_active.is_(True))
        if exclude_id:
            query = query.filter(Patient.id != exclude_id)
        if query.first():
            raise ConflictError("Patient with this phone number already exists")


# ==================== CRUD ====================

def create_patient(db: Session, data: Dict[str, Any], created_by: Optional[int] = None) -> Patient:
    data = _normalize(dict(data))
    _check_duplicates(db, data.get("email"), data.get("phone"))

    patient = Patient(**data, created_by=created_by, is_active=True)
    db.add(patient)
    db.commit()
    db.refresh(patient)

    logger.info(f"🆕 Patient created. ID: {patient.id}")
    return patient


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


def get_patient_stats_for(db: Session, patient_id: int) -> Dict[str, Any]:
    """Counts plus last completed and next upcoming appointment dates"""
    today = date.today()

    last_appointment = (
        db.query(Appointment)
        .filter(Appointment.patient_id == patient_id, Appointment.status == AppointmentStatus.COMPLETED)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        .first()
    )
    next_appointment = (
        db.query(Appointment)
        .filter(
            Appointment.patient_id == patient_id,
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.appointment_date >= today,
        )
        .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
        .first()
    )

    return {
        "total_photos": db.query(Photo).filter(Photo.patient_id == patient_id).count(),
        "total_treatment_plans": db.query(TreatmentPlan).filter(TreatmentPlan.patient_id == patient_id).count(),
        "total_appointments": db.query(Appointment).filter(Appointment.patient_id == patient_id).count(),
        "total_payments": db.query(Payment).filter(Payment.patient_id == patient_id).count(),
        "last_appointment": last_appointment.appointment_date if last_appointment else None,
        "next_appointment": next_appointment.appointment_date if next_appointment else None,
        "next_appointment_time": next_appointment.appointment_time if next_appointment else None,
    }


def get_patient_with_stats(db: Session, patient_id: int) -> Dict[str, Any]:
    patient = get_patient(db, patient_id)
    return {"patient": patient, "stats": get_patient_stats_for(db, patient_id)}


def update_patient(db: Session, patient_id: int, updates: Dict[str, Any]) -> Patient:
    patient = get_patient(db, patient_id)
    updates = _normalize(dict(updates))
    _check_duplicates(db, updates.get("email"), updates.get("phone"), exclude_id=patient_id)

    changed = apply_updates(patient, updates)
    db.commit()
    db.refresh(patient)

    if changed:
        logger.info(f"📝 Updated patient {patient.id}: {', '.join(changed)}")
    return patient


def deactivate_patient(db: Session, patient_id: int) -> Patient:
    patient = get_patient(db, patient_id)
    patient.is_active = False
    db.commit()
    db.refresh(patient)
    logger.info(f"🗄️ Patient {patient.id} deactivated")
    return patient


def reactivate_patient(db: Session, patient_id: int) -> Patient:
    patient = get_patient(db, patient_id)
    patient.is_active = True
    db.commit()
    db.refresh(patient)
    logger.info(f"♻️ Patient {patient.id} reactivated")
    return patient


# ==================== Search ====================

def search_patients(
    db: Session,
    query: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "last_name",
    sort_order: str = "asc",
    is_active: Optional[bool] = True
) -> Tuple[List[Patient], Dict[str, int]]:
    """
    Case-insensitive match on first name, last name and email,
    substring match on phone.
    """
    q = db.query(Patient)
    if is_active is not None:
        q = q.filter(Patient.is_active.is_(is_active))

    if query:
        term = f"%{query.strip()}%"
        q = q.filter(or_(
            Patient.first_name.ilike(term),
            Patient.last_name.ilike(term),
            Patient.email.ilike(term),
            Patient.phone.like(term),
        ))

    column = SORT_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort by '{sort_by}'")
    order = column.desc() if sort_order == "desc" else column.asc()
    q = q.order_by(order, Patient.id.asc())

    return paginate(q, page, limit)


def advanced_search(db: Session, filters: Dict[str, Any], page: int = 1, limit: int = 20):
    """Structured filters: names, contact, city, gender, age range, creation range, treatment state"""
    today = date.today()
    q = db.query(Patient)

    if filters.get("is_active") is not None:
        q = q.filter(Patient.is_active.is_(filters["is_active"]))
    if filters.get("first_name"):
        q = q.filter(Patient.first_name.ilike(f"%{filters['first_name']}%"))
    if filters.get("last_name"):
        q = q.filter(Patient.last_name.ilike(f"%{filters['last_name']}%"))
    if filters.get("email"):
        q = q.filter(Patient.email.ilike(f"%{filters['email']}%"))
    if filters.get("phone"):
        q = q.filter(Patient.phone.like(f"%{filters['phone']}%"))
    if filters.get("city"):
        q = q.filter(Patient.city.ilike(f"%{filters['city']}%"))
    if filters.get("gender"):
        q = q.filter(Patient.gender == filters["gender"])

    if filters.get("age_min") is not None:
        q = q.filter(Patient.date_of_birth <= _years_ago(today, filters["age_min"]))
    if filters.get("age_max") is not None:
        q = q.filter(Patient.date_of_birth > _years_ago(today, filters["age_max"] + 1))

    if filters.get("created_after"):
        q = q.filter(Patient.created_at >= filters["created_after"])
    if filters.get("created_before"):
        q = q.filter(Patient.created_at <= filters["created_before"])

    if filters.get("has_active_treatment") is not None:
        active_plan = Patient.treatment_plans.any(TreatmentPlan.status == PlanStatus.ACTIVE)
        q = q.filter(active_plan if filters["has_active_treatment"] else ~active_plan)

    if filters.get("has_upcoming_appointments") is not None:
        upcoming = Patient.appointments.any(and_(
            Appointment.appointment_date >= today,
            Appointment.status.in_(UPCOMING_STATUSES),
        ))
        q = q.filter(upcoming if filters["has_upcoming_appointments"] else ~upcoming)

    q = q.order_by(Patient.last_name.asc(), Patient.first_name.asc(), Patient.id.asc())
    return paginate(q, page, limit)


# ==================== Statistics ====================

def get_patient_stats(db: Session) -> Dict[str, int]:
    today = date.today()
    month_start = datetime(today.year, today.month, 1)

    total = db.query(Patient).count()
    active = db.query(Patient).filter(Patient.is_active.is_(True)).count()

    return {
        "total_patients": total,
        "active_patients": active,
        "inactive_patients": total - active,
        "new_patients_this_month": db.query(Patient).filter(Patient.created_at >= month_start).count(),
        "patients_with_treatment_plans": db.query(Patient).filter(Patient.treatment_plans.any()).count(),
        "patients_with_appointments": db.query(Patient).filter(Patient.appointments.any()).count(),
    }


def get_recent_patients(db: Session, limit: int = 10) -> List[Patient]:
    return (
        db.query(Patient)
        .filter(Patient.is_active.is_(True))
        .order_by(Patient.created_at.desc(), Patient.id.desc())
        .limit(limit)
        .all()
    )


# ==================== Views ====================

def get_patient_summary(db: Session, patient_id: int) -> Dict[str, Any]:
    patient = get_patient(db, patient_id)
    stats = get_patient_stats_for(db, patient_id)
    has_active_treatment = any(p.status == PlanStatus.ACTIVE for p in patient.treatment_plans)

    return {
        "basic_info": {
            "id": patient.id,
            "name": patient.full_name,
            "email": patient.email,
            "phone": patient.phone,
            "age": calculate_age(patient.date_of_birth),
            "city": patient.city,
        },
        "stats": stats,
        "status": {
            "is_active": patient.is_active,
            "has_active_treatment": has_active_treatment,
            "created_at": patient.created_at,
            "updated_at": patient.updated_at,
        },
    }


def _as_naive(value) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.min


def get_patient_timeline(db: Session, patient_id: int, limit: int = 50) -> List[Dict[str, Any]]:
    """Appointments, photos, clinical notes and payments merged newest first"""
    patient = get_patient(db, patient_id)
    events = []

    for appt in patient.appointments:
        hours, minutes = (appt.appointment_time or "00:00").split(":")
        when = datetime(appt.appointment_date.year, appt.appointment_date.month, appt.appointment_date.day,
                        int(hours), int(minutes))
        events.append({
            "type": "appointment",
            "id": appt.id,
            "date": when,
            "title": f"{appt.appointment_type.value.replace('_', ' ').title()} appointment",
            "description": appt.reason_for_visit or appt.notes,
            "status": appt.status.value,
        })

    for photo in patient.photos:
        events.append({
            "type": "photo",
            "id": photo.id,
            "date": _as_naive(photo.uploaded_at),
            "title": f"{photo.category.value.title()} photo uploaded",
            "description": photo.description,
            "status": None,
        })

    for note in patient.clinical_notes:
        events.append({
            "type": "clinical_note",
            "id": note.id,
            "date": _as_naive(note.created_at),
            "title": note.title,
            "description": note.note_type.value,
            "status": None,
        })

    for payment in patient.payments:
        events.append({
            "type": "payment",
            "id": payment.id,
            "date": _as_naive(payment.paid_date or payment.created_at),
            "title": f"Payment of {payment.amount:.2f} {payment.currency}",
            "description": payment.description,
            "status": payment.status.value,
        })

    events.sort(key=lambda e: e["date"], reverse=True)
    return events[:limit]


def get_patient_documents(db: Session, patient_id: int) -> Dict[str, Any]:
    get_patient(db, patient_id)
    rows = (
        db.query(Photo.category, func.count(Photo.id))
        .filter(Photo.patient_id == patient_id)
        .group_by(Photo.category)
        .all()
    )
    by_category = {category.value: 0 for category in PhotoCategory}
    for category, count in rows:
        by_category[category.value] = count

    return {
        "photos": {"total": sum(by_category.values()), "by_category": by_category},
        "clinical_notes": db.query(ClinicalNote).filter(ClinicalNote.patient_id == patient_id).count(),
        "treatment_plans": db.query(TreatmentPlan).filter(TreatmentPlan.patient_id == patient_id).count(),
    }


# ==================== Bulk & Export ====================

def bulk_update_patients(db: Session, patient_ids: List[int], updates: Dict[str, Any]) -> Dict[str, Any]:
    results = {"successful": 0, "failed": 0, "errors": []}
    for patient_id in patient_ids:
        try:
            update_patient(db, patient_id, updates)
            results["successful"] += 1
        except (NotFoundError, ConflictError) as e:
            db.rollback()
            results["failed"] += 1
            results["errors"].append(f"{patient_id}: {e.message}")

    logger.info(f"📦 Bulk update: {results['successful']} ok, {results['failed']} failed")
    return results


def export_patients(db: Session, fmt: str = "json", include_inactive: bool = False):
    """Return list of dicts (json) or CSV text (csv)"""
    q = db.query(Patient)
    if not include_inactive:
        q = q.filter(Patient.is_active.is_(True))
    patients = q.order_by(Patient.last_name, Patient.first_name, Patient.id).all()

    if fmt == "json":
        return patients
    if fmt != "csv":
        raise BadRequestError("Export format must be 'json' or 'csv'")

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for p in patients:
        writer.writerow([
            p.id,
            p.first_name,
            p.last_name,
            p.email or "",
            p.phone or "",
            p.date_of_birth.isoformat() if p.date_of_birth else "",
            p.gender.value if p.gender else "",
            p.city or "",
            p.created_at.isoformat() if p.created_at else "",
            "Yes" if p.is_active else "No",
        ])

    logger.info(f"📤 Exported {len(patients)} patients as CSV")
    return buffer.getvalue()
