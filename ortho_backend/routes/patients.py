"""
=============================================================================
PATIENTS API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/patients                       - Create patient
    GET    /api/patients                       - Search / list (paged)
    POST   /api/patients/search                - Advanced search
    GET    /api/patients/stats                 - Practice-wide patient counts
    GET    /api/patients/recent                - Newest active patients
    GET    /api/patients/export                - JSON or CSV export
    PUT    /api/patients/bulk                  - Bulk update
    POST   /api/patients/import-from-booking   - Import one legacy booking
    GET    /api/patients/{id}                  - Patient with stats
    PUT    /api/patients/{id}                  - Update patient
    DELETE /api/patients/{id}                  - Deactivate (soft delete)
    POST   /api/patients/{id}/reactivate       - Reactivate
    GET    /api/patients/{id}/summary          - Basic info, stats, status
    GET    /api/patients/{id}/timeline         - Merged clinical history
    GET    /api/patients/{id}/documents        - Photo counts by category

=============================================================================
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..db import get_db
from ..models import User, Gender
from ..responses import ok, dump, dump_all
from ..schemas import (
    PatientCreate, PatientUpdate, PatientResponse, PatientBulkUpdate, BookingImportRequest,
    AppointmentResponse
)
from ..services import patient_service, sync_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patients", tags=["Patients"])


def _patient_with_age(patient) -> dict:
    data = dump(PatientResponse, patient)
    data["age"] = patient_service.calculate_age(patient.date_of_birth)
    return data


@router.post("", status_code=201)
async def create_patient(
    payload: PatientCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    patient = patient_service.create_patient(db, payload.model_dump(), created_by=user.id)
    return ok(_patient_with_age(patient), "Patient created successfully")


@router.get("")
async def search_patients(
    query: Optional[str] = Query(None, description="Matches name, email or phone"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = Query("last_name", description="first_name, last_name, created_at, updated_at"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    is_active: Optional[bool] = Query(True),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    patients, pagination = patient_service.search_patients(
        db, query, page, limit, sort_by, sort_order, is_active
    )
    return ok(
        {"patients": [_patient_with_age(p) for p in patients], "pagination": pagination},
        "Patients retrieved successfully",
    )


@router.post("/search")
async def advanced_search(
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    city: Optional[str] = None,
    gender: Optional[Gender] = None,
    age_min: Optional[int] = Query(None, ge=0),
    age_max: Optional[int] = Query(None, ge=0),
    created_after: Optional[date] = None,
    created_before: Optional[date] = None,
    has_active_treatment: Optional[bool] = None,
    has_upcoming_appointments: Optional[bool] = None,
    is_active: Optional[bool] = True,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    filters = {
        "first_name": first_name,
        "last_name": last_name,
        "email": email,
        "phone": phone,
        "city": city,
        "gender": gender,
        "age_min": age_min,
        "age_max": age_max,
        "created_after": created_after,
        "created_before": created_before,
        "has_active_treatment": has_active_treatment,
        "has_upcoming_appointments": has_upcoming_appointments,
        "is_active": is_active,
    }
    patients, pagination = patient_service.advanced_search(db, filters, page, limit)
    return ok(
        {"patients": [_patient_with_age(p) for p in patients], "pagination": pagination},
        "Advanced search completed successfully",
    )


@router.get("/stats")
async def patient_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(patient_service.get_patient_stats(db), "Patient statistics retrieved successfully")


@router.get("/recent")
async def recent_patients(
    limit: int = Query(10, ge=1, le=50),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    patients = patient_service.get_recent_patients(db, limit)
    return ok([_patient_with_age(p) for p in patients], "Recent patients retrieved successfully")


@router.get("/export")
async def export_patients(
    format: str = Query("json", pattern="^(json|csv)$"),
    include_inactive: bool = False,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    exported = patient_service.export_patients(db, format, include_inactive)
    if format == "csv":
        filename = f"patients_export_{date.today().isoformat()}.csv"
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return ok(dump_all(PatientResponse, exported), "Patients exported successfully")


@router.put("/bulk")
async def bulk_update(
    payload: PatientBulkUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    results = patient_service.bulk_update_patients(
        db, payload.patient_ids, payload.updates.model_dump(exclude_unset=True)
    )
    return ok(results, f"Bulk update completed: {results['successful']} successful, {results['failed']} failed")


@router.post("/import-from-booking", status_code=201)
async def import_from_booking(
    payload: BookingImportRequest,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    result = sync_service.sync_specific_booking(db, payload.booking_id, user.id)
    return ok(
        {
            "patient": _patient_with_age(result["patient"]),
            "patient_created": result["patient_created"],
            "appointment": dump(AppointmentResponse, result["appointment"]),
            "appointment_action": result["appointment_action"],
        },
        "Booking imported successfully",
    )


# ==================== Single Patient ====================

@router.get("/{patient_id}")
async def get_patient(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = patient_service.get_patient_with_stats(db, patient_id)
    return ok(
        {"patient": _patient_with_age(result["patient"]), "stats": result["stats"]},
        "Patient retrieved successfully",
    )


@router.put("/{patient_id}")
async def update_patient(
    patient_id: int,
    payload: PatientUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    patient = patient_service.update_patient(db, patient_id, payload.model_dump(exclude_unset=True))
    return ok(_patient_with_age(patient), "Patient updated successfully")


@router.delete("/{patient_id}")
async def deactivate_patient(patient_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    patient = patient_service.deactivate_patient(db, patient_id)
    return ok(_patient_with_age(patient), "Patient deactivated successfully")


@router.post("/{patient_id}/reactivate")
async def reactivate_patient(patient_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    patient = patient_service.reactivate_patient(db, patient_id)
    return ok(_patient_with_age(patient), "Patient reactivated successfully")


@router.get("/{patient_id}/summary")
async def patient_summary(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(patient_service.get_patient_summary(db, patient_id), "Patient summary retrieved successfully")


@router.get("/{patient_id}/timeline")
async def patient_timeline(
    patient_id: int,
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ok(patient_service.get_patient_timeline(db, patient_id, limit), "Patient timeline retrieved successfully")


@router.get("/{patient_id}/documents")
async def patient_documents(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(patient_service.get_patient_documents(db, patient_id), "Patient documents retrieved successfully")
