"""
=============================================================================
APPOINTMENTS API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/appointments                   - Create appointment
    GET    /api/appointments/upcoming          - Scheduled / confirmed in the next N days
    GET    /api/appointments/patient/{id}      - Appointments for a patient (paged)
    GET    /api/appointments/{id}              - Get appointment
    PUT    /api/appointments/{id}              - Update appointment
    PATCH  /api/appointments/{id}/status       - Change status
    DELETE /api/appointments/{id}              - Delete appointment

=============================================================================
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..db import get_db
from ..models import User, AppointmentStatus
from ..responses import ok, dump, dump_all
from ..schemas import AppointmentCreate, AppointmentUpdate, AppointmentStatusUpdate, AppointmentResponse
from ..services import appointment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["Appointments"])


@router.post("", status_code=201)
async def create_appointment(
    payload: AppointmentCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    appointment = appointment_service.create_appointment(db, payload.model_dump(), created_by=user.id)
    return ok(dump(AppointmentResponse, appointment), "Appointment created successfully")


@router.get("/upcoming")
async def upcoming_appointments(
    days: int = Query(7, ge=1, le=365),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    appointments = appointment_service.get_upcoming_appointments(db, days)
    return ok(dump_all(AppointmentResponse, appointments), "Upcoming appointments retrieved successfully")


@router.get("/patient/{patient_id}")
async def patient_appointments(
    patient_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[AppointmentStatus] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    appointments, pagination = appointment_service.list_appointments_for_patient(db, patient_id, page, limit, status)
    return ok(
        {"appointments": dump_all(AppointmentResponse, appointments), "pagination": pagination},
        "Appointments retrieved successfully",
    )


@router.get("/{appointment_id}")
async def get_appointment(appointment_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    appointment = appointment_service.get_appointment(db, appointment_id)
    return ok(dump(AppointmentResponse, appointment), "Appointment retrieved successfully")


@router.put("/{appointment_id}")
async def update_appointment(
    appointment_id: int,
    payload: AppointmentUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    appointment = appointment_service.update_appointment(db, appointment_id, payload.model_dump(exclude_unset=True))
    return ok(dump(AppointmentResponse, appointment), "Appointment updated successfully")


@router.patch("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    appointment = appointment_service.update_appointment_status(
        db, appointment_id, payload.status, payload.treatment_performed
    )
    return ok(dump(AppointmentResponse, appointment), "Appointment status updated successfully")


@router.delete("/{appointment_id}")
async def delete_appointment(appointment_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    appointment_service.delete_appointment(db, appointment_id)
    return ok(None, "Appointment deleted successfully")
