"""
Orthodontic Practice Backend - Appointment Service
"""
import logging
from datetime import date, timedelta
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError, BadRequestError
from ..models import Patient, Appointment, TreatmentPlan, AppointmentStatus
from .common import paginate, apply_updates

logger = logging.getLogger(__name__)


def _check_links(db: Session, patient_id: int, plan_id: Optional[int]):
    if not db.get(Patient, patient_id):
        raise NotFoundError("Patient not found")
    if plan_id:
        plan = db.get(TreatmentPlan, plan_id)
        if not plan:
            raise NotFoundError("Treatment plan not found")
        if plan.patient_id != patient_id:
            raise BadRequestError("Treatment plan belongs to a different patient")


def create_appointment(db: Session, data: Dict[str, Any], created_by: Optional[int] = None) -> Appointment:
    _check_links(db, data["patient_id"], data.get("treatment_plan_id"))

    appointment = Appointment(**data, created_by=created_by)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logger.info(
        f"📅 Appointment {appointment.id} booked for patient {appointment.patient_id} "
        f"on {appointment.appointment_date} {appointment.appointment_time}"
    )
    return appointment


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")
    return appointment


def update_appointment(db: Session, appointment_id: int, updates: Dict[str, Any]) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if updates.get("treatment_plan_id"):
        _check_links(db, appointment.patient_id, updates["treatment_plan_id"])

    changed = apply_updates(appointment, updates)
    db.commit()
    db.refresh(appointment)
    if changed:
        logger.info(f"📝 Updated appointment {appointment.id}: {', '.join(changed)}")
    return appointment


def update_appointment_status(db: Session, appointment_id: int, status: AppointmentStatus,
                              treatment_performed: Optional[str] = None) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    appointment.status = status
    if treatment_performed:
        appointment.treatment_performed = treatment_performed
    db.commit()
    db.refresh(appointment)
    logger.info(f"🔄 Appointment {appointment.id} status -> {status.value}")
    return appointment


def list_appointments_for_patient(db: Session, patient_id: int, page: int = 1, limit: int = 20,
                                  status: Optional[AppointmentStatus] = None):
    if not db.get(Patient, patient_id):
        raise NotFoundError("Patient not found")
    q = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    if status:
        q = q.filter(Appointment.status == status)
    q = q.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
    return paginate(q, page, limit)


def get_upcoming_appointments(db: Session, days: int = 7, today: Optional[date] = None) -> List[Appointment]:
    """Scheduled or confirmed appointments from today through the next `days` days"""
    today = today or date.today()
    return (
        db.query(Appointment)
        .filter(
            Appointment.appointment_date >= today,
            Appointment.appointment_date <= today + timedelta(days=days),
            Appointment.status.in_((AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)),
        )
        .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
        .all()
    )


def delete_appointment(db: Session, appointment_id: int):
    appointment = get_appointment(db, appointment_id)
    db.delete(appointment)
    db.commit()
    logger.info(f"🗑️ Appointment {appointment_id} deleted")
