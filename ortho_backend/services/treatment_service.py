"""
Orthodontic Practice Backend - Treatment Service
Treatment plans, phases, clinical notes and progress tracking
"""
import calendar
import logging
from datetime import date
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError, ConflictError, BadRequestError
from ..models import (
    Patient, TreatmentPlan, TreatmentPhase, ClinicalNote, Appointment, Payment, Photo,
    PlanStatus, PhaseStatus, NoteType
)
from .common import paginate, apply_updates

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MONTHS = 12


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of the month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _require_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


# ==================== Treatment Plans ====================

def create_plan(db: Session, data: Dict[str, Any], created_by: Optional[int] = None) -> TreatmentPlan:
    _require_patient(db, data["patient_id"])

    plan = TreatmentPlan(**data, created_by=created_by, status=PlanStatus.PLANNING)
    db.add(plan)
    db.commit()
    db.refresh(plan)

    logger.info(f"🦷 Treatment plan {plan.id} created for patient {plan.patient_id}")
    return plan


def get_plan(db: Session, plan_id: int) -> TreatmentPlan:
    plan = db.get(TreatmentPlan, plan_id)
    if not plan:
        raise NotFoundError("Treatment plan not found")
    return plan


def get_plan_details(db: Session, plan_id: int) -> Dict[str, Any]:
    """Plan with ordered phases, five latest appointments and payments, and counts"""
    plan = get_plan(db, plan_id)

    recent_appointments = (
        db.query(Appointment)
        .filter(Appointment.treatment_plan_id == plan_id)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        .limit(5)
        .all()
    )
    recent_payments = (
        db.query(Payment)
        .filter(Payment.treatment_plan_id == plan_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(5)
        .all()
    )

    return {
        "plan": plan,
        "patient": plan.patient,
        "phases": list(plan.phases),
        "recent_appointments": recent_appointments,
        "recent_payments": recent_payments,
        "counts": {
            "phases": len(plan.phases),
            "appointments": db.query(Appointment).filter(Appointment.treatment_plan_id == plan_id).count(),
            "payments": db.query(Payment).filter(Payment.treatment_plan_id == plan_id).count(),
            "clinical_notes": db.query(ClinicalNote).filter(ClinicalNote.treatment_plan_id == plan_id).count(),
        },
    }


def update_plan(db: Session, plan_id: int, updates: Dict[str, Any]) -> TreatmentPlan:
    plan = get_plan(db, plan_id)
    changed = apply_updates(plan, updates)
    db.commit()
    db.refresh(plan)
    if changed:
        logger.info(f"📝 Updated treatment plan {plan.id}: {', '.join(changed)}")
    return plan


def update_plan_status(db: Session, plan_id: int, status: PlanStatus,
                       actual_end_date: Optional[date] = None) -> TreatmentPlan:
    plan = get_plan(db, plan_id)
    plan.status = status
    if actual_end_date:
        plan.actual_end_date = actual_end_date
    elif status == PlanStatus.COMPLETED and not plan.actual_end_date:
        plan.actual_end_date = date.today()
    if status == PlanStatus.ACTIVE and not plan.start_date:
        plan.start_date = date.today()

    db.commit()
    db.refresh(plan)
    logger.info(f"🔄 Treatment plan {plan.id} status -> {status.value}")
    return plan


def list_plans_for_patient(db: Session, patient_id: int, page: int = 1, limit: int = 10,
                           status: Optional[PlanStatus] = None):
    _require_patient(db, patient_id)
    q = db.query(TreatmentPlan).filter(TreatmentPlan.patient_id == patient_id)
    if status:
        q = q.filter(TreatmentPlan.status == status)
    q = q.order_by(TreatmentPlan.created_at.desc(), TreatmentPlan.id.desc())
    return paginate(q, page, limit)


def delete_plan(db: Session, plan_id: int):
    """Delete a plan with its phases and notes; appointments and payments are unlinked"""
    plan = get_plan(db, plan_id)
    db.delete(plan)
    db.commit()
    logger.info(f"🗑️ Treatment plan {plan_id} deleted")


def get_plan_progress(db: Session, plan_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    plan = get_plan(db, plan_id)
    today = today or date.today()
    phases = list(plan.phases)

    total = len(phases)
    completed = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    overall = round(completed / total * 100) if total else 0

    estimated_completion = None
    if plan.estimated_end_date:
        duration = plan.estimated_duration or DEFAULT_DURATION_MONTHS
        remaining = duration - duration * (overall / 100)
        if remaining > 0:
            estimated_completion = add_months(today, int(remaining))

    return {
        "treatment_plan_id": plan.id,
        "overall_progress": overall,
        "total_phases": total,
        "completed_phases": completed,
        "active_phases": sum(1 for p in phases if p.status == PhaseStatus.ACTIVE),
        "estimated_completion": estimated_completion,
        "phases": [
            {
                "id": p.id,
                "phase_number": p.phase_number,
                "title": p.title,
                "status": p.status.value,
                "progress": p.progress,
                "start_date": p.start_date,
                "estimated_end_date": p.estimated_end_date,
                "actual_end_date": p.actual_end_date,
            }
            for p in phases
        ],
        "status": plan.status.value,
        "start_date": plan.start_date,
        "estimated_end_date": plan.estimated_end_date,
        "actual_end_date": plan.actual_end_date,
    }


def get_treatment_stats(db: Session) -> Dict[str, Dict[str, int]]:
    plans = db.query(TreatmentPlan)
    phases = db.query(TreatmentPhase)
    return {
        "treatment_plans": {
            "total": plans.count(),
            "active": plans.filter(TreatmentPlan.status == PlanStatus.ACTIVE).count(),
            "completed": plans.filter(TreatmentPlan.status == PlanStatus.COMPLETED).count(),
            "planning": plans.filter(TreatmentPlan.status == PlanStatus.PLANNING).count(),
        },
        "phases": {
            "total": phases.count(),
            "active": phases.filter(TreatmentPhase.status == PhaseStatus.ACTIVE).count(),
            "completed": phases.filter(TreatmentPhase.status == PhaseStatus.COMPLETED).count(),
        },
        "clinical_notes": {
            "total": db.query(ClinicalNote).count(),
        },
    }


# ==================== Treatment Phases ====================

def _check_phase_number(db: Session, plan_id: int, phase_number: int, exclude_id: Optional[int] = None):
    q = db.query(TreatmentPhase).filter(
        TreatmentPhase.treatment_plan_id == plan_id,
        TreatmentPhase.phase_number == phase_number,
    )
    if exclude_id:
        q = q.filter(TreatmentPhase.id != exclude_id)
    if q.first():
        raise ConflictError(f"Phase {phase_number} already exists in this treatment plan")


def create_phase(db: Session, data: Dict[str, Any]) -> TreatmentPhase:
    plan = get_plan(db, data["treatment_plan_id"])
    if plan.patient_id != data["patient_id"]:
        raise BadRequestError("Phase patient does not match the treatment plan's patient")
    _check_phase_number(db, plan.id, data["phase_number"])

    phase = TreatmentPhase(**data, status=PhaseStatus.PLANNED, progress=0)
    db.add(phase)
    db.commit()
    db.refresh(phase)

    logger.info(f"🧩 Phase {phase.phase_number} (ID {phase.id}) added to plan {plan.id}")
    return phase


def get_phase(db: Session, phase_id: int) -> TreatmentPhase:
    phase = db.get(TreatmentPhase, phase_id)
    if not phase:
        raise NotFoundError("Treatment phase not found")
    return phase


def get_phase_details(db: Session, phase_id: int) -> Dict[str, Any]:
    phase = get_phase(db, phase_id)
    return {
        "phase": phase,
        "photos": (
            db.query(Photo).filter(Photo.phase_id == phase_id)
            .order_by(Photo.uploaded_at.desc()).all()
        ),
        "clinical_notes": (
            db.query(ClinicalNote).filter(ClinicalNote.phase_id == phase_id)
            .order_by(ClinicalNote.created_at.desc(), ClinicalNote.id.desc()).limit(5).all()
        ),
        "appointments": (
            db.query(Appointment).filter(Appointment.phase_id == phase_id)
            .order_by(Appointment.appointment_date.desc()).limit(5).all()
        ),
    }


def update_phase(db: Session, phase_id: int, updates: Dict[str, Any]) -> TreatmentPhase:
    phase = get_phase(db, phase_id)
    if updates.get("phase_number") is not None:
        _check_phase_number(db, phase.treatment_plan_id, updates["phase_number"], exclude_id=phase.id)

    changed = apply_updates(phase, updates)
    db.commit()
    db.refresh(phase)
    if changed:
        logger.info(f"📝 Updated phase {phase.id}: {', '.join(changed)}")
    return phase


def update_phase_status(db: Session, phase_id: int, status: PhaseStatus, progress: Optional[int] = None,
                        actual_end_date: Optional[date] = None) -> TreatmentPhase:
    phase = get_phase(db, phase_id)
    phase.status = status
    if progress is not None:
        phase.progress = progress

    if status == PhaseStatus.COMPLETED:
        phase.progress = 100
        phase.actual_end_date = actual_end_date or phase.actual_end_date or date.today()
    elif actual_end_date:
        phase.actual_end_date = actual_end_date
    if status == PhaseStatus.ACTIVE and not phase.start_date:
        phase.start_date = date.today()

    db.commit()
    db.refresh(phase)
    logger.info(f"🔄 Phase {phase.id} status -> {status.value} ({phase.progress}%)")
    return phase


def list_phases_for_plan(db: Session, plan_id: int) -> List[TreatmentPhase]:
    get_plan(db, plan_id)
    return (
        db.query(TreatmentPhase)
        .filter(TreatmentPhase.treatment_plan_id == plan_id)
        .order_by(TreatmentPhase.phase_number.asc())
        .all()
    )


def delete_phase(db: Session, phase_id: int):
    phase = get_phase(db, phase_id)
    db.delete(phase)
    db.commit()
    logger.info(f"🗑️ Phase {phase_id} deleted")


# ==================== Clinical Notes ====================

def create_note(db: Session, data: Dict[str, Any], created_by: Optional[int] = None) -> ClinicalNote:
    _require_patient(db, data["patient_id"])
    if data.get("treatment_plan_id"):
        plan = get_plan(db, data["treatment_plan_id"])
        if plan.patient_id != data["patient_id"]:
            raise BadRequestError("Treatment plan belongs to a different patient")
    if data.get("phase_id"):
        get_phase(db, data["phase_id"])

    note = ClinicalNote(**data, created_by=created_by)
    db.add(note)
    db.commit()
    db.refresh(note)

    logger.info(f"🗒️ Clinical note {note.id} ({note.note_type.value}) for patient {note.patient_id}")
    return note


def get_note(db: Session, note_id: int) -> ClinicalNote:
    note = db.get(ClinicalNote, note_id)
    if not note:
        raise NotFoundError("Clinical note not found")
    return note


def list_notes_for_patient(db: Session, patient_id: int, page: int = 1, limit: int = 20,
                           note_type: Optional[NoteType] = None):
    _require_patient(db, patient_id)
    q = db.query(ClinicalNote).filter(ClinicalNote.patient_id == patient_id)
    if note_type:
        q = q.filter(ClinicalNote.note_type == note_type)
    q = q.order_by(ClinicalNote.created_at.desc(), ClinicalNote.id.desc())
    return paginate(q, page, limit)


def update_note(db: Session, note_id: int, updates: Dict[str, Any]) -> ClinicalNote:
    note = get_note(db, note_id)
    apply_updates(note, updates)
    db.commit()
    db.refresh(note)
    logger.info(f"📝 Updated clinical note {note.id}")
    return note


def delete_note(db: Session, note_id: int):
    note = get_note(db, note_id)
    db.delete(note)
    db.commit()
    logger.info(f"🗑️ Clinical note {note_id} deleted")
