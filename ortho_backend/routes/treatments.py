"""
=============================================================================
TREATMENTS API ROUTES
=============================================================================

Treatment plans, their numbered phases, and clinical notes

ENDPOINTS:
    POST   /api/treatments/plans                      - Create plan
    GET    /api/treatments/plans/{id}                 - Plan with phases, recent activity, counts
    PUT    /api/treatments/plans/{id}                 - Update plan
    PATCH  /api/treatments/plans/{id}/status          - Change plan status
    GET    /api/treatments/plans/{id}/progress        - Progress summary
    GET    /api/treatments/plans/{id}/phases          - Phases of a plan
    DELETE /api/treatments/plans/{id}                 - Delete plan (cascades phases, notes)
    GET    /api/treatments/patients/{id}/plans        - Plans for a patient (paged)
    GET    /api/treatments/patients/{id}/notes        - Notes for a patient (paged)
    GET    /api/treatments/stats                      - Plan / phase / note counts

    POST   /api/treatments/phases                     - Create phase
    GET    /api/treatments/phases/{id}                - Phase with photos, notes, appointments
    PUT    /api/treatments/phases/{id}                - Update phase
    PATCH  /api/treatments/phases/{id}/status         - Change phase status / progress
    DELETE /api/treatments/phases/{id}                - Delete phase

    POST   /api/treatments/notes                      - Create clinical note
    GET    /api/treatments/notes/{id}                 - Get note
    PUT    /api/treatments/notes/{id}                 - Update note
    DELETE /api/treatments/notes/{id}                 - Delete note

=============================================================================
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..db import get_db
from ..models import User, PlanStatus, NoteType
from ..responses import ok, dump, dump_all
from ..schemas import (
    TreatmentPlanCreate, TreatmentPlanUpdate, TreatmentPlanResponse, PlanStatusUpdate,
    PhaseCreate, PhaseUpdate, PhaseStatusUpdate, PhaseResponse,
    ClinicalNoteCreate, ClinicalNoteUpdate, ClinicalNoteResponse,
    PatientResponse, AppointmentResponse, PaymentResponse, PhotoResponse
)
from ..services import treatment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/treatments", tags=["Treatments"])


# ==================== Treatment Plans ====================

@router.post("/plans", status_code=201)
async def create_plan(
    payload: TreatmentPlanCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    plan = treatment_service.create_plan(db, payload.model_dump(), created_by=user.id)
    return ok(dump(TreatmentPlanResponse, plan), "Treatment plan created successfully")


@router.get("/stats")
async def treatment_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(treatment_service.get_treatment_stats(db), "Treatment statistics retrieved successfully")


@router.get("/plans/{plan_id}")
async def get_plan(plan_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    details = treatment_service.get_plan_details(db, plan_id)
    return ok(
        {
            "plan": dump(TreatmentPlanResponse, details["plan"]),
            "patient": dump(PatientResponse, details["patient"]),
            "phases": dump_all(PhaseResponse, details["phases"]),
            "recent_appointments": dump_all(AppointmentResponse, details["recent_appointments"]),
            "recent_payments": dump_all(PaymentResponse, details["recent_payments"]),
            "counts": details["counts"],
        },
        "Treatment plan retrieved successfully",
    )


@router.put("/plans/{plan_id}")
async def update_plan(
    plan_id: int,
    payload: TreatmentPlanUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    plan = treatment_service.update_plan(db, plan_id, payload.model_dump(exclude_unset=True))
    return ok(dump(TreatmentPlanResponse, plan), "Treatment plan updated successfully")


@router.patch("/plans/{plan_id}/status")
async def update_plan_status(
    plan_id: int,
    payload: PlanStatusUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    plan = treatment_service.update_plan_status(db, plan_id, payload.status, payload.actual_end_date)
    return ok(dump(TreatmentPlanResponse, plan), "Treatment plan status updated successfully")


@router.get("/plans/{plan_id}/progress")
async def plan_progress(plan_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(treatment_service.get_plan_progress(db, plan_id), "Treatment progress retrieved successfully")


@router.get("/plans/{plan_id}/phases")
async def plan_phases(plan_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    phases = treatment_service.list_phases_for_plan(db, plan_id)
    return ok(dump_all(PhaseResponse, phases), "Treatment phases retrieved successfully")


@router.delete("/plans/{plan_id}")
async def delete_plan(plan_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    treatment_service.delete_plan(db, plan_id)
    return ok(None, "Treatment plan deleted successfully")


@router.get("/patients/{patient_id}/plans")
async def patient_plans(
    patient_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[PlanStatus] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    plans, pagination = treatment_service.list_plans_for_patient(db, patient_id, page, limit, status)
    return ok(
        {"treatment_plans": dump_all(TreatmentPlanResponse, plans), "pagination": pagination},
        "Treatment plans retrieved successfully",
    )


# ==================== Treatment Phases ====================

@router.post("/phases", status_code=201)
async def create_phase(payload: PhaseCreate, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    phase = treatment_service.create_phase(db, payload.model_dump())
    return ok(dump(PhaseResponse, phase), "Treatment phase created successfully")


@router.get("/phases/{phase_id}")
async def get_phase(phase_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    details = treatment_service.get_phase_details(db, phase_id)
    return ok(
        {
            "phase": dump(PhaseResponse, details["phase"]),
            "photos": dump_all(PhotoResponse, details["photos"]),
            "clinical_notes": dump_all(ClinicalNoteResponse, details["clinical_notes"]),
            "appointments": dump_all(AppointmentResponse, details["appointments"]),
        },
        "Treatment phase retrieved successfully",
    )


@router.put("/phases/{phase_id}")
async def update_phase(
    phase_id: int,
    payload: PhaseUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    phase = treatment_service.update_phase(db, phase_id, payload.model_dump(exclude_unset=True))
    return ok(dump(PhaseResponse, phase), "Treatment phase updated successfully")


@router.patch("/phases/{phase_id}/status")
async def update_phase_status(
    phase_id: int,
    payload: PhaseStatusUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    phase = treatment_service.update_phase_status(
        db, phase_id, payload.status, payload.progress, payload.actual_end_date
    )
    return ok(dump(PhaseResponse, phase), "Treatment phase status updated successfully")


@router.delete("/phases/{phase_id}")
async def delete_phase(phase_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    treatment_service.delete_phase(db, phase_id)
    return ok(None, "Treatment phase deleted successfully")


# ==================== Clinical Notes ====================

@router.post("/notes", status_code=201)
async def create_note(
    payload: ClinicalNoteCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    note = treatment_service.create_note(db, payload.model_dump(), created_by=user.id)
    return ok(dump(ClinicalNoteResponse, note), "Clinical note created successfully")


@router.get("/patients/{patient_id}/notes")
async def patient_notes(
    patient_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    note_type: Optional[NoteType] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notes, pagination = treatment_service.list_notes_for_patient(db, patient_id, page, limit, note_type)
    return ok(
        {"clinical_notes": dump_all(ClinicalNoteResponse, notes), "pagination": pagination},
        "Clinical notes retrieved successfully",
    )


@router.get("/notes/{note_id}")
async def get_note(note_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(dump(ClinicalNoteResponse, treatment_service.get_note(db, note_id)), "Clinical note retrieved successfully")


@router.put("/notes/{note_id}")
async def update_note(
    note_id: int,
    payload: ClinicalNoteUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    note = treatment_service.update_note(db, note_id, payload.model_dump(exclude_unset=True))
    return ok(dump(ClinicalNoteResponse, note), "Clinical note updated successfully")


@router.delete("/notes/{note_id}")
async def delete_note(note_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    treatment_service.delete_note(db, note_id)
    return ok(None, "Clinical note deleted successfully")
