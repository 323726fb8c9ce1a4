"""
=============================================================================
MALOCCLUSION ASSESSMENT API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/assessments                  - Store assessment with computed severity
    POST   /api/assessments/score            - Compute score only
    GET    /api/assessments/patient/{id}     - Assessments for a patient, newest first
    GET    /api/assessments/{id}             - Get assessment

=============================================================================
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..db import get_db
from ..models import User
from ..responses import ok, dump, dump_all
from ..schemas import AssessmentCreate, AssessmentResponse, MalocclusionMeasurements
from ..services import malocclusion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assessments", tags=["Assessments"])


@router.post("", status_code=201)
async def create_assessment(
    payload: AssessmentCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    assessment = malocclusion.create_assessment(db, payload.model_dump(), assessed_by=user.id)
    return ok(dump(AssessmentResponse, assessment), "Assessment created successfully")


@router.post("/score")
async def score_measurements(payload: MalocclusionMeasurements, _: User = Depends(get_current_user)):
    return ok(malocclusion.score_measurements(payload.model_dump()), "Severity score calculated")


@router.get("/patient/{patient_id}")
async def patient_assessments(patient_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    assessments = malocclusion.list_assessments_for_patient(db, patient_id)
    return ok(dump_all(AssessmentResponse, assessments), "Assessments retrieved successfully")


@router.get("/{assessment_id}")
async def get_assessment(assessment_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(dump(AssessmentResponse, malocclusion.get_assessment(db, assessment_id)), "Assessment retrieved successfully")
