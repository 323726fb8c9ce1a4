"""
Malocclusion Assessment
Scores orthodontic measurements into a severity grade and stores assessments
"""
import logging
from typing import Dict, List, Any, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import Patient, MalocclusionAssessment

logger = logging.getLogger(__name__)


def _abs(value: Optional[float]) -> float:
    return abs(value) if value is not None else 0.0


def _crowding(m: Dict[str, Any]) -> float:
    return max(_abs(m.get("upper_space_analysis")), _abs(m.get("lower_space_analysis")))


def _midline(m: Dict[str, Any]) -> float:
    return max(_abs(m.get("upper_midline_deviation")), _abs(m.get("lower_midline_deviation")))


def _overbite_points(m: Dict[str, Any]) -> int:
    overbite = m.get("overbite")
    if overbite is None:
        return 0
    if overbite > 100 or overbite < 0:
        return 4
    if overbite > 50 or overbite < 10:
        return 2
    return 0


def _tiered(value: float, tiers) -> int:
    """First matching (threshold, points) where value > threshold"""
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


# Scoring rules - each contributes points from the measurements
SCORING_RULES = [
    {
        "id": "OVERJET",
        "name": "Overjet",
        "points": lambda m: _tiered(_abs(m.get("overjet")), [(9, 5), (6, 4), (4, 2)]),
    },
    {
        "id": "OVERBITE",
        "name": "Overbite",
        "points": _overbite_points,
    },
    {
        "id": "CROWDING",
        "name": "Crowding / spacing",
        "points": lambda m: _tiered(_crowding(m), [(7, 4), (4, 2), (1, 1)]),
    },
    {
        "id": "ANTERIOR_CROSSBITE",
        "name": "Anterior crossbite",
        "points": lambda m: 3 if m.get("anterior_crossbite") else 0,
    },
    {
        "id": "POSTERIOR_CROSSBITE",
        "name": "Posterior crossbite",
        "points": lambda m: 2 if (m.get("posterior_crossbite_right") or m.get("posterior_crossbite_left")) else 0,
    },
    {
        "id": "MIDLINE",
        "name": "Dental midline deviation",
        "points": lambda m: _tiered(_midline(m), [(3, 2), (1, 1)]),
    },
    {
        "id": "MISSING_TEETH",
        "name": "Congenitally missing teeth",
        "points": lambda m: len(m.get("congenitally_missing_teeth") or []),
    },
    {
        "id": "IMPACTED_TEETH",
        "name": "Impacted teeth",
        "points": lambda m: 2 * len(m.get("impacted_teeth") or []),
    },
]

SEVERE_THRESHOLD = 15
MODERATE_THRESHOLD = 8


def severity_for(score: int) -> str:
    if score >= SEVERE_THRESHOLD:
        return "severe"
    if score >= MODERATE_THRESHOLD:
        return "moderate"
    return "mild"


def score_measurements(measurements: Dict[str, Any]) -> Dict[str, Any]:
    """
    Evaluate every scoring rule.

    Returns:
        {"score": int, "severity": mild|moderate|severe, "breakdown": [{id, name, points}]}
    """
    breakdown = []
    for rule in SCORING_RULES:
        points = rule["points"](measurements)
        if points:
            breakdown.append({"id": rule["id"], "name": rule["name"], "points": points})

    score = sum(item["points"] for item in breakdown)
    return {"score": score, "severity": severity_for(score), "breakdown": breakdown}


# ==================== Assessments ====================

def create_assessment(db: Session, data: Dict[str, Any], assessed_by: Optional[int] = None) -> MalocclusionAssessment:
    if not db.get(Patient, data["patient_id"]):
        raise NotFoundError("Patient not found")

    result = score_measurements(data)
    assessment = MalocclusionAssessment(
        **data,
        severity_score=result["score"],
        severity=result["severity"],
        assessed_by=assessed_by,
    )
    db.add(assessment)
    db.commit()
    db.refresh(assessment)

    logger.info(
        f"🦷 Assessment {assessment.id} for patient {assessment.patient_id}: "
        f"score {assessment.severity_score} ({assessment.severity})"
    )
    return assessment


def get_assessment(db: Session, assessment_id: int) -> MalocclusionAssessment:
    assessment = db.get(MalocclusionAssessment, assessment_id)
    if not assessment:
        raise NotFoundError("Assessment not found")
    return assessment


def list_assessments_for_patient(db: Session, patient_id: int) -> List[MalocclusionAssessment]:
    if not db.get(Patient, patient_id):
        raise NotFoundError("Patient not found")
    return (
        db.query(MalocclusionAssessment)
        .filter(MalocclusionAssessment.patient_id == patient_id)
        .order_by(MalocclusionAssessment.assessment_date.desc(), MalocclusionAssessment.id.desc())
        .all()
    )
