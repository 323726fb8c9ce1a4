"""
=============================================================================
PAYMENTS API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/payments                       - Record payment
    POST   /api/payments/plan                  - Split a total into monthly installments
    GET    /api/payments/stats                 - Counts by status, revenue
    GET    /api/payments/methods-stats         - Paid totals per method
    GET    /api/payments/overdue               - Overdue or past-due pending
    GET    /api/payments/upcoming              - Pending due within N days
    GET    /api/payments/report                - Filtered report
    GET    /api/payments/patient/{id}          - Payments for a patient (paged)
    GET    /api/payments/treatment-plan/{id}   - Payments for a plan with summary
    GET    /api/payments/{id}                  - Get payment
    PUT    /api/payments/{id}                  - Update payment
    PATCH  /api/payments/{id}/status           - Change status
    POST   /api/payments/{id}/mark-paid        - Mark as paid
    GET    /api/payments/{id}/receipt          - Receipt PDF
    DELETE /api/payments/{id}                  - Delete payment

=============================================================================
"""
import logging
import os
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..config import RECEIPTS_DIR
from ..db import get_db
from ..models import User, PaymentStatus
from ..responses import ok, dump, dump_all
from ..schemas import (
    PaymentCreate, PaymentUpdate, PaymentStatusUpdate, MarkPaidRequest, PaymentPlanCreate, PaymentResponse
)
from ..services import payment_service, receipt_pdf

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post("", status_code=201)
async def create_payment(
    payload: PaymentCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    payment = payment_service.create_payment(db, payload.model_dump(), created_by=user.id)
    return ok(dump(PaymentResponse, payment), "Payment created successfully")


@router.post("/plan", status_code=201)
async def create_payment_plan(
    payload: PaymentPlanCreate,
    user: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    payments = payment_service.create_payment_plan(db, **payload.model_dump(), created_by=user.id)
    return ok(dump_all(PaymentResponse, payments), "Payment plan created successfully")


@router.get("/stats")
async def payment_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(payment_service.get_payment_stats(db), "Payment statistics retrieved successfully")


@router.get("/methods-stats")
async def payment_methods_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(payment_service.get_payment_methods_stats(db), "Payment methods statistics retrieved successfully")


@router.get("/overdue")
async def overdue_payments(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payments = payment_service.get_overdue_payments(db)
    return ok(dump_all(PaymentResponse, payments), "Overdue payments retrieved successfully")


@router.get("/upcoming")
async def upcoming_payments(
    days: int = Query(7, ge=1, le=365),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    payments = payment_service.get_upcoming_payments(db, days)
    return ok(dump_all(PaymentResponse, payments), "Upcoming payments retrieved successfully")


@router.get("/report")
async def payment_report(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    patient_id: Optional[int] = None,
    treatment_plan_id: Optional[int] = None,
    status: Optional[PaymentStatus] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    report = payment_service.generate_report(
        db, start_date, end_date, patient_id, treatment_plan_id, status, generated_by=user.id
    )
    report["payments"] = dump_all(PaymentResponse, report["payments"])
    return ok(report, "Payment report generated successfully")


@router.get("/patient/{patient_id}")
async def patient_payments(
    patient_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[PaymentStatus] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    payments, pagination = payment_service.list_payments_for_patient(db, patient_id, page, limit, status)
    return ok(
        {"payments": dump_all(PaymentResponse, payments), "pagination": pagination},
        "Payments retrieved successfully",
    )


@router.get("/treatment-plan/{plan_id}")
async def plan_payments(plan_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = payment_service.list_payments_for_plan(db, plan_id)
    return ok(
        {"payments": dump_all(PaymentResponse, result["payments"]), "summary": result["summary"]},
        "Treatment plan payments retrieved successfully",
    )


@router.get("/{payment_id}")
async def get_payment(payment_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(dump(PaymentResponse, payment_service.get_payment(db, payment_id)), "Payment retrieved successfully")


@router.put("/{payment_id}")
async def update_payment(
    payment_id: int,
    payload: PaymentUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    payment = payment_service.update_payment(db, payment_id, payload.model_dump(exclude_unset=True))
    return ok(dump(PaymentResponse, payment), "Payment updated successfully")


@router.patch("/{payment_id}/status")
async def update_payment_status(
    payment_id: int,
    payload: PaymentStatusUpdate,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    payment = payment_service.update_payment_status(
        db, payment_id, payload.status, payload.paid_date, payload.transaction_id
    )
    return ok(dump(PaymentResponse, payment), "Payment status updated successfully")


@router.post("/{payment_id}/mark-paid")
async def mark_paid(
    payment_id: int,
    payload: Optional[MarkPaidRequest] = None,
    _: User = Depends(require_clinician),
    db: Session = Depends(get_db)
):
    payload = payload or MarkPaidRequest()
    payment = payment_service.mark_as_paid(db, payment_id, payload.transaction_id, payload.paid_date)
    return ok(dump(PaymentResponse, payment), "Payment marked as paid successfully")


@router.get("/{payment_id}/receipt")
async def payment_receipt(payment_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)):
    filepath = receipt_pdf.issue_receipt(db, payment_id, RECEIPTS_DIR)
    return FileResponse(filepath, media_type="application/pdf", filename=os.path.basename(filepath))


@router.delete("/{payment_id}")
async def delete_payment(payment_id: int, _: User = Depends(require_clinician), db: Session = Depends(get_db)):
    payment_service.delete_payment(db, payment_id)
    return ok(None, "Payment deleted successfully")
