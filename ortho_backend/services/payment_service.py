"""
Orthodontic Practice Backend - Payment Service
Payments, installment plans, overdue tracking and revenue reporting
"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Any, List, Optional

from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from ..config import DEFAULT_CURRENCY
from ..errors import NotFoundError, BadRequestError
from ..models import Patient, Payment, TreatmentPlan, PaymentStatus, PaymentMethod
from .common import paginate, apply_updates
from .treatment_service import add_months

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


# ==================== CRUD ====================

def create_payment(db: Session, data: Dict[str, Any], created_by: Optional[int] = None) -> Payment:
    _check_links(db, data["patient_id"], data.get("treatment_plan_id"))

    data = dict(data)
    data["currency"] = (data.get("currency") or DEFAULT_CURRENCY).upper()
    if data.get("status") == PaymentStatus.PAID and not data.get("paid_date"):
        data["paid_date"] = datetime.now()

    payment = Payment(**data, created_by=created_by)
    db.add(payment)
    db.commit()
    db.refresh(payment)

    logger.info(f"💶 Payment {payment.id} recorded: {payment.amount:.2f} {payment.currency} ({payment.status.value})")
    return payment


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def update_payment(db: Session, payment_id: int, updates: Dict[str, Any]) -> Payment:
    payment = get_payment(db, payment_id)
    if updates.get("treatment_plan_id"):
        _check_links(db, payment.patient_id, updates["treatment_plan_id"])
    if updates.get("currency"):
        updates = dict(updates, currency=updates["currency"].upper())

    changed = apply_updates(payment, updates)
    db.commit()
    db.refresh(payment)
    if changed:
        logger.info(f"📝 Updated payment {payment.id}: {', '.join(changed)}")
    return payment


def update_payment_status(db: Session, payment_id: int, status: PaymentStatus,
                          paid_date: Optional[datetime] = None,
                          transaction_id: Optional[str] = None) -> Payment:
    """PAID without an explicit paid date is stamped with the current time"""
    payment = get_payment(db, payment_id)
    payment.status = status
    if paid_date:
        payment.paid_date = paid_date
    elif status == PaymentStatus.PAID and not payment.paid_date:
        payment.paid_date = datetime.now()
    if transaction_id:
        payment.transaction_id = transaction_id

    db.commit()
    db.refresh(payment)
    logger.info(f"🔄 Payment {payment.id} status -> {status.value}")
    return payment


def mark_as_paid(db: Session, payment_id: int, transaction_id: Optional[str] = None,
                 paid_date: Optional[datetime] = None) -> Payment:
    payment = get_payment(db, payment_id)
    payment.status = PaymentStatus.PAID
    payment.paid_date = paid_date or datetime.now()
    if transaction_id:
        payment.transaction_id = transaction_id

    db.commit()
    db.refresh(payment)
    logger.info(f"✅ Payment {payment.id} marked as paid")
    return payment


def delete_payment(db: Session, payment_id: int):
    payment = get_payment(db, payment_id)
    db.delete(payment)
    db.commit()
    logger.info(f"🗑️ Payment {payment_id} deleted")


# ==================== Listings ====================

def list_payments_for_patient(db: Session, patient_id: int, page: int = 1, limit: int = 20,
                              status: Optional[PaymentStatus] = None):
    if not db.get(Patient, patient_id):
        raise NotFoundError("Patient not found")
    q = db.query(Payment).filter(Payment.patient_id == patient_id)
    if status:
        q = q.filter(Payment.status == status)
    q = q.order_by(Payment.created_at.desc(), Payment.id.desc())
    return paginate(q, page, limit)


def summarize(payments: List[Payment]) -> Dict[str, Any]:
    def total(status=None):
        return round(sum(p.amount for p in payments if status is None or p.status == status), 2)

    def count(status):
        return sum(1 for p in payments if p.status == status)

    return {
        "total_amount": total(),
        "paid_amount": total(PaymentStatus.PAID),
        "pending_amount": total(PaymentStatus.PENDING),
        "overdue_amount": total(PaymentStatus.OVERDUE),
        "total_payments": len(payments),
        "paid_payments": count(PaymentStatus.PAID),
        "pending_payments": count(PaymentStatus.PENDING),
        "overdue_payments": count(PaymentStatus.OVERDUE),
    }


def list_payments_for_plan(db: Session, plan_id: int) -> Dict[str, Any]:
    if not db.get(TreatmentPlan, plan_id):
        raise NotFoundError("Treatment plan not found")
    payments = (
        db.query(Payment)
        .filter(Payment.treatment_plan_id == plan_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
    return {"payments": payments, "summary": summarize(payments)}


def get_overdue_payments(db: Session, today: Optional[date] = None) -> List[Payment]:
    """OVERDUE, or still PENDING past the due date"""
    today = today or date.today()
    return (
        db.query(Payment)
        .filter(or_(
            Payment.status == PaymentStatus.OVERDUE,
            and_(Payment.status == PaymentStatus.PENDING, Payment.due_date < today),
        ))
        .order_by(Payment.due_date.asc())
        .all()
    )


def get_upcoming_payments(db: Session, days: int = 7, today: Optional[date] = None) -> List[Payment]:
    today = today or date.today()
    return (
        db.query(Payment)
        .filter(
            Payment.status == PaymentStatus.PENDING,
            Payment.due_date >= today,
            Payment.due_date <= today + timedelta(days=days),
        )
        .order_by(Payment.due_date.asc())
        .all()
    )


# ==================== Statistics & Reports ====================

def get_payment_stats(db: Session) -> Dict[str, Any]:
    today = date.today()
    month_start = datetime(today.year, today.month, 1)

    counts = dict(db.query(Payment.status, func.count(Payment.id)).group_by(Payment.status).all())
    paid = db.query(Payment).filter(Payment.status == PaymentStatus.PAID)

    total_revenue = paid.with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
    monthly_revenue = (
        paid.filter(Payment.paid_date >= month_start)
        .with_entities(func.coalesce(func.sum(Payment.amount), 0))
        .scalar()
    )
    average = paid.with_entities(func.avg(Payment.amount)).scalar()

    return {
        "total_payments": sum(counts.values()),
        "payments_by_status": {status.value.lower(): counts.get(status, 0) for status in PaymentStatus},
        "revenue": {
            "total": round(float(total_revenue or 0), 2),
            "monthly": round(float(monthly_revenue or 0), 2),
            "average": round(float(average or 0), 2),
        },
    }


def get_payment_methods_stats(db: Session) -> List[Dict[str, Any]]:
    rows = (
        db.query(Payment.payment_method, func.count(Payment.id), func.sum(Payment.amount))
        .filter(Payment.status == PaymentStatus.PAID)
        .group_by(Payment.payment_method)
        .all()
    )
    return [
        {"payment_method": method.value, "count": count, "total_amount": round(float(amount or 0), 2)}
        for method, count, amount in sorted(rows, key=lambda r: r[0].value)
    ]


def generate_report(
    db: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    patient_id: Optional[int] = None,
    treatment_plan_id: Optional[int] = None,
    status: Optional[PaymentStatus] = None,
    generated_by: Optional[int] = None
) -> Dict[str, Any]:
    q = db.query(Payment)
    if start_date:
        q = q.filter(Payment.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        q = q.filter(Payment.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
    if patient_id:
        q = q.filter(Payment.patient_id == patient_id)
    if treatment_plan_id:
        q = q.filter(Payment.treatment_plan_id == treatment_plan_id)
    if status:
        q = q.filter(Payment.status == status)

    payments = q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    total = round(sum(p.amount for p in payments), 2)

    logger.info(f"📊 Payment report generated: {len(payments)} payments, total {total:.2f}")
    return {
        "period": {
            "start_date": start_date.isoformat() if start_date else "All time",
            "end_date": end_date.isoformat() if end_date else "All time",
        },
        "summary": {
            "total_payments": len(payments),
            "total_amount": total,
            "average_amount": round(total / len(payments), 2) if payments else 0,
        },
        "payments": payments,
        "generated_at": datetime.now().isoformat(),
        "generated_by": generated_by,
    }


# ==================== Installment Plans ====================

def create_payment_plan(
    db: Session,
    patient_id: int,
    treatment_plan_id: int,
    total_amount: float,
    number_of_payments: int,
    first_payment_date: date,
    payment_method: PaymentMethod = PaymentMethod.CASH,
    currency: str = DEFAULT_CURRENCY,
    created_by: Optional[int] = None
) -> List[Payment]:
    """
    Split a total into monthly PENDING installments.
    The last installment absorbs rounding so the parts sum to the total.
    """
    if number_of_payments < 1:
        raise BadRequestError("Number of payments must be at least 1")
    _check_links(db, patient_id, treatment_plan_id)

    installment = round(total_amount / number_of_payments, 2)
    payments = []
    for i in range(number_of_payments):
        amount = installment
        if i == number_of_payments - 1:
            amount = round(total_amount - installment * (number_of_payments - 1), 2)

        payment = Payment(
            patient_id=patient_id,
            treatment_plan_id=treatment_plan_id,
            amount=amount,
            currency=currency.upper(),
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            description=f"Payment {i + 1} of {number_of_payments} for treatment plan",
            due_date=add_months(first_payment_date, i),
            created_by=created_by,
        )
        db.add(payment)
        payments.append(payment)

    db.commit()
    for payment in payments:
        db.refresh(payment)

    logger.info(
        f"🧾 Payment plan created for treatment plan {treatment_plan_id}: "
        f"{number_of_payments} x {installment:.2f} {currency}"
    )
    return payments
