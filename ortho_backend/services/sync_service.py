"""
=============================================================================
LEGACY BOOKING SYNC
=============================================================================

One-way reconciliation from the legacy booking system (MySQL `bookings`
table) into practice Patients and Appointments.

FLOW (per confirmed, upcoming booking):
    1. Find patient by lowercased email, then by phone; otherwise create one
    2. Find appointment by legacy booking id or booking number
       - exists and date / time / status differ  -> update
       - exists and unchanged                    -> leave
       - missing                                 -> create
    3. Record last_booking_sync / total_synced_bookings settings

MAPPINGS:
    booking status   confirmed -> CONFIRMED, cancelled -> CANCELLED,
                     completed -> COMPLETED, anything else -> SCHEDULED
    service type     consultation -> CONSULTATION,
                     cleaning / filling / orthodontic -> TREATMENT,
                     emergency -> EMERGENCY, anything else -> CONSULTATION

=============================================================================
"""
import asyncio
import logging
import re
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import text, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import legacy_engine, get_db_context
from ..errors import NotFoundError, BadRequestError
from ..models import Patient, Appointment, Setting, User, AppointmentStatus, AppointmentType
from ..schemas import BookingRecord, SyncResult

logger = logging.getLogger("ortho.sync")

LEGACY_REFERRAL_SOURCE = "Legacy Booking System"
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

STATUS_MAP = {
    "confirmed": AppointmentStatus.CONFIRMED,
    "cancelled": AppointmentStatus.CANCELLED,
    "completed": AppointmentStatus.COMPLETED,
}

SERVICE_TYPE_MAP = {
    "consultation": AppointmentType.CONSULTATION,
    "cleaning": AppointmentType.TREATMENT,
    "filling": AppointmentType.TREATMENT,
    "orthodontic": AppointmentType.TREATMENT,
    "emergency": AppointmentType.EMERGENCY,
    "other": AppointmentType.CONSULTATION,
}

CONFIRMED_UPCOMING_SQL = """
    SELECT * FROM bookings
    WHERE status = 'confirmed'
    AND appointment_date >= :today
"""


# ==================== Mapping & Validation ====================

def map_booking_status(status: Optional[str]) -> AppointmentStatus:
    return STATUS_MAP.get((status or "").lower(), AppointmentStatus.SCHEDULED)


def map_service_type(service_type: Optional[str]) -> AppointmentType:
    return SERVICE_TYPE_MAP.get((service_type or "").lower(), AppointmentType.CONSULTATION)


def validate_booking(booking: BookingRecord) -> List[str]:
    """Problems that make a booking unsyncable (empty list = valid)"""
    problems = []
    for field in ("booking_number", "first_name", "last_name", "appointment_date", "appointment_time"):
        if not getattr(booking, field):
            problems.append(f"Missing {field}")
    if booking.appointment_time and not TIME_RE.match(booking.appointment_time):
        problems.append(f"Invalid appointment_time '{booking.appointment_time}'")
    return problems


def _to_booking(row) -> BookingRecord:
    return BookingRecord.model_validate(dict(row._mapping))


# ==================== Legacy Reads ====================

def fetch_confirmed_bookings(today: Optional[date] = None) -> List[Any]:
    """Raw rows for confirmed bookings from today on, in schedule order"""
    today = today or date.today()
    with legacy_engine.connect() as conn:
        result = conn.execute(
            text(CONFIRMED_UPCOMING_SQL + " ORDER BY appointment_date ASC, appointment_time ASC"),
            {"today": today.isoformat()},
        )
        return result.fetchall()


def get_booking(booking_id: str) -> Optional[BookingRecord]:
    """Look up a booking by numeric id or booking number"""
    numeric_id = int(booking_id) if str(booking_id).isdigit() else -1
    with legacy_engine.connect() as conn:
        row = conn.execute(
            text("SELECT * FROM bookings WHERE id = :id OR booking_number = :number"),
            {"id": numeric_id, "number": str(booking_id)},
        ).first()
    return _to_booking(row) if row else None


def get_recent_bookings(limit: int = 50, today: Optional[date] = None) -> List[BookingRecord]:
    today = today or date.today()
    with legacy_engine.connect() as conn:
        rows = conn.execute(
            text(CONFIRMED_UPCOMING_SQL + " ORDER BY created_at DESC LIMIT :limit"),
            {"today": today.isoformat(), "limit": limit},
        ).fetchall()
    return [_to_booking(row) for row in rows]


def test_legacy_connection() -> Dict[str, Any]:
    try:
        with legacy_engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM bookings")).scalar()
        return {"success": True, "message": f"Connected to legacy booking system ({count} bookings)"}
    except SQLAlchemyError as e:
        logger.error(f"❌ Legacy connection test failed: {e}")
        return {"success": False, "message": f"Connection failed: {e}"}


# ==================== Find-or-Create ====================

def find_or_create_patient(db: Session, booking: BookingRecord,
                           created_by: Optional[int] = None) -> Tuple[Patient, bool]:
    """Match on lowercased email, then phone; returns (patient, was_created)"""
    patient = None
    if booking.email:
        patient = db.query(Patient).filter(func.lower(Patient.email) == booking.email.strip().lower()).first()
    if not patient and booking.phone:
        patient = db.query(Patient).filter(Patient.phone == booking.phone.strip()).first()
    if patient:
        return patient, False

    patient = Patient(
        first_name=booking.first_name or "Unknown",
        last_name=booking.last_name or "Patient",
        email=booking.email.strip().lower() if booking.email else None,
        phone=booking.phone.strip() if booking.phone else None,
        referral_source=LEGACY_REFERRAL_SOURCE,
        is_active=True,
        created_by=created_by,
    )
    db.add(patient)
    db.flush()

    logger.info(f"🆕 Patient {patient.id} created from booking {booking.booking_number}")
    return patient, True


def find_or_create_appointment(db: Session, booking: BookingRecord, patient: Patient,
                               created_by: Optional[int] = None) -> Tuple[Appointment, str]:
    """Returns (appointment, action) where action is created / updated / unchanged"""
    status = map_booking_status(booking.status)
    appointment = (
        db.query(Appointment)
        .filter(or_(
            Appointment.legacy_booking_id == str(booking.id),
            Appointment.booking_number == booking.booking_number,
        ))
        .first()
    )

    if appointment:
        needs_update = (
            appointment.appointment_date != booking.appointment_date
            or appointment.appointment_time != booking.appointment_time
            or appointment.status != status
        )
        if not needs_update:
            return appointment, "unchanged"

        appointment.appointment_date = booking.appointment_date
        appointment.appointment_time = booking.appointment_time
        appointment.status = status
        appointment.notes = booking.notes
        db.flush()
        logger.info(f"📝 Appointment {appointment.id} updated from booking {booking.booking_number}")
        return appointment, "updated"

    appointment = Appointment(
        patient_id=patient.id,
        appointment_date=booking.appointment_date,
        appointment_time=booking.appointment_time,
        appointment_type=map_service_type(booking.service_type),
        status=status,
        notes=booking.notes,
        legacy_booking_id=str(booking.id),
        booking_number=booking.booking_number,
        created_by=created_by,
    )
    db.add(appointment)
    db.flush()
    logger.info(f"📅 Appointment {appointment.id} created from booking {booking.booking_number}")
    return appointment, "created"


def sync_booking(db: Session, booking: BookingRecord, created_by: Optional[int] = None):
    """Reconcile one booking; returns (patient, patient_created, appointment, action)"""
    problems = validate_booking(booking)
    if problems:
        raise BadRequestError(f"Invalid booking data: {'; '.join(problems)}")

    patient, patient_created = find_or_create_patient(db, booking, created_by)
    appointment, action = find_or_create_appointment(db, booking, patient, created_by)
    db.commit()
    return patient, patient_created, appointment, action


# ==================== Settings ====================

def upsert_setting(db: Session, key: str, value: Any, category: str = "sync"):
    setting = db.query(Setting).filter(Setting.key == key).first()
    if setting:
        setting.value = value
    else:
        db.add(Setting(key=key, value=value, category=category, is_public=False))


def get_setting(db: Session, key: str, default: Any = None) -> Any:
    setting = db.query(Setting).filter(Setting.key == key).first()
    return setting.value if setting else default


# ==================== Sync Passes ====================

def sync_all_bookings(db: Session, user_id: Optional[int] = None, today: Optional[date] = None) -> SyncResult:
    result = SyncResult()

    try:
        rows = fetch_confirmed_bookings(today)
    except SQLAlchemyError as e:
        logger.error(f"❌ Booking sync failed: {e}")
        result.success = False
        result.errors.append(f"Sync failed: {e}")
        return result

    result.total_bookings = len(rows)
    logger.info(f"🔄 Starting booking sync: {len(rows)} bookings (user {user_id})")

    for row in rows:
        booking_number = row._mapping.get("booking_number")
        try:
            booking = _to_booking(row)
            _, patient_created, _, action = sync_booking(db, booking, user_id)
        except Exception as e:
            # One bad row must not abort the pass
            db.rollback()
            message = e.message if isinstance(e, BadRequestError) else str(e)
            result.errors.append(f"Failed to sync booking {booking_number}: {message}")
            logger.error(f"❌ Booking {booking_number} failed to sync: {message}")
            continue

        if patient_created:
            result.new_patients += 1
        if action == "created":
            result.new_appointments += 1
        elif action == "updated":
            result.updated_appointments += 1

    result.success = not result.errors

    upsert_setting(db, "last_booking_sync", datetime.now().isoformat())
    upsert_setting(db, "total_synced_bookings", result.total_bookings - len(result.errors))
    upsert_setting(db, "last_sync_failed_bookings", len(result.errors))
    db.commit()

    logger.info(
        f"✅ Booking sync completed: {result.new_patients} new patients, "
        f"{result.new_appointments} new / {result.updated_appointments} updated appointments, "
        f"{len(result.errors)} errors"
    )
    return result


def sync_specific_booking(db: Session, booking_id: str, user_id: Optional[int] = None) -> Dict[str, Any]:
    """Sync a single booking by id or number; NotFound / BadRequest propagate"""
    try:
        booking = get_booking(booking_id)
    except ValidationError as e:
        raise BadRequestError(f"Invalid booking data: {e.errors()[0]['msg']}")
    if not booking:
        raise NotFoundError("Booking not found in legacy system")

    patient, patient_created, appointment, action = sync_booking(db, booking, user_id)
    logger.info(f"🔄 Booking {booking.booking_number} synced: patient {patient.id}, appointment {action}")
    return {
        "success": True,
        "patient": patient,
        "patient_created": patient_created,
        "appointment": appointment,
        "appointment_action": action,
    }


# ==================== Reporting ====================

def _legacy_booking_numbers(today: Optional[date] = None) -> List[str]:
    today = today or date.today()
    with legacy_engine.connect() as conn:
        rows = conn.execute(
            text("SELECT booking_number FROM bookings WHERE status = 'confirmed' AND appointment_date >= :today"),
            {"today": today.isoformat()},
        ).fetchall()
    return [row[0] for row in rows if row[0]]


def check_sync_conflicts(db: Session, today: Optional[date] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Patients sharing an email or phone, appointments sharing a slot, and unsynced bookings"""
    duplicate_patients = []
    for column, label in ((func.lower(Patient.email), "email"), (Patient.phone, "phone")):
        values = (
            db.query(column)
            .filter(column.isnot(None), Patient.is_active.is_(True))
            .group_by(column)
            .having(func.count(Patient.id) > 1)
            .all()
        )
        for (value,) in values:
            ids = [p.id for p in db.query(Patient.id).filter(column == value, Patient.is_active.is_(True))]
            duplicate_patients.append({"field": label, "value": value, "patient_ids": sorted(ids)})

    slots = (
        db.query(Appointment.patient_id, Appointment.appointment_date, Appointment.appointment_time)
        .filter(Appointment.status != AppointmentStatus.CANCELLED)
        .group_by(Appointment.patient_id, Appointment.appointment_date, Appointment.appointment_time)
        .having(func.count(Appointment.id) > 1)
        .all()
    )
    duplicate_appointments = []
    for patient_id, appt_date, appt_time in slots:
        ids = [a.id for a in db.query(Appointment.id).filter(
            Appointment.patient_id == patient_id,
            Appointment.appointment_date == appt_date,
            Appointment.appointment_time == appt_time,
            Appointment.status != AppointmentStatus.CANCELLED,
        )]
        duplicate_appointments.append({
            "patient_id": patient_id,
            "appointment_date": appt_date,
            "appointment_time": appt_time,
            "appointment_ids": sorted(ids),
        })

    legacy_numbers = _legacy_booking_numbers(today)
    existing = {
        number for (number,) in
        db.query(Appointment.booking_number).filter(Appointment.booking_number.in_(legacy_numbers)).all()
    } if legacy_numbers else set()

    return {
        "duplicate_patients": duplicate_patients,
        "duplicate_appointments": duplicate_appointments,
        "missing_appointments": [{"booking_number": n} for n in legacy_numbers if n not in existing],
    }


def get_sync_stats(db: Session, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    total_synced = (
        db.query(Appointment)
        .filter(or_(Appointment.legacy_booking_id.isnot(None), Appointment.booking_number.isnot(None)))
        .count()
    )

    with legacy_engine.connect() as conn:
        legacy_count = conn.execute(
            text("SELECT COUNT(*) FROM bookings WHERE status = 'confirmed' AND appointment_date >= :today"),
            {"today": today.isoformat()},
        ).scalar()

    return {
        "last_sync_at": get_setting(db, "last_booking_sync"),
        "total_synced": total_synced,
        "pending_sync": max(0, (legacy_count or 0) - total_synced),
        "failed_sync": get_setting(db, "last_sync_failed_bookings", 0),
    }


# ==================== Scheduler ====================

def run_scheduled_sync() -> SyncResult:
    """One sync pass in its own session, attributed to the configured system user"""
    from ..config import SYNC_SYSTEM_USER_EMAIL

    with get_db_context() as db:
        user_id = None
        if SYNC_SYSTEM_USER_EMAIL:
            user = db.query(User).filter(User.email == SYNC_SYSTEM_USER_EMAIL.lower()).first()
            user_id = user.id if user else None
        return sync_all_bookings(db, user_id)


async def periodic_sync(interval_minutes: int):
    """Run a sync pass every interval until cancelled"""
    logger.info(f"⏱️ Periodic booking sync every {interval_minutes} minutes")
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            result = await asyncio.to_thread(run_scheduled_sync)
            if not result.success:
                logger.warning(f"⚠️ Scheduled sync finished with {len(result.errors)} errors")
        except Exception as e:
            # Keep the loop alive; only cancellation stops it
            logger.error(f"❌ Scheduled sync failed: {e}", exc_info=True)
