"""
=============================================================================
LEGACY BOOKING SYNC API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/sync/bookings               - Full sync pass
    POST   /api/sync/bookings/{booking_id}  - Sync one booking (id or number)
    GET    /api/sync/stats                  - Last sync, synced, pending, failed
    GET    /api/sync/conflicts              - Duplicates and unsynced bookings
    GET    /api/sync/recent                 - Recent confirmed legacy bookings
    GET    /api/sync/test-connection        - Legacy database reachability

=============================================================================
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_clinician
from ..db import get_db
from ..models import User
from ..responses import ok, dump
from ..schemas import PatientResponse, AppointmentResponse
from ..services import sync_service

logger = logging.getLogger("ortho.sync")

router = APIRouter(prefix="/api/sync", tags=["Legacy Sync"])


@router.post("/bookings")
async def sync_bookings(user: User = Depends(require_clinician), db: Session = Depends(get_db)):
    result = sync_service.sync_all_bookings(db, user.id)
    message = "Booking sync completed successfully" if result.success else "Booking sync completed with errors"
    return ok(result.model_dump(), message)


@router.post("/bookings/{booking_id}")
async def sync_booking(booking_id: str, user: User = Depends(require_clinician), db: Session = Depends(get_db)):
    result = sync_service.sync_specific_booking(db, booking_id, user.id)
    return ok(
        {
            "patient": dump(PatientResponse, result["patient"]),
            "patient_created": result["patient_created"],
            "appointment": dump(AppointmentResponse, result["appointment"]),
            "appointment_action": result["appointment_action"],
        },
        "Booking synced successfully",
    )


@router.get("/stats")
async def sync_stats(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(sync_service.get_sync_stats(db), "Sync statistics retrieved successfully")


@router.get("/conflicts")
async def sync_conflicts(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(sync_service.check_sync_conflicts(db), "Sync conflicts retrieved successfully")


@router.get("/recent")
async def recent_bookings(limit: int = Query(50, ge=1, le=500), _: User = Depends(get_current_user)):
    bookings = sync_service.get_recent_bookings(limit)
    return ok([b.model_dump() for b in bookings], "Recent bookings retrieved successfully")


@router.get("/test-connection")
async def test_connection(_: User = Depends(get_current_user)):
    result = sync_service.test_legacy_connection()
    return ok(result, result["message"])
