"""
Orthodontic Practice Backend - FastAPI Main Application
"""
import asyncio
import time
import uuid
import logging
from datetime import datetime

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import __version__
from .config import API_HOST, API_PORT, DEBUG, ENVIRONMENT, CORS_ORIGINS, SYNC_INTERVAL_MINUTES
from .db import get_db, check_connection, check_legacy_connection, init_db
from .errors import register_exception_handlers
from .logging_config import configure_logging
from .models import Patient, TreatmentPlan, Appointment, Payment, Photo, PlanStatus
from .responses import ok
from .routes import appointments, assessments, auth, patients, payments, photos, sync, treatments
from .services import media_storage, sync_service

# ==================== Logging Setup ====================
configure_logging()
logger = logging.getLogger(__name__)

STARTED_AT = time.time()

# ==================== App Initialization ====================
app = FastAPI(
    title="Orthodontic Practice Backend",
    description="Patients, treatment plans, appointments, payments, clinical photos and legacy booking sync",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# ==================== Middleware ====================

# 1. Logging Middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with a short request id, status code and response time.
    """
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()

    logger.info(f"➡️ [{request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)

        process_time = (time.time() - start_time) * 1000
        logger.info(f"⬅️ [{request_id}] {response.status_code} - {process_time:.2f}ms")
        return response

    except Exception as e:
        process_time = (time.time() - start_time) * 1000
        logger.error(
            f"❌ [{request_id}] FAILED - {process_time:.2f}ms - Error: {str(e)}",
            exc_info=True
        )
        raise

# 2. CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Error Handlers
register_exception_handlers(app)

# ==================== Routers ====================
app.include_router(auth.router)
app.include_router(patients.router)
app.include_router(treatments.router)
app.include_router(appointments.router)
app.include_router(payments.router)
app.include_router(photos.router)
app.include_router(sync.router)
app.include_router(assessments.router)

# ==================== Startup & Shutdown ====================

_background_tasks = set()


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Starting Orthodontic Practice API...")

    if not check_connection():
        logger.critical("❌ Database connection failed! Application cannot start.")
        raise RuntimeError("Cannot connect to database")

    init_db()
    logger.info("✅ Database initialized successfully")

    media_storage.initialize()

    if not check_legacy_connection():
        logger.warning("⚠️ Legacy booking database unreachable. Sync endpoints will report errors.")

    if SYNC_INTERVAL_MINUTES > 0:
        task = asyncio.create_task(sync_service.periodic_sync(SYNC_INTERVAL_MINUTES))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    logger.info("✅ Orthodontic Practice API ready to accept connections")


@app.on_event("shutdown")
async def shutdown_event():
    for task in list(_background_tasks):
        task.cancel()
    logger.info("👋 Orthodontic Practice API stopped")

# ==================== System Endpoints ====================

@app.get("/api")
async def api_info():
    return ok(
        {
            "service": "Orthodontic Practice Backend",
            "version": __version__,
            "environment": ENVIRONMENT,
            "docs": "/docs",
            "endpoints": {
                "auth": "/api/auth",
                "patients": "/api/patients",
                "treatments": "/api/treatments",
                "appointments": "/api/appointments",
                "payments": "/api/payments",
                "photos": "/api/photos",
                "sync": "/api/sync",
                "assessments": "/api/assessments",
            },
        },
        "Orthodontic Practice API",
    )


@app.get("/api/health")
async def health_check():
    """Postgres, legacy MySQL and Cloudinary status; 503 when any is unhealthy"""
    services = {
        "database": {"status": "healthy" if check_connection() else "unhealthy"},
        "legacy_database": {"status": "healthy" if check_legacy_connection() else "unhealthy"},
        "cloudinary": media_storage.health(),
    }
    degraded = any(s["status"] == "unhealthy" for s in services.values())

    body = {
        "success": not degraded,
        "message": "Service degraded" if degraded else "Service healthy",
        "data": {
            "status": "degraded" if degraded else "healthy",
            "timestamp": datetime.now().isoformat(),
            "uptime_seconds": round(time.time() - STARTED_AT, 1),
            "services": services,
        },
    }
    return JSONResponse(status_code=503 if degraded else 200, content=body)


@app.get("/api/status")
async def system_status(db: Session = Depends(get_db)):
    return ok(
        {
            "version": __version__,
            "environment": ENVIRONMENT,
            "uptime_seconds": round(time.time() - STARTED_AT, 1),
            "cloudinary_configured": media_storage.is_configured(),
            "sync_interval_minutes": SYNC_INTERVAL_MINUTES,
            "last_booking_sync": sync_service.get_setting(db, "last_booking_sync"),
            "counts": {
                "patients": db.query(Patient).filter(Patient.is_active.is_(True)).count(),
                "active_treatment_plans": (
                    db.query(TreatmentPlan).filter(TreatmentPlan.status == PlanStatus.ACTIVE).count()
                ),
                "appointments": db.query(Appointment).count(),
                "payments": db.query(Payment).count(),
                "photos": db.query(Photo).count(),
            },
            "timestamp": datetime.now().isoformat(),
        },
        "System status retrieved successfully",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ortho_backend.main:app", host=API_HOST, port=API_PORT, reload=DEBUG)
