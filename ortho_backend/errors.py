"""
Orthodontic Practice Backend - Error Types & HTTP Error Handlers

Services raise AppError subclasses; the handlers registered here turn them
(and database / validation failures) into a uniform JSON error body:

    {"success": false, "message": "...", "timestamp": "...", "path": "...", "method": "..."}
"""
import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error carrying an HTTP status code"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class ServiceUnavailableError(AppError):
    status_code = 503


def error_body(request: Request, message: str, **extra) -> dict:
    body = {
        "success": False,
        "message": message,
        "timestamp": datetime.now().isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI):
    """Attach the application error handlers to a FastAPI app"""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} - {exc.message}")
        else:
            logger.warning(f"⚠️ {request.method} {request.url.path} - {exc.status_code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=error_body(request, exc.message))

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        issues = [
            {
                "field": ".".join(str(part) for part in err.get("loc", []) if part != "body"),
                "message": err.get("msg"),
            }
            for err in exc.errors()
        ]
        logger.warning(f"⚠️ Validation failed on {request.url.path}: {issues}")
        return JSONResponse(
            status_code=400,
            content=error_body(request, "Validation failed", issues=issues),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"⚠️ Integrity error on {request.url.path}: {exc.orig}")
        return JSONResponse(
            status_code=409,
            content=error_body(request, "A record with these unique fields already exists"),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"❌ Database error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=error_body(request, "Database operation failed"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"❌ Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content=error_body(request, "Internal server error"))
