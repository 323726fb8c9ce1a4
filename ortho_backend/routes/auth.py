"""
=============================================================================
AUTH API ROUTES
=============================================================================

ENDPOINTS:
    POST   /api/auth/register          - Bootstrap: first account only, always ADMIN
    POST   /api/auth/login             - OAuth2 form or JSON -> bearer token
    GET    /api/auth/profile           - Current user
    PUT    /api/auth/profile           - Update own name / email
    POST   /api/auth/change-password   - Change own password
    GET    /api/auth/users             - List staff (admin)
    POST   /api/auth/users             - Create staff account (admin)
    PUT    /api/auth/users/{id}/role   - Change role (admin)
    DELETE /api/auth/users/{id}        - Deactivate account (admin)

=============================================================================
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..db import get_db
from ..errors import BadRequestError, ForbiddenError
from ..models import User, UserRole
from ..responses import ok, dump, dump_all
from ..schemas import (
    UserRegister, LoginRequest, ChangePasswordRequest, ProfileUpdate, RoleUpdate, UserResponse
)
from ..services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _session_payload(result: dict) -> dict:
    return {
        "user": dump(UserResponse, result["user"]),
        "access_token": result["access_token"],
        "token_type": result["token_type"],
    }


@router.post("/register", status_code=201)
async def register(payload: UserRegister, db: Session = Depends(get_db)):
    """Only allowed while no accounts exist; later accounts are created by an admin"""
    if auth_service.has_users(db):
        raise ForbiddenError("Registration is closed. Ask an administrator to create your account")

    # Bootstrap account is always ADMIN, whatever the payload asks for
    fields = payload.model_dump()
    fields["role"] = UserRole.ADMIN
    result = auth_service.register_user(db, **fields)
    return ok(_session_payload(result), "User registered successfully")


@router.post("/login")
async def login(request: Request, db: Session = Depends(get_db)):
    """Accepts the OAuth2 password form (username/password) or a JSON body"""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            raw = await request.json()
        except ValueError:
            raise BadRequestError("Request body is not valid JSON")
    else:
        form = await request.form()
        raw = {"email": form.get("username") or form.get("email"), "password": form.get("password")}

    try:
        credentials = LoginRequest.model_validate(raw)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    result = auth_service.authenticate(db, credentials.email, credentials.password)
    # Top-level access_token keeps the OAuth2 password flow usable from /docs
    return ok(
        _session_payload(result),
        "Login successful",
        access_token=result["access_token"],
        token_type=result["token_type"],
    )


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return ok(dump(UserResponse, user), "Profile retrieved successfully")


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = auth_service.update_profile(db, user, payload.model_dump(exclude_unset=True))
    return ok(dump(UserResponse, user), "Profile updated successfully")


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    auth_service.change_password(db, user, payload.current_password, payload.new_password)
    return ok(None, "Password changed successfully")


# ==================== Administration ====================

@router.get("/users")
async def list_users(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return ok(dump_all(UserResponse, auth_service.list_users(db)), "Users retrieved successfully")


@router.post("/users", status_code=201)
async def create_user(payload: UserRegister, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    result = auth_service.register_user(db, **payload.model_dump())
    logger.info(f"👤 Admin {admin.id} created user {result['user'].id}")
    return ok(dump(UserResponse, result["user"]), "User created successfully")


@router.put("/users/{user_id}/role")
async def update_role(
    user_id: int,
    payload: RoleUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = auth_service.update_role(db, user_id, payload.role)
    return ok(dump(UserResponse, user), "Role updated successfully")


@router.delete("/users/{user_id}")
async def deactivate_user(user_id: int, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = auth_service.deactivate_user(db, user_id, admin)
    return ok(dump(UserResponse, user), "User deactivated successfully")
