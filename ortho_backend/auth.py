"""
Orthodontic Practice Backend - Authentication Dependencies
"""
import logging

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .db import get_db
from .errors import UnauthorizedError, ForbiddenError
from .models import User, UserRole
from .security import get_subject

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user"""
    if not token:
        raise UnauthorizedError("Access token required")

    subject = get_subject(token)
    if not subject or not subject.isdigit():
        raise UnauthorizedError("Invalid or expired token")

    user = db.get(User, int(subject))
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("Account is disabled")

    return user


def require_roles(*roles: UserRole):
    """Dependency factory: the current user must hold one of the given roles"""

    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.warning(f"🚫 User {user.id} ({user.role.value}) denied; requires {[r.value for r in roles]}")
            raise ForbiddenError("Insufficient permissions")
        return user

    return checker


# Clinical write access
require_clinician = require_roles(UserRole.DOCTOR, UserRole.ADMIN)
require_admin = require_roles(UserRole.ADMIN)
