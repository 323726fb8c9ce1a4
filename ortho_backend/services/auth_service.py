"""
Orthodontic Practice Backend - Staff Accounts & Login
"""
import logging
from datetime import datetime
from typing import Dict, Any, List

from sqlalchemy.orm import Session

from ..errors import ConflictError, UnauthorizedError, NotFoundError, BadRequestError
from ..models import User, UserRole
from ..security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


def _token_for(user: User) -> str:
    return create_access_token(str(user.id), {"email": user.email, "role": user.role.value})


def register_user(db: Session, email: str, password: str, first_name: str, last_name: str,
                  role: UserRole = UserRole.DOCTOR) -> Dict[str, Any]:
    """Create a staff account and return it with an access token"""
    email = email.lower()
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"🆕 User registered. ID: {user.id} ({user.role.value})")
    return {"user": user, "access_token": _token_for(user), "token_type": "bearer"}


def has_users(db: Session) -> bool:
    return db.query(User.id).first() is not None


def authenticate(db: Session, email: str, password: str) -> Dict[str, Any]:
    user = db.query(User).filter(User.email == email.lower()).first()
    if not user:
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("Account is disabled")
    if not verify_password(password, user.password_hash):
        logger.warning(f"⚠️ Failed login attempt for user {user.id}")
        raise UnauthorizedError("Invalid email or password")

    user.last_login = datetime.now()
    db.commit()
    db.refresh(user)

    logger.info(f"🔑 User {user.id} logged in")
    return {"user": user, "access_token": _token_for(user), "token_type": "bearer"}


def update_profile(db: Session, user: User, updates: Dict[str, Any]) -> User:
    if updates.get("email"):
        email = updates["email"].lower()
        clash = db.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("User with this email already exists")
        updates["email"] = email

    for key in ("first_name", "last_name", "email"):
        if updates.get(key) is not None:
            setattr(user, key, updates[key])
    db.commit()
    db.refresh(user)
    logger.info(f"📝 Profile updated for user {user.id}")
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str):
    if not verify_password(current_password, user.password_hash):
        raise BadRequestError("Current password is incorrect")
    if current_password == new_password:
        raise BadRequestError("New password must differ from the current password")

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"🔒 Password changed for user {user.id}")


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.last_name, User.first_name).all()


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_role(db: Session, user_id: int, role: UserRole) -> User:
    user = get_user(db, user_id)
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"👤 User {user.id} role set to {role.value}")
    return user


def deactivate_user(db: Session, user_id: int, acting_user: User) -> User:
    if user_id == acting_user.id:
        raise BadRequestError("You cannot deactivate your own account")
    user = get_user(db, user_id)
    user.is_active = False
    db.commit()
    db.refresh(user)
    logger.info(f"🚫 User {user.id} deactivated by {acting_user.id}")
    return user
