# app/api/deps.py

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from app.core.config import settings
from app.core.security import decode_access_token
from app.db.database import get_db
from app.db.models import User, UserRole
from app.services.permission_service import (
    ADMIN_ROLES,
    has_permission,
    has_role,
    is_beneficiary,
    is_staff,
)
from app.services.s3_service import s3_service
from app.utils.exceptions import ForbiddenError, UnauthorizedError

security = HTTPBearer(auto_error=False)

# ============================================================================
# Session / JWT Dependency
# ============================================================================

def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the authenticated user from the bearer token or the session cookie.
    """
    token = _extract_token(request, credentials)
    if not token:
        raise UnauthorizedError()

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid token")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise UnauthorizedError("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise ForbiddenError("User account is deactivated")

    return user


# ============================================================================
# Guards
# ============================================================================

def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not is_staff(current_user):
        raise ForbiddenError("Staff access required")
    return current_user


def require_beneficiary(current_user: User = Depends(get_current_user)) -> User:
    if not is_beneficiary(current_user) or current_user.beneficiary_id is None:
        raise ForbiddenError("Beneficiary access required")
    return current_user


def require_role(*roles):
    """Dependency factory: exact match against the user's role."""
    def _guard(current_user: User = Depends(get_current_user)) -> User:
        if not has_role(current_user, roles):
            raise ForbiddenError("Insufficient role")
        return current_user
    return _guard


def require_permission(permission: str):
    """Dependency factory: rule-based permission check."""
    def _guard(current_user: User = Depends(get_current_user)) -> User:
        if not has_permission(current_user, permission):
            raise ForbiddenError(f"Missing permission: {permission}")
        return current_user
    return _guard


require_admin = require_role(*ADMIN_ROLES)
require_lawyer = require_role(UserRole.lawyer)


def get_storage():
    return s3_service
