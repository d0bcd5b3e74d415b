"""
Staff account administration

Staff accounts are created here by an administrator; beneficiaries create
their own through /auth/register-beneficiary. Only a super admin may
create or promote another administrator.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.deps import require_admin, require_permission
from app.core.logger import logger
from app.core.permissions import MANAGE_USERS
from app.core.security import get_password_hash
from app.db.database import get_db
from app.db.models import User, UserRole, UserType
from app.db.schemas import StaffUserCreate, StaffUserUpdate, UserOut
from app.services.audit_service import audit_service
from app.services.permission_service import ADMIN_ROLES, enum_value, forget_user, has_role, is_staff
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()


def _ensure_may_grant(current_user: User, role) -> None:
    if enum_value(role) in ADMIN_ROLES and not has_role(current_user, UserRole.super_admin):
        raise ForbiddenError("Only a super admin can grant administrator roles")


@router.get("", response_model=List[UserOut])
def list_users(
    role: Optional[UserRole] = None,
    user_type: Optional[UserType] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_permission(MANAGE_USERS)),
    db: Session = Depends(get_db)
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if user_type:
        query = query.filter(User.user_type == user_type)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    return (
        query.order_by(User.full_name)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )


@router.get("/lawyers", response_model=List[UserOut])
def list_lawyers(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Active lawyers, for assignment pickers"""
    return (
        db.query(User)
        .filter(User.role == UserRole.lawyer, User.is_active == True)  # noqa: E712
        .order_by(User.full_name)
        .all()
    )


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_staff_user(
    body: StaffUserCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    _ensure_may_grant(current_user, body.role)

    email = body.email.strip().lower()
    existing = db.query(User).filter(
        or_(User.username == body.username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already registered")

    user = User(
        username=body.username,
        email=email,
        password_hash=get_password_hash(body.password),
        full_name=body.full_name,
        user_type=UserType.staff,
        role=body.role,
        is_active=body.is_active,
    )
    db.add(user)
    db.flush()
    audit_service.log(
        db, "create", "user", user.id, user=current_user,
        details=f"role={body.role.value}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(user)

    logger.info(f"Staff user created: {user.id} ({body.role.value})")
    return user


@router.patch("/{user_id}", response_model=UserOut)
def update_staff_user(
    user_id: UUID,
    body: StaffUserUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    if not is_staff(user):
        raise ValidationFailedError("Only staff accounts can be edited here")

    changes = body.model_dump(exclude_unset=True)
    if "role" in changes:
        _ensure_may_grant(current_user, changes["role"])
        # Demoting an administrator takes the same authority as promoting one
        _ensure_may_grant(current_user, user.role)
    if user.id == current_user.id and changes.get("is_active") is False:
        raise ValidationFailedError("You cannot deactivate your own account")

    for field, value in changes.items():
        setattr(user, field, value)
    audit_service.log(
        db, "update", "user", user.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(user)

    # Role drives implicit permissions
    forget_user(user.id)
    logger.info(f"Staff user updated: {user.id}")
    return user
