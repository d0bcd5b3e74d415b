from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.db import models, schemas
from app.db.models import UserRole, UserType, BeneficiaryStatus
from app.core.security import get_password_hash, verify_password, create_access_token
from app.core.config import settings
from app.core.logger import logger
from app.api.deps import get_current_user
from app.services.audit_service import audit_service
from app.services.permission_service import assign_rule, get_or_create_beneficiary_rule
from app.utils.exceptions import ConflictError, ForbiddenError, UnauthorizedError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/login", response_model=schemas.LoginResponse)
def login(form_data: schemas.UserLogin, response: Response, db: Session = Depends(get_db)):
    """Login with username or email. Sets the session cookie and returns the token."""
    identifier = form_data.username.strip()

    user = db.query(models.User).filter(
        or_(models.User.username == identifier, models.User.email == identifier.lower())
    ).first()

    if not user or not verify_password(form_data.password, user.password_hash):
        raise UnauthorizedError("Incorrect username or password")

    if not user.is_active:
        raise ForbiddenError("Account is inactive")

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    _set_session_cookie(response, access_token)
    logger.info(f"User logged in: {user.id}")

    return {"access_token": access_token, "token_type": "bearer", "user": user}


@router.post("/logout")
def logout(response: Response):
    """Clear the session cookie"""
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=schemas.UserOut)
def get_current_user_info(
    current_user: models.User = Depends(get_current_user)
):
    """Get current user profile"""
    return current_user


@router.post("/change-password")
def change_password(
    body: schemas.ChangePassword,
    request: Request,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_password(body.current_password, current_user.password_hash):
        raise ValidationFailedError("Current password is incorrect")

    current_user.password_hash = get_password_hash(body.new_password)
    audit_service.log(
        db, "change_password", "user", current_user.id, user=current_user, ip_address=client_ip(request)
    )
    db.commit()

    logger.info(f"Password changed for user {current_user.id}")
    return {"message": "Password updated successfully"}


@router.post("/register-beneficiary", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
def register_beneficiary(
    body: schemas.BeneficiaryRegister,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Self-registration: creates the Beneficiary record and its portal
    account, and assigns the default beneficiary rule.
    """
    email = body.email.strip().lower()

    existing_user = db.query(models.User).filter(
        or_(models.User.username == body.username, models.User.email == email)
    ).first()
    if existing_user:
        raise ConflictError("Username or email already registered")

    existing_beneficiary = db.query(models.Beneficiary).filter(
        models.Beneficiary.id_number == body.id_number
    ).first()
    if existing_beneficiary:
        raise ConflictError("ID number already registered")

    beneficiary = models.Beneficiary(
        full_name=body.full_name,
        id_number=body.id_number,
        phone=body.phone,
        email=email,
        city=body.city,
        preferred_language=body.preferred_language,
        status=BeneficiaryStatus.pending,
    )
    db.add(beneficiary)
    db.flush()

    user = models.User(
        username=body.username,
        email=email,
        password_hash=get_password_hash(body.password),
        full_name=body.full_name,
        user_type=UserType.beneficiary,
        role=UserRole.beneficiary,
        beneficiary_id=beneficiary.id,
        is_active=True,
    )
    db.add(user)
    db.flush()

    assign_rule(db, user, get_or_create_beneficiary_rule(db))
    audit_service.log(
        db, "register", "beneficiary", beneficiary.id, user=user, ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(user)

    logger.info(f"Beneficiary registered: {beneficiary.id}")
    return user
