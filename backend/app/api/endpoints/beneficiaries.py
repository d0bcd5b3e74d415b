"""
Beneficiary management (staff) and the beneficiary's own profile
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.deps import require_beneficiary, require_permission
from app.core.logger import logger
from app.core.permissions import BENEFICIARY_SELF_READ, BENEFICIARY_SELF_UPDATE, MANAGE_BENEFICIARIES
from app.db.database import get_db
from app.db.models import Beneficiary, BeneficiaryStatus, User
from app.db.schemas import (
    BeneficiaryCreate,
    BeneficiaryResponse,
    BeneficiarySelfUpdate,
    BeneficiaryUpdate,
)
from app.services.audit_service import audit_service
from app.services.permission_service import has_permission
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.utils.helpers import client_ip

router = APIRouter()
portal_router = APIRouter()

SELF_EDITABLE_FIELDS = ("phone", "email", "city", "address", "preferred_language")
IDENTITY_FIELDS = ("full_name", "id_number")


def _get_beneficiary(db: Session, beneficiary_id) -> Beneficiary:
    beneficiary = db.query(Beneficiary).filter(Beneficiary.id == beneficiary_id).first()
    if not beneficiary:
        raise NotFoundError("Beneficiary", beneficiary_id)
    return beneficiary


# ============================================================================
# Staff endpoints
# ============================================================================

@router.get("", response_model=List[BeneficiaryResponse])
def list_beneficiaries(
    status_filter: Optional[BeneficiaryStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None, description="Search by name, ID number or phone"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_permission(MANAGE_BENEFICIARIES)),
    db: Session = Depends(get_db)
):
    query = db.query(Beneficiary)
    if status_filter:
        query = query.filter(Beneficiary.status == status_filter)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(
            Beneficiary.full_name.ilike(term),
            Beneficiary.id_number.ilike(term),
            Beneficiary.phone.ilike(term),
        ))
    return (
        query.order_by(Beneficiary.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )


@router.get("/{beneficiary_id}", response_model=BeneficiaryResponse)
def get_beneficiary(
    beneficiary_id: UUID,
    current_user: User = Depends(require_permission(MANAGE_BENEFICIARIES)),
    db: Session = Depends(get_db)
):
    return _get_beneficiary(db, beneficiary_id)


@router.post("", response_model=BeneficiaryResponse, status_code=status.HTTP_201_CREATED)
def create_beneficiary(
    body: BeneficiaryCreate,
    request: Request,
    current_user: User = Depends(require_permission(MANAGE_BENEFICIARIES)),
    db: Session = Depends(get_db)
):
    if db.query(Beneficiary).filter(Beneficiary.id_number == body.id_number).first():
        raise ConflictError("ID number already registered")

    beneficiary = Beneficiary(**body.model_dump())
    db.add(beneficiary)
    db.flush()
    audit_service.log(db, "create", "beneficiary", beneficiary.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(beneficiary)
    return beneficiary


@router.patch("/{beneficiary_id}", response_model=BeneficiaryResponse)
def update_beneficiary(
    beneficiary_id: UUID,
    body: BeneficiaryUpdate,
    request: Request,
    current_user: User = Depends(require_permission(MANAGE_BENEFICIARIES)),
    db: Session = Depends(get_db)
):
    beneficiary = _get_beneficiary(db, beneficiary_id)
    changes = body.model_dump(exclude_unset=True)

    new_id_number = changes.get("id_number")
    if new_id_number and new_id_number != beneficiary.id_number:
        clash = db.query(Beneficiary).filter(
            Beneficiary.id_number == new_id_number, Beneficiary.id != beneficiary.id
        ).first()
        if clash:
            raise ConflictError("ID number already registered")

    for field, value in changes.items():
        setattr(beneficiary, field, value)

    audit_service.log(
        db, "update", "beneficiary", beneficiary.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(beneficiary)
    return beneficiary


# ============================================================================
# Beneficiary portal (/beneficiary/me)
# ============================================================================

@portal_router.get("/me", response_model=BeneficiaryResponse)
def get_my_profile(
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    if not has_permission(current_user, BENEFICIARY_SELF_READ):
        raise ForbiddenError(f"Missing permission: {BENEFICIARY_SELF_READ}")
    return _get_beneficiary(db, current_user.beneficiary_id)


@portal_router.patch("/me", response_model=BeneficiaryResponse)
def update_my_profile(
    body: BeneficiarySelfUpdate,
    request: Request,
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    """
    Contact details only. Changing legal identity fields is rejected and audited.
    """
    if not has_permission(current_user, BENEFICIARY_SELF_UPDATE):
        raise ForbiddenError(f"Missing permission: {BENEFICIARY_SELF_UPDATE}")

    beneficiary = _get_beneficiary(db, current_user.beneficiary_id)
    changes = body.model_dump(exclude_unset=True)

    blocked = [
        f for f in IDENTITY_FIELDS
        if f in changes and changes[f] is not None and changes[f] != getattr(beneficiary, f)
    ]
    if blocked:
        audit_service.log_denied(
            db, current_user, "beneficiary", beneficiary.id,
            reason=f"attempted to change {', '.join(blocked)}",
            ip_address=client_ip(request),
        )
        raise ForbiddenError("Identity fields cannot be changed from the portal")

    for field in SELF_EDITABLE_FIELDS:
        if field in changes:
            setattr(beneficiary, field, changes[field])

    db.commit()
    db.refresh(beneficiary)
    logger.info(f"Beneficiary profile updated: {beneficiary.id}")
    return beneficiary
