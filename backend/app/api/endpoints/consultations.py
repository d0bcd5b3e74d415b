"""
Consultation endpoints

Holders of ``manage_consultations`` book and edit consultations for any
beneficiary; other staff see the consultations they conduct.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import require_permission, require_staff
from app.core.logger import logger
from app.core.permissions import MANAGE_CONSULTATIONS
from app.db.database import get_db
from app.db.models import Beneficiary, Consultation, ConsultationStatus, User
from app.db.schemas import ConsultationCreate, ConsultationResponse, ConsultationUpdate
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.permission_service import is_staff
from app.services.visibility_service import can_access_consultation, scope_consultations
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip, generate_reference

router = APIRouter()

require_consultation_manager = require_permission(MANAGE_CONSULTATIONS)


def load_consultation(db: Session, consultation_id, user: User, request: Request) -> Consultation:
    record = db.query(Consultation).filter(Consultation.id == consultation_id).first()
    if not record:
        raise NotFoundError("Consultation", consultation_id)
    if not can_access_consultation(user, record):
        audit_service.log_denied(
            db, user, "consultation", record.id, reason="consultation outside scope",
            ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this consultation")
    return record


def _check_lawyer(db: Session, lawyer_id) -> None:
    lawyer = db.query(User).filter(User.id == lawyer_id).first()
    if not lawyer or not is_staff(lawyer) or not lawyer.is_active:
        raise ValidationFailedError("lawyer_id must reference an active staff member")


@router.get("", response_model=List[ConsultationResponse])
def list_consultations(
    status_filter: Optional[ConsultationStatus] = Query(None, alias="status"),
    beneficiary_id: Optional[UUID] = None,
    lawyer_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    query = scope_consultations(db.query(Consultation), current_user)
    if status_filter:
        query = query.filter(Consultation.status == status_filter)
    if beneficiary_id:
        query = query.filter(Consultation.beneficiary_id == beneficiary_id)
    if lawyer_id:
        query = query.filter(Consultation.lawyer_id == lawyer_id)
    return (
        query.order_by(Consultation.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )


@router.post("", response_model=ConsultationResponse, status_code=status.HTTP_201_CREATED)
def create_consultation(
    body: ConsultationCreate,
    request: Request,
    current_user: User = Depends(require_consultation_manager),
    db: Session = Depends(get_db)
):
    if not db.query(Beneficiary).filter(Beneficiary.id == body.beneficiary_id).first():
        raise ValidationFailedError("beneficiary_id does not reference a beneficiary")
    if body.lawyer_id is not None:
        _check_lawyer(db, body.lawyer_id)

    record = Consultation(
        **body.model_dump(exclude={"lawyer_id"}),
        lawyer_id=body.lawyer_id or current_user.id,
        consultation_number=generate_reference("CONS"),
    )
    db.add(record)
    db.flush()
    notification_service.consultation_assigned(db, record, actor=current_user)
    audit_service.log(db, "create", "consultation", record.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(record)

    logger.info(f"Consultation created: {record.consultation_number}")
    return record


@router.get("/{consultation_id}", response_model=ConsultationResponse)
def get_consultation(
    consultation_id: UUID,
    request: Request,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    return load_consultation(db, consultation_id, current_user, request)


@router.patch("/{consultation_id}", response_model=ConsultationResponse)
def update_consultation(
    consultation_id: UUID,
    body: ConsultationUpdate,
    request: Request,
    current_user: User = Depends(require_consultation_manager),
    db: Session = Depends(get_db)
):
    record = load_consultation(db, consultation_id, current_user, request)
    changes = body.model_dump(exclude_unset=True)

    reassigned = "lawyer_id" in changes and changes["lawyer_id"] != record.lawyer_id
    if reassigned and changes["lawyer_id"] is not None:
        _check_lawyer(db, changes["lawyer_id"])
    for field, value in changes.items():
        setattr(record, field, value)

    if reassigned:
        notification_service.consultation_assigned(db, record, actor=current_user)
    audit_service.log(
        db, "update", "consultation", record.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


@router.delete("/{consultation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_consultation(
    consultation_id: UUID,
    request: Request,
    current_user: User = Depends(require_consultation_manager),
    db: Session = Depends(get_db)
):
    record = load_consultation(db, consultation_id, current_user, request)
    db.delete(record)
    audit_service.log(db, "delete", "consultation", consultation_id, user=current_user, ip_address=client_ip(request))
    db.commit()
    logger.info(f"Consultation deleted: {consultation_id}")
