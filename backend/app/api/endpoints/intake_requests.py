"""
Intake request endpoints

Staff holding ``manage_intake`` review intake submissions; beneficiaries
submit their own through the portal router and never see review notes.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import require_beneficiary, require_permission
from app.api.endpoints.service_requests import case_type_label
from app.core.logger import logger
from app.core.permissions import INTAKE_SELF_CREATE, MANAGE_INTAKE
from app.db.database import get_db
from app.db.models import Beneficiary, IntakeRequest, IntakeStatus, User
from app.db.schemas import (
    IntakeRequestCreate,
    IntakeRequestPublic,
    IntakeRequestResponse,
    IntakeRequestSubmit,
    IntakeRequestUpdate,
)
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.permission_service import has_permission
from app.services.visibility_service import can_access_intake_request, scope_intake_requests
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()
portal_router = APIRouter()

require_intake_staff = require_permission(MANAGE_INTAKE)


def _legacy_case_type(db: Session, body) -> Optional[str]:
    # An explicit legacy value wins; otherwise store the label of the chosen type
    label = case_type_label(db, body.case_type_id)
    return body.case_type or label


def load_intake_request(db: Session, intake_id, user: User, request: Request) -> IntakeRequest:
    record = db.query(IntakeRequest).filter(IntakeRequest.id == intake_id).first()
    if not record:
        raise NotFoundError("Intake request", intake_id)
    if not can_access_intake_request(user, record):
        audit_service.log_denied(
            db, user, "intake_request", record.id, reason="intake request outside scope",
            ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this intake request")
    return record


# ============================================================================
# Staff
# ============================================================================

@router.get("", response_model=List[IntakeRequestResponse])
def list_intake_requests(
    status_filter: Optional[IntakeStatus] = Query(None, alias="status"),
    beneficiary_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_intake_staff),
    db: Session = Depends(get_db)
):
    query = scope_intake_requests(db.query(IntakeRequest), current_user)
    if status_filter:
        query = query.filter(IntakeRequest.status == status_filter)
    if beneficiary_id:
        query = query.filter(IntakeRequest.beneficiary_id == beneficiary_id)
    return (
        query.order_by(IntakeRequest.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )


@router.post("", response_model=IntakeRequestResponse, status_code=status.HTTP_201_CREATED)
def create_intake_request(
    body: IntakeRequestCreate,
    request: Request,
    current_user: User = Depends(require_intake_staff),
    db: Session = Depends(get_db)
):
    """Record an intake taken by staff on the beneficiary's behalf"""
    if not db.query(Beneficiary).filter(Beneficiary.id == body.beneficiary_id).first():
        raise ValidationFailedError("beneficiary_id does not reference a beneficiary")

    record = IntakeRequest(
        beneficiary_id=body.beneficiary_id,
        case_type=_legacy_case_type(db, body),
        case_type_id=body.case_type_id,
        description=body.description,
        status=body.status,
        review_notes=body.review_notes,
    )
    if body.status != IntakeStatus.pending:
        record.reviewed_by = current_user.id
    db.add(record)
    db.flush()
    audit_service.log(db, "create", "intake_request", record.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(record)

    logger.info(f"Intake request created: {record.id}")
    return record


@router.get("/{intake_id}", response_model=IntakeRequestResponse)
def get_intake_request(
    intake_id: UUID,
    request: Request,
    current_user: User = Depends(require_intake_staff),
    db: Session = Depends(get_db)
):
    return load_intake_request(db, intake_id, current_user, request)


@router.patch("/{intake_id}", response_model=IntakeRequestResponse)
def update_intake_request(
    intake_id: UUID,
    body: IntakeRequestUpdate,
    request: Request,
    current_user: User = Depends(require_intake_staff),
    db: Session = Depends(get_db)
):
    """Review an intake; a status change records the reviewer and notifies the beneficiary"""
    record = load_intake_request(db, intake_id, current_user, request)
    previous = record.status

    changes = body.model_dump(exclude_unset=True)
    if "case_type_id" in changes:
        label = case_type_label(db, changes["case_type_id"])
        if label is not None:
            record.case_type = label
    for field, value in changes.items():
        setattr(record, field, value)

    if previous != record.status:
        record.reviewed_by = current_user.id
        notification_service.request_status_changed(db, record, "intake_request", actor=current_user)
    audit_service.log(
        db, "update", "intake_request", record.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


# ============================================================================
# Beneficiary portal
# ============================================================================

@portal_router.get("", response_model=List[IntakeRequestPublic])
def list_my_intake_requests(
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    return (
        scope_intake_requests(db.query(IntakeRequest), current_user)
        .order_by(IntakeRequest.created_at.desc())
        .all()
    )


@portal_router.post("", response_model=IntakeRequestPublic, status_code=status.HTTP_201_CREATED)
def submit_intake_request(
    body: IntakeRequestSubmit,
    request: Request,
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    if not has_permission(current_user, INTAKE_SELF_CREATE):
        raise ForbiddenError(f"Missing permission: {INTAKE_SELF_CREATE}")

    record = IntakeRequest(
        beneficiary_id=current_user.beneficiary_id,
        case_type=_legacy_case_type(db, body),
        case_type_id=body.case_type_id,
        description=body.description,
        status=IntakeStatus.pending,
    )
    db.add(record)
    db.flush()
    audit_service.log(db, "create", "intake_request", record.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(record)

    logger.info(f"Intake request submitted: {record.id}")
    return record
