"""
Judicial service endpoints
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.api.endpoints.service_requests import ensure_editable
from app.core.logger import logger
from app.core.permissions import INTAKE_SELF_CREATE, MANAGE_CASES
from app.db.database import get_db
from app.db.models import Beneficiary, Case, JudicialService, RequestStatus, User, UserRole
from app.db.schemas import (
    AssignLawyer,
    JudicialServiceCreate,
    JudicialServiceResponse,
    JudicialServiceUpdate,
    StatusChange,
)
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.permission_service import has_permission, has_role, is_admin, is_beneficiary, is_staff
from app.services.visibility_service import can_access_judicial_service, scope_judicial_services
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip, generate_reference

router = APIRouter()


def _load(db: Session, service_id, user: User, request: Request) -> JudicialService:
    record = db.query(JudicialService).filter(JudicialService.id == service_id).first()
    if not record:
        raise NotFoundError("Judicial service", service_id)
    if not can_access_judicial_service(user, record):
        audit_service.log_denied(
            db, user, "judicial_service", record.id, reason="judicial service outside scope",
            ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this judicial service")
    return record


@router.post("", response_model=JudicialServiceResponse, status_code=status.HTTP_201_CREATED)
def create_judicial_service(
    body: JudicialServiceCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Beneficiaries file for themselves; staff with manage_cases file on behalf of one."""
    if is_beneficiary(current_user):
        if not has_permission(current_user, INTAKE_SELF_CREATE):
            raise ForbiddenError(f"Missing permission: {INTAKE_SELF_CREATE}")
        beneficiary_id = current_user.beneficiary_id
    elif is_staff(current_user) and has_permission(current_user, MANAGE_CASES):
        beneficiary_id = body.beneficiary_id
        if beneficiary_id is None or not db.query(Beneficiary).filter(Beneficiary.id == beneficiary_id).first():
            raise ValidationFailedError("beneficiary_id does not reference a beneficiary")
    else:
        raise ForbiddenError(f"Missing permission: {MANAGE_CASES}")

    if body.case_id is not None:
        case = db.query(Case).filter(Case.id == body.case_id).first()
        if not case or case.beneficiary_id != beneficiary_id:
            raise ValidationFailedError("case_id does not belong to this beneficiary")

    record = JudicialService(
        **body.model_dump(exclude={"beneficiary_id"}),
        service_number=generate_reference("JS"),
        beneficiary_id=beneficiary_id,
        created_by_user_id=current_user.id,
        status=RequestStatus.new,
    )
    db.add(record)
    db.flush()
    audit_service.log(db, "create", "judicial_service", record.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(record)

    logger.info(f"Judicial service created: {record.service_number}")
    return record


@router.get("", response_model=List[JudicialServiceResponse])
def list_judicial_services(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = scope_judicial_services(db.query(JudicialService), current_user)
    if status_filter:
        query = query.filter(JudicialService.status == status_filter)
    return query.order_by(JudicialService.created_at.desc()).all()


@router.get("/{service_id}", response_model=JudicialServiceResponse)
def get_judicial_service(
    service_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _load(db, service_id, current_user, request)


@router.patch("/{service_id}", response_model=JudicialServiceResponse)
def update_judicial_service(
    service_id: UUID,
    body: JudicialServiceUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Admins, or the owning beneficiary while the record is new"""
    record = _load(db, service_id, current_user, request)
    if not is_admin(current_user):
        ensure_editable(db, current_user, record, "judicial_service", request)

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(record, field, value)

    audit_service.log(
        db, "update", "judicial_service", record.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


@router.post("/{service_id}/assign-lawyer", response_model=JudicialServiceResponse)
def assign_lawyer(
    service_id: UUID,
    body: AssignLawyer,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    record = _load(db, service_id, current_user, request)
    lawyer = db.query(User).filter(User.id == body.lawyer_id).first()
    if not lawyer or not has_role(lawyer, UserRole.lawyer) or not lawyer.is_active:
        raise ValidationFailedError("lawyer_id must reference an active lawyer")

    record.assigned_lawyer_id = lawyer.id
    notification_service.judicial_service_assigned(db, record, actor=current_user)
    audit_service.log(
        db, "assign", "judicial_service", record.id, user=current_user,
        details=f"lawyer={lawyer.id}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


@router.patch("/{service_id}/status", response_model=JudicialServiceResponse)
def change_judicial_service_status(
    service_id: UUID,
    body: StatusChange,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Admins, or the assigned lawyer"""
    record = _load(db, service_id, current_user, request)
    if not (is_admin(current_user) or (has_role(current_user, UserRole.lawyer) and record.assigned_lawyer_id == current_user.id)):
        raise ForbiddenError("Only admins or the assigned lawyer can change the status")

    previous = record.status
    record.status = body.status
    if record.status == RequestStatus.accepted and previous != RequestStatus.accepted:
        record.accepted_at = datetime.utcnow()
        record.accepted_by_user_id = current_user.id

    if previous != record.status:
        notification_service.request_status_changed(db, record, "judicial_service", actor=current_user)
    audit_service.log(
        db, "status_change", "judicial_service", record.id, user=current_user,
        details=f"{previous.value}->{record.status.value}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record
