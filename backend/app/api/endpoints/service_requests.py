"""
Service request endpoints

Beneficiaries file requests and may edit them only while they are still
``new``; staff review them and move them through the lifecycle.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_beneficiary, require_role
from app.core.logger import logger
from app.core.permissions import DOCUMENTS_SELF_CREATE, INTAKE_SELF_CREATE
from app.db.database import get_db
from app.db.models import CaseType, Document, RequestStatus, ServiceRequest, User, UserRole
from app.db.schemas import (
    DocumentCreate,
    DocumentResponse,
    ServiceRequestCreate,
    ServiceRequestResponse,
    ServiceRequestUpdate,
    StatusChange,
)
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.permission_service import ADMIN_ROLES, has_permission, is_beneficiary
from app.services.visibility_service import (
    can_access_service_request,
    can_edit_request,
    scope_service_requests,
)
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()

require_reviewer = require_role(*ADMIN_ROLES, UserRole.lawyer)


def case_type_label(db: Session, case_type_id) -> Optional[str]:
    if case_type_id is None:
        return None
    case_type = db.query(CaseType).filter(CaseType.id == case_type_id).first()
    if not case_type or not case_type.is_active:
        raise ValidationFailedError("case_type_id does not reference an active case type")
    return case_type.key or case_type.name_en or case_type.name_ar


def load_service_request(db: Session, request_id, user: User, request: Request) -> ServiceRequest:
    record = db.query(ServiceRequest).filter(ServiceRequest.id == request_id).first()
    if not record:
        raise NotFoundError("Service request", request_id)
    if not can_access_service_request(user, record):
        audit_service.log_denied(
            db, user, "service_request", record.id, reason="request outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this request")
    return record


def ensure_editable(db: Session, user: User, record, entity: str, request: Request) -> None:
    if not can_edit_request(user, record):
        audit_service.log_denied(
            db, user, entity, record.id,
            reason=f"edit denied in status {getattr(record.status, 'value', record.status)}",
            ip_address=client_ip(request),
        )
        raise ForbiddenError("This request can no longer be edited")


@router.post("", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
def create_service_request(
    body: ServiceRequestCreate,
    request: Request,
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    if not has_permission(current_user, INTAKE_SELF_CREATE):
        raise ForbiddenError(f"Missing permission: {INTAKE_SELF_CREATE}")

    record = ServiceRequest(
        **body.model_dump(),
        beneficiary_id=current_user.beneficiary_id,
        case_type=case_type_label(db, body.case_type_id),
        status=RequestStatus.new,
    )
    db.add(record)
    db.flush()
    audit_service.log(db, "create", "service_request", record.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(record)

    logger.info(f"Service request created: {record.id}")
    return record


@router.get("/my", response_model=List[ServiceRequestResponse])
def list_my_service_requests(
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    return (
        scope_service_requests(db.query(ServiceRequest), current_user)
        .order_by(ServiceRequest.created_at.desc())
        .all()
    )


@router.get("", response_model=List[ServiceRequestResponse])
def list_service_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = scope_service_requests(db.query(ServiceRequest), current_user)
    if status_filter:
        query = query.filter(ServiceRequest.status == status_filter)
    return (
        query.order_by(ServiceRequest.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )


@router.get("/{request_id}", response_model=ServiceRequestResponse)
def get_service_request(
    request_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return load_service_request(db, request_id, current_user, request)


@router.patch("/{request_id}", response_model=ServiceRequestResponse)
def update_service_request(
    request_id: UUID,
    body: ServiceRequestUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Owner edits, allowed only while the request is new"""
    record = load_service_request(db, request_id, current_user, request)
    ensure_editable(db, current_user, record, "service_request", request)

    changes = body.model_dump(exclude_unset=True)
    if "case_type_id" in changes:
        record.case_type = case_type_label(db, changes["case_type_id"])
    for field, value in changes.items():
        setattr(record, field, value)

    audit_service.log(
        db, "update", "service_request", record.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


@router.patch("/{request_id}/status", response_model=ServiceRequestResponse)
def change_service_request_status(
    request_id: UUID,
    body: StatusChange,
    request: Request,
    current_user: User = Depends(require_reviewer),
    db: Session = Depends(get_db)
):
    record = load_service_request(db, request_id, current_user, request)
    previous = record.status
    record.status = body.status

    if previous != record.status:
        notification_service.request_status_changed(db, record, "service_request", actor=current_user)
    audit_service.log(
        db, "status_change", "service_request", record.id, user=current_user,
        details=f"{previous.value}->{record.status.value}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record


@router.post("/{request_id}/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def add_service_request_document(
    request_id: UUID,
    body: DocumentCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Attachments follow the same edit lock as the request itself"""
    record = load_service_request(db, request_id, current_user, request)
    owner = is_beneficiary(current_user)
    if owner:
        if not has_permission(current_user, DOCUMENTS_SELF_CREATE):
            raise ForbiddenError(f"Missing permission: {DOCUMENTS_SELF_CREATE}")
        ensure_editable(db, current_user, record, "service_request", request)

    document = Document(
        **body.model_dump(exclude={"is_public", "session_id"}),
        request_id=record.id,
        beneficiary_id=record.beneficiary_id,
        uploaded_by=current_user.id,
        is_public=True if owner else bool(body.is_public),
    )
    db.add(document)
    db.flush()
    audit_service.log(
        db, "upload", "document", document.id, user=current_user,
        details=f"service_request={record.id}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(document)
    return document
