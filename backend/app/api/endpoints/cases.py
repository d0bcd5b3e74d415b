"""
Case management endpoints
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_storage, require_admin, require_beneficiary, require_permission
from app.core.logger import logger
from app.core.permissions import CASES_SELF_READ, DOCUMENTS_SELF_CREATE, MANAGE_CASES
from app.db.database import get_db
from app.db.models import (
    Beneficiary,
    Case,
    CaseStatus,
    CaseType,
    CourtSession,
    Document,
    User,
    UserRole,
)
from app.db.schemas import (
    CaseCreate,
    CaseResponse,
    CaseStaffResponse,
    CaseUpdate,
    DocumentCreate,
    DocumentResponse,
    SessionResponse,
)
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.permission_service import has_permission, is_admin, is_beneficiary, is_staff
from app.services.visibility_service import (
    can_access_case,
    can_manage_case,
    filter_documents,
    filter_sessions,
    resolve_is_public,
    scope_cases,
)
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()

CLOSED_STATUSES = {CaseStatus.completed, CaseStatus.rejected, CaseStatus.closed_admin}


def serialize_case(user, case: Case):
    """Beneficiaries never see internal notes."""
    if is_staff(user):
        return CaseStaffResponse.model_validate(case)
    return CaseResponse.model_validate(case)


def load_accessible_case(db: Session, case_id, user: User, request: Request) -> Case:
    """404 when the case does not exist, 403 when it is outside the caller's scope."""
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFoundError("Case", case_id)
    if not can_access_case(user, case):
        audit_service.log_denied(
            db, user, "case", case.id, reason="case outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this case")
    if is_beneficiary(user) and not has_permission(user, CASES_SELF_READ):
        raise ForbiddenError(f"Missing permission: {CASES_SELF_READ}")
    return case


def _validate_lawyer(db: Session, lawyer_id) -> None:
    if lawyer_id is None:
        return
    lawyer = db.query(User).filter(User.id == lawyer_id).first()
    if not lawyer or not is_staff(lawyer) or lawyer.role != UserRole.lawyer or not lawyer.is_active:
        raise ValidationFailedError("assigned_lawyer_id must reference an active lawyer")


def _resolve_case_type(db: Session, case_type_id) -> Optional[CaseType]:
    if case_type_id is None:
        return None
    case_type = db.query(CaseType).filter(CaseType.id == case_type_id).first()
    if not case_type:
        raise ValidationFailedError("case_type_id does not reference a case type")
    return case_type


# ============================================================================
# List & Detail
# ============================================================================

@router.get("")
def list_cases(
    status_filter: Optional[CaseStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None, description="Search by case number or title"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cases visible to the caller"""
    if is_beneficiary(current_user) and not has_permission(current_user, CASES_SELF_READ):
        raise ForbiddenError(f"Missing permission: {CASES_SELF_READ}")

    query = scope_cases(db.query(Case), current_user)
    if status_filter:
        query = query.filter(Case.status == status_filter)
    if q:
        term = f"%{q.strip()}%"
        query = query.filter(or_(Case.case_number.ilike(term), Case.title.ilike(term)))

    cases = (
        query.order_by(Case.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return [serialize_case(current_user, c) for c in cases]


@router.get("/my", response_model=List[CaseResponse])
def list_my_cases(
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    """Cases owned by the calling beneficiary"""
    if not has_permission(current_user, CASES_SELF_READ):
        raise ForbiddenError(f"Missing permission: {CASES_SELF_READ}")
    return (
        scope_cases(db.query(Case), current_user)
        .order_by(Case.created_at.desc())
        .all()
    )


@router.get("/{case_id}")
def get_case(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = load_accessible_case(db, case_id, current_user, request)
    return serialize_case(current_user, case)


# ============================================================================
# Create / Update / Delete
# ============================================================================

@router.post("", response_model=CaseStaffResponse, status_code=status.HTTP_201_CREATED)
def create_case(
    body: CaseCreate,
    request: Request,
    current_user: User = Depends(require_permission(MANAGE_CASES)),
    db: Session = Depends(get_db)
):
    if not is_staff(current_user):
        raise ForbiddenError("Staff access required")

    if db.query(Case).filter(Case.case_number == body.case_number).first():
        raise ConflictError(f"Case number {body.case_number} already exists")

    if not db.query(Beneficiary).filter(Beneficiary.id == body.beneficiary_id).first():
        raise ValidationFailedError("beneficiary_id does not reference a beneficiary")
    _validate_lawyer(db, body.assigned_lawyer_id)
    case_type = _resolve_case_type(db, body.case_type_id)

    case = Case(**body.model_dump())
    if case_type is not None:
        case.case_type = case_type.key or case_type.name_en or case_type.name_ar
    db.add(case)
    db.flush()

    audit_service.log(db, "create", "case", case.id, user=current_user, ip_address=client_ip(request))
    if case.assigned_lawyer_id:
        notification_service.notify(
            db,
            case.assigned_lawyer_id,
            type="case_assigned",
            title="Case assigned",
            message=f"You were assigned to case {case.case_number}",
            url=f"/lawyer/cases/{case.id}",
            related_entity_id=case.id,
            actor=current_user,
        )
    db.commit()
    db.refresh(case)

    logger.info(f"Case created: {case.id}")
    return case


@router.patch("/{case_id}", response_model=CaseStaffResponse)
def update_case(
    case_id: UUID,
    body: CaseUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Admins and the assigned lawyer may update; only admins reassign."""
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFoundError("Case", case_id)
    if not can_manage_case(current_user, case):
        audit_service.log_denied(
            db, current_user, "case", case.id, reason="update outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have permission to update this case")

    changes = body.model_dump(exclude_unset=True)

    if "assigned_lawyer_id" in changes and changes["assigned_lawyer_id"] != case.assigned_lawyer_id:
        if not is_admin(current_user):
            raise ForbiddenError("Only admins can reassign a case")
        _validate_lawyer(db, changes["assigned_lawyer_id"])

    if "case_type_id" in changes:
        case_type = _resolve_case_type(db, changes["case_type_id"])
        case.case_type = (case_type.key or case_type.name_en or case_type.name_ar) if case_type else None

    previous_lawyer = case.assigned_lawyer_id
    for field, value in changes.items():
        setattr(case, field, value)

    if "status" in changes:
        case.closed_at = datetime.utcnow() if case.status in CLOSED_STATUSES else None

    if case.assigned_lawyer_id and case.assigned_lawyer_id != previous_lawyer:
        notification_service.notify(
            db,
            case.assigned_lawyer_id,
            type="case_assigned",
            title="Case assigned",
            message=f"You were assigned to case {case.case_number}",
            url=f"/lawyer/cases/{case.id}",
            related_entity_id=case.id,
            actor=current_user,
        )

    audit_service.log(
        db, "update", "case", case.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(case)
    return case


@router.delete("/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage=Depends(get_storage)
):
    """Deletes the case with its documents and sessions, then the stored files"""
    case = db.query(Case).filter(Case.id == case_id).first()
    if not case:
        raise NotFoundError("Case", case_id)

    storage_keys = [document.storage_key for document in case.documents]
    db.delete(case)
    audit_service.log(db, "delete", "case", case_id, user=current_user, ip_address=client_ip(request))
    db.commit()
    logger.info(f"Case deleted: {case_id}")

    for key in storage_keys:
        try:
            storage.delete_object(key)
        except ClientError:
            # Rows are already committed; the object stays orphaned
            logger.warning(f"Stored file left behind for deleted case {case_id}: {key}")


# ============================================================================
# Documents & Sessions
# ============================================================================

@router.get("/{case_id}/documents", response_model=List[DocumentResponse])
def list_case_documents(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All documents for staff; public documents only for the owning beneficiary"""
    case = load_accessible_case(db, case_id, current_user, request)
    documents = (
        db.query(Document)
        .filter(Document.case_id == case.id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return filter_documents(current_user, case, documents)


@router.post("/{case_id}/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def add_case_document(
    case_id: UUID,
    body: DocumentCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Attach uploaded file metadata to a case. A beneficiary uploading to
    their own case always produces a public document.
    """
    case = load_accessible_case(db, case_id, current_user, request)
    if is_beneficiary(current_user) and not has_permission(current_user, DOCUMENTS_SELF_CREATE):
        raise ForbiddenError(f"Missing permission: {DOCUMENTS_SELF_CREATE}")

    if body.session_id is not None:
        session = db.query(CourtSession).filter(CourtSession.id == body.session_id).first()
        if not session or session.case_id != case.id:
            raise ValidationFailedError("session_id does not belong to this case")

    data = body.model_dump(exclude={"is_public"})
    document = Document(
        **data,
        case_id=case.id,
        beneficiary_id=case.beneficiary_id,
        uploaded_by=current_user.id,
        is_public=resolve_is_public(current_user, case, body.is_public),
    )
    db.add(document)
    db.flush()

    audit_service.log(
        db, "upload", "document", document.id, user=current_user,
        details=f"case={case.id} is_public={document.is_public}", ip_address=client_ip(request)
    )
    notification_service.document_uploaded(db, case, document, actor=current_user)
    db.commit()
    db.refresh(document)
    return document


@router.get("/{case_id}/sessions", response_model=List[SessionResponse])
def list_case_sessions(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = load_accessible_case(db, case_id, current_user, request)
    sessions = (
        db.query(CourtSession)
        .filter(CourtSession.case_id == case.id)
        .order_by(CourtSession.gregorian_date)
        .all()
    )
    return filter_sessions(current_user, case, sessions)
