"""
Lawyer portal: everything is scoped to work assigned to the caller
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from uuid import UUID
from sqlalchemy.orm import Session

from app.api.deps import require_lawyer
from app.api.endpoints.cases import load_accessible_case
from app.db.database import get_db
from app.db.models import (
    Case,
    CaseStatus,
    Consultation,
    CourtSession,
    Document,
    JudicialService,
    Notification,
    RequestStatus,
    SessionStatus,
    User,
)
from app.db.schemas import (
    CaseStaffResponse,
    ConsultationLawyerUpdate,
    ConsultationResponse,
    DocumentResponse,
    JudicialServiceResponse,
    LawyerDashboard,
    SessionResponse,
)
from app.services.audit_service import audit_service
from app.services.visibility_service import (
    filter_documents,
    scope_cases,
    scope_judicial_services,
    scope_notifications,
    scope_sessions,
)
from app.utils.exceptions import ForbiddenError, NotFoundError
from app.utils.helpers import client_ip

router = APIRouter()

INACTIVE_CASE_STATUSES = (CaseStatus.completed, CaseStatus.rejected, CaseStatus.closed_admin)


@router.get("/dashboard", response_model=LawyerDashboard)
def dashboard(
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    cases = scope_cases(db.query(Case), current_user)
    now = datetime.utcnow()
    return {
        "assigned_cases": cases.count(),
        "active_cases": cases.filter(Case.status.notin_(INACTIVE_CASE_STATUSES)).count(),
        "upcoming_sessions": (
            scope_sessions(db.query(CourtSession), current_user)
            .filter(CourtSession.status == SessionStatus.upcoming, CourtSession.gregorian_date >= now)
            .count()
        ),
        "open_judicial_services": (
            scope_judicial_services(db.query(JudicialService), current_user)
            .filter(JudicialService.status.in_((RequestStatus.new, RequestStatus.in_review)))
            .count()
        ),
        "unread_notifications": (
            scope_notifications(db.query(Notification), current_user)
            .filter(Notification.is_read == False)  # noqa: E712
            .count()
        ),
    }


@router.get("/cases", response_model=List[CaseStaffResponse])
def my_cases(
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    return scope_cases(db.query(Case), current_user).order_by(Case.updated_at.desc()).all()


@router.get("/cases/{case_id}", response_model=CaseStaffResponse)
def my_case(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    return load_accessible_case(db, case_id, current_user, request)


@router.get("/cases/{case_id}/documents", response_model=List[DocumentResponse])
def my_case_documents(
    case_id: UUID,
    request: Request,
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    case = load_accessible_case(db, case_id, current_user, request)
    documents = (
        db.query(Document)
        .filter(Document.case_id == case.id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return filter_documents(current_user, case, documents)


@router.get("/sessions", response_model=List[SessionResponse])
def my_sessions(
    upcoming_only: bool = Query(False),
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    query = scope_sessions(db.query(CourtSession), current_user)
    if upcoming_only:
        query = query.filter(CourtSession.gregorian_date >= datetime.utcnow())
    return query.order_by(CourtSession.gregorian_date).all()


@router.get("/judicial-services", response_model=List[JudicialServiceResponse])
def my_judicial_services(
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    return (
        scope_judicial_services(db.query(JudicialService), current_user)
        .order_by(JudicialService.created_at.desc())
        .all()
    )


@router.get("/consultations", response_model=List[ConsultationResponse])
def my_consultations(
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    return (
        db.query(Consultation)
        .filter(Consultation.lawyer_id == current_user.id)
        .order_by(Consultation.created_at.desc())
        .all()
    )


@router.patch("/consultations/{consultation_id}", response_model=ConsultationResponse)
def update_my_consultation(
    consultation_id: UUID,
    body: ConsultationLawyerUpdate,
    request: Request,
    current_user: User = Depends(require_lawyer),
    db: Session = Depends(get_db)
):
    """Status, schedule and notes of a consultation the caller conducts"""
    record = db.query(Consultation).filter(Consultation.id == consultation_id).first()
    if not record:
        raise NotFoundError("Consultation", consultation_id)
    if record.lawyer_id != current_user.id:
        audit_service.log_denied(
            db, current_user, "consultation", record.id, reason="consultation assigned to another lawyer",
            ip_address=client_ip(request)
        )
        raise ForbiddenError("You can only update your own consultations")

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(record, field, value)
    audit_service.log(
        db, "update", "consultation", record.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(record)
    return record
