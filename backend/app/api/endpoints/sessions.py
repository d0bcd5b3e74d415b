"""
Court session (hearing) endpoints
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.db.models import Case, CourtSession, SessionStatus, SessionType, User
from app.db.schemas import SessionCreate, SessionResponse, SessionUpdate
from app.services.audit_service import audit_service
from app.services.notification_service import notification_service
from app.services.visibility_service import can_manage_case, can_view_session, scope_sessions
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationFailedError
from app.utils.helpers import client_ip

router = APIRouter()


def _load_session(db: Session, session_id) -> CourtSession:
    session = db.query(CourtSession).filter(CourtSession.id == session_id).first()
    if not session:
        raise NotFoundError("Session", session_id)
    return session


def _require_manage(db: Session, user: User, case: Case, request: Request) -> None:
    if not can_manage_case(user, case):
        audit_service.log_denied(
            db, user, "session", case.id, reason="session change outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("Only admins or the assigned lawyer can manage sessions")


@router.get("", response_model=List[SessionResponse])
def list_sessions(
    case_id: Optional[UUID] = Query(None),
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = scope_sessions(db.query(CourtSession), current_user)
    if case_id:
        query = query.filter(CourtSession.case_id == case_id)
    if status_filter:
        query = query.filter(CourtSession.status == status_filter)
    if date_from:
        query = query.filter(CourtSession.gregorian_date >= date_from)
    if date_to:
        query = query.filter(CourtSession.gregorian_date <= date_to)
    return query.order_by(CourtSession.gregorian_date).all()


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    session = _load_session(db, session_id)
    if not can_view_session(current_user, session.case, session):
        audit_service.log_denied(
            db, current_user, "session", session.id, reason="session outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this session")
    return session


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    body: SessionCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = db.query(Case).filter(Case.id == body.case_id).first()
    if not case:
        raise NotFoundError("Case", body.case_id)
    _require_manage(db, current_user, case, request)

    session = CourtSession(**body.model_dump())
    db.add(session)
    db.flush()

    audit_service.log(db, "create", "session", session.id, user=current_user, ip_address=client_ip(request))
    notification_service.session_scheduled(db, case, session, actor=current_user)
    db.commit()
    db.refresh(session)
    return session


@router.patch("/{session_id}", response_model=SessionResponse)
def update_session(
    session_id: UUID,
    body: SessionUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    session = _load_session(db, session_id)
    _require_manage(db, current_user, session.case, request)

    changes = body.model_dump(exclude_unset=True)
    session_type = changes.get("session_type", session.session_type)
    meeting_url = changes.get("meeting_url", session.meeting_url)
    if session_type == SessionType.remote and not meeting_url:
        raise ValidationFailedError("meeting_url is required for remote sessions")

    for field, value in changes.items():
        setattr(session, field, value)

    audit_service.log(
        db, "update", "session", session.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(session)
    return session


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    session = _load_session(db, session_id)
    _require_manage(db, current_user, session.case, request)

    db.delete(session)
    audit_service.log(db, "delete", "session", session_id, user=current_user, ip_address=client_ip(request))
    db.commit()
