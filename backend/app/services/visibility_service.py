# app/services/visibility_service.py
"""
Visibility filter
=================
Decides which cases, documents, sessions, requests, consultations and
notifications a principal may see. Per-object predicates (``can_*``) are
used on single records; ``scope_*`` functions apply the same rules to a
SQLAlchemy query so list endpoints filter in the database.

Every entity-scoped endpoint goes through exactly one of these functions
before it reads or writes the record.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy import and_, false, or_
from sqlalchemy.orm import Query

from app.core.permissions import MANAGE_CONSULTATIONS, MANAGE_INTAKE
from app.db.models import (
    Case,
    Consultation,
    CourtSession,
    Document,
    IntakeRequest,
    JudicialService,
    Notification,
    RequestStatus,
    ServiceRequest,
    UserRole,
)
from app.services.permission_service import enum_value, has_permission, is_admin, is_beneficiary, is_staff


# ============================================================================
# Cases
# ============================================================================

def is_case_owner(user, case) -> bool:
    """Beneficiary account whose beneficiary owns the case."""
    return (
        is_beneficiary(user)
        and user.beneficiary_id is not None
        and user.beneficiary_id == case.beneficiary_id
    )


def is_assigned_lawyer(user, case) -> bool:
    return (
        is_staff(user)
        and case.assigned_lawyer_id is not None
        and user.id == case.assigned_lawyer_id
    )


def can_access_case(user, case) -> bool:
    if user is None or case is None:
        return False
    if is_admin(user):
        return True
    return is_assigned_lawyer(user, case) or is_case_owner(user, case)


def can_manage_case(user, case) -> bool:
    """Write access: admins and the assigned lawyer."""
    return is_admin(user) or is_assigned_lawyer(user, case)


def scope_cases(query: Query, user) -> Query:
    if is_admin(user):
        return query
    if is_staff(user):
        return query.filter(Case.assigned_lawyer_id == user.id)
    if is_beneficiary(user) and user.beneficiary_id is not None:
        return query.filter(Case.beneficiary_id == user.beneficiary_id)
    return query.filter(false())


# ============================================================================
# Documents
# ============================================================================

def filter_documents(user, case, documents: Iterable) -> List:
    if not can_access_case(user, case):
        return []
    documents = list(documents)
    if is_case_owner(user, case):
        return [d for d in documents if d.is_public]
    return documents


def can_view_document(user, case, document) -> bool:
    if case is None:
        # Standalone documents (request attachments) belong to a beneficiary
        if is_admin(user) or is_staff(user):
            return True
        return (
            is_beneficiary(user)
            and document.beneficiary_id is not None
            and document.beneficiary_id == user.beneficiary_id
            and bool(document.is_public)
        )
    return bool(filter_documents(user, case, [document]))


def scope_documents(query: Query, user) -> Query:
    """Expects ``query`` over Document; same rules as ``can_view_document``."""
    if is_admin(user):
        return query
    query = query.outerjoin(Case, Document.case_id == Case.id)
    if is_staff(user):
        return query.filter(or_(Document.case_id.is_(None), Case.assigned_lawyer_id == user.id))
    if is_beneficiary(user) and user.beneficiary_id is not None:
        return query.filter(
            Document.is_public == True,  # noqa: E712
            or_(
                and_(Document.case_id.is_(None), Document.beneficiary_id == user.beneficiary_id),
                Case.beneficiary_id == user.beneficiary_id,
            ),
        )
    return query.filter(false())


def resolve_is_public(user, case, requested: Optional[bool] = None) -> bool:
    """Beneficiaries uploading to their own case always produce a public document."""
    if case is not None and is_case_owner(user, case):
        return True
    return bool(requested) if requested is not None else False


# ============================================================================
# Sessions
# ============================================================================

def can_view_session(user, case, session) -> bool:
    if not can_access_case(user, case):
        return False
    if session.is_confidential:
        return is_admin(user) or is_assigned_lawyer(user, case)
    return True


def filter_sessions(user, case, sessions: Iterable) -> List:
    return [s for s in sessions if can_view_session(user, case, s)]


def scope_sessions(query: Query, user) -> Query:
    """Expects ``query`` over CourtSession."""
    if is_admin(user):
        return query
    query = scope_cases(query.join(Case, CourtSession.case_id == Case.id), user)
    if not is_staff(user):
        query = query.filter(CourtSession.is_confidential == False)  # noqa: E712
    return query


# ============================================================================
# Service requests / judicial services
# ============================================================================

def _owns_request(user, record) -> bool:
    return (
        is_beneficiary(user)
        and user.beneficiary_id is not None
        and user.beneficiary_id == record.beneficiary_id
    )


def can_access_service_request(user, record) -> bool:
    if user is None or record is None:
        return False
    if is_admin(user) or is_staff(user):
        return True
    return _owns_request(user, record)


def can_access_judicial_service(user, record) -> bool:
    if user is None or record is None:
        return False
    if is_admin(user):
        return True
    if is_staff(user):
        if enum_value(user.role) == UserRole.lawyer.value:
            return record.assigned_lawyer_id == user.id
        return True
    return _owns_request(user, record)


def can_edit_request(user, record) -> bool:
    """Owning beneficiary, and only while the record is still new."""
    return _owns_request(user, record) and enum_value(record.status) == RequestStatus.new.value


def scope_service_requests(query: Query, user) -> Query:
    if is_admin(user) or is_staff(user):
        return query
    if is_beneficiary(user) and user.beneficiary_id is not None:
        return query.filter(ServiceRequest.beneficiary_id == user.beneficiary_id)
    return query.filter(false())


def scope_judicial_services(query: Query, user) -> Query:
    if is_admin(user):
        return query
    if is_staff(user):
        if enum_value(user.role) == UserRole.lawyer.value:
            return query.filter(JudicialService.assigned_lawyer_id == user.id)
        return query
    if is_beneficiary(user) and user.beneficiary_id is not None:
        return query.filter(JudicialService.beneficiary_id == user.beneficiary_id)
    return query.filter(false())


# ============================================================================
# Intake requests
# ============================================================================

def _reviews_intake(user) -> bool:
    return is_admin(user) or (is_staff(user) and has_permission(user, MANAGE_INTAKE))


def can_access_intake_request(user, record) -> bool:
    if user is None or record is None:
        return False
    return _reviews_intake(user) or _owns_request(user, record)


def scope_intake_requests(query: Query, user) -> Query:
    if _reviews_intake(user):
        return query
    if is_beneficiary(user) and user.beneficiary_id is not None:
        return query.filter(IntakeRequest.beneficiary_id == user.beneficiary_id)
    return query.filter(false())


# ============================================================================
# Consultations
# ============================================================================

def manages_consultations(user) -> bool:
    return is_admin(user) or (is_staff(user) and has_permission(user, MANAGE_CONSULTATIONS))


def can_access_consultation(user, record) -> bool:
    """Consultation managers see all; other staff only their own."""
    if user is None or record is None:
        return False
    if manages_consultations(user):
        return True
    return is_staff(user) and record.lawyer_id is not None and record.lawyer_id == user.id


def scope_consultations(query: Query, user) -> Query:
    if manages_consultations(user):
        return query
    if is_staff(user):
        return query.filter(Consultation.lawyer_id == user.id)
    return query.filter(false())


# ============================================================================
# Notifications
# ============================================================================

def can_access_notification(user, notification) -> bool:
    return user is not None and notification is not None and notification.user_id == user.id


def scope_notifications(query: Query, user) -> Query:
    if user is None:
        return query.filter(false())
    return query.filter(Notification.user_id == user.id)
