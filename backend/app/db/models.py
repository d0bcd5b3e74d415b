"""
SQLAlchemy ORM Models
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy import Index

from app.db.database import Base

# ============================================================================
# Enums
# ============================================================================

class UserType(str, enum.Enum):
    staff = "staff"
    beneficiary = "beneficiary"

class UserRole(str, enum.Enum):
    """Granular roles; beneficiaries carry role=beneficiary"""
    super_admin = "super_admin"
    admin = "admin"
    lawyer = "lawyer"
    intake_officer = "intake_officer"
    viewer = "viewer"
    expert = "expert"
    beneficiary = "beneficiary"

class BeneficiaryStatus(str, enum.Enum):
    active = "active"
    pending = "pending"
    archived = "archived"

class CaseStatus(str, enum.Enum):
    pending_review = "pending_review"
    accepted_pending_assignment = "accepted_pending_assignment"
    assigned = "assigned"
    in_progress = "in_progress"
    awaiting_documents = "awaiting_documents"
    awaiting_hearing = "awaiting_hearing"
    awaiting_judgment = "awaiting_judgment"
    completed = "completed"
    rejected = "rejected"
    closed_admin = "closed_admin"

class CasePriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"

class SessionType(str, enum.Enum):
    in_person = "in_person"
    remote = "remote"
    hybrid = "hybrid"

class SessionStatus(str, enum.Enum):
    upcoming = "upcoming"
    postponed = "postponed"
    completed = "completed"
    cancelled = "cancelled"

class RequestStatus(str, enum.Enum):
    """Lifecycle shared by service requests and judicial services"""
    new = "new"
    in_review = "in_review"
    accepted = "accepted"
    rejected = "rejected"

class IntakeStatus(str, enum.Enum):
    pending = "pending"
    under_review = "under_review"
    approved = "approved"
    rejected = "rejected"

class ConsultationStatus(str, enum.Enum):
    pending = "pending"
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


# ============================================================================
# Models
# ============================================================================

class User(Base):
    """Staff member or beneficiary portal account"""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Authentication
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)

    # Authorization
    user_type = Column(SQLEnum(UserType), nullable=False, default=UserType.staff)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.viewer)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id", ondelete="SET NULL"), nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    last_login_at = Column(TIMESTAMP, nullable=True)

    # Relationships
    beneficiary = relationship("Beneficiary", back_populates="accounts")
    rules = relationship("Rule", secondary="user_rules", back_populates="users", lazy="selectin")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class Beneficiary(Base):
    """Service recipient"""
    __tablename__ = "beneficiaries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    id_number = Column(String(50), unique=True, nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    preferred_language = Column(String(5), nullable=True)
    status = Column(SQLEnum(BeneficiaryStatus), nullable=False, default=BeneficiaryStatus.pending)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    accounts = relationship("User", back_populates="beneficiary")
    cases = relationship("Case", back_populates="beneficiary")


class CaseType(Base):
    """Normalized case-type reference record"""
    __tablename__ = "case_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name_ar = Column(String(255), nullable=False)
    name_en = Column(String(255), nullable=True)
    key = Column(String(100), unique=True, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Case(Base):
    """Legal aid case"""
    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_beneficiary", "beneficiary_id"),
        Index("ix_cases_assigned_lawyer", "assigned_lawyer_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_number = Column(String(50), unique=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=False)
    assigned_lawyer_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    # Legacy free-text value kept alongside the normalized reference
    case_type = Column(String(100), nullable=True)
    case_type_id = Column(Uuid, ForeignKey("case_types.id"), nullable=True)

    status = Column(SQLEnum(CaseStatus), nullable=False, default=CaseStatus.pending_review)
    priority = Column(SQLEnum(CasePriority), nullable=False, default=CasePriority.medium)
    internal_notes = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    closed_at = Column(TIMESTAMP, nullable=True)

    beneficiary = relationship("Beneficiary", back_populates="cases")
    assigned_lawyer = relationship("User", foreign_keys=[assigned_lawyer_id])
    case_type_ref = relationship("CaseType")
    documents = relationship("Document", back_populates="case", cascade="all, delete-orphan")
    sessions = relationship("CourtSession", back_populates="case", cascade="all, delete-orphan")


class Document(Base):
    """File attached to a case, session or request"""
    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    tags = Column(JSON, nullable=True)

    # Storage metadata returned by the upload collaborator
    storage_key = Column(Text, nullable=False)
    file_url = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=True)

    uploaded_by = Column(Uuid, ForeignKey("users.id"), nullable=False)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=True)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = Column(Uuid, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True)
    request_id = Column(Uuid, ForeignKey("service_requests.id", ondelete="SET NULL"), nullable=True)

    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    case = relationship("Case", back_populates="documents")


class CourtSession(Base):
    """Court hearing scheduled for a case"""
    __tablename__ = "sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    gregorian_date = Column(TIMESTAMP, nullable=False)
    time = Column(String(20), nullable=False)
    hijri_date = Column(String(50), nullable=True)
    court_name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    circuit = Column(String(100), nullable=True)

    session_type = Column(SQLEnum(SessionType), nullable=True)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.upcoming)
    meeting_url = Column(Text, nullable=True)
    requirements = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    is_confidential = Column(Boolean, nullable=False, default=False)
    reminder_minutes = Column(Integer, nullable=True)

    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    case = relationship("Case", back_populates="sessions")


class IntakeRequest(Base):
    """Beneficiary intake submission (legacy case_type pending reconciliation)"""
    __tablename__ = "intake_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=False)
    case_type = Column(String(100), nullable=True)
    case_type_id = Column(Uuid, ForeignKey("case_types.id"), nullable=True)
    description = Column(Text, nullable=False)
    status = Column(SQLEnum(IntakeStatus), nullable=False, default=IntakeStatus.pending)
    reviewed_by = Column(Uuid, ForeignKey("users.id"), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class ServiceRequest(Base):
    """Beneficiary-submitted request for legal service"""
    __tablename__ = "service_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=False, index=True)
    service_type = Column(String(100), nullable=False)
    service_type_other = Column(Text, nullable=True)
    case_type = Column(String(100), nullable=True)
    case_type_id = Column(Uuid, ForeignKey("case_types.id"), nullable=True)
    issue_summary = Column(Text, nullable=False)
    issue_details = Column(Text, nullable=True)
    urgent = Column(Boolean, nullable=False, default=False)
    urgent_date = Column(TIMESTAMP, nullable=True)
    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.new)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class JudicialService(Base):
    """Judicial service handled by an assigned lawyer"""
    __tablename__ = "judicial_services"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_number = Column(String(50), unique=True, nullable=False)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=False, index=True)
    case_id = Column(Uuid, ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    assigned_lawyer_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(CasePriority), nullable=False, default=CasePriority.medium)
    status = Column(SQLEnum(RequestStatus), nullable=False, default=RequestStatus.new)
    accepted_at = Column(TIMESTAMP, nullable=True)
    accepted_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Consultation(Base):
    """Advice session between a lawyer and a beneficiary, outside any case"""
    __tablename__ = "consultations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    consultation_number = Column(String(50), unique=True, nullable=False)
    beneficiary_id = Column(Uuid, ForeignKey("beneficiaries.id"), nullable=False, index=True)
    lawyer_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    topic = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    consultation_type = Column(String(100), nullable=True)
    status = Column(SQLEnum(ConsultationStatus), nullable=False, default=ConsultationStatus.pending)
    scheduled_date = Column(TIMESTAMP, nullable=True)
    notes = Column(Text, nullable=True)
    follow_up_required = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Rule(Base):
    """Named set of permission strings"""
    __tablename__ = "rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    users = relationship("User", secondary="user_rules", back_populates="rules")


class UserRule(Base):
    """Rule assignment"""
    __tablename__ = "user_rules"
    __table_args__ = (
        UniqueConstraint("user_id", "rule_id", name="uq_user_rules_user_rule"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_id = Column(Uuid, ForeignKey("rules.id"), nullable=False, index=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)


class Notification(Base):
    """In-app notification owned by a single user"""
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    url = Column(Text, nullable=True)
    related_entity_id = Column(String(64), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="notifications")


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    entity = Column(String(100), nullable=False)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(TIMESTAMP, nullable=False, default=datetime.utcnow)
