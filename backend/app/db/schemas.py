"""
Pydantic validation schemas
"""
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from app.db.models import (
    UserType,
    UserRole,
    BeneficiaryStatus,
    CaseStatus,
    CasePriority,
    SessionType,
    SessionStatus,
    RequestStatus,
    IntakeStatus,
    ConsultationStatus,
)
from app.core.permissions import ALL_PERMISSIONS
from app.services.case_type_matching import LEGACY_CANDIDATES


def reject_null(value):
    """Partial updates may omit a required column but never clear it."""
    if value is None:
        raise ValueError("Field cannot be null")
    return value


def require_digit(value):
    if value is not None and not any(char.isdigit() for char in value):
        raise ValueError("Password must contain at least one digit")
    return value


# ============================================================================
# Auth / User Schemas
# ============================================================================

class UserLogin(BaseModel):
    """Login schema"""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    id: UUID
    username: str
    email: EmailStr
    full_name: str
    user_type: UserType
    role: UserRole
    beneficiary_id: Optional[UUID] = None
    is_active: bool

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class BeneficiaryRegister(BaseModel):
    """Self-registration of a beneficiary portal account"""
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=255)
    id_number: str = Field(..., min_length=5, max_length=50)
    phone: str = Field(..., min_length=5, max_length=30)
    city: Optional[str] = None
    preferred_language: Optional[str] = Field(None, max_length=5)

    validate_password = field_validator("password")(require_digit)


class ChangePassword(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=100)

    validate_new_password = field_validator("new_password")(require_digit)


class StaffUserCreate(BaseModel):
    """Back-office account created by an administrator"""
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=255)
    role: UserRole = UserRole.lawyer
    is_active: bool = True

    validate_password = field_validator("password")(require_digit)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v == UserRole.beneficiary:
            raise ValueError("Beneficiary accounts are created through registration")
        return v


class StaffUserUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    not_null = field_validator("full_name", "role", "is_active")(reject_null)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v == UserRole.beneficiary:
            raise ValueError("Staff accounts cannot become beneficiary accounts")
        return v


class AuditLogResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    entity: str
    entity_id: Optional[str] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Beneficiary Schemas
# ============================================================================

class BeneficiaryBase(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    id_number: str = Field(..., min_length=5, max_length=50)
    phone: str = Field(..., min_length=5, max_length=30)
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    address: Optional[str] = None
    preferred_language: Optional[str] = Field(None, max_length=5)


class BeneficiaryCreate(BeneficiaryBase):
    status: BeneficiaryStatus = BeneficiaryStatus.pending


class BeneficiaryUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    id_number: Optional[str] = Field(None, min_length=5, max_length=50)
    phone: Optional[str] = Field(None, min_length=5, max_length=30)
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    address: Optional[str] = None
    preferred_language: Optional[str] = Field(None, max_length=5)
    status: Optional[BeneficiaryStatus] = None

    not_null = field_validator("full_name", "id_number", "phone", "status")(reject_null)


class BeneficiarySelfUpdate(BaseModel):
    """
    Profile changes submitted by the beneficiary. Identity fields are
    accepted here only so that an attempt to change them can be rejected
    and audited rather than silently dropped.
    """
    phone: Optional[str] = Field(None, min_length=5, max_length=30)
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    address: Optional[str] = None
    preferred_language: Optional[str] = Field(None, max_length=5)
    full_name: Optional[str] = None
    id_number: Optional[str] = None

    not_null = field_validator("phone")(reject_null)


class BeneficiaryResponse(BeneficiaryBase):
    id: UUID
    email: Optional[str] = None
    status: BeneficiaryStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Case Type Schemas
# ============================================================================

class CaseTypeCreate(BaseModel):
    name_ar: str = Field(..., min_length=1, max_length=255)
    name_en: Optional[str] = Field(None, max_length=255)
    key: Optional[str] = Field(None, max_length=100)
    is_active: bool = True
    sort_order: int = 0


class CaseTypeUpdate(BaseModel):
    name_ar: Optional[str] = Field(None, min_length=1, max_length=255)
    name_en: Optional[str] = Field(None, max_length=255)
    key: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None

    not_null = field_validator("name_ar", "is_active", "sort_order")(reject_null)


class CaseTypeResponse(BaseModel):
    id: UUID
    name_ar: str
    name_en: Optional[str] = None
    key: Optional[str] = None
    is_active: bool
    sort_order: int

    class Config:
        from_attributes = True


# ============================================================================
# Case Schemas
# ============================================================================

class CaseCreate(BaseModel):
    case_number: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    beneficiary_id: UUID
    assigned_lawyer_id: Optional[UUID] = None
    case_type_id: Optional[UUID] = None
    status: CaseStatus = CaseStatus.pending_review
    priority: CasePriority = CasePriority.medium
    internal_notes: Optional[str] = None


class CaseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    assigned_lawyer_id: Optional[UUID] = None
    case_type_id: Optional[UUID] = None
    status: Optional[CaseStatus] = None
    priority: Optional[CasePriority] = None
    internal_notes: Optional[str] = None

    not_null = field_validator("title", "description", "status", "priority")(reject_null)


class CaseResponse(BaseModel):
    """Case as seen by beneficiaries (no internal notes)"""
    id: UUID
    case_number: str
    title: str
    description: str
    beneficiary_id: UUID
    assigned_lawyer_id: Optional[UUID] = None
    case_type: Optional[str] = None
    case_type_id: Optional[UUID] = None
    status: CaseStatus
    priority: CasePriority
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CaseStaffResponse(CaseResponse):
    internal_notes: Optional[str] = None


# ============================================================================
# Document / Upload Schemas
# ============================================================================

class UploadResponse(BaseModel):
    """Metadata returned by the storage collaborator"""
    storage_key: str
    file_url: str
    file_name: str
    mime_type: str
    size: int


class DocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    storage_key: str = Field(..., min_length=1)
    file_url: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=100)
    size: Optional[int] = Field(None, ge=0)
    session_id: Optional[UUID] = None
    is_public: Optional[bool] = None


class DocumentResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    file_url: str
    file_name: str
    mime_type: str
    size: Optional[int] = None
    uploaded_by: UUID
    beneficiary_id: Optional[UUID] = None
    case_id: Optional[UUID] = None
    session_id: Optional[UUID] = None
    request_id: Optional[UUID] = None
    is_public: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int


# ============================================================================
# Session Schemas
# ============================================================================

class SessionCreate(BaseModel):
    case_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    gregorian_date: datetime
    time: str = Field(..., min_length=1, max_length=20)
    hijri_date: Optional[str] = None
    court_name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    circuit: Optional[str] = None
    session_type: Optional[SessionType] = None
    status: SessionStatus = SessionStatus.upcoming
    meeting_url: Optional[str] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None
    is_confidential: bool = False
    reminder_minutes: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def remote_requires_meeting_url(self):
        if self.session_type == SessionType.remote and not self.meeting_url:
            raise ValueError("meeting_url is required for remote sessions")
        return self


class SessionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    gregorian_date: Optional[datetime] = None
    time: Optional[str] = Field(None, min_length=1, max_length=20)
    hijri_date: Optional[str] = None
    court_name: Optional[str] = Field(None, min_length=1, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    circuit: Optional[str] = None
    session_type: Optional[SessionType] = None
    status: Optional[SessionStatus] = None
    meeting_url: Optional[str] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None
    is_confidential: Optional[bool] = None
    reminder_minutes: Optional[int] = Field(None, ge=0)

    not_null = field_validator(
        "title", "gregorian_date", "time", "court_name", "city", "status", "is_confidential"
    )(reject_null)


class SessionResponse(BaseModel):
    id: UUID
    case_id: UUID
    title: str
    gregorian_date: datetime
    time: str
    hijri_date: Optional[str] = None
    court_name: str
    city: str
    circuit: Optional[str] = None
    session_type: Optional[SessionType] = None
    status: SessionStatus
    meeting_url: Optional[str] = None
    requirements: Optional[str] = None
    notes: Optional[str] = None
    is_confidential: bool
    reminder_minutes: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Service Request / Judicial Service Schemas
# ============================================================================

class ServiceRequestCreate(BaseModel):
    service_type: str = Field(..., min_length=1, max_length=100)
    service_type_other: Optional[str] = None
    case_type_id: Optional[UUID] = None
    issue_summary: str = Field(..., min_length=1)
    issue_details: Optional[str] = None
    urgent: bool = False
    urgent_date: Optional[datetime] = None


class ServiceRequestUpdate(BaseModel):
    service_type: Optional[str] = Field(None, min_length=1, max_length=100)
    service_type_other: Optional[str] = None
    case_type_id: Optional[UUID] = None
    issue_summary: Optional[str] = Field(None, min_length=1)
    issue_details: Optional[str] = None
    urgent: Optional[bool] = None
    urgent_date: Optional[datetime] = None

    not_null = field_validator("service_type", "issue_summary", "urgent")(reject_null)


class StatusChange(BaseModel):
    status: RequestStatus


class ServiceRequestResponse(BaseModel):
    id: UUID
    beneficiary_id: UUID
    service_type: str
    service_type_other: Optional[str] = None
    case_type: Optional[str] = None
    case_type_id: Optional[UUID] = None
    issue_summary: str
    issue_details: Optional[str] = None
    urgent: bool
    urgent_date: Optional[datetime] = None
    status: RequestStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JudicialServiceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    case_id: Optional[UUID] = None
    priority: CasePriority = CasePriority.medium
    # Ignored for beneficiaries, who always file for themselves
    beneficiary_id: Optional[UUID] = None


class JudicialServiceUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[CasePriority] = None

    not_null = field_validator("title", "priority")(reject_null)


class AssignLawyer(BaseModel):
    lawyer_id: UUID


class JudicialServiceResponse(BaseModel):
    id: UUID
    service_number: str
    beneficiary_id: UUID
    case_id: Optional[UUID] = None
    assigned_lawyer_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    priority: CasePriority
    status: RequestStatus
    accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Intake Request Schemas
# ============================================================================

LEGACY_CASE_TYPES = tuple(LEGACY_CANDIDATES)


class IntakeRequestSubmit(BaseModel):
    """Portal submission; a legacy case type is accepted when no id is sent"""
    case_type_id: Optional[UUID] = None
    case_type: Optional[str] = None
    description: str = Field(..., min_length=1)

    @field_validator("case_type")
    @classmethod
    def validate_legacy_case_type(cls, v):
        if v is not None and v not in LEGACY_CASE_TYPES:
            raise ValueError(f"case_type must be one of: {', '.join(LEGACY_CASE_TYPES)}")
        return v

    @model_validator(mode="after")
    def require_case_type(self):
        if self.case_type_id is None and self.case_type is None:
            raise ValueError("Case type is required")
        return self


class IntakeRequestCreate(IntakeRequestSubmit):
    beneficiary_id: UUID
    status: IntakeStatus = IntakeStatus.pending
    review_notes: Optional[str] = None


class IntakeRequestUpdate(BaseModel):
    case_type_id: Optional[UUID] = None
    description: Optional[str] = Field(None, min_length=1)
    status: Optional[IntakeStatus] = None
    review_notes: Optional[str] = None

    not_null = field_validator("description", "status")(reject_null)


class IntakeRequestPublic(BaseModel):
    """What the beneficiary sees of their own submission"""
    id: UUID
    beneficiary_id: UUID
    case_type: Optional[str] = None
    case_type_id: Optional[UUID] = None
    description: str
    status: IntakeStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IntakeRequestResponse(IntakeRequestPublic):
    reviewed_by: Optional[UUID] = None
    review_notes: Optional[str] = None


# ============================================================================
# Consultation Schemas
# ============================================================================

class ConsultationCreate(BaseModel):
    beneficiary_id: UUID
    # Defaults to the creating user
    lawyer_id: Optional[UUID] = None
    topic: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    consultation_type: Optional[str] = Field(None, max_length=100)
    status: ConsultationStatus = ConsultationStatus.pending
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None
    follow_up_required: bool = False


class ConsultationUpdate(BaseModel):
    lawyer_id: Optional[UUID] = None
    topic: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    consultation_type: Optional[str] = Field(None, max_length=100)
    status: Optional[ConsultationStatus] = None
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None
    follow_up_required: Optional[bool] = None

    not_null = field_validator("topic", "description", "status", "follow_up_required")(reject_null)


class ConsultationLawyerUpdate(BaseModel):
    """Fields the assigned lawyer may change from the lawyer portal"""
    status: Optional[ConsultationStatus] = None
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None

    not_null = field_validator("status")(reject_null)


class ConsultationResponse(BaseModel):
    id: UUID
    consultation_number: str
    beneficiary_id: UUID
    lawyer_id: Optional[UUID] = None
    topic: str
    description: str
    consultation_type: Optional[str] = None
    status: ConsultationStatus
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None
    follow_up_required: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Rule / Permission Schemas
# ============================================================================

class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v):
        unknown = sorted(set(v) - ALL_PERMISSIONS)
        if unknown:
            raise ValueError(f"Unknown permissions: {', '.join(unknown)}")
        return sorted(set(v))


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Optional[List[str]] = None

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v):
        if v is None:
            return v
        unknown = sorted(set(v) - ALL_PERMISSIONS)
        if unknown:
            raise ValueError(f"Unknown permissions: {', '.join(unknown)}")
        return sorted(set(v))


class RuleResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    permissions: List[str]
    created_at: datetime

    class Config:
        from_attributes = True


class RuleAssignment(BaseModel):
    rule_id: UUID


class EffectivePermissions(BaseModel):
    user_id: UUID
    role: UserRole
    permissions: List[str]


# ============================================================================
# Notification Schemas
# ============================================================================

class NotificationResponse(BaseModel):
    id: UUID
    type: str
    title: str
    message: str
    url: Optional[str] = None
    related_entity_id: Optional[str] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread: int


# ============================================================================
# Lawyer Portal Schemas
# ============================================================================

class LawyerDashboard(BaseModel):
    assigned_cases: int
    active_cases: int
    upcoming_sessions: int
    open_judicial_services: int
    unread_notifications: int
