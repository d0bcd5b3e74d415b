"""
Main API router aggregator
"""
from fastapi import APIRouter

from app.api.endpoints import (
    audit_logs,
    auth,
    beneficiaries,
    case_types,
    cases,
    consultations,
    documents,
    uploads,
    sessions,
    service_requests,
    intake_requests,
    judicial_services,
    notifications,
    rules,
    users,
    lawyer,
    health,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(beneficiaries.router, prefix="/beneficiaries", tags=["Beneficiaries"])
api_router.include_router(beneficiaries.portal_router, prefix="/beneficiary", tags=["Beneficiary Portal"])
api_router.include_router(case_types.router, prefix="/case-types", tags=["Case Types"])
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["Upload"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
api_router.include_router(service_requests.router, prefix="/service-requests", tags=["Service Requests"])
api_router.include_router(intake_requests.router, prefix="/intake-requests", tags=["Intake Requests"])
api_router.include_router(intake_requests.portal_router, prefix="/portal/intake-requests", tags=["Beneficiary Portal"])
api_router.include_router(judicial_services.router, prefix="/judicial-services", tags=["Judicial Services"])
api_router.include_router(consultations.router, prefix="/consultations", tags=["Consultations"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(rules.router, prefix="/rules", tags=["Rules"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit"])
api_router.include_router(lawyer.router, prefix="/lawyer", tags=["Lawyer Portal"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
