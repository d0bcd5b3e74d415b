# app/core/permissions.py
"""
Permission catalog

Permission strings carried by Rules. Staff permissions guard back-office
screens; the ``*:self:*`` permissions are granted to beneficiary accounts
through the default "beneficiary" rule.
"""

VIEW_DASHBOARD = "view_dashboard"
MANAGE_USERS = "manage_users"
MANAGE_BENEFICIARIES = "manage_beneficiaries"
MANAGE_CASES = "manage_cases"
MANAGE_INTAKE = "manage_intake"
MANAGE_TASKS = "manage_tasks"
MANAGE_FINANCE = "manage_finance"
MANAGE_DOCUMENTS = "manage_documents"
MANAGE_TEMPLATES = "manage_templates"
MANAGE_SETTINGS = "manage_settings"
VIEW_REPORTS = "view_reports"
MANAGE_CONSULTATIONS = "manage_consultations"
MANAGE_POWER_OF_ATTORNEY = "manage_power_of_attorney"
MANAGE_SESSIONS = "manage_sessions"

BENEFICIARY_SELF_READ = "beneficiary:self:read"
BENEFICIARY_SELF_UPDATE = "beneficiary:self:update"
CASES_SELF_READ = "cases:self:read"
CASES_SELF_CREATE = "cases:self:create"
DOCUMENTS_SELF_CREATE = "documents:self:create"
INTAKE_SELF_CREATE = "intake:self:create"

STAFF_PERMISSIONS = frozenset({
    VIEW_DASHBOARD,
    MANAGE_USERS,
    MANAGE_BENEFICIARIES,
    MANAGE_CASES,
    MANAGE_INTAKE,
    MANAGE_TASKS,
    MANAGE_FINANCE,
    MANAGE_DOCUMENTS,
    MANAGE_TEMPLATES,
    MANAGE_SETTINGS,
    VIEW_REPORTS,
    MANAGE_CONSULTATIONS,
    MANAGE_POWER_OF_ATTORNEY,
    MANAGE_SESSIONS,
})

BENEFICIARY_PERMISSIONS = frozenset({
    BENEFICIARY_SELF_READ,
    BENEFICIARY_SELF_UPDATE,
    CASES_SELF_READ,
    CASES_SELF_CREATE,
    DOCUMENTS_SELF_CREATE,
    INTAKE_SELF_CREATE,
})

ALL_PERMISSIONS = STAFF_PERMISSIONS | BENEFICIARY_PERMISSIONS

DEFAULT_BENEFICIARY_RULE = "beneficiary"
