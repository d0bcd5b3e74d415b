"""
Staff account administration and the audit trail.
"""
import pytest

from app.db.models import AuditLog, User, UserRole, UserType

NEW_LAWYER = {
    "username": "lina",
    "email": "Lina@Example.org",
    "password": "Str0ngpass",
    "full_name": "Lina Haddad",
}


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.admin)


# ── Creating staff ───────────────────────────────────────────────────

def test_admin_creates_lawyer_who_can_log_in(client, db, admin, headers_for):
    resp = client.post("/api/users", json=NEW_LAWYER, headers=headers_for(admin))
    assert resp.status_code == 201
    created = resp.json()
    assert created["role"] == "lawyer"
    assert created["user_type"] == "staff"
    assert created["email"] == "lina@example.org"
    assert "password_hash" not in created

    login = client.post("/api/auth/login", json={"username": "lina", "password": "Str0ngpass"})
    assert login.status_code == 200
    client.cookies.clear()

    db.expire_all()
    entry = db.query(AuditLog).filter(AuditLog.entity == "user", AuditLog.action == "create").one()
    assert entry.entity_id == created["id"]


def test_duplicate_username_or_email_is_409(client, admin, headers_for):
    assert client.post("/api/users", json=NEW_LAWYER, headers=headers_for(admin)).status_code == 201

    same_email = dict(NEW_LAWYER, username="lina2", email="LINA@example.org")
    assert client.post("/api/users", json=same_email, headers=headers_for(admin)).status_code == 409


def test_only_admins_create_staff(client, make_user, headers_for):
    lawyer = make_user(role=UserRole.lawyer)
    assert client.post("/api/users", json=NEW_LAWYER, headers=headers_for(lawyer)).status_code == 403


def test_only_super_admin_grants_admin_roles(client, admin, make_user, headers_for):
    body = dict(NEW_LAWYER, role="admin")
    assert client.post("/api/users", json=body, headers=headers_for(admin)).status_code == 403

    super_admin = make_user(role=UserRole.super_admin)
    resp = client.post("/api/users", json=body, headers=headers_for(super_admin))
    assert resp.status_code == 201
    assert resp.json()["role"] == "admin"


@pytest.mark.parametrize("overrides", [{"role": "beneficiary"}, {"password": "nodigitsatall"}, {"password": "sh0rt"}])
def test_invalid_staff_payload_is_400(client, admin, headers_for, overrides):
    resp = client.post("/api/users", json=dict(NEW_LAWYER, **overrides), headers=headers_for(admin))
    assert resp.status_code == 400


# ── Listing ──────────────────────────────────────────────────────────

def test_list_requires_manage_users(client, admin, make_user, headers_for):
    lawyer = make_user(role=UserRole.lawyer)
    assert client.get("/api/users", headers=headers_for(lawyer)).status_code == 403

    resp = client.get("/api/users?role=lawyer", headers=headers_for(admin))
    assert resp.status_code == 200
    assert [u["id"] for u in resp.json()] == [str(lawyer.id)]


def test_lawyers_lists_active_lawyers_only(client, db, admin, make_user, headers_for):
    active = make_user(role=UserRole.lawyer)
    retired = make_user(role=UserRole.lawyer)
    make_user(role=UserRole.intake_officer)
    retired.is_active = False
    db.commit()

    resp = client.get("/api/users/lawyers", headers=headers_for(admin))
    assert [u["id"] for u in resp.json()] == [str(active.id)]


# ── Updating staff ───────────────────────────────────────────────────

def test_deactivated_user_is_locked_out(client, admin, make_user, headers_for):
    lawyer = make_user(role=UserRole.lawyer)
    resp = client.patch(f"/api/users/{lawyer.id}", json={"is_active": False}, headers=headers_for(admin))
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    assert client.get("/api/auth/me", headers=headers_for(lawyer)).status_code == 403


def test_promotion_takes_effect_without_waiting_for_cache(client, make_user, headers_for):
    viewer = make_user(role=UserRole.viewer)
    super_admin = make_user(role=UserRole.super_admin)
    # Caches the viewer's empty permission set
    assert client.get("/api/users", headers=headers_for(viewer)).status_code == 403

    resp = client.patch(f"/api/users/{viewer.id}", json={"role": "admin"}, headers=headers_for(super_admin))
    assert resp.status_code == 200

    assert client.get("/api/users", headers=headers_for(viewer)).status_code == 200


def test_admin_cannot_demote_another_admin(client, db, admin, make_user, headers_for):
    other_admin = make_user(role=UserRole.admin)
    resp = client.patch(f"/api/users/{other_admin.id}", json={"role": "lawyer"}, headers=headers_for(admin))
    assert resp.status_code == 403

    db.expire_all()
    assert db.get(User, other_admin.id).role == UserRole.admin


def test_cannot_deactivate_own_account(client, admin, headers_for):
    resp = client.patch(f"/api/users/{admin.id}", json={"is_active": False}, headers=headers_for(admin))
    assert resp.status_code == 400


def test_beneficiary_accounts_are_not_edited_here(client, admin, make_beneficiary, make_beneficiary_user, headers_for):
    account = make_beneficiary_user(make_beneficiary())
    assert account.user_type == UserType.beneficiary

    resp = client.patch(f"/api/users/{account.id}", json={"full_name": "Renamed"}, headers=headers_for(admin))
    assert resp.status_code == 400


def test_null_full_name_is_400(client, admin, make_user, headers_for):
    lawyer = make_user(role=UserRole.lawyer)
    resp = client.patch(f"/api/users/{lawyer.id}", json={"full_name": None}, headers=headers_for(admin))
    assert resp.status_code == 400


# ── Audit trail ──────────────────────────────────────────────────────

def test_audit_log_requires_view_reports(client, make_user, headers_for):
    lawyer = make_user(role=UserRole.lawyer)
    assert client.get("/api/audit-logs", headers=headers_for(lawyer)).status_code == 403


def test_audit_log_filters_newest_first(client, admin, headers_for):
    client.post("/api/users", json=NEW_LAWYER, headers=headers_for(admin))
    client.post("/api/users", json=dict(NEW_LAWYER, username="omar", email="omar@example.org"), headers=headers_for(admin))

    resp = client.get("/api/audit-logs?entity=user&action=create", headers=headers_for(admin))
    assert resp.status_code == 200
    entries = resp.json()
    assert len(entries) == 2
    assert all(e["user_id"] == str(admin.id) for e in entries)
    assert entries[0]["created_at"] >= entries[1]["created_at"]

    assert len(client.get("/api/audit-logs?limit=1", headers=headers_for(admin)).json()) == 1
    assert client.get("/api/audit-logs?limit=0", headers=headers_for(admin)).status_code == 400
