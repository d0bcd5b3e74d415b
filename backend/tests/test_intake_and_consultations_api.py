"""
Intake requests (staff review and beneficiary portal) and consultations.
"""
import uuid

import pytest

from app.db.models import AuditLog, Consultation, IntakeRequest, Notification, Rule, UserRole


def rule_with(db, name, *permissions):
    rule = Rule(name=name, permissions=list(permissions))
    db.add(rule)
    db.commit()
    return rule


@pytest.fixture
def owner(make_beneficiary, make_beneficiary_user):
    return make_beneficiary_user(make_beneficiary("Owner"))


@pytest.fixture
def stranger(make_beneficiary, make_beneficiary_user):
    return make_beneficiary_user(make_beneficiary("Stranger"))


@pytest.fixture
def officer(db, make_user):
    return make_user(role=UserRole.intake_officer, rules=[rule_with(db, "intake", "manage_intake")])


@pytest.fixture
def submitted(client, owner, headers_for):
    resp = client.post(
        "/api/portal/intake-requests",
        json={"case_type": "labor", "description": "Unpaid wages for six months"},
        headers=headers_for(owner),
    )
    assert resp.status_code == 201
    return resp.json()


class TestIntakePortal:

    def test_submission_is_pending_without_review_notes(self, submitted, owner):
        assert submitted["status"] == "pending"
        assert submitted["case_type"] == "labor"
        assert submitted["case_type_id"] is None
        assert submitted["beneficiary_id"] == str(owner.beneficiary_id)
        assert "review_notes" not in submitted

    def test_case_type_id_stores_its_label(self, client, owner, make_case_type, headers_for):
        civil = make_case_type("قضايا مدنية", "Civil", key="civil")
        resp = client.post(
            "/api/portal/intake-requests",
            json={"case_type_id": str(civil.id), "description": "Contract dispute"},
            headers=headers_for(owner),
        )
        assert resp.status_code == 201
        assert resp.json()["case_type_id"] == str(civil.id)
        assert resp.json()["case_type"] == "civil"

    @pytest.mark.parametrize("body", [
        {"description": "No type at all"},
        {"case_type": "maritime", "description": "Unknown legacy value"},
    ])
    def test_case_type_is_required_and_checked(self, client, owner, headers_for, body):
        resp = client.post("/api/portal/intake-requests", json=body, headers=headers_for(owner))
        assert resp.status_code == 400

    def test_inactive_case_type_is_400(self, client, owner, make_case_type, headers_for):
        retired = make_case_type("قديم", "Retired", is_active=False)
        resp = client.post(
            "/api/portal/intake-requests",
            json={"case_type_id": str(retired.id), "description": "Old type"},
            headers=headers_for(owner),
        )
        assert resp.status_code == 400

    def test_staff_cannot_use_portal(self, client, officer, headers_for):
        resp = client.post(
            "/api/portal/intake-requests",
            json={"case_type": "civil", "description": "Filed by staff"},
            headers=headers_for(officer),
        )
        assert resp.status_code == 403

    def test_list_is_own_only(self, client, submitted, owner, stranger, headers_for):
        mine = client.get("/api/portal/intake-requests", headers=headers_for(owner)).json()
        assert [r["id"] for r in mine] == [submitted["id"]]
        assert client.get("/api/portal/intake-requests", headers=headers_for(stranger)).json() == []

    def test_submission_is_audited(self, db, submitted):
        entry = db.query(AuditLog).filter(AuditLog.entity == "intake_request").one()
        assert entry.action == "create"
        assert entry.entity_id == submitted["id"]


class TestIntakeReview:

    def test_staff_routes_require_manage_intake(self, client, submitted, owner, officer, make_user, headers_for):
        lawyer = make_user(role=UserRole.lawyer)

        assert client.get("/api/intake-requests", headers=headers_for(lawyer)).status_code == 403
        assert client.get("/api/intake-requests", headers=headers_for(owner)).status_code == 403
        resp = client.get("/api/intake-requests", headers=headers_for(officer))
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()] == [submitted["id"]]

    def test_review_records_reviewer_and_notifies_owner(self, client, db, submitted, owner, officer, headers_for):
        resp = client.patch(
            f"/api/intake-requests/{submitted['id']}",
            json={"status": "under_review", "review_notes": "Ask for the contract"},
            headers=headers_for(officer),
        )
        assert resp.status_code == 200
        assert resp.json()["reviewed_by"] == str(officer.id)
        assert resp.json()["review_notes"] == "Ask for the contract"

        db.expire_all()
        notes = db.query(Notification).filter(Notification.user_id == owner.id).all()
        assert [n.type for n in notes] == ["intake_request_status_changed"]

        portal = client.get("/api/portal/intake-requests", headers=headers_for(owner)).json()
        assert portal[0]["status"] == "under_review"
        assert "review_notes" not in portal[0]

    def test_notes_only_update_does_not_notify(self, client, db, submitted, owner, officer, headers_for):
        resp = client.patch(
            f"/api/intake-requests/{submitted['id']}",
            json={"review_notes": "Waiting on documents"},
            headers=headers_for(officer),
        )
        assert resp.status_code == 200
        assert resp.json()["reviewed_by"] is None

        db.expire_all()
        assert db.query(Notification).filter(Notification.user_id == owner.id).count() == 0

    def test_null_status_is_400(self, client, db, submitted, officer, headers_for):
        resp = client.patch(
            f"/api/intake-requests/{submitted['id']}", json={"status": None}, headers=headers_for(officer)
        )
        assert resp.status_code == 400

        db.expire_all()
        assert db.get(IntakeRequest, uuid.UUID(submitted["id"])).status.value == "pending"

    def test_staff_records_intake_for_beneficiary(self, client, owner, officer, headers_for):
        body = {"beneficiary_id": str(owner.beneficiary_id), "case_type": "family", "description": "Custody"}
        resp = client.post("/api/intake-requests", json=body, headers=headers_for(officer))
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"

        body["beneficiary_id"] = str(uuid.uuid4())
        assert client.post("/api/intake-requests", json=body, headers=headers_for(officer)).status_code == 400

    def test_missing_intake_is_404(self, client, officer, headers_for):
        resp = client.get(f"/api/intake-requests/{uuid.uuid4()}", headers=headers_for(officer))
        assert resp.status_code == 404


# ── Consultations ────────────────────────────────────────────────────

@pytest.fixture
def team(db, make_user):
    manager = make_user(role=UserRole.intake_officer, rules=[rule_with(db, "consults", "manage_consultations")])
    return manager, make_user(role=UserRole.lawyer), make_user(role=UserRole.lawyer)


@pytest.fixture
def booked(client, owner, team, headers_for):
    manager, lawyer, _ = team
    resp = client.post(
        "/api/consultations",
        json={
            "beneficiary_id": str(owner.beneficiary_id),
            "lawyer_id": str(lawyer.id),
            "topic": "Tenancy dispute",
            "description": "Advice on an eviction notice",
        },
        headers=headers_for(manager),
    )
    assert resp.status_code == 201
    return resp.json()


class TestConsultations:

    def test_booking_numbers_and_notifies_lawyer(self, db, booked, team):
        _, lawyer, _ = team
        assert booked["consultation_number"].startswith("CONS-")
        assert booked["status"] == "pending"
        assert booked["follow_up_required"] is False

        db.expire_all()
        notes = db.query(Notification).filter(Notification.user_id == lawyer.id).all()
        assert [n.type for n in notes] == ["consultation_assigned"]

    def test_lawyer_defaults_to_creator(self, client, owner, team, headers_for):
        manager, _, _ = team
        body = {"beneficiary_id": str(owner.beneficiary_id), "topic": "Will", "description": "Drafting"}
        resp = client.post("/api/consultations", json=body, headers=headers_for(manager))
        assert resp.status_code == 201
        assert resp.json()["lawyer_id"] == str(manager.id)

    def test_lawyer_must_be_active_staff(self, client, owner, team, headers_for):
        manager, _, _ = team
        body = {
            "beneficiary_id": str(owner.beneficiary_id),
            "lawyer_id": str(owner.id),
            "topic": "Will",
            "description": "Drafting",
        }
        assert client.post("/api/consultations", json=body, headers=headers_for(manager)).status_code == 400

    def test_booking_requires_manage_consultations(self, client, owner, team, headers_for):
        _, lawyer, _ = team
        body = {"beneficiary_id": str(owner.beneficiary_id), "topic": "Will", "description": "Drafting"}
        assert client.post("/api/consultations", json=body, headers=headers_for(lawyer)).status_code == 403

    def test_staff_see_only_their_own(self, client, db, booked, owner, team, headers_for):
        manager, lawyer, other_lawyer = team

        assert [c["id"] for c in client.get("/api/consultations", headers=headers_for(lawyer)).json()] == [booked["id"]]
        assert client.get("/api/consultations", headers=headers_for(other_lawyer)).json() == []
        assert len(client.get("/api/consultations", headers=headers_for(manager)).json()) == 1
        assert client.get("/api/consultations", headers=headers_for(owner)).status_code == 403

        resp = client.get(f"/api/consultations/{booked['id']}", headers=headers_for(other_lawyer))
        assert resp.status_code == 403
        db.expire_all()
        assert db.query(AuditLog).filter(
            AuditLog.action == "unauthorized_access_attempt", AuditLog.entity == "consultation"
        ).count() == 1

    def test_filter_by_beneficiary(self, client, booked, owner, stranger, team, headers_for):
        manager, _, _ = team
        url = "/api/consultations?beneficiary_id={}"

        mine = client.get(url.format(owner.beneficiary_id), headers=headers_for(manager)).json()
        assert [c["id"] for c in mine] == [booked["id"]]
        assert client.get(url.format(stranger.beneficiary_id), headers=headers_for(manager)).json() == []

    def test_reassignment_notifies_new_lawyer(self, client, db, booked, team, headers_for):
        manager, _, other_lawyer = team
        resp = client.patch(
            f"/api/consultations/{booked['id']}",
            json={"lawyer_id": str(other_lawyer.id), "follow_up_required": True},
            headers=headers_for(manager),
        )
        assert resp.status_code == 200
        assert resp.json()["lawyer_id"] == str(other_lawyer.id)

        db.expire_all()
        assert db.query(Notification).filter(Notification.user_id == other_lawyer.id).count() == 1

    def test_null_topic_is_400(self, client, booked, team, headers_for):
        manager, _, _ = team
        resp = client.patch(f"/api/consultations/{booked['id']}", json={"topic": None}, headers=headers_for(manager))
        assert resp.status_code == 400

    def test_delete_requires_manager(self, client, db, booked, team, headers_for):
        manager, lawyer, _ = team
        url = f"/api/consultations/{booked['id']}"

        assert client.delete(url, headers=headers_for(lawyer)).status_code == 403
        assert client.delete(url, headers=headers_for(manager)).status_code == 204
        assert client.get(url, headers=headers_for(manager)).status_code == 404
        db.expire_all()
        assert db.query(Consultation).count() == 0


class TestLawyerPortalConsultations:

    def test_lists_own_consultations(self, client, booked, team, headers_for):
        _, lawyer, other_lawyer = team
        assert [c["id"] for c in client.get("/api/lawyer/consultations", headers=headers_for(lawyer)).json()] == [booked["id"]]
        assert client.get("/api/lawyer/consultations", headers=headers_for(other_lawyer)).json() == []

    def test_assigned_lawyer_updates_status_and_notes(self, client, booked, team, headers_for):
        _, lawyer, _ = team
        resp = client.patch(
            f"/api/lawyer/consultations/{booked['id']}",
            json={"status": "completed", "notes": "Advised to reply in writing"},
            headers=headers_for(lawyer),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert resp.json()["notes"] == "Advised to reply in writing"

    def test_lawyer_cannot_reassign(self, client, booked, team, headers_for):
        _, lawyer, other_lawyer = team
        resp = client.patch(
            f"/api/lawyer/consultations/{booked['id']}",
            json={"lawyer_id": str(other_lawyer.id), "notes": "handing over"},
            headers=headers_for(lawyer),
        )
        assert resp.status_code == 200
        assert resp.json()["lawyer_id"] == str(lawyer.id)

    def test_other_lawyer_is_forbidden_and_audited(self, client, db, booked, team, headers_for):
        _, _, other_lawyer = team
        resp = client.patch(
            f"/api/lawyer/consultations/{booked['id']}", json={"status": "cancelled"}, headers=headers_for(other_lawyer)
        )
        assert resp.status_code == 403

        db.expire_all()
        assert db.get(Consultation, uuid.UUID(booked["id"])).status.value == "pending"
        assert db.query(AuditLog).filter(AuditLog.action == "unauthorized_access_attempt").count() == 1
