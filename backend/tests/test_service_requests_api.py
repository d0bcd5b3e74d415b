"""
Service requests and judicial services: ownership, edit lock and review.
"""
import pytest

from app.db.models import Notification, Rule, UserRole


@pytest.fixture
def owner(make_beneficiary, make_beneficiary_user):
    return make_beneficiary_user(make_beneficiary("Owner"))


@pytest.fixture
def stranger(make_beneficiary, make_beneficiary_user):
    return make_beneficiary_user(make_beneficiary("Stranger"))


@pytest.fixture
def filed(client, owner, headers_for):
    resp = client.post(
        "/api/service-requests",
        json={"service_type": "consultation", "issue_summary": "Landlord kept my deposit"},
        headers=headers_for(owner),
    )
    assert resp.status_code == 201
    return resp.json()


class TestServiceRequests:

    def test_created_as_new_for_caller(self, filed, owner):
        assert filed["status"] == "new"
        assert filed["beneficiary_id"] == str(owner.beneficiary_id)

    def test_staff_cannot_file(self, client, make_user, headers_for):
        lawyer = make_user(role=UserRole.lawyer)
        resp = client.post(
            "/api/service-requests",
            json={"service_type": "consultation", "issue_summary": "x"},
            headers=headers_for(lawyer),
        )
        assert resp.status_code == 403

    def test_owner_edits_while_new(self, client, filed, owner, headers_for):
        resp = client.patch(
            f"/api/service-requests/{filed['id']}",
            json={"issue_details": "Three months of rent"},
            headers=headers_for(owner),
        )
        assert resp.status_code == 200
        assert resp.json()["issue_details"] == "Three months of rent"

    def test_null_for_required_field_is_400(self, client, filed, owner, headers_for):
        url = f"/api/service-requests/{filed['id']}"

        resp = client.patch(url, json={"issue_summary": None}, headers=headers_for(owner))
        assert resp.status_code == 400
        assert client.patch(url, json={"urgent": None}, headers=headers_for(owner)).status_code == 400

        resp = client.get(url, headers=headers_for(owner))
        assert resp.json()["issue_summary"] == "Landlord kept my deposit"

    def test_edit_locked_after_review_starts(self, client, filed, owner, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        resp = client.patch(
            f"/api/service-requests/{filed['id']}/status",
            json={"status": "in_review"},
            headers=headers_for(admin),
        )
        assert resp.status_code == 200

        resp = client.patch(
            f"/api/service-requests/{filed['id']}",
            json={"issue_details": "late change"},
            headers=headers_for(owner),
        )
        assert resp.status_code == 403

    def test_other_beneficiary_cannot_read_or_edit(self, client, filed, stranger, headers_for):
        url = f"/api/service-requests/{filed['id']}"
        assert client.get(url, headers=headers_for(stranger)).status_code == 403
        assert client.patch(url, json={"issue_details": "x"}, headers=headers_for(stranger)).status_code == 403

    def test_list_is_scoped(self, client, filed, owner, stranger, make_user, headers_for):
        assert len(client.get("/api/service-requests/my", headers=headers_for(owner)).json()) == 1
        assert client.get("/api/service-requests", headers=headers_for(stranger)).json() == []

        intake = make_user(role=UserRole.intake_officer)
        assert len(client.get("/api/service-requests", headers=headers_for(intake)).json()) == 1

    def test_status_change_requires_reviewer_and_notifies_owner(
        self, client, db, filed, owner, make_user, headers_for
    ):
        viewer = make_user(role=UserRole.viewer)
        url = f"/api/service-requests/{filed['id']}/status"
        assert client.patch(url, json={"status": "accepted"}, headers=headers_for(viewer)).status_code == 403

        lawyer = make_user(role=UserRole.lawyer)
        assert client.patch(url, json={"status": "accepted"}, headers=headers_for(lawyer)).status_code == 200

        db.expire_all()
        notification = db.query(Notification).filter(Notification.user_id == owner.id).one()
        assert notification.type == "service_request_status_changed"

    def test_unknown_status_is_400(self, client, filed, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        resp = client.patch(
            f"/api/service-requests/{filed['id']}/status",
            json={"status": "teleported"},
            headers=headers_for(admin),
        )
        assert resp.status_code == 400

    def test_owner_attachment_is_public_and_locked_with_request(
        self, client, filed, owner, make_user, headers_for, document_payload
    ):
        url = f"/api/service-requests/{filed['id']}/documents"
        resp = client.post(url, json=document_payload(is_public=False), headers=headers_for(owner))
        assert resp.status_code == 201
        assert resp.json()["is_public"] is True

        admin = make_user(role=UserRole.admin)
        client.patch(
            f"/api/service-requests/{filed['id']}/status", json={"status": "rejected"}, headers=headers_for(admin)
        )
        assert client.post(url, json=document_payload(), headers=headers_for(owner)).status_code == 403


class TestJudicialServices:

    @pytest.fixture
    def service(self, client, owner, headers_for):
        resp = client.post(
            "/api/judicial-services",
            json={"title": "Appeal filing", "priority": "high"},
            headers=headers_for(owner),
        )
        assert resp.status_code == 201
        return resp.json()

    def test_beneficiary_files_for_self(self, service, owner):
        assert service["beneficiary_id"] == str(owner.beneficiary_id)
        assert service["service_number"].startswith("JS-")
        assert service["status"] == "new"

    def test_lawyer_sees_only_assigned(self, client, service, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        lawyer = make_user(role=UserRole.lawyer)
        other = make_user(role=UserRole.lawyer)
        url = f"/api/judicial-services/{service['id']}"

        assert client.get(url, headers=headers_for(lawyer)).status_code == 403

        resp = client.post(f"{url}/assign-lawyer", json={"lawyer_id": str(lawyer.id)}, headers=headers_for(admin))
        assert resp.status_code == 200

        assert client.get(url, headers=headers_for(lawyer)).status_code == 200
        assert client.get(url, headers=headers_for(other)).status_code == 403
        assert client.get("/api/judicial-services", headers=headers_for(other)).json() == []

    def test_assigned_lawyer_accepts(self, client, service, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        lawyer = make_user(role=UserRole.lawyer)
        url = f"/api/judicial-services/{service['id']}"
        client.post(f"{url}/assign-lawyer", json={"lawyer_id": str(lawyer.id)}, headers=headers_for(admin))

        resp = client.patch(f"{url}/status", json={"status": "accepted"}, headers=headers_for(lawyer))
        assert resp.status_code == 200
        assert resp.json()["accepted_at"] is not None

    def test_assign_requires_admin_and_a_lawyer(self, client, service, owner, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        lawyer = make_user(role=UserRole.lawyer)
        url = f"/api/judicial-services/{service['id']}/assign-lawyer"

        assert client.post(url, json={"lawyer_id": str(lawyer.id)}, headers=headers_for(lawyer)).status_code == 403
        assert client.post(url, json={"lawyer_id": str(owner.id)}, headers=headers_for(admin)).status_code == 400

    def test_owner_edit_locked_after_new(self, client, service, owner, make_user, headers_for):
        admin = make_user(role=UserRole.admin)
        url = f"/api/judicial-services/{service['id']}"

        assert client.patch(url, json={"description": "more"}, headers=headers_for(owner)).status_code == 200
        client.patch(f"{url}/status", json={"status": "in_review"}, headers=headers_for(admin))
        assert client.patch(url, json={"description": "again"}, headers=headers_for(owner)).status_code == 403

    def test_null_title_is_400(self, client, service, owner, headers_for):
        resp = client.patch(f"/api/judicial-services/{service['id']}", json={"title": None}, headers=headers_for(owner))
        assert resp.status_code == 400

    def test_staff_files_on_behalf_with_manage_cases(self, client, db, owner, make_user, headers_for):
        rule = Rule(name="case-managers", permissions=["manage_cases"])
        db.add(rule)
        db.commit()
        officer = make_user(role=UserRole.intake_officer, rules=[rule])
        viewer = make_user(role=UserRole.viewer)
        body = {"title": "Urgent stay", "beneficiary_id": str(owner.beneficiary_id)}

        assert client.post("/api/judicial-services", json=body, headers=headers_for(viewer)).status_code == 403
        resp = client.post("/api/judicial-services", json=body, headers=headers_for(officer))
        assert resp.status_code == 201
        assert resp.json()["beneficiary_id"] == str(owner.beneficiary_id)
