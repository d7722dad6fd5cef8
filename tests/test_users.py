"""Tests for user administration — edge functions and admin routes.

Covers:
- Bulk creation with per-user results
- Validation messages (email, password, name) and duplicates
- list-users merges profiles with identity metadata
- manage-auth-users actions, including an invalid action
- delete-user removes dependents and keeps disposition history
- Admin-only access
- Status toggle and inactive login
"""

from altleads.extensions import db
from altleads.models.audit import AuditLog
from altleads.models.disposition import Disposition
from altleads.models.notification import Notification
from altleads.models.user import AuthUser, User
from altleads.services import user_service


class TestCreateUsers:

    def test_bulk_create_reports_each_user(self, client, seed_data, admin_headers):
        resp = client.post(
            "/functions/v1/create-users",
            json={"users": [
                {"email": "Ana@Example.com", "password": "secret1", "full_name": "Ana",
                 "project_name": "Orion"},
                {"email": "bad-email", "password": "secret1"},
                {"email": "short@example.com", "password": "123"},
                {"email": "casey@altleads.local", "password": "secret1"},
            ]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        results = resp.get_json()["results"]
        assert [r["success"] for r in results] == [True, False, False, False]
        assert results[0]["email"] == "ana@example.com"
        assert results[0]["userId"]
        assert results[1]["message"] == "Invalid email format"
        assert results[2]["message"] == "Password must be at least 6 characters"
        assert "already exists" in results[3]["message"]

        profile = db.session.get(User, results[0]["userId"])
        assert profile.project_name == "Orion"
        assert profile.role == "caller"
        assert AuditLog.query.filter_by(action="user_created").count() == 1

    def test_users_must_be_a_list(self, client, seed_data, admin_headers):
        resp = client.post(
            "/functions/v1/create-users", json={"users": "nope"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_admin_role_gets_admin_project(self, app, seed_data):
        user = user_service.create_user(
            seed_data["admin_id"], "boss@example.com", "secret1", "Boss", role="admin"
        )
        assert user["project_name"] == "ADMIN"
        identity = db.session.get(AuthUser, user["id"])
        assert identity.is_admin

    def test_missing_name(self, client, seed_data, admin_headers):
        resp = client.post(
            "/functions/v1/manage-auth-users?action=create",
            json={"email": "x@example.com", "password": "secret1"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Full name is required"

    def test_caller_forbidden(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/create-users", json={"users": []}, headers=caller_headers
        )
        assert resp.status_code == 403


class TestListUsers:

    def test_list_merges_profiles_and_metadata(self, client, seed_data, admin_headers):
        orphan = AuthUser(
            email="orphan@example.com",
            password_hash="x",
            user_metadata={"project_name": "Vega"},
        )
        db.session.add(orphan)
        db.session.commit()

        resp = client.get("/functions/v1/list-users", headers=admin_headers)
        assert resp.status_code == 200
        users = {u["email"]: u for u in resp.get_json()["users"]}
        assert users["casey@altleads.local"]["name"] == "Casey Caller"
        assert users["casey@altleads.local"]["has_profile"] is True
        assert users["orphan@example.com"]["name"] == "orphan"
        assert users["orphan@example.com"]["project_name"] == "Vega"
        assert users["orphan@example.com"]["status"] == "active"
        assert users["orphan@example.com"]["has_profile"] is False

    def test_manage_list(self, client, seed_data, admin_headers):
        resp = client.get("/functions/v1/manage-auth-users?action=list", headers=admin_headers)
        assert len(resp.get_json()["users"]) == 2

    def test_invalid_action(self, client, seed_data, admin_headers):
        resp = client.get("/functions/v1/manage-auth-users?action=purge", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid action"


class TestUpdateAndDelete:

    def test_update_user(self, client, seed_data, admin_headers):
        resp = client.put(
            "/functions/v1/manage-auth-users?action=update",
            json={
                "userId": seed_data["caller_id"],
                "email": "casey.new@altleads.local",
                "fullName": "Casey Renamed",
                "projectName": "Orion",
                "role": "caller",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 200
        profile = db.session.get(User, seed_data["caller_id"])
        assert profile.name == "Casey Renamed"
        assert profile.project_name == "Orion"
        identity = db.session.get(AuthUser, seed_data["caller_id"])
        assert identity.email == "casey.new@altleads.local"
        assert identity.metadata_dict["full_name"] == "Casey Renamed"

    def test_update_missing_fields(self, client, seed_data, admin_headers):
        resp = client.put(
            "/functions/v1/manage-auth-users?action=update",
            json={"userId": seed_data["caller_id"]},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing required fields"

    def test_delete_user_keeps_disposition_history(self, client, seed_data, admin_headers):
        caller_id = seed_data["caller_id"]
        db.session.add(Disposition(
            prospect_id=42, user_id=caller_id, disposition_type="dnc",
            user_name="Casey Caller", project_name="Acme",
        ))
        db.session.add(Notification(user_id=caller_id, type="rtne_new_prospect", payload={}))
        db.session.commit()

        resp = client.delete(
            f"/functions/v1/manage-auth-users?action=delete&userId={caller_id}",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["message"] == (
            "User casey@altleads.local deleted successfully"
        )
        assert db.session.get(AuthUser, caller_id) is None
        assert db.session.get(User, caller_id) is None
        assert Notification.query.filter_by(user_id=caller_id).count() == 0
        assert Disposition.query.filter_by(user_id=caller_id).count() == 1

    def test_delete_user_endpoint_requires_id(self, client, seed_data, admin_headers):
        resp = client.post("/functions/v1/delete-user", json={}, headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_unknown_user(self, client, seed_data, admin_headers):
        resp = client.post(
            "/functions/v1/delete-user", json={"userId": "missing"}, headers=admin_headers
        )
        assert resp.status_code == 404


class TestAdminUserRoutes:

    def test_deactivate_blocks_login(self, admin_client, client, seed_data):
        resp = admin_client.patch(
            f"/admin/api/users/{seed_data['caller_id']}/status", json={"status": "inactive"}
        )
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "inactive"

        admin_client.post("/auth/logout")
        resp = client.post("/auth/login", json={
            "email": "casey@altleads.local", "password": "caller123",
        })
        assert resp.status_code == 403

    def test_bad_status(self, admin_client, seed_data):
        resp = admin_client.patch(
            f"/admin/api/users/{seed_data['caller_id']}/status", json={"status": "banned"}
        )
        assert resp.status_code == 400

    def test_list_users(self, admin_client, seed_data):
        users = admin_client.get("/admin/api/users").get_json()["users"]
        assert {u["role"] for u in users} == {"admin", "caller"}
