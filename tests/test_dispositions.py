"""Tests for dispositions — validation, both write paths, history.

Covers:
- Validation: missing type, unknown type, "others" reason rules, legacy tags
- Client path: name/project snapshot, missing prospect
- Privileged edge function: identity from token, missing fields, missing prospect
- Lazy profile creation and the display-name fallback chain
- History ordering, labels, author display and the DNC warning
- Admin delete writes an audit entry
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from werkzeug.security import generate_password_hash

from altleads.errors import ValidationError
from altleads.extensions import db
from altleads.models.audit import AuditLog
from altleads.models.disposition import Disposition, DispositionType
from altleads.models.user import AuthUser, User
from altleads.services import disposition_service, profile_service, token_service


def _make_identity(email, metadata=None):
    identity = AuthUser(
        email=email,
        password_hash=generate_password_hash("secret123"),
        user_metadata=metadata or {},
    )
    db.session.add(identity)
    db.session.commit()
    return identity


class TestValidation:

    def test_missing_type(self, app):
        with pytest.raises(ValidationError, match="Please select a disposition type"):
            disposition_service.validate_disposition("")

    def test_unknown_type(self, app):
        with pytest.raises(ValidationError, match="Invalid disposition type"):
            disposition_service.validate_disposition("hung_up")

    def test_others_requires_reason(self, app):
        with pytest.raises(ValidationError, match="Please provide a reason for 'Others'"):
            disposition_service.validate_disposition("others", "   ")

    def test_others_reason_is_sanitized(self, app):
        dtype, reason = disposition_service.validate_disposition(
            "others", "<b>Asked</b> for <script>x</script>email"
        )
        assert dtype is DispositionType.OTHERS
        assert "<" not in reason
        assert reason.startswith("Asked for")

    def test_reason_dropped_for_other_types(self, app):
        dtype, reason = disposition_service.validate_disposition("dnc", "ignored")
        assert dtype is DispositionType.DNC
        assert reason is None

    def test_legacy_tag_accepted_by_default(self, app):
        dtype, _ = disposition_service.validate_disposition("not_connected")
        assert dtype.is_legacy

    def test_legacy_tag_rejected_when_disabled(self, app):
        app.config["ACCEPT_LEGACY_DISPOSITIONS"] = False
        try:
            with pytest.raises(ValidationError, match="no longer accepted"):
                disposition_service.validate_disposition("not_connected")
        finally:
            app.config["ACCEPT_LEGACY_DISPOSITIONS"] = True

    def test_current_types_exclude_legacy(self):
        values = [t.value for t in DispositionType.current()]
        assert "not_connected" not in values
        assert len(values) == 6
        assert DispositionType.DNC.label == "DNC (Do Not Call)"


class TestClientPath:

    def test_create_records_snapshot(self, caller_client, seed_data):
        resp = caller_client.post(
            f"/api/prospects/{seed_data['prospect_id']}/dispositions",
            json={"disposition_type": "call_back_later"},
        )
        assert resp.status_code == 201
        row = resp.get_json()["disposition"]
        assert row["user_name"] == "Casey Caller"
        assert row["project_name"] == "Acme"
        assert row["user_id"] == seed_data["caller_id"]
        assert row["custom_reason"] is None

    def test_reason_not_stored_for_non_others(self, caller_client, seed_data):
        resp = caller_client.post(
            f"/api/prospects/{seed_data['prospect_id']}/dispositions",
            json={"disposition_type": "dnc", "custom_reason": "x"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["disposition"]["custom_reason"] is None
        stored = Disposition.query.one()
        assert stored.custom_reason is None

    def test_validation_error_writes_nothing(self, caller_client, seed_data):
        resp = caller_client.post(
            f"/api/prospects/{seed_data['prospect_id']}/dispositions",
            json={"disposition_type": "others", "custom_reason": ""},
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Please provide a reason for 'Others'"
        assert Disposition.query.count() == 0

    def test_missing_prospect_is_404(self, caller_client, seed_data):
        resp = caller_client.post(
            "/api/prospects/9999/dispositions", json={"disposition_type": "dnc"}
        )
        assert resp.status_code == 404
        assert Disposition.query.count() == 0

    def test_requires_login(self, client, seed_data):
        resp = client.post(
            f"/api/prospects/{seed_data['prospect_id']}/dispositions",
            json={"disposition_type": "dnc"},
        )
        assert resp.status_code == 401


class TestPrivilegedPath:

    def test_identity_comes_from_token(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/create-disposition",
            json={
                "prospect_id": seed_data["prospect_id"],
                "disposition_type": "not_interested",
                "user_id": seed_data["admin_id"],
            },
            headers=caller_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["message"] == "Disposition created successfully"
        assert body["data"]["user_id"] == seed_data["caller_id"]
        assert body["data"]["user_name"] == "Casey Caller"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_reason_not_stored_for_non_others(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/create-disposition",
            json={
                "prospect_id": seed_data["prospect_id"],
                "disposition_type": "wrong_number",
                "custom_reason": "ignored",
            },
            headers=caller_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["custom_reason"] is None
        assert Disposition.query.one().custom_reason is None

    def test_missing_fields(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/create-disposition",
            json={"prospect_id": seed_data["prospect_id"]},
            headers=caller_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == (
            "Missing required fields: prospect_id, disposition_type"
        )
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_missing_prospect_is_write_failure(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/create-disposition",
            json={"prospect_id": 9999, "disposition_type": "dnc"},
            headers=caller_headers,
        )
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["error"] == "Failed to create disposition"
        assert "9999" in body["details"]

    def test_no_authorization_header(self, client, seed_data):
        resp = client.post(
            "/functions/v1/create-disposition",
            json={"prospect_id": seed_data["prospect_id"], "disposition_type": "dnc"},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "No authorization header"
        assert Disposition.query.count() == 0

    def test_preflight(self, client):
        resp = client.options("/functions/v1/create-disposition")
        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "authorization" in resp.headers["Access-Control-Allow-Headers"]


class TestProfileSyncAndFallbacks:

    def test_missing_profile_created_from_metadata(self, app, seed_data):
        identity = _make_identity(
            "newbie@altleads.local", {"full_name": "New Bie", "project_name": "Orion"}
        )
        row = disposition_service.create_disposition(
            identity, seed_data["prospect_id"], "dnc"
        )
        profile = db.session.get(User, identity.id)
        assert profile is not None
        assert profile.role == "caller"
        assert row["user_name"] == "New Bie"
        assert row["project_name"] == "Orion"

    def test_failed_sync_falls_back_to_email_and_unknown_project(self, app, seed_data):
        identity = _make_identity("ghost.agent@altleads.local")
        failed = profile_service.ProfileSyncResult(ok=False, error="db down")
        with patch.object(profile_service, "sync_user_profile", return_value=failed):
            row = disposition_service.create_disposition(
                identity, seed_data["prospect_id"], "wrong_number"
            )
        assert row["user_name"] == "ghost.agent"
        assert row["project_name"] == profile_service.UNKNOWN_PROJECT

    def test_role_fallbacks(self, app, seed_data):
        assert profile_service.get_current_user_role(seed_data["admin"]) == "admin"
        assert profile_service.get_current_user_role(seed_data["caller"]) == "caller"
        legacy_admin = _make_identity("old.admin@altleads.local", {"project_name": "ADMIN"})
        assert profile_service.get_current_user_role(legacy_admin) == "admin"


class TestHistory:

    def _add(self, seed_data, user_id, dtype, minutes_ago, **kwargs):
        db.session.add(Disposition(
            prospect_id=seed_data["prospect_id"],
            user_id=user_id,
            disposition_type=dtype,
            created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
            **kwargs,
        ))

    def test_newest_first_with_labels_and_authors(self, app, seed_data):
        self._add(seed_data, seed_data["caller_id"], "not_interested", 30)
        self._add(seed_data, seed_data["admin_id"], "call_back_later", 10)
        self._add(seed_data, "deleted-user", "not_connected", 5,
                  user_name="Former Agent", project_name="Legacy")
        db.session.commit()

        history = disposition_service.get_disposition_history(seed_data["prospect_id"])
        entries = history.entries
        assert [e["disposition_type"] for e in entries] == [
            "not_connected", "call_back_later", "not_interested",
        ]
        assert entries[0]["author"] == "Former Agent (Legacy)"
        assert entries[0]["label"] == "Not Connected"
        assert entries[1]["author"] == "Admin User (Admin)"
        assert entries[2]["author"] == "Casey Caller (Acme)"
        assert history.dnc_warning is None

    def test_dnc_warning_cites_latest_dnc(self, caller_client, seed_data):
        self._add(seed_data, seed_data["caller_id"], "dnc", 60)
        self._add(seed_data, seed_data["admin_id"], "dnc", 20)
        self._add(seed_data, seed_data["caller_id"], "call_back_later", 1)
        db.session.commit()

        resp = caller_client.get(f"/api/prospects/{seed_data['prospect_id']}/dispositions")
        assert resp.status_code == 200
        warning = resp.get_json()["dnc_warning"]
        assert warning["author"] == "Admin User (Admin)"

    def test_empty_history(self, app, seed_data):
        history = disposition_service.get_disposition_history(seed_data["other_prospect_id"])
        assert history.to_dict() == {
            "prospect_id": seed_data["other_prospect_id"],
            "entries": [],
            "dnc_warning": None,
        }


class TestAdminDelete:

    def test_delete_writes_audit(self, admin_client, seed_data):
        row = disposition_service.create_disposition(
            seed_data["caller"], seed_data["prospect_id"], "dnc"
        )
        resp = admin_client.delete(f"/admin/api/dispositions/{row['id']}")
        assert resp.status_code == 200
        assert db.session.get(Disposition, row["id"]) is None
        audit = AuditLog.query.filter_by(action="disposition_deleted").one()
        assert audit.target_id == row["id"]

    def test_caller_cannot_delete(self, caller_client, seed_data):
        row = disposition_service.create_disposition(
            seed_data["caller"], seed_data["prospect_id"], "dnc"
        )
        resp = caller_client.delete(f"/admin/api/dispositions/{row['id']}")
        assert resp.status_code == 403
        assert db.session.get(Disposition, row["id"]) is not None


def test_expired_token_rejected(client, seed_data, app):
    app.config["ACCESS_TOKEN_TTL"] = -10
    try:
        token = token_service.create_access_token(seed_data["caller"])
    finally:
        app.config["ACCESS_TOKEN_TTL"] = 3600
    resp = client.post(
        "/functions/v1/create-disposition",
        json={"prospect_id": seed_data["prospect_id"], "disposition_type": "dnc"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Token expired"
