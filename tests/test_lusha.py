"""Tests for Lusha enrichment — proxy, pooled key rotation, cancellation.

Outbound HTTP is patched at ``altleads.services.lusha_service.requests``.

Covers:
- Proxy relays status/body and reports network failures as status 0
- Rotation: least-recently-used key first, 429 -> EXHAUSTED, 401 -> INVALID
- Credits header updates the key; success writes onto the master record
- No usable keys
- Request validation
- A cancelled or timed-out enrichment never writes its late result
- Admin key management
"""

import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from altleads.errors import ValidationError
from altleads.extensions import db
from altleads.models.lusha import LushaApiKey
from altleads.models.rtne import MasterProspect
from altleads.services import lusha_service

PHONE_BODY = {
    "name": "Jane Doe",
    "title": "VP Sales",
    "company": {"name": "Initech"},
    "phoneNumbers": [{"e164Format": "+15125550199"}],
}


def _response(status, body=None, credits=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = body or {}
    resp.text = str(body)
    resp.headers = {} if credits is None else {"x-daily-requests-left": str(credits)}
    return resp


def _key(value, category="PHONE_ONLY", **kwargs):
    key = LushaApiKey(key_value=value, category=category, **kwargs)
    db.session.add(key)
    db.session.commit()
    return key


def _master():
    master = MasterProspect(
        linkedin_id="janedoe", canonical_url="https://www.linkedin.com/in/janedoe"
    )
    db.session.add(master)
    db.session.commit()
    return master


class TestProxy:

    @patch("altleads.services.lusha_service.requests.get")
    def test_relays_status_and_body(self, mock_get, client, seed_data, caller_headers):
        mock_get.return_value = _response(404, {"message": "not found"})
        resp = client.post(
            "/functions/v1/lusha-enrich-proxy",
            json={"apiKey": "key-1234", "params": {"linkedinUrl": "linkedin.com/in/x"}},
            headers=caller_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json() == {
            "status": 404, "data": {"message": "not found"}, "error": "HTTP 404",
        }
        _, kwargs = mock_get.call_args
        assert kwargs["headers"]["api_key"] == "key-1234"
        assert kwargs["params"]["revealPhones"] == "true"
        assert mock_get.call_args[0][0] == "https://api.lusha.test/v2/person"

    @patch("altleads.services.lusha_service.requests.get")
    def test_network_failure(self, mock_get, client, seed_data, caller_headers):
        mock_get.side_effect = requests.ConnectionError("refused")
        resp = client.post(
            "/functions/v1/lusha-enrich-proxy",
            json={"apiKey": "key-1234", "params": {"firstName": "Jane"}},
            headers=caller_headers,
        )
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["status"] == 0
        assert body["data"] is None
        assert "refused" in body["error"]

    def test_missing_key(self, client, seed_data, caller_headers):
        resp = client.post(
            "/functions/v1/lusha-enrich-proxy", json={"params": {}}, headers=caller_headers
        )
        assert resp.status_code == 400


class TestRotation:

    @patch("altleads.services.lusha_service.requests.post")
    def test_success_updates_credits_and_master(self, mock_post, app, seed_data):
        key = _key("phone-key-0001")
        master = _master()
        mock_post.return_value = _response(200, PHONE_BODY, credits=41)

        result = lusha_service.enrich_with_rotation(
            "PHONE_ONLY", {"linkedinUrl": "linkedin.com/in/janedoe"},
            master_prospect_id=master.id,
        )
        assert result.success
        assert result.phone == "+15125550199"
        assert result.company == "Initech"
        assert result.to_dict()["fullName"] == "Jane Doe"

        assert key.credits_remaining == 41
        assert key.last_used_at is not None
        assert db.session.get(MasterProspect, master.id).prospect_number == "+15125550199"
        _, kwargs = mock_post.call_args
        assert kwargs["json"] == {"properties": {"linkedInUrl": "linkedin.com/in/janedoe"}}

    @patch("altleads.services.lusha_service.requests.post")
    def test_rotates_past_exhausted_and_invalid(self, mock_post, app, seed_data):
        first = _key("phone-key-aaaa")
        second = _key("phone-key-bbbb")
        third = _key("phone-key-cccc")
        mock_post.side_effect = [
            _response(429),
            _response(401),
            _response(200, PHONE_BODY, credits=5),
        ]

        result = lusha_service.enrich_with_rotation(
            "PHONE_ONLY", {"firstName": "Jane", "companyName": "Initech"}
        )
        assert result.success
        statuses = {k.key_value: k.status for k in (first, second, third)}
        assert sorted(statuses.values()) == ["ACTIVE", "EXHAUSTED", "INVALID"]
        assert mock_post.call_count == 3

    @patch("altleads.services.lusha_service.requests.post")
    def test_zero_credits_marks_exhausted(self, mock_post, app, seed_data):
        key = _key("phone-key-zero")
        mock_post.return_value = _response(200, PHONE_BODY, credits=0)
        result = lusha_service.enrich_with_rotation("PHONE_ONLY", {"linkedinUrl": "x"})
        assert result.success
        assert key.status == "EXHAUSTED"

    def test_no_keys(self, app, seed_data):
        result = lusha_service.enrich_with_rotation("EMAIL_ONLY", {"linkedinUrl": "x"})
        assert not result.success
        assert result.error == "No available API keys"

    def test_zero_attempts_configured(self, app, seed_data):
        _key("phone-key-idle")
        previous = app.config["LUSHA_MAX_ATTEMPTS"]
        app.config["LUSHA_MAX_ATTEMPTS"] = 0
        try:
            result = lusha_service.enrich_with_rotation("PHONE_ONLY", {"linkedinUrl": "x"})
        finally:
            app.config["LUSHA_MAX_ATTEMPTS"] = previous
        assert not result.success
        assert result.error == "No available API keys"

    @patch("altleads.services.lusha_service.requests.post")
    def test_other_status_is_api_error(self, mock_post, client, seed_data, caller_headers):
        _key("email-key-0001", category="EMAIL_ONLY")
        mock_post.return_value = _response(503, {"message": "down"})
        resp = client.post(
            "/functions/v1/lusha-enrich",
            json={"category": "EMAIL_ONLY", "linkedinUrl": "linkedin.com/in/x"},
            headers=caller_headers,
        )
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "API error"

    @pytest.mark.parametrize("category,params,message", [
        (None, {"linkedinUrl": "x"}, "category is required"),
        ("SMS", {"linkedinUrl": "x"}, "category must be PHONE_ONLY or EMAIL_ONLY"),
        ("PHONE_ONLY", {"firstName": "Jane"},
         "Either linkedinUrl OR (firstName + companyName) are required"),
    ])
    def test_validation(self, app, category, params, message):
        with pytest.raises(ValidationError) as exc:
            lusha_service.validate_enrich_request(category, params)
        assert exc.value.message == message


class TestCancellation:

    def test_late_result_discarded_after_timeout(self, app, seed_data):
        release = threading.Event()
        finished = threading.Event()
        late = lusha_service.EnrichmentResult(success=True, phone="+1999")

        def slow_enrich(category, params):
            release.wait(5)
            return late

        with patch.object(lusha_service, "enrich_with_rotation", side_effect=slow_enrich), \
                patch.object(lusha_service, "apply_to_master") as apply:
            run = lusha_service.CancellableEnrichment(
                app, "PHONE_ONLY", {"linkedinUrl": "x"}, master_prospect_id="m-1"
            ).start()
            assert run.wait(0.05) is None
            assert run.cancelled

            release.set()
            run._thread.join(5)
            finished.set()

        assert finished.is_set()
        assert run.done
        apply.assert_not_called()
        assert run.wait(0) is None

    def test_completed_result_applied(self, app, seed_data):
        result = lusha_service.EnrichmentResult(success=True, phone="+1999")
        with patch.object(lusha_service, "enrich_with_rotation", return_value=result), \
                patch.object(lusha_service, "apply_to_master") as apply:
            run = lusha_service.CancellableEnrichment(
                app, "PHONE_ONLY", {"linkedinUrl": "x"}, master_prospect_id="m-1"
            ).start()
            assert run.wait(5) is result
        apply.assert_called_once_with("m-1", result)

    def test_enrich_route_times_out(self, caller_client, seed_data, app):
        release = threading.Event()

        def slow_enrich(category, params):
            release.wait(5)
            return lusha_service.EnrichmentResult(success=True, phone="+1999")

        app.config["ENRICHMENT_TIMEOUT"] = 0.05
        try:
            with patch.object(lusha_service, "enrich_with_rotation", side_effect=slow_enrich), \
                    patch.object(lusha_service, "apply_to_master") as apply:
                resp = caller_client.post("/api/rtne/enrich", json={
                    "category": "PHONE_ONLY",
                    "linkedinUrl": "linkedin.com/in/janedoe",
                    "master_prospect_id": "m-1",
                })
                release.set()
        finally:
            app.config["ENRICHMENT_TIMEOUT"] = 2.0

        assert resp.status_code == 504
        assert resp.get_json() == {"error": "Enrichment timed out", "cancelled": True}
        apply.assert_not_called()


class TestKeyManagement:

    def test_add_list_toggle_delete(self, admin_client, seed_data):
        resp = admin_client.post("/admin/api/lusha-keys", json={
            "keys": "key-one-1111\nkey-two-2222\n\nkey-one-1111",
            "category": "PHONE_ONLY",
        })
        assert resp.status_code == 201
        assert resp.get_json()["added"] == 2

        keys = admin_client.get("/admin/api/lusha-keys").get_json()["keys"]
        assert {k["key"] for k in keys} == {"...1111", "...2222"}
        assert all("key_value" not in k for k in keys)

        key_id = keys[0]["id"]
        toggled = admin_client.patch(
            f"/admin/api/lusha-keys/{key_id}", json={"is_active": False}
        ).get_json()
        assert toggled["is_active"] is False

        assert admin_client.delete(f"/admin/api/lusha-keys/{key_id}").status_code == 200
        assert LushaApiKey.query.count() == 1

    def test_bad_category(self, admin_client, seed_data):
        resp = admin_client.post(
            "/admin/api/lusha-keys", json={"keys": ["k"], "category": "SMS"}
        )
        assert resp.status_code == 400
