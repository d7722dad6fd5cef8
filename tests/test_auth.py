"""Tests for authentication, bearer tokens and response hardening.

Covers:
- Login success payload, bad password, missing fields
- Session endpoint and logout
- JSON 401 for anonymous requests
- Bearer tokens: missing header, wrong secret, expiry
- Security headers on every response
- CORS on edge-function errors and preflight
"""

import jwt
import pytest

from altleads.errors import TokenError
from altleads.services import token_service


class TestLogin:

    def test_login_returns_session_payload(self, client, seed_data):
        resp = client.post("/auth/login", json={
            "email": "  CASEY@altleads.local ", "password": "caller123",
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["email"] == "casey@altleads.local"
        assert body["user"]["role"] == "caller"
        assert body["expires_in"] == 3600

        payload = token_service.decode_access_token(body["access_token"])
        assert payload["sub"] == seed_data["caller_id"]

    def test_bad_password(self, client, seed_data):
        resp = client.post("/auth/login", json={
            "email": "casey@altleads.local", "password": "nope",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password."

    def test_missing_fields(self, client, seed_data):
        resp = client.post("/auth/login", json={"email": "casey@altleads.local"})
        assert resp.status_code == 400

    def test_session_and_logout(self, caller_client, seed_data):
        session = caller_client.get("/auth/session").get_json()
        assert session["user"]["id"] == seed_data["caller_id"]
        assert session["csrf_token"]

        assert caller_client.post("/auth/logout").get_json() == {"success": True}
        assert caller_client.get("/auth/session").status_code == 401

    def test_anonymous_gets_json_401(self, client, seed_data):
        resp = client.get("/auth/session")
        assert resp.status_code == 401
        assert resp.get_json() == {"error": "Unauthorized"}


class TestBearerTokens:

    def test_missing_header(self, client, seed_data):
        resp = client.post("/functions/v1/create-disposition", json={})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "No authorization header"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_wrong_secret_rejected(self, app, seed_data):
        forged = jwt.encode({"sub": seed_data["caller_id"]}, "other-secret", algorithm="HS256")
        with pytest.raises(TokenError) as exc:
            token_service.decode_access_token(forged)
        assert exc.value.message == "Invalid token"

    def test_expired(self, app, seed_data):
        app.config["ACCESS_TOKEN_TTL"] = -5
        try:
            token = token_service.create_access_token(seed_data["caller"])
        finally:
            app.config["ACCESS_TOKEN_TTL"] = 3600
        with pytest.raises(TokenError) as exc:
            token_service.decode_access_token(token)
        assert exc.value.message == "Token expired"

    def test_extension_token_not_an_access_token(self, app, seed_data):
        token = jwt.encode(
            {"user_id": "x"}, app.config["ACCESS_TOKEN_SECRET"], algorithm="HS256"
        )
        with pytest.raises(TokenError):
            token_service.decode_access_token(token)

    def test_bearer_header_parsing(self, app):
        with app.test_request_context(headers={"Authorization": "Bearer abc"}):
            from flask import request
            assert token_service.bearer_token(request) == "abc"
        with app.test_request_context(headers={"Authorization": "Basic abc"}):
            from flask import request
            assert token_service.bearer_token(request) is None


class TestHardening:

    def test_security_headers(self, client, seed_data):
        resp = client.get("/auth/csrf")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "default-src 'none'" in resp.headers["Content-Security-Policy"]

    def test_unknown_route_is_json(self, client, seed_data):
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Not found"}
        assert "Access-Control-Allow-Origin" not in resp.headers

    def test_function_404_has_cors(self, client, seed_data):
        resp = client.post("/functions/v1/no-such-function")
        assert resp.status_code == 404
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_function_405_has_cors(self, client, seed_data):
        resp = client.get("/functions/v1/create-disposition")
        assert resp.status_code == 405
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_preflight(self, client, seed_data):
        resp = client.options("/functions/v1/create-disposition")
        assert resp.status_code == 200
        assert "authorization" in resp.headers["Access-Control-Allow-Headers"]
