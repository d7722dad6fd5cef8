"""Auth blueprint — /auth/*

JSON session login for the web client. A successful login also hands
back a short-lived bearer token for calling the edge functions.

Route Map:
  GET  /auth/csrf     — CSRF token for subsequent JSON POSTs
  POST /auth/login    — Email + password login
  POST /auth/logout   — End the session
  GET  /auth/session  — Current identity, metadata and a fresh bearer token
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from altleads.extensions import db, limiter
from altleads.models.user import AuthUser, User
from altleads.services import profile_service, reveal_service, token_service

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

logger = logging.getLogger(__name__)


def _session_payload(user):
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "role": user.role,
            "user_metadata": user.metadata_dict,
        },
        "access_token": token_service.create_access_token(user),
        "expires_in": current_app.config["ACCESS_TOKEN_TTL"],
    }


@auth_bp.route("/csrf")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    """Email/password login. Returns the session payload or 401."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    user = AuthUser.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed login for {email}")
        return jsonify({"error": "Invalid email or password."}), 401

    profile = db.session.get(User, user.id)
    if profile is not None and profile.status != "active":
        return jsonify({"error": "This account has been deactivated."}), 403

    login_user(user, remember=bool(data.get("remember")))
    profile_service.sync_profile_logged(user)
    profile_service.touch_last_active(user)
    db.session.commit()

    return jsonify(_session_payload(user))


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    reveal_service.for_current_user().clear_all()
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/session")
@login_required
def current_session():
    payload = _session_payload(current_user)
    payload["csrf_token"] = generate_csrf()
    return jsonify(payload)
