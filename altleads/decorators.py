"""
Custom route decorators for access control.

- admin_required: signed-in session user whose role is admin.
- fulfiller_required: admin, or a session user listed in RTNP_USER_EMAILS.
- bearer_auth_required: verified ``Authorization: Bearer`` access token;
  sets g.auth_user. Used by the edge functions.
- bearer_admin_required: bearer_auth_required + admin role.
- extension_auth_required: verified Chrome extension token; sets
  g.extension_user.
"""

from functools import wraps

from flask import current_app, g, jsonify, request
from flask_login import current_user, login_required

from altleads.errors import TokenError
from altleads.extensions import db
from altleads.models.chrome_extension import ChromeExtensionUser
from altleads.models.user import AuthUser
from altleads.services import profile_service, token_service


def admin_required(f):
    """Require login + admin role."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated


def fulfiller_required(f):
    """Require login + admin role or a configured RTNE fulfiller account."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        fulfillers = current_app.config["RTNP_USER_EMAILS"]
        if not (current_user.is_admin or current_user.email in fulfillers):
            return jsonify({"error": "Fulfiller access required"}), 403
        return f(*args, **kwargs)

    return decorated


def bearer_auth_required(f):
    """Require a valid access token; the acting user comes from its ``sub``."""

    @wraps(f)
    def decorated(*args, **kwargs):
        token = token_service.bearer_token(request)
        if token is None:
            return jsonify({"error": "No authorization header"}), 401
        try:
            payload = token_service.decode_access_token(token)
        except TokenError as e:
            return jsonify({"error": e.message}), 401
        user = db.session.get(AuthUser, payload["sub"])
        if user is None:
            return jsonify({"error": "Unauthorized"}), 401
        g.auth_user = user
        return f(*args, **kwargs)

    return decorated


def bearer_admin_required(f):
    """Bearer auth + admin role (looked up, never taken from the token)."""

    @wraps(f)
    @bearer_auth_required
    def decorated(*args, **kwargs):
        if profile_service.get_current_user_role(g.auth_user) != "admin":
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated


def extension_auth_required(f):
    """Require a valid Chrome extension token."""

    @wraps(f)
    def decorated(*args, **kwargs):
        token = token_service.bearer_token(request)
        if token is None:
            return jsonify({"error": "Missing or invalid authorization header"}), 401
        try:
            payload = token_service.decode_extension_token(token)
        except TokenError as e:
            return jsonify({"error": e.message}), 401
        user = db.session.get(ChromeExtensionUser, payload["user_id"])
        if user is None:
            return jsonify({"error": "Invalid token"}), 401
        g.extension_user = user
        return f(*args, **kwargs)

    return decorated
