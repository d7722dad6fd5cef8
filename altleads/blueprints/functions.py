"""Edge functions blueprint — /functions/v1/*

Privileged JSON endpoints called by the web client with a bearer access
token. The acting user is always taken from the verified token. Every
response (errors and preflights included) carries CORS headers allowing
any origin. CSRF-exempt: there is no session cookie involved.

Route Map:
  POST   /functions/v1/create-disposition        — Disposition with server-side name resolution
  POST   /functions/v1/rtne-check-or-create      — Link LinkedIn profile to project, allocate credit
  POST   /functions/v1/rtne-admin-override       — Reassign a credit (admin)
  POST   /functions/v1/rtne-process-enrichment   — Run an enrichment job for a master prospect
  POST   /functions/v1/lusha-enrich-proxy        — Relay a Lusha lookup with a given key
  POST   /functions/v1/lusha-enrich              — Enrich with pooled key rotation
  POST   /functions/v1/create-users              — Bulk user creation (admin)
  POST   /functions/v1/delete-user               — Delete a user (admin)
  GET    /functions/v1/list-users                — Users merged with profiles (admin)
  *      /functions/v1/manage-auth-users?action= — list | create | update | delete (admin)
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from altleads.decorators import bearer_admin_required, bearer_auth_required
from altleads.errors import ValidationError
from altleads.services import (
    disposition_service,
    lusha_service,
    rtne_service,
    user_service,
)

functions_bp = Blueprint("functions", __name__, url_prefix="/functions/v1")

logger = logging.getLogger(__name__)


def _json_body():
    return request.get_json(silent=True) or {}


@functions_bp.after_request
def _cors_response(response):
    """Add CORS headers so browser clients on any origin can call in."""
    response.headers["Access-Control-Allow-Origin"] = current_app.config.get(
        "CORS_ALLOW_ORIGIN", "*"
    )
    response.headers["Access-Control-Allow-Methods"] = "POST, GET, OPTIONS, PUT, DELETE"
    response.headers["Access-Control-Allow-Headers"] = (
        "authorization, x-client-info, apikey, content-type"
    )
    return response


# ─── Dispositions ────────────────────────────────────────────────

@functions_bp.route("/create-disposition", methods=["POST"])
@bearer_auth_required
def create_disposition():
    row = disposition_service.create_disposition_privileged(g.auth_user, _json_body())
    return jsonify({
        "success": True,
        "data": row,
        "message": "Disposition created successfully",
    })


# ─── RTNE ────────────────────────────────────────────────────────

@functions_bp.route("/rtne-check-or-create", methods=["POST"])
@bearer_auth_required
def rtne_check_or_create():
    data = _json_body()
    result = rtne_service.check_or_create(
        g.auth_user, data.get("projectName"), data.get("row")
    )
    return jsonify(result)


@functions_bp.route("/rtne-admin-override", methods=["POST"])
@bearer_admin_required
def rtne_admin_override():
    data = _json_body()
    action = data.get("action")
    if action != "reassign_credit":
        return jsonify({"error": f"Unknown action: {action}"}), 400
    result = rtne_service.reassign_credit(
        g.auth_user, data.get("master_prospect_id"), data.get("to_project_id")
    )
    return jsonify(result)


@functions_bp.route("/rtne-process-enrichment", methods=["POST"])
@bearer_auth_required
def rtne_process_enrichment():
    master_prospect_id = _json_body().get("master_prospect_id")
    if not master_prospect_id:
        raise ValidationError("master_prospect_id is required")
    job = rtne_service.process_enrichment(master_prospect_id)
    return jsonify({"success": True, "job": job})


# ─── Lusha ───────────────────────────────────────────────────────

@functions_bp.route("/lusha-enrich-proxy", methods=["POST"])
@bearer_auth_required
def lusha_enrich_proxy():
    data = _json_body()
    body, status = lusha_service.proxy_person_lookup(data.get("apiKey"), data.get("params"))
    return jsonify(body), status


@functions_bp.route("/lusha-enrich", methods=["POST"])
@bearer_auth_required
def lusha_enrich():
    data = _json_body()
    params = {
        k: data.get(k)
        for k in ("linkedinUrl", "firstName", "lastName", "companyName")
        if data.get(k)
    }
    result = lusha_service.enrich_with_rotation(
        data.get("category"), params, master_prospect_id=data.get("masterProspectId")
    )
    return jsonify(result.to_dict()), 200 if result.success else 500


# ─── Users ───────────────────────────────────────────────────────

@functions_bp.route("/create-users", methods=["POST"])
@bearer_admin_required
def create_users():
    results = user_service.create_users_bulk(g.auth_user.id, _json_body().get("users"))
    return jsonify({"results": results})


@functions_bp.route("/delete-user", methods=["POST", "DELETE"])
@bearer_admin_required
def delete_user():
    user_id = request.args.get("userId") or _json_body().get("userId")
    return jsonify(user_service.delete_user(g.auth_user.id, user_id))


@functions_bp.route("/list-users")
@bearer_admin_required
def list_users():
    return jsonify({"users": user_service.list_users()})


@functions_bp.route("/manage-auth-users", methods=["GET", "POST", "PUT", "DELETE"])
@bearer_admin_required
def manage_auth_users():
    action = request.args.get("action")
    method = request.method

    if method == "GET" and action == "list":
        return jsonify({"users": user_service.list_users()})

    if method == "POST" and action == "create":
        data = _json_body()
        user = user_service.create_user(
            g.auth_user.id,
            data.get("email"),
            data.get("password"),
            data.get("fullName"),
            project_name=data.get("projectName"),
            role=data.get("role"),
        )
        return jsonify({"success": True, "user": user})

    if method == "PUT" and action == "update":
        data = _json_body()
        result = user_service.update_user(
            g.auth_user.id,
            data.get("userId"),
            data.get("email"),
            data.get("fullName"),
            project_name=data.get("projectName"),
            role=data.get("role"),
        )
        return jsonify(result)

    if method == "DELETE" and action == "delete":
        user_id = request.args.get("userId") or _json_body().get("userId")
        return jsonify(user_service.delete_user(g.auth_user.id, user_id))

    return jsonify({"error": "Invalid action"}), 400
