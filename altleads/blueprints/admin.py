"""Admin blueprint — /admin/api/*

Data maintenance for admins: prospect edits and deletes, disposition
removal, the Lusha key pool, the audit trail and user status.
All routes protected by @admin_required decorator.

Route Map:
  PUT    /admin/api/prospects/<id>           — Edit prospect fields
  DELETE /admin/api/prospects/<id>           — Delete prospect + its dispositions
  DELETE /admin/api/dispositions/<id>        — Delete one disposition
  GET    /admin/api/lusha-keys               — Key pool (masked)
  POST   /admin/api/lusha-keys               — Add keys {keys: [...], category}
  PATCH  /admin/api/lusha-keys/<id>          — Enable/disable a key
  DELETE /admin/api/lusha-keys/<id>          — Remove a key
  GET    /admin/api/audit                    — Recent audit entries (?action=, limit=)
  GET    /admin/api/users                    — Users merged with profiles
  PATCH  /admin/api/users/<id>/status        — Activate / deactivate
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from altleads.decorators import admin_required
from altleads.extensions import db
from altleads.models import as_dict
from altleads.models.audit import AuditLog
from altleads.services import (
    disposition_service,
    lusha_service,
    prospect_service,
    user_service,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin/api")

logger = logging.getLogger(__name__)

AUDIT_PAGE_LIMIT = 200


def _audit(action, target_table, target_id, **metadata):
    db.session.add(AuditLog(
        user_id=current_user.id,
        action=action,
        target_table=target_table,
        target_id=str(target_id),
        metadata_=metadata,
    ))


# ══════════════════════════════════════════════
#  PROSPECTS & DISPOSITIONS
# ══════════════════════════════════════════════

@admin_bp.route("/prospects/<int:prospect_id>", methods=["PUT"])
@admin_required
def update_prospect(prospect_id):
    data = request.get_json(silent=True) or {}
    prospect = prospect_service.update_prospect(prospect_id, data)
    _audit("prospect_updated", "prospects", prospect_id, fields=sorted(data))
    db.session.commit()
    return jsonify(as_dict(prospect))


@admin_bp.route("/prospects/<int:prospect_id>", methods=["DELETE"])
@admin_required
def delete_prospect(prospect_id):
    prospect_service.delete_prospect(prospect_id)
    _audit("prospect_deleted", "prospects", prospect_id)
    db.session.commit()
    logger.info(f"Admin {current_user.email} deleted prospect {prospect_id}")
    return jsonify({"success": True})


@admin_bp.route("/dispositions/<disposition_id>", methods=["DELETE"])
@admin_required
def delete_disposition(disposition_id):
    disposition_service.delete_disposition(current_user.id, disposition_id)
    db.session.commit()
    return jsonify({"success": True})


# ══════════════════════════════════════════════
#  LUSHA KEY POOL
# ══════════════════════════════════════════════

@admin_bp.route("/lusha-keys")
@admin_required
def list_lusha_keys():
    return jsonify({"keys": lusha_service.list_keys()})


@admin_bp.route("/lusha-keys", methods=["POST"])
@admin_required
def add_lusha_keys():
    data = request.get_json(silent=True) or {}
    keys = data.get("keys")
    if isinstance(keys, str):
        keys = keys.splitlines()
    added = lusha_service.add_keys(keys, data.get("category"))
    return jsonify({"added": added}), 201


@admin_bp.route("/lusha-keys/<key_id>", methods=["PATCH"])
@admin_required
def toggle_lusha_key(key_id):
    data = request.get_json(silent=True) or {}
    key = lusha_service.toggle_key(key_id, data.get("is_active", True))
    return jsonify({"id": key.id, "is_active": key.is_active, "status": key.status})


@admin_bp.route("/lusha-keys/<key_id>", methods=["DELETE"])
@admin_required
def delete_lusha_key(key_id):
    lusha_service.delete_key(key_id)
    return jsonify({"success": True})


# ══════════════════════════════════════════════
#  AUDIT & USERS
# ══════════════════════════════════════════════

@admin_bp.route("/audit")
@admin_required
def audit_log():
    limit = min(request.args.get("limit", 50, type=int) or 50, AUDIT_PAGE_LIMIT)
    query = AuditLog.query
    action = request.args.get("action")
    if action:
        query = query.filter_by(action=action)
    entries = query.order_by(AuditLog.created_at.desc()).limit(limit).all()
    return jsonify({"entries": [as_dict(e) for e in entries]})


@admin_bp.route("/users")
@admin_required
def list_users():
    return jsonify({"users": user_service.list_users()})


@admin_bp.route("/users/<user_id>/status", methods=["PATCH"])
@admin_required
def set_user_status(user_id):
    data = request.get_json(silent=True) or {}
    profile = user_service.set_user_status(user_id, data.get("status"))
    return jsonify(as_dict(profile))
