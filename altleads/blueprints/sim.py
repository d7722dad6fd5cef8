"""SIM inventory blueprint — /admin/api/sim/*

The calling-SIM pool: numbers, operators, agent assignment, spam strikes
and deactivations. All routes protected by @admin_required decorator.

Route Map:
  GET    /admin/api/sim/sims                   — SIM list (?search=, status=, operator=)
  POST   /admin/api/sim/sims                   — Add a SIM {sim_number, operator?, agent_id?, ...}
  GET    /admin/api/sim/stats                  — Dashboard counts
  POST   /admin/api/sim/sims/<id>/assign       — Assign to an agent {agent_id, project_name?}
  POST   /admin/api/sim/sims/<id>/spam         — Record a spam strike {remarks?}
  POST   /admin/api/sim/sims/<id>/deactivate   — Deactivate {reason?}
  POST   /admin/api/sim/sims/<id>/reactivate   — Back to Active
  PATCH  /admin/api/sim/sims/<id>/status       — Set status {status}
  DELETE /admin/api/sim/sims/<id>              — Delete a SIM and its history
  GET    /admin/api/sim/spam-history           — Latest spam strikes
  GET    /admin/api/sim/audit                  — Inventory audit trail (?sim_id=)
  GET    /admin/api/sim/agents                 — Agent list
  POST   /admin/api/sim/agents                 — Add an agent {name, project?}
  PATCH  /admin/api/sim/agents/<id>/toggle     — Flip Active / Inactive
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from altleads.decorators import admin_required
from altleads.models import as_dict
from altleads.services import sim_service

sim_bp = Blueprint("sim", __name__, url_prefix="/admin/api/sim")

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════
#  SIMS
# ══════════════════════════════════════════════

@sim_bp.route("/sims")
@admin_required
def list_sims():
    sims = sim_service.list_sims(
        search=request.args.get("search"),
        statuses=request.args.getlist("status"),
        operator=request.args.get("operator"),
    )
    return jsonify({"sims": [sim_service.sim_to_dict(s) for s in sims]})


@sim_bp.route("/sims", methods=["POST"])
@admin_required
def add_sim():
    data = request.get_json(silent=True) or {}
    sim = sim_service.add_sim(
        current_user.id,
        data.get("sim_number"),
        operator=data.get("operator"),
        agent_id=data.get("agent_id"),
        project_name=data.get("project_name"),
        status=data.get("status") or "Inactive",
    )
    return jsonify(sim_service.sim_to_dict(sim)), 201


@sim_bp.route("/stats")
@admin_required
def stats():
    return jsonify(sim_service.inventory_stats())


@sim_bp.route("/sims/<sim_id>/assign", methods=["POST"])
@admin_required
def assign_agent(sim_id):
    data = request.get_json(silent=True) or {}
    sim = sim_service.assign_agent(
        current_user.id, sim_id, data.get("agent_id"), data.get("project_name")
    )
    return jsonify(sim_service.sim_to_dict(sim))


@sim_bp.route("/sims/<sim_id>/spam", methods=["POST"])
@admin_required
def mark_spam(sim_id):
    data = request.get_json(silent=True) or {}
    sim = sim_service.mark_spam(current_user.id, sim_id, data.get("remarks"))
    return jsonify(sim_service.sim_to_dict(sim))


@sim_bp.route("/sims/<sim_id>/deactivate", methods=["POST"])
@admin_required
def deactivate(sim_id):
    data = request.get_json(silent=True) or {}
    sim = sim_service.deactivate(current_user.id, sim_id, data.get("reason"))
    return jsonify(sim_service.sim_to_dict(sim))


@sim_bp.route("/sims/<sim_id>/reactivate", methods=["POST"])
@admin_required
def reactivate(sim_id):
    sim = sim_service.reactivate(current_user.id, sim_id)
    return jsonify(sim_service.sim_to_dict(sim))


@sim_bp.route("/sims/<sim_id>/status", methods=["PATCH"])
@admin_required
def change_status(sim_id):
    data = request.get_json(silent=True) or {}
    sim = sim_service.change_status(current_user.id, sim_id, data.get("status"))
    return jsonify(sim_service.sim_to_dict(sim))


@sim_bp.route("/sims/<sim_id>", methods=["DELETE"])
@admin_required
def delete_sim(sim_id):
    sim_service.delete_sim(current_user.id, sim_id)
    logger.info(f"Admin {current_user.email} deleted SIM {sim_id}")
    return jsonify({"success": True})


@sim_bp.route("/spam-history")
@admin_required
def spam_history():
    return jsonify({"entries": sim_service.spam_history()})


@sim_bp.route("/audit")
@admin_required
def audit():
    entries = sim_service.audit_entries(sim_id=request.args.get("sim_id"))
    return jsonify({"entries": [as_dict(e) for e in entries]})


# ══════════════════════════════════════════════
#  AGENTS
# ══════════════════════════════════════════════

@sim_bp.route("/agents")
@admin_required
def list_agents():
    return jsonify({"agents": [as_dict(a) for a in sim_service.list_agents()]})


@sim_bp.route("/agents", methods=["POST"])
@admin_required
def add_agent():
    data = request.get_json(silent=True) or {}
    agent = sim_service.add_agent(data.get("name"), data.get("project"))
    return jsonify(as_dict(agent)), 201


@sim_bp.route("/agents/<agent_id>/toggle", methods=["PATCH"])
@admin_required
def toggle_agent(agent_id):
    agent = sim_service.toggle_agent_status(agent_id)
    return jsonify(as_dict(agent))
