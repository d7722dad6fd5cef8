"""RTNE blueprint — /api/rtne/*

Session routes behind the RTNE grid: lookup-before-create, enrichment
with a cancel-on-timeout wait, grid rows and per-phone dispositions.

Route Map:
  GET   /api/rtne/lookup                                 — Find master prospect by LinkedIn URL
  POST  /api/rtne/enrich                                 — Enrich via pooled Lusha keys
  GET   /api/rtne/requests?project_name=                 — Grid rows for a project
  POST  /api/rtne/requests                               — Add a grid row
  PATCH /api/rtne/requests/<id>                          — Edit one cell
  POST  /api/rtne/requests/<id>/complete                 — Mark row completed (fulfiller)
  POST  /api/rtne/requests/<id>/phones/<n>/disposition   — Mark phone n correct/wrong
  GET   /api/rtne/stats                                  — Pending/completed counts per project (fulfiller)
  GET   /api/rtne/projects/<name>/queue                  — Pending and completed rows (fulfiller)
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from altleads.decorators import fulfiller_required
from altleads.errors import ValidationError
from altleads.models import as_dict
from altleads.services import lusha_service, reveal_service, rtne_service

rtne_bp = Blueprint("rtne", __name__, url_prefix="/api/rtne")

logger = logging.getLogger(__name__)


@rtne_bp.route("/lookup")
@login_required
def lookup():
    linkedin_url = request.args.get("linkedin_url", "")
    if not linkedin_url.strip():
        raise ValidationError("linkedin_url is required")
    return jsonify(rtne_service.lookup_prospect(linkedin_url).to_dict())


@rtne_bp.route("/enrich", methods=["POST"])
@login_required
def enrich():
    """Run an enrichment and wait up to ENRICHMENT_TIMEOUT seconds.

    On timeout the run is cancelled: a result arriving later is dropped.
    """
    tracker = reveal_service.for_current_user()
    if not tracker.can_perform_search():
        return jsonify({"error": tracker.pending_message()}), 409

    data = request.get_json(silent=True) or {}
    category = data.get("category")
    params = {
        k: data.get(k)
        for k in ("linkedinUrl", "firstName", "lastName", "companyName")
        if data.get(k)
    }
    lusha_service.validate_enrich_request(category, params)

    run = lusha_service.CancellableEnrichment(
        current_app._get_current_object(),
        category,
        params,
        master_prospect_id=data.get("master_prospect_id"),
    ).start()
    result = run.wait(current_app.config["ENRICHMENT_TIMEOUT"])
    if result is None:
        if run.error is not None:
            return jsonify({"error": "Enrichment failed", "details": str(run.error)}), 502
        logger.warning(f"Enrichment for {current_user.email} timed out; cancelled")
        return jsonify({"error": "Enrichment timed out", "cancelled": True}), 504

    body = result.to_dict()
    return jsonify(body), 200 if result.success else 502


# ─── Grid rows ───────────────────────────────────────────────────

@rtne_bp.route("/requests")
@login_required
def list_requests():
    project_name = request.args.get("project_name", "").strip()
    if not project_name:
        raise ValidationError("project_name is required")
    rows = rtne_service.list_requests(project_name)
    return jsonify([as_dict(r) for r in rows])


@rtne_bp.route("/requests", methods=["POST"])
@login_required
def create_request():
    data = request.get_json(silent=True) or {}
    row = rtne_service.create_request(current_user, data.get("project_name"), data)
    return jsonify(as_dict(row)), 201


@rtne_bp.route("/requests/<request_id>", methods=["PATCH"])
@login_required
def update_request(request_id):
    data = request.get_json(silent=True) or {}
    row = rtne_service.update_request_field(request_id, data.get("field"), data.get("value"))
    return jsonify(as_dict(row))


@rtne_bp.route("/requests/<request_id>/complete", methods=["POST"])
@fulfiller_required
def complete_request(request_id):
    row = rtne_service.complete_request(request_id, current_user.id)
    return jsonify(as_dict(row))


@rtne_bp.route("/requests/<request_id>/phones/<int:slot>/disposition", methods=["POST"])
@login_required
def phone_disposition(request_id, slot):
    data = request.get_json(silent=True) or {}
    row = rtne_service.mark_phone_disposition(
        request_id, slot, data.get("disposition"), current_user.id
    )
    return jsonify(as_dict(row))


# ─── Fulfilment ──────────────────────────────────────────────────

@rtne_bp.route("/stats")
@fulfiller_required
def project_stats():
    return jsonify(rtne_service.project_stats())


@rtne_bp.route("/projects/<path:project_name>/queue")
@fulfiller_required
def project_queue(project_name):
    queue = rtne_service.project_queue(project_name)
    return jsonify({
        "project_name": project_name,
        "pending": [as_dict(r) for r in queue["pending"]],
        "completed": [as_dict(r) for r in queue["completed"]],
    })
