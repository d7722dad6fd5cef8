"""Prospects blueprint — /api/*

Agent-facing search, reveal and disposition routes. All routes require a
signed-in session. While a revealed phone is waiting for a disposition,
new searches and reveals of other prospects answer 409 with the pending
message.

Route Map:
  GET    /api/prospects/search                 — Search (name/company/location or linkedin)
  GET    /api/prospects/<id>                   — Prospect detail (contact fields hidden)
  POST   /api/prospects/<id>/reveal            — Reveal phones/email
  GET    /api/prospects/<id>/dispositions      — Disposition history + DNC warning
  POST   /api/prospects/<id>/dispositions      — Record a disposition
  GET    /api/dispositions/pending             — Pending reveal state
  DELETE /api/dispositions/pending             — Dismiss all pending reveals
  GET    /api/connection                       — Database connection status
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from altleads.services import disposition_service, prospect_service, reveal_service

prospects_bp = Blueprint("prospects", __name__, url_prefix="/api")


def _blocked(tracker):
    return jsonify({
        "error": tracker.pending_message(),
        "pending": tracker.pending,
    }), 409


# ─── Search & reveal ─────────────────────────────────────────────

@prospects_bp.route("/prospects/search")
@login_required
def search():
    tracker = reveal_service.for_current_user()
    if not tracker.can_perform_search():
        return _blocked(tracker)

    results = prospect_service.search_prospects(
        name=request.args.get("name"),
        company=request.args.get("company"),
        location=request.args.get("location"),
        linkedin_url=request.args.get("linkedin"),
    )
    return jsonify({"results": results, "count": len(results)})


@prospects_bp.route("/prospects/<int:prospect_id>")
@login_required
def detail(prospect_id):
    tracker = reveal_service.for_current_user()
    if not tracker.can_search_specific_prospect(prospect_id):
        return _blocked(tracker)
    prospect = prospect_service.get_prospect(prospect_id)
    return jsonify(prospect_service.public_dict(prospect))


@prospects_bp.route("/prospects/<int:prospect_id>/reveal", methods=["POST"])
@login_required
def reveal(prospect_id):
    tracker = reveal_service.for_current_user()
    if not tracker.can_search_specific_prospect(prospect_id):
        return _blocked(tracker)
    return jsonify(prospect_service.reveal_contact(prospect_id, tracker))


# ─── Dispositions ────────────────────────────────────────────────

@prospects_bp.route("/prospects/<int:prospect_id>/dispositions")
@login_required
def disposition_history(prospect_id):
    history = disposition_service.get_disposition_history(prospect_id)
    return jsonify(history.to_dict())


@prospects_bp.route("/prospects/<int:prospect_id>/dispositions", methods=["POST"])
@login_required
def create_disposition(prospect_id):
    data = request.get_json(silent=True) or {}
    disposition = disposition_service.create_disposition(
        current_user,
        prospect_id,
        data.get("disposition_type"),
        data.get("custom_reason"),
    )
    tracker = reveal_service.for_current_user()
    tracker.mark_disposition_complete(prospect_id)
    return jsonify({
        "disposition": disposition,
        "has_pending_disposition": tracker.has_pending_disposition,
    }), 201


@prospects_bp.route("/dispositions/pending")
@login_required
def pending_dispositions():
    return jsonify(reveal_service.for_current_user().to_dict())


@prospects_bp.route("/dispositions/pending", methods=["DELETE"])
@login_required
def clear_pending_dispositions():
    tracker = reveal_service.for_current_user()
    tracker.clear_all()
    return jsonify(tracker.to_dict())


@prospects_bp.route("/connection")
@login_required
def connection_status():
    return jsonify(prospect_service.check_connection())
