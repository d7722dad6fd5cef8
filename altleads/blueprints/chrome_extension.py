"""Chrome extension blueprint — /functions/v1/chrome-extension-*

Endpoints used by the LinkedIn capture extension. Extension accounts are
separate from web accounts and authenticate with their own signed token.
Every response carries CORS headers. CSRF-exempt.

Route Map:
  POST   /functions/v1/chrome-extension-login       — Email + password, returns token
  GET    /functions/v1/chrome-extension-validate    — Check a token
  GET    /functions/v1/chrome-extension-prospects   — Paginated saved prospects (?page, limit, search)
  POST   /functions/v1/chrome-extension-prospects   — Save a prospect
  DELETE /functions/v1/chrome-extension-prospects?id= — Delete own prospect
"""

import logging
import math

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash

from altleads.decorators import extension_auth_required
from altleads.extensions import db, limiter
from altleads.linkedin import ilike_escape
from altleads.models import as_dict
from altleads.models.chrome_extension import ChromeExtensionUser, ChromeProspect
from altleads.services import token_service

chrome_bp = Blueprint("chrome_extension", __name__, url_prefix="/functions/v1")

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@chrome_bp.after_request
def _cors_response(response):
    response.headers["Access-Control-Allow-Origin"] = current_app.config.get(
        "CORS_ALLOW_ORIGIN", "*"
    )
    response.headers["Access-Control-Allow-Methods"] = "POST, GET, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = (
        "authorization, x-client-info, apikey, content-type"
    )
    return response


def _int_arg(name, default):
    try:
        return max(int(request.args.get(name, default)), 1)
    except (TypeError, ValueError):
        return default


# ─── Auth ────────────────────────────────────────────────────────

@chrome_bp.route("/chrome-extension-login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = ChromeExtensionUser.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed extension login for {email}")
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({
        "token": token_service.create_extension_token(user),
        "user": {"id": user.id, "email": user.email},
    })


@chrome_bp.route("/chrome-extension-validate")
@extension_auth_required
def validate():
    user = g.extension_user
    return jsonify({"valid": True, "user": {"id": user.id, "email": user.email}})


# ─── Saved prospects ─────────────────────────────────────────────

@chrome_bp.route("/chrome-extension-prospects")
@extension_auth_required
def list_prospects():
    page = _int_arg("page", 1)
    limit = min(_int_arg("limit", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    search = (request.args.get("search") or "").strip()

    query = ChromeProspect.query.filter_by(user_id=g.extension_user.id)
    if search:
        pattern = f"%{ilike_escape(search)}%"
        query = query.filter(or_(
            ChromeProspect.name.ilike(pattern, escape="\\"),
            ChromeProspect.company.ilike(pattern, escape="\\"),
            ChromeProspect.job_title.ilike(pattern, escape="\\"),
        ))

    total = query.count()
    prospects = (
        query.order_by(ChromeProspect.created_at.desc(), ChromeProspect.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify({
        "prospects": [as_dict(p) for p in prospects],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    })


@chrome_bp.route("/chrome-extension-prospects", methods=["POST"])
@extension_auth_required
def save_prospect():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    linkedin_url = (data.get("linkedin_url") or "").strip()
    if not name or not linkedin_url:
        return jsonify({"error": "Missing required fields: name and linkedin_url"}), 400

    user_id = g.extension_user.id
    if ChromeProspect.query.filter_by(user_id=user_id, linkedin_url=linkedin_url).first():
        return jsonify({"error": "Prospect already exists"}), 409

    prospect = ChromeProspect(
        user_id=user_id,
        name=name,
        linkedin_url=linkedin_url,
        job_title=data.get("job_title"),
        company=data.get("company"),
        location=data.get("location"),
        email=data.get("email"),
        phone=data.get("phone"),
        notes=data.get("notes"),
    )
    try:
        db.session.add(prospect)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Prospect already exists"}), 409

    logger.info(f"Extension user {g.extension_user.email} saved {name}")
    return jsonify(as_dict(prospect)), 201


@chrome_bp.route("/chrome-extension-prospects", methods=["DELETE"])
@extension_auth_required
def delete_prospect():
    prospect_id = request.args.get("id", type=int)
    if prospect_id is None:
        return jsonify({"error": "Prospect ID is required"}), 400

    deleted = ChromeProspect.query.filter_by(
        id=prospect_id, user_id=g.extension_user.id
    ).delete()
    db.session.commit()
    if not deleted:
        return jsonify({"error": "Prospect not found"}), 404
    return jsonify({"message": "Prospect deleted successfully"})
