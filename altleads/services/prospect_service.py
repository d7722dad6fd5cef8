"""Prospect service — search, contact reveal, admin edits, connection check."""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, text
from sqlalchemy.exc import SQLAlchemyError

from altleads.errors import NotFoundError, ValidationError
from altleads.extensions import db
from altleads.linkedin import extract_linkedin_username, ilike_escape, normalize_linkedin_url
from altleads.models import as_dict
from altleads.models.disposition import Disposition
from altleads.models.prospect import Prospect

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100

EDITABLE_FIELDS = [
    "full_name",
    "company_name",
    "prospect_designation",
    "prospect_city",
    "prospect_number",
    "prospect_number2",
    "prospect_number3",
    "prospect_number4",
    "prospect_email",
    "prospect_linkedin",
]

# Contact fields hidden from search results until revealed.
CONTACT_FIELDS = Prospect.PHONE_FIELDS + ["prospect_email"]


def _like(value):
    return f"%{ilike_escape(value.strip())}%"


def public_dict(prospect):
    data = as_dict(prospect, exclude=CONTACT_FIELDS)
    data["has_phone"] = bool(prospect.phone_numbers)
    data["has_email"] = bool(prospect.prospect_email)
    return data


def search_prospects(name=None, company=None, location=None, linkedin_url=None,
                     limit=SEARCH_LIMIT):
    """Search by LinkedIn URL, or by any mix of name / company / location.

    LinkedIn search matches the canonical URL exactly or the extracted
    username as a substring. Contact fields are left out of the results.
    """
    query = Prospect.query
    if linkedin_url and linkedin_url.strip():
        canonical = normalize_linkedin_url(linkedin_url)
        username = extract_linkedin_username(linkedin_url)
        conditions = [Prospect.canonical_linkedin == canonical]
        if username:
            conditions.append(
                Prospect.prospect_linkedin.ilike(_like(username), escape="\\")
            )
        query = query.filter(or_(*conditions))
    else:
        criteria = {
            Prospect.full_name: name,
            Prospect.company_name: company,
            Prospect.prospect_city: location,
        }
        filters = [
            column.ilike(_like(value), escape="\\")
            for column, value in criteria.items()
            if value and value.strip()
        ]
        if not filters:
            raise ValidationError("Enter a name, company, location or LinkedIn URL")
        query = query.filter(*filters)

    rows = query.order_by(Prospect.full_name).limit(limit).all()
    return [public_dict(p) for p in rows]


def get_prospect(prospect_id):
    prospect = db.session.get(Prospect, prospect_id)
    if prospect is None:
        raise NotFoundError(f"Prospect {prospect_id} not found")
    return prospect


def reveal_contact(prospect_id, tracker=None):
    """Return a prospect's phones and email, registering each phone with ``tracker``."""
    prospect = get_prospect(prospect_id)
    phones = prospect.phone_numbers
    if tracker is not None:
        for phone in phones:
            tracker.add_revealed_phone(prospect.id, phone)
    logger.info(f"Revealed contact details for prospect {prospect.id}")
    return {
        "prospect_id": prospect.id,
        "phones": phones,
        "email": prospect.prospect_email,
        "disposition_required": bool(phones) and tracker is not None
        and not tracker.is_admin,
    }


def update_prospect(prospect_id, data):
    """Apply whitelisted field edits. Flushes; the caller commits."""
    prospect = get_prospect(prospect_id)
    for field_name in EDITABLE_FIELDS:
        if field_name in data:
            value = data[field_name]
            setattr(prospect, field_name, value.strip() if isinstance(value, str) else value)
    if not prospect.full_name:
        raise ValidationError("Full name is required.")
    db.session.flush()
    return prospect


def delete_prospect(prospect_id):
    """Delete a prospect and its disposition history. Flushes; the caller commits."""
    prospect = get_prospect(prospect_id)
    for disposition in Disposition.query.filter_by(prospect_id=prospect.id).all():
        db.session.delete(disposition)
    db.session.delete(prospect)
    db.session.flush()


def check_connection():
    """Round-trip the database for the connection indicator. Never raises."""
    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        db.session.execute(text("SELECT 1"))
        count = db.session.query(db.func.count(Prospect.id)).scalar()
        return {"connected": True, "prospect_count": count, "checked_at": checked_at}
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Database connection check failed: {e}")
        return {"connected": False, "error": str(e), "checked_at": checked_at}
