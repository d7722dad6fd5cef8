"""Disposition service — validation, the two write paths, history.

Both write paths (the agent's own session, and the privileged edge
function) go through the same steps and persist the same columns:

    validate -> best-effort profile sync -> resolve name/project snapshot
    -> single-row insert -> commit

The insert is one statement, so a failure leaves nothing behind.
"""

import logging
from dataclasses import dataclass, field

import bleach
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from altleads.errors import NotFoundError, ValidationError, WriteError
from altleads.extensions import db
from altleads.models import as_dict
from altleads.models.audit import AuditLog
from altleads.models.disposition import Disposition, DispositionType
from altleads.models.prospect import Prospect
from altleads.models.user import User
from altleads.services import profile_service

logger = logging.getLogger(__name__)

UNKNOWN_AGENT = "Unknown Agent"


def _sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return None
    return bleach.clean(str(text), tags=[], strip=True).strip()


def validate_disposition(disposition_type, custom_reason=None):
    """Check a submission before anything touches the database.

    Returns (DispositionType, reason). The reason is kept only for
    "others", where it is required; every other type stores None.

    Raises:
        ValidationError: no type selected, unknown type, or "others"
            without a reason.
    """
    allow_legacy = current_app.config.get("ACCEPT_LEGACY_DISPOSITIONS", True)
    dtype = DispositionType.parse(disposition_type, allow_legacy=allow_legacy)

    if dtype is DispositionType.OTHERS:
        reason = _sanitize(custom_reason)
        if not reason:
            raise ValidationError("Please provide a reason for 'Others'")
        return dtype, reason
    return dtype, None


def _insert(auth_user, prospect_id, dtype, reason):
    sync = profile_service.sync_profile_logged(auth_user)
    profile = db.session.get(User, auth_user.id) if sync.ok else None
    user_name, project_name = profile_service.resolve_display_identity(
        auth_user, profile
    )

    disposition = Disposition(
        prospect_id=prospect_id,
        user_id=auth_user.id,
        disposition_type=dtype.value,
        custom_reason=reason,
        user_name=user_name,
        project_name=project_name,
    )
    try:
        db.session.add(disposition)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Disposition insert failed for prospect {prospect_id}: {e}")
        raise WriteError("Failed to create disposition", details=str(e)) from e

    logger.info(
        f"Disposition {dtype.value} recorded on prospect {prospect_id} by {user_name}"
    )
    return as_dict(disposition)


def _coerce_prospect_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid prospect_id '{value}'") from None


def create_disposition(auth_user, prospect_id, disposition_type, custom_reason=None):
    """Client-direct path: the signed-in agent records an outcome.

    Raises:
        ValidationError: bad type or missing reason (nothing written).
        NotFoundError: no such prospect.
        WriteError: the insert failed.
    """
    dtype, reason = validate_disposition(disposition_type, custom_reason)
    prospect_id = _coerce_prospect_id(prospect_id)
    if db.session.get(Prospect, prospect_id) is None:
        raise NotFoundError(f"Prospect {prospect_id} not found")
    return _insert(auth_user, prospect_id, dtype, reason)


def create_disposition_privileged(auth_user, payload):
    """Privileged path behind the create-disposition edge function.

    The acting user always comes from the verified bearer token, never
    from the payload. A missing prospect surfaces as a write failure the
    same way a foreign-key violation would.
    """
    payload = payload or {}
    prospect_id = payload.get("prospect_id")
    disposition_type = payload.get("disposition_type")
    if prospect_id in (None, "") or not disposition_type:
        raise ValidationError("Missing required fields: prospect_id, disposition_type")

    dtype, reason = validate_disposition(disposition_type, payload.get("custom_reason"))
    prospect_id = _coerce_prospect_id(prospect_id)
    if db.session.get(Prospect, prospect_id) is None:
        raise WriteError(
            "Failed to create disposition",
            details=f"prospect {prospect_id} does not exist",
        )
    return _insert(auth_user, prospect_id, dtype, reason)


# ─── History ─────────────────────────────────────────────────────

@dataclass
class DispositionHistory:
    prospect_id: int
    entries: list = field(default_factory=list)
    dnc_warning: dict = None

    def to_dict(self):
        return {
            "prospect_id": self.prospect_id,
            "entries": self.entries,
            "dnc_warning": self.dnc_warning,
        }


def _author_display(disposition, profile):
    name = (profile.name if profile else None) or disposition.user_name or UNKNOWN_AGENT
    if profile is not None and profile.role == "admin":
        project = "Admin"
    else:
        project = (
            (profile.project_name if profile else None)
            or disposition.project_name
            or profile_service.UNKNOWN_PROJECT
        )
    return f"{name} ({project})"


def get_disposition_history(prospect_id):
    """All dispositions for a prospect, newest first, with author labels.

    Author names are fetched in one query for the distinct user ids. The
    DNC warning cites the most recent "dnc" entry, or is None.
    """
    prospect_id = _coerce_prospect_id(prospect_id)
    rows = (
        Disposition.query
        .filter_by(prospect_id=prospect_id)
        .order_by(Disposition.created_at.desc())
        .all()
    )

    user_ids = {row.user_id for row in rows}
    profiles = {}
    if user_ids:
        profiles = {
            u.id: u for u in User.query.filter(User.id.in_(user_ids)).all()
        }

    history = DispositionHistory(prospect_id=prospect_id)
    for row in rows:
        try:
            label = DispositionType.parse(row.disposition_type).label
        except ValidationError:
            label = row.disposition_type
        entry = as_dict(row)
        entry["label"] = label
        entry["author"] = _author_display(row, profiles.get(row.user_id))
        history.entries.append(entry)

        if history.dnc_warning is None and row.disposition_type == DispositionType.DNC.value:
            history.dnc_warning = {
                "disposition_id": row.id,
                "author": entry["author"],
                "created_at": entry["created_at"],
            }
    return history


def delete_disposition(actor_user_id, disposition_id):
    """Admin-only direct delete. Flushes; the caller commits."""
    disposition = db.session.get(Disposition, disposition_id)
    if disposition is None:
        raise NotFoundError(f"Disposition {disposition_id} not found")
    db.session.delete(disposition)
    db.session.add(AuditLog(
        user_id=actor_user_id,
        action="disposition_deleted",
        target_table="dispositions",
        target_id=disposition_id,
        metadata_={
            "prospect_id": disposition.prospect_id,
            "disposition_type": disposition.disposition_type,
        },
    ))
    db.session.flush()
