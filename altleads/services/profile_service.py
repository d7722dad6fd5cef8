"""Profile service — lazy profile sync, role lookup, display identity.

Every authenticated identity should have a ``users`` profile row.
sync_user_profile() creates it on demand. It is a best-effort side call:
it never raises, it returns a ProfileSyncResult that the caller logs
and moves past.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from altleads.extensions import db
from altleads.models.user import User

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"
UNKNOWN_PROJECT = "Unknown Project"


@dataclass
class ProfileSyncResult:
    ok: bool
    created: bool = False
    error: str = None


def _local_part(email):
    if not email or "@" not in email:
        return None
    return email.split("@", 1)[0] or None


def sync_user_profile(auth_user):
    """Create the profile row for ``auth_user`` if it does not exist yet.

    Commits on its own so a later failure in the caller's write does not
    take the profile with it.
    """
    try:
        if db.session.get(User, auth_user.id) is not None:
            return ProfileSyncResult(ok=True)

        meta = auth_user.metadata_dict
        profile = User(
            id=auth_user.id,
            email=auth_user.email,
            name=meta.get("full_name") or _local_part(auth_user.email),
            role=auth_user.role if auth_user.role in User.ROLES else "caller",
            project_name=meta.get("project_name"),
            status="active",
        )
        db.session.add(profile)
        db.session.commit()
        return ProfileSyncResult(ok=True, created=True)
    except SQLAlchemyError as e:
        db.session.rollback()
        return ProfileSyncResult(ok=False, error=str(e))


def sync_profile_logged(auth_user):
    """sync_user_profile() plus the log line every caller wants."""
    result = sync_user_profile(auth_user)
    if not result.ok:
        logger.warning(f"Profile sync failed for {auth_user.id}: {result.error}")
    elif result.created:
        logger.info(f"Created missing profile for {auth_user.email}")
    return result


def get_current_user_role(auth_user):
    """Profile role, then sign-up metadata role, then "caller"."""
    if auth_user is None:
        return None
    return auth_user.role


def resolve_display_identity(auth_user, profile=None):
    """Name and project to snapshot onto rows written by ``auth_user``.

    Name: profile name, metadata full_name, profile email local-part,
    identity email local-part, then "Unknown User". Project: profile
    project, metadata project_name, then "Unknown Project".
    """
    if profile is None:
        profile = db.session.get(User, auth_user.id)
    meta = auth_user.metadata_dict

    user_name = (
        (profile.name if profile else None)
        or meta.get("full_name")
        or _local_part(profile.email if profile else None)
        or _local_part(auth_user.email)
        or UNKNOWN_USER
    )
    project_name = (
        (profile.project_name if profile else None)
        or meta.get("project_name")
        or UNKNOWN_PROJECT
    )
    return user_name, project_name


def touch_last_active(auth_user):
    """Stamp login time on the identity and (if present) the profile. Flushes only."""
    now = datetime.now(timezone.utc)
    auth_user.last_sign_in_at = now
    profile = db.session.get(User, auth_user.id)
    if profile is not None:
        profile.last_active = now
    db.session.flush()
