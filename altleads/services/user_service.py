"""User admin service — provisioning, bulk creation, updates, deletion, listing.

Creating a user writes the auth identity first, then the profile row.
The profile insert is best-effort: if it fails the identity still stands
and profile sync fills the gap on first use.
"""

import logging
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import generate_password_hash

from altleads.errors import ConflictError, NotFoundError, ValidationError, WriteError
from altleads.extensions import db
from altleads.models.audit import AuditLog
from altleads.models.notification import Notification
from altleads.models.rtne import ProjectUser
from altleads.models.user import AuthUser, User

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
ADMIN_PROJECT = "ADMIN"


def _clean_email(email):
    return (email or "").strip().lower()


def _effective_role(role):
    return "admin" if role == "admin" else "caller"


def _effective_project(role, project_name):
    return ADMIN_PROJECT if role == "admin" else (project_name or "").strip() or None


def _audit(actor_id, action, target_id, **metadata):
    db.session.add(AuditLog(
        user_id=actor_id,
        action=action,
        target_table="auth_users",
        target_id=target_id,
        metadata_=metadata,
    ))


def create_user(actor_id, email, password, full_name, project_name=None, role="caller"):
    """Provision an identity and its profile.

    Returns:
        Dict describing the new user.

    Raises:
        ValidationError: bad email, short password, or missing name.
        ConflictError: email already registered.
    """
    email = _clean_email(email)
    full_name = (full_name or "").strip()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not full_name:
        raise ValidationError("Full name is required")

    role = _effective_role(role)
    project = _effective_project(role, project_name)

    if AuthUser.query.filter_by(email=email).first() is not None:
        raise ConflictError(f"A user with email {email} already exists")

    identity = AuthUser(
        email=email,
        password_hash=generate_password_hash(password),
        user_metadata={"full_name": full_name, "project_name": project, "role": role},
    )
    try:
        db.session.add(identity)
        db.session.flush()
        _audit(actor_id, "user_created", identity.id, email=email, role=role)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"A user with email {email} already exists") from None

    try:
        db.session.add(User(
            id=identity.id,
            email=email,
            name=full_name,
            role=role,
            project_name=project,
            status="active",
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"Profile insert failed for new user {email}: {e}")

    logger.info(f"Created user {email} ({role})")
    return {
        "id": identity.id,
        "email": email,
        "name": full_name,
        "role": role,
        "project_name": project,
    }


def create_users_bulk(actor_id, users):
    """Create many users, reporting per-user success instead of failing the batch.

    Each entry needs email and password; role defaults to "caller" and the
    name to the email's local part.
    """
    if not isinstance(users, list):
        raise ValidationError("Invalid request body. Expected an array of users.")

    results = []
    for entry in users:
        entry = entry if isinstance(entry, dict) else {}
        email = _clean_email(entry.get("email"))
        try:
            created = create_user(
                actor_id,
                email,
                entry.get("password"),
                entry.get("full_name") or email.split("@")[0],
                project_name=entry.get("project_name"),
                role=entry.get("role") or "caller",
            )
            results.append({
                "email": email,
                "success": True,
                "userId": created["id"],
                "message": "User created successfully",
            })
        except (ValidationError, ConflictError) as e:
            results.append({"email": email, "success": False, "message": e.message})
    return results


def update_user(actor_id, user_id, email, full_name, project_name=None, role="caller"):
    """Update identity metadata and the profile. Commits."""
    email = _clean_email(email)
    full_name = (full_name or "").strip()
    if not user_id or not email or not full_name:
        raise ValidationError("Missing required fields")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")

    identity = db.session.get(AuthUser, user_id)
    if identity is None:
        raise NotFoundError(f"User {user_id} not found")

    role = _effective_role(role)
    project = _effective_project(role, project_name)

    identity.email = email
    identity.user_metadata = {
        **identity.metadata_dict,
        "full_name": full_name,
        "project_name": project,
        "role": role,
    }
    profile = db.session.get(User, user_id)
    if profile is not None:
        profile.email = email
        profile.name = full_name
        profile.role = role
        profile.project_name = project
    _audit(actor_id, "user_updated", user_id, email=email, role=role)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"A user with email {email} already exists") from None
    return {"success": True}


def set_user_status(user_id, status):
    if status not in User.STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(User.STATUSES)}")
    profile = db.session.get(User, user_id)
    if profile is None:
        raise NotFoundError(f"User {user_id} not found")
    profile.status = status
    db.session.commit()
    return profile


def delete_user(actor_id, user_id):
    """Delete a user and their dependent rows, then the identity.

    Disposition rows are kept; their name/project snapshot still renders.
    """
    if not user_id:
        raise ValidationError("Missing userId parameter")
    identity = db.session.get(AuthUser, user_id)
    if identity is None:
        raise NotFoundError(f"User {user_id} not found")
    email = identity.email

    try:
        ProjectUser.query.filter_by(user_id=user_id).delete()
        Notification.query.filter_by(user_id=user_id).delete()
        profile = db.session.get(User, user_id)
        if profile is not None:
            db.session.delete(profile)
        db.session.flush()
        db.session.delete(identity)
        _audit(actor_id, "user_deleted", user_id, email=email)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Deleting user {user_id} failed: {e}")
        raise WriteError(f"Database error deleting user: {e}") from e

    logger.info(f"Deleted user {email}")
    return {"success": True, "message": f"User {email} deleted successfully"}


def list_users():
    """Every identity merged with its profile, newest first.

    Missing profile fields fall back to metadata: name -> full_name ->
    email local part; role -> identity role; status -> "active".
    """
    identities = AuthUser.query.order_by(AuthUser.created_at.desc()).all()
    profiles = {p.id: p for p in User.query.all()}

    users = []
    for identity in identities:
        profile = profiles.get(identity.id)
        meta = identity.metadata_dict
        users.append({
            "id": identity.id,
            "email": identity.email,
            "name": (profile.name if profile else None)
            or meta.get("full_name")
            or identity.email.split("@")[0],
            "role": identity.role,
            "project_name": (profile.project_name if profile else None)
            or meta.get("project_name")
            or "Unknown",
            "status": (profile.status if profile else None) or "active",
            "last_active": _iso(
                (profile.last_active if profile else None) or identity.last_sign_in_at
            ),
            "created_at": _iso(identity.created_at),
            "has_profile": profile is not None,
        })
    return users


def _iso(value):
    return value.isoformat() if value is not None else None
