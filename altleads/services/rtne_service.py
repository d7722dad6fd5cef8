"""RTNE service — master prospect lookup/creation, project credits, grid rows.

Credit rules:
- The first time a master prospect is linked to a project, that mapping
  gets exactly one credit and one ``credits_log`` "allocate" entry.
- Linking the same pair again allocates nothing.
- An admin override moves the credit: clear all mappings -> ensure the
  target mapping -> set its credit -> log. Each step commits on its own.
  A failure raises CreditOverrideError naming the step; earlier steps stay
  committed and the missing "override" log entry marks the override as
  incomplete.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from altleads.errors import CreditOverrideError, NotFoundError, ValidationError, WriteError
from altleads.extensions import db
from altleads.linkedin import extract_linkedin_username, ilike_escape, normalize_linkedin_url
from altleads.models import as_dict
from altleads.models.audit import AuditLog
from altleads.models.notification import Notification
from altleads.models.rtne import (
    CreditLog,
    EnrichmentJob,
    MasterProspect,
    Project,
    ProjectProspect,
    ProjectUser,
    RtneRequest,
)
from altleads.models.user import User
from altleads.services import profile_service

logger = logging.getLogger(__name__)

# Project name carried by admin accounts; never an RTNE queue.
ADMIN_PROJECT = "ADMIN"

LOOKUP_FIELDS = [
    "full_name",
    "company_name",
    "prospect_designation",
    "prospect_city",
    "prospect_number",
    "prospect_number2",
    "prospect_number3",
    "prospect_number4",
    "prospect_email",
]

# Incoming RTNE row keys -> master prospect columns.
ROW_TO_MASTER = {
    "full_name": "full_name",
    "company_name": "company_name",
    "prospect_city": "prospect_city",
    "city": "prospect_city",
    "prospect_designation": "prospect_designation",
    "job_title": "prospect_designation",
    "prospect_email": "prospect_email",
    "email_address": "prospect_email",
    "prospect_number": "prospect_number",
    "primary_phone": "prospect_number",
    "prospect_number2": "prospect_number2",
    "prospect_number3": "prospect_number3",
    "prospect_number4": "prospect_number4",
}


def _now():
    return datetime.now(timezone.utc)


# ─── Lookup ──────────────────────────────────────────────────────

@dataclass
class LookupResult:
    found: bool
    data: dict = None
    match: str = None  # "exact" | "fuzzy"

    def to_dict(self):
        return {"found": self.found, "data": self.data, "match": self.match}


def lookup_prospect(linkedin_url):
    """Find a master prospect by LinkedIn URL: exact canonical match, then linkedin_id substring."""
    canonical = normalize_linkedin_url(linkedin_url)
    if not canonical:
        return LookupResult(found=False)

    master = MasterProspect.query.filter_by(canonical_url=canonical).first()
    match = "exact"
    if master is None:
        username = extract_linkedin_username(linkedin_url)
        master = (
            MasterProspect.query
            .filter(MasterProspect.linkedin_id.ilike(
                f"%{ilike_escape(username)}%", escape="\\"
            ))
            .order_by(MasterProspect.created_at)
            .first()
        )
        match = "fuzzy"
    if master is None:
        return LookupResult(found=False)

    data = {f: getattr(master, f) for f in LOOKUP_FIELDS}
    data["master_prospect_id"] = master.id
    return LookupResult(found=True, data=data, match=match)


# ─── Check-or-create ─────────────────────────────────────────────

def _ensure_project(caller, project_name):
    project = Project.query.filter_by(name=project_name).first()
    if project is None:
        project = Project(name=project_name, owner_id=caller.id)
        db.session.add(project)
        db.session.flush()
        logger.info(f"Created RTNE project '{project_name}' owned by {caller.email}")

    membership = ProjectUser.query.filter_by(
        project_id=project.id, user_id=caller.id
    ).first()
    if membership is None:
        db.session.add(ProjectUser(
            project_id=project.id,
            user_id=caller.id,
            role="owner" if project.owner_id == caller.id else "member",
        ))
    db.session.commit()
    return project


def _find_master(username, canonical):
    return MasterProspect.query.filter(
        or_(
            MasterProspect.linkedin_id == username,
            MasterProspect.canonical_url == canonical,
        )
    ).first()


def _get_or_create_master(caller, username, canonical, row):
    master = _find_master(username, canonical)
    if master is not None:
        return master, False

    fields = {}
    for key, column in ROW_TO_MASTER.items():
        value = row.get(key)
        if value and column not in fields:
            fields[column] = value.strip() if isinstance(value, str) else value

    master = MasterProspect(
        linkedin_id=username,
        canonical_url=canonical,
        created_by=caller.id,
        **fields,
    )
    try:
        db.session.add(master)
        db.session.commit()
        return master, True
    except IntegrityError:
        # Another request created it first.
        db.session.rollback()
        master = _find_master(username, canonical)
        if master is None:
            raise WriteError("Failed to create master prospect") from None
        return master, False


def _link_and_credit(caller, project, master):
    """Returns (mapping, credit_allocated)."""
    mapping = ProjectProspect.query.filter_by(
        project_id=project.id, master_prospect_id=master.id
    ).first()
    if mapping is not None:
        return mapping, False

    now = _now()
    mapping = ProjectProspect(
        project_id=project.id,
        master_prospect_id=master.id,
        added_by=caller.id,
        credit_allocated=True,
        credited_at=now,
    )
    try:
        db.session.add(mapping)
        db.session.add(CreditLog(
            master_prospect_id=master.id,
            project_id=project.id,
            user_id=caller.id,
            action="allocate",
            details={"reason": "First mapping credit"},
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        mapping = ProjectProspect.query.filter_by(
            project_id=project.id, master_prospect_id=master.id
        ).first()
        if mapping is None:
            raise WriteError("Failed to link prospect to project") from None
        return mapping, False
    logger.info(f"Allocated credit for {master.linkedin_id} to project {project.name}")
    return mapping, True


def _best_effort(description, *objects):
    """Add and commit side rows; failures are logged, never raised."""
    try:
        for obj in objects:
            db.session.add(obj)
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.warning(f"RTNE side write failed ({description}): {e}")
        return False


def check_or_create(caller, project_name, row):
    """Link a LinkedIn profile to a project, creating the master record if needed.

    Args:
        caller: AuthUser making the request.
        project_name: Project to link into (created if missing).
        row: Dict with at least ``prospect_linkedin``; other RTNE columns
            seed a newly created master record.

    Returns:
        Dict with success, createdMaster, creditAllocated, message,
        master_prospect_id and mappings.

    Raises:
        ValidationError: missing project name, or a missing or non-profile
            LinkedIn URL.
        WriteError: master record or mapping could not be written.
    """
    project_name = (project_name or "").strip()
    row = row or {}
    linkedin = (row.get("prospect_linkedin") or row.get("linkedin_url") or "").strip()
    if not project_name:
        raise ValidationError("projectName is required")
    if not linkedin:
        raise ValidationError("row.prospect_linkedin is required")

    username = extract_linkedin_username(linkedin)
    canonical = normalize_linkedin_url(linkedin)
    if not username:
        raise ValidationError("row.prospect_linkedin is not a LinkedIn profile URL")

    project = _ensure_project(caller, project_name)
    master, created_master = _get_or_create_master(caller, username, canonical, row)
    mapping, credit_allocated = _link_and_credit(caller, project, master)

    if created_master:
        _best_effort(
            "enrichment job",
            EnrichmentJob(master_prospect_id=master.id, status="pending", provider="lusha"),
        )
    if credit_allocated and project.owner_id:
        _best_effort(
            "owner notification",
            Notification(
                user_id=project.owner_id,
                type="rtne_new_prospect",
                payload={
                    "master_prospect_id": master.id,
                    "project_id": project.id,
                    "project_name": project.name,
                    "linkedin": canonical,
                    "added_by": caller.id,
                },
            ),
        )
    _best_effort(
        "audit",
        AuditLog(
            user_id=caller.id,
            action="rtne_create_master" if created_master else "rtne_link_existing",
            target_table="master_prospects",
            target_id=master.id,
            metadata_={
                "project_id": project.id,
                "credit_allocated": credit_allocated,
            },
        ),
    )

    if created_master:
        message = "Created new master prospect and allocated credit"
    elif credit_allocated:
        message = "Linked existing prospect to project and allocated credit"
    else:
        message = "Prospect already linked to this project"

    mappings = ProjectProspect.query.filter_by(master_prospect_id=master.id).all()
    return {
        "success": True,
        "createdMaster": created_master,
        "creditAllocated": credit_allocated,
        "message": message,
        "master_prospect_id": master.id,
        "mappings": [as_dict(m) for m in mappings],
    }


# ─── Admin override ──────────────────────────────────────────────

def _run_step(step, fn, *args):
    try:
        result = fn(*args)
        db.session.commit()
        return result
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Credit override step '{step}' failed: {e}")
        raise CreditOverrideError(step, e) from e


def _clear_allocations(master_id):
    mappings = ProjectProspect.query.filter_by(master_prospect_id=master_id).all()
    previous = [m.project_id for m in mappings if m.credit_allocated]
    for m in mappings:
        m.credit_allocated = False
        m.credited_at = None
    return previous


def _ensure_mapping(caller, master_id, project_id):
    mapping = ProjectProspect.query.filter_by(
        project_id=project_id, master_prospect_id=master_id
    ).first()
    if mapping is None:
        mapping = ProjectProspect(
            project_id=project_id,
            master_prospect_id=master_id,
            added_by=caller.id,
            credit_allocated=False,
        )
        db.session.add(mapping)
        db.session.flush()
    return mapping.id


def _set_credit(mapping_id):
    mapping = db.session.get(ProjectProspect, mapping_id)
    mapping.credit_allocated = True
    mapping.credited_at = _now()


def _write_override_log(caller, master_id, project_id, previous):
    db.session.add(CreditLog(
        master_prospect_id=master_id,
        project_id=project_id,
        user_id=caller.id,
        action="override",
        details={"reason": "Admin override reassign", "previous_projects": previous},
    ))
    db.session.add(AuditLog(
        user_id=caller.id,
        action="rtne_credit_override",
        target_table="project_prospects",
        target_id=master_id,
        metadata_={"to_project_id": project_id, "previous_projects": previous},
    ))


def reassign_credit(caller, master_prospect_id, to_project_id):
    """Move a master prospect's credit to another project (admin only)."""
    if not master_prospect_id or not to_project_id:
        raise ValidationError("master_prospect_id and to_project_id are required")
    if db.session.get(MasterProspect, master_prospect_id) is None:
        raise NotFoundError(f"Master prospect {master_prospect_id} not found")
    if db.session.get(Project, to_project_id) is None:
        raise NotFoundError(f"Project {to_project_id} not found")

    previous = _run_step("clear", _clear_allocations, master_prospect_id)
    mapping_id = _run_step(
        "ensure_mapping", _ensure_mapping, caller, master_prospect_id, to_project_id
    )
    _run_step("set_credit", _set_credit, mapping_id)
    _run_step(
        "log", _write_override_log, caller, master_prospect_id, to_project_id, previous
    )
    logger.info(
        f"Credit for {master_prospect_id} reassigned to {to_project_id} by {caller.email}"
    )
    mappings = ProjectProspect.query.filter_by(master_prospect_id=master_prospect_id).all()
    return {"success": True, "mappings": [as_dict(m) for m in mappings]}


# ─── Enrichment jobs ─────────────────────────────────────────────

def process_enrichment(master_prospect_id):
    """Run one enrichment pass over the stored master record.

    The job goes processing -> completed. There is no failed state: an
    exception propagates to the caller with the job left in processing.
    """
    master = db.session.get(MasterProspect, master_prospect_id)
    if master is None:
        raise NotFoundError(f"Master prospect {master_prospect_id} not found")

    job = EnrichmentJob(
        master_prospect_id=master.id, status="processing", provider="internal"
    )
    db.session.add(job)
    db.session.commit()

    job.result = {
        "email_suggestions": [master.prospect_email] if master.prospect_email else [],
        "phone_suggestions": master.phone_numbers,
    }
    job.status = "completed"
    db.session.commit()
    return as_dict(job)


# ─── RTNE grid rows ──────────────────────────────────────────────

def _get_request(request_id):
    row = db.session.get(RtneRequest, request_id)
    if row is None:
        raise NotFoundError(f"RTNE row {request_id} not found")
    return row


def create_request(caller, project_name, data=None):
    """Append a row to a project's grid. Commits."""
    project_name = (project_name or "").strip()
    if not project_name:
        raise ValidationError("project_name is required")
    data = data or {}

    last = (
        db.session.query(db.func.max(RtneRequest.row_number))
        .filter(RtneRequest.project_name == project_name)
        .scalar()
    )
    user_name, _ = profile_service.resolve_display_identity(caller)
    row = RtneRequest(
        project_name=project_name,
        user_id=caller.id,
        user_name=user_name,
        row_number=(last or 0) + 1,
    )
    for field_name in RtneRequest.EDITABLE_FIELDS:
        if data.get(field_name):
            value = data[field_name]
            setattr(row, field_name, value.strip() if isinstance(value, str) else value)
    db.session.add(row)
    db.session.commit()
    return row


def update_request_field(request_id, field_name, value):
    if field_name not in RtneRequest.EDITABLE_FIELDS:
        raise ValidationError(f"Field '{field_name}' cannot be edited")
    row = _get_request(request_id)
    setattr(row, field_name, value.strip() if isinstance(value, str) else value)
    db.session.commit()
    return row


def list_requests(project_name):
    return (
        RtneRequest.query
        .filter_by(project_name=project_name)
        .order_by(RtneRequest.row_number)
        .all()
    )


def complete_request(request_id, user_id):
    row = _get_request(request_id)
    row.status = "completed"
    row.completed_at = _now()
    row.completed_by = user_id
    db.session.commit()
    return row


def mark_phone_disposition(request_id, phone_index, disposition, user_id):
    """Mark one phone slot (1-4) on a saved grid row as correct or wrong.

    Raises:
        ValidationError: row not saved yet, bad slot, bad value, or the
            slot holds no number.
    """
    row = db.session.get(RtneRequest, request_id) if request_id else None
    if row is None:
        raise ValidationError("Row not saved yet. Please wait for auto-save.")

    try:
        phone_index = int(phone_index)
    except (TypeError, ValueError):
        phone_index = None
    if phone_index not in RtneRequest.PHONE_SLOTS:
        raise ValidationError("Phone slot must be between 1 and 4")
    if disposition not in RtneRequest.PHONE_DISPOSITIONS:
        raise ValidationError(
            f"Phone disposition must be one of: {', '.join(RtneRequest.PHONE_DISPOSITIONS)}"
        )
    if not getattr(row, RtneRequest.PHONE_SLOTS[phone_index]):
        raise ValidationError("No phone number to mark")

    prefix = f"phone{phone_index}_disposition"
    setattr(row, prefix, disposition)
    setattr(row, f"{prefix}_at", _now())
    setattr(row, f"{prefix}_by", user_id)
    db.session.commit()
    return row


# ─── Fulfilment queues ───────────────────────────────────────────

def project_stats():
    """Pending/completed grid-row counts for every caller project.

    Projects are taken from non-admin profiles, so a project with no rows
    still appears with zero counts. Rows filed under a project no profile
    belongs to are not counted. Sorted by project name.
    """
    names = {
        name
        for (name,) in db.session.query(User.project_name)
        .filter(User.project_name.isnot(None), User.project_name != ADMIN_PROJECT)
        .distinct()
        if name
    }
    stats = {
        name: {"project_name": name, "pending_count": 0, "completed_count": 0}
        for name in names
    }

    counts = (
        db.session.query(
            RtneRequest.project_name, RtneRequest.status, db.func.count(RtneRequest.id)
        )
        .group_by(RtneRequest.project_name, RtneRequest.status)
        .all()
    )
    for project_name, status, count in counts:
        entry = stats.get(project_name)
        if entry is not None and status in RtneRequest.STATUSES:
            entry[f"{status}_count"] = count

    projects = sorted(stats.values(), key=lambda s: s["project_name"].lower())
    return {
        "projects": projects,
        "total_pending": sum(s["pending_count"] for s in projects),
    }


def project_queue(project_name):
    """A project's grid rows split into pending and completed, in row order."""
    rows = list_requests(project_name)
    return {
        "pending": [r for r in rows if r.status == "pending"],
        "completed": [r for r in rows if r.status == "completed"],
    }
