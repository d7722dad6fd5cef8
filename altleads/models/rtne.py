"""RTNE (real-time number/email enrichment) models.

- Project / ProjectUser: named projects and their members.
- MasterProspect: one row per real-world LinkedIn profile, shared by projects.
- ProjectProspect: links a master record to a project and tracks whether
  that project was credited for introducing it.
- CreditLog: append-only record of every credit mutation.
- EnrichmentJob: one enrichment attempt (pending -> processing -> completed).
- RtneRequest: a row in a project's RTNE grid, with per-phone dispositions.
"""

import uuid
from datetime import datetime, timezone

from altleads.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), unique=True, nullable=False)
    owner_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    members = db.relationship(
        "ProjectUser",
        back_populates="project",
        lazy="dynamic",
        cascade="all, delete-orphan",
    )
    prospect_links = db.relationship(
        "ProjectProspect", back_populates="project", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Project {self.name}>"


class ProjectUser(db.Model):
    __tablename__ = "project_users"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_user"),
    )

    ROLES = ["owner", "member"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id"), nullable=False
    )
    user_id = db.Column(db.String(36), nullable=False, index=True)
    role = db.Column(db.String(20), default="member", nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    project = db.relationship("Project", back_populates="members")

    def __repr__(self):
        return f"<ProjectUser {self.user_id} ({self.role})>"


class MasterProspect(db.Model):
    __tablename__ = "master_prospects"

    PHONE_FIELDS = [
        "prospect_number",
        "prospect_number2",
        "prospect_number3",
        "prospect_number4",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    linkedin_id = db.Column(db.String(255), unique=True, nullable=False)  # username
    canonical_url = db.Column(db.String(500), unique=True, nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    prospect_city = db.Column(db.String(255), nullable=True)
    prospect_designation = db.Column(db.String(255), nullable=True)
    prospect_email = db.Column(db.String(255), nullable=True)
    prospect_number = db.Column(db.String(50), nullable=True)
    prospect_number2 = db.Column(db.String(50), nullable=True)
    prospect_number3 = db.Column(db.String(50), nullable=True)
    prospect_number4 = db.Column(db.String(50), nullable=True)
    verified = db.Column(db.Boolean, default=False, nullable=False)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    project_links = db.relationship(
        "ProjectProspect", back_populates="master_prospect", lazy="dynamic"
    )

    @property
    def phone_numbers(self):
        return [getattr(self, f) for f in self.PHONE_FIELDS if getattr(self, f)]

    def __repr__(self):
        return f"<MasterProspect {self.linkedin_id}>"


class ProjectProspect(db.Model):
    __tablename__ = "project_prospects"
    __table_args__ = (
        db.UniqueConstraint(
            "project_id", "master_prospect_id", name="uq_project_master_prospect"
        ),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id"), nullable=False
    )
    master_prospect_id = db.Column(
        db.String(36), db.ForeignKey("master_prospects.id"), nullable=False
    )
    added_by = db.Column(db.String(36), nullable=True)
    credit_allocated = db.Column(db.Boolean, default=False, nullable=False)
    credited_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    project = db.relationship("Project", back_populates="prospect_links")
    master_prospect = db.relationship(
        "MasterProspect", back_populates="project_links"
    )

    def __repr__(self):
        return (
            f"<ProjectProspect {self.project_id}/{self.master_prospect_id}"
            f" credit={self.credit_allocated}>"
        )


class CreditLog(db.Model):
    __tablename__ = "credits_log"

    ACTIONS = ["allocate", "override"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    master_prospect_id = db.Column(
        db.String(36), db.ForeignKey("master_prospects.id"), nullable=False
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id"), nullable=True
    )
    user_id = db.Column(db.String(36), nullable=True)
    action = db.Column(db.String(50), nullable=False)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self):
        return f"<CreditLog {self.action} {self.master_prospect_id}>"


class EnrichmentJob(db.Model):
    __tablename__ = "enrichment_jobs"

    STATUSES = ["pending", "processing", "completed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    master_prospect_id = db.Column(
        db.String(36), db.ForeignKey("master_prospects.id"), nullable=False
    )
    status = db.Column(db.String(20), default="pending", nullable=False)
    provider = db.Column(db.String(50), nullable=True)
    result = db.Column(db.JSON, nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self):
        return f"<EnrichmentJob {self.id} ({self.status})>"


class RtneRequest(db.Model):
    __tablename__ = "rtne_requests"

    STATUSES = ["pending", "completed"]
    PHONE_DISPOSITIONS = ["correct", "wrong"]
    # Phone slot number -> column holding that number.
    PHONE_SLOTS = {
        1: "primary_phone",
        2: "phone2",
        3: "phone3",
        4: "phone4",
    }
    EDITABLE_FIELDS = [
        "linkedin_url",
        "full_name",
        "city",
        "job_title",
        "company_name",
        "email_address",
        "primary_phone",
        "phone2",
        "phone3",
        "phone4",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_name = db.Column(db.String(255), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)
    row_number = db.Column(db.Integer, nullable=True)
    linkedin_url = db.Column(db.String(500), nullable=True)
    full_name = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(255), nullable=True)
    job_title = db.Column(db.String(255), nullable=True)
    company_name = db.Column(db.String(255), nullable=True)
    email_address = db.Column(db.String(255), nullable=True)
    primary_phone = db.Column(db.String(50), nullable=True)
    phone2 = db.Column(db.String(50), nullable=True)
    phone3 = db.Column(db.String(50), nullable=True)
    phone4 = db.Column(db.String(50), nullable=True)
    phone1_disposition = db.Column(db.String(20), nullable=True)
    phone1_disposition_at = db.Column(db.DateTime(timezone=True), nullable=True)
    phone1_disposition_by = db.Column(db.String(36), nullable=True)
    phone2_disposition = db.Column(db.String(20), nullable=True)
    phone2_disposition_at = db.Column(db.DateTime(timezone=True), nullable=True)
    phone2_disposition_by = db.Column(db.String(36), nullable=True)
    phone3_disposition = db.Column(db.String(20), nullable=True)
    phone3_disposition_at = db.Column(db.DateTime(timezone=True), nullable=True)
    phone3_disposition_by = db.Column(db.String(36), nullable=True)
    phone4_disposition = db.Column(db.String(20), nullable=True)
    phone4_disposition_at = db.Column(db.DateTime(timezone=True), nullable=True)
    phone4_disposition_by = db.Column(db.String(36), nullable=True)
    status = db.Column(db.String(20), default="pending", nullable=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self):
        return f"<RtneRequest {self.project_name}#{self.row_number}>"
