"""Audit log model.

Records privileged actions (user provisioning, RTNE record creation,
credit overrides, disposition deletes) for the admin activity view.
"""

import uuid
from datetime import datetime, timezone

from altleads.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(db.String(36), nullable=True, index=True)
    action = db.Column(db.String(255), nullable=False)  # e.g. "rtne_create_master"
    target_table = db.Column(db.String(100), nullable=True)
    target_id = db.Column(db.String(36), nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<AuditLog {self.action}>"
