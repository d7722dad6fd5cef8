"""SIM inventory models.

- SimAgent: a calling agent who can hold SIM cards.
- SimCard: one SIM in the pool (``sim_master``), its operator, status,
  assignment and spam tally.
- SimSpamHistory / SimDeactivation: event history per SIM.
- SimAuditLog: one row per inventory action (add, assign, spam, ...).
"""

import uuid
from datetime import datetime, timezone

from altleads.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


class SimAgent(db.Model):
    __tablename__ = "sim_agents"

    STATUSES = ["Active", "Inactive"]

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    project = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), default="Active", nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    sims = db.relationship("SimCard", back_populates="agent", lazy="dynamic")

    def __repr__(self):
        return f"<SimAgent {self.name} ({self.status})>"


class SimCard(db.Model):
    __tablename__ = "sim_master"

    OPERATORS = ["Airtel", "Jio"]
    STATUSES = ["Active", "Inactive", "Spam", "Deactivated"]
    HIGH_RISK = "High Risk"
    NORMAL_RISK = "Normal"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    sim_number = db.Column(db.String(20), unique=True, nullable=False)
    operator = db.Column(db.String(20), nullable=False)
    current_status = db.Column(db.String(20), default="Inactive", nullable=False)
    assigned_agent_id = db.Column(
        db.String(36), db.ForeignKey("sim_agents.id"), nullable=True
    )
    project_name = db.Column(db.String(255), nullable=True)
    spam_count = db.Column(db.Integer, default=0, nullable=False)
    last_spam_date = db.Column(db.DateTime(timezone=True), nullable=True)
    risk_level = db.Column(db.String(20), default="Normal", nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    agent = db.relationship("SimAgent", back_populates="sims")
    spam_history = db.relationship(
        "SimSpamHistory", cascade="all, delete-orphan"
    )
    deactivations = db.relationship(
        "SimDeactivation", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<SimCard {self.sim_number} {self.current_status}>"


class SimSpamHistory(db.Model):
    __tablename__ = "sim_spam_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    sim_id = db.Column(
        db.String(36), db.ForeignKey("sim_master.id"), nullable=False, index=True
    )
    agent_id = db.Column(db.String(36), nullable=True)
    spam_date = db.Column(db.DateTime(timezone=True), default=_utcnow)
    remarks = db.Column(db.Text, nullable=True)
    marked_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class SimDeactivation(db.Model):
    __tablename__ = "sim_deactivation_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    sim_id = db.Column(
        db.String(36), db.ForeignKey("sim_master.id"), nullable=False, index=True
    )
    reason = db.Column(db.Text, nullable=True)
    deactivated_by = db.Column(db.String(36), nullable=True)
    deactivated_date = db.Column(db.Date, default=lambda: _utcnow().date())
    reactivated_date = db.Column(db.Date, nullable=True)


class SimAuditLog(db.Model):
    __tablename__ = "sim_audit_log"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    sim_id = db.Column(db.String(36), nullable=True, index=True)  # kept after SIM delete
    action = db.Column(db.String(50), nullable=False)  # e.g. "MARKED_SPAM"
    details = db.Column(db.JSON, nullable=True)
    performed_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
