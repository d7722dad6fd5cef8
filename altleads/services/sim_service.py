"""SIM inventory service: the calling-SIM pool, its agents and spam tracking.

Numbers are stored as ``+91`` followed by ten digits. Every state change
writes one ``sim_audit_log`` row in the same commit as the change itself.

Status rules:
- Marking spam bumps ``spam_count``; three or more strikes is High Risk.
- Reactivating keeps the spam count and closes any open deactivation.
- A deactivated SIM cannot be assigned to an agent.
"""

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import or_

from altleads.errors import ConflictError, NotFoundError, ValidationError
from altleads.extensions import db
from altleads.linkedin import ilike_escape
from altleads.models import as_dict
from altleads.models.sim import (
    SimAgent,
    SimAuditLog,
    SimCard,
    SimDeactivation,
    SimSpamHistory,
)

logger = logging.getLogger(__name__)

COUNTRY_CODE = "+91"
HIGH_RISK_SPAM_COUNT = 3
SPAM_HISTORY_LIMIT = 100

# Leading digits of the national number -> operator.
OPERATOR_PREFIXES = {
    "92": "Jio",
    "95": "Airtel",
}


def _now():
    return datetime.now(timezone.utc)


# ─── Number helpers ──────────────────────────────────────────────

def clean_sim_number(raw):
    """Normalize a typed number to ``+91XXXXXXXXXX``."""
    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith("91") and len(digits) == 12:
        return f"+{digits}"
    if len(digits) == 10:
        return f"{COUNTRY_CODE}{digits}"
    if digits.startswith("0") and len(digits) == 11:
        return f"{COUNTRY_CODE}{digits[1:]}"
    if len(digits) > 12 and digits.startswith("91"):
        return f"{COUNTRY_CODE}{digits[2:12]}"
    return f"{COUNTRY_CODE}{digits[:10]}"


def detect_operator(raw):
    """Operator implied by the number's leading digits, or None."""
    national = clean_sim_number(raw)[len(COUNTRY_CODE):]
    return OPERATOR_PREFIXES.get(national[:2])


def calculate_risk_level(spam_count):
    if spam_count >= HIGH_RISK_SPAM_COUNT:
        return SimCard.HIGH_RISK
    return SimCard.NORMAL_RISK


# ─── Internals ───────────────────────────────────────────────────

def _get_sim(sim_id):
    sim = db.session.get(SimCard, sim_id)
    if sim is None:
        raise NotFoundError(f"SIM {sim_id} not found")
    return sim


def _get_agent(agent_id):
    agent = db.session.get(SimAgent, agent_id)
    if agent is None:
        raise NotFoundError(f"Agent {agent_id} not found")
    return agent


def _log(actor_id, action, sim_id=None, **details):
    db.session.add(SimAuditLog(
        sim_id=sim_id,
        action=action,
        details=details or None,
        performed_by=actor_id,
    ))


def sim_to_dict(sim):
    data = as_dict(sim)
    data["agent_name"] = sim.agent.name if sim.agent is not None else None
    return data


# ─── Queries ─────────────────────────────────────────────────────

def list_sims(search=None, statuses=None, operator=None):
    """SIMs newest first, optionally filtered by text, status and operator.

    ``search`` matches the number, the assigned agent's name or the project.
    """
    query = SimCard.query.outerjoin(SimAgent, SimCard.assigned_agent_id == SimAgent.id)
    search = (search or "").strip()
    if search:
        pattern = f"%{ilike_escape(search)}%"
        query = query.filter(or_(
            SimCard.sim_number.ilike(pattern, escape="\\"),
            SimAgent.name.ilike(pattern, escape="\\"),
            SimCard.project_name.ilike(pattern, escape="\\"),
        ))
    if statuses:
        query = query.filter(SimCard.current_status.in_(statuses))
    if operator:
        query = query.filter(SimCard.operator == operator)
    return query.order_by(SimCard.created_at.desc()).all()


def inventory_stats():
    """Dashboard counts. ``total`` leaves out deactivated SIMs."""
    counts = dict(
        db.session.query(SimCard.current_status, db.func.count(SimCard.id))
        .group_by(SimCard.current_status)
        .all()
    )
    high_risk = SimCard.query.filter(
        SimCard.spam_count >= HIGH_RISK_SPAM_COUNT
    ).count()
    return {
        "total": sum(n for status, n in counts.items() if status != "Deactivated"),
        "active": counts.get("Active", 0),
        "spam": counts.get("Spam", 0),
        "deactivated": counts.get("Deactivated", 0),
        "inactive": counts.get("Inactive", 0),
        "high_risk": high_risk,
    }


def spam_history(limit=SPAM_HISTORY_LIMIT):
    entries = (
        SimSpamHistory.query
        .order_by(SimSpamHistory.created_at.desc())
        .limit(limit)
        .all()
    )
    sims = {s.id: s for s in SimCard.query.filter(
        SimCard.id.in_([e.sim_id for e in entries])
    )} if entries else {}
    agents = {a.id: a.name for a in SimAgent.query.all()}
    out = []
    for entry in entries:
        data = as_dict(entry)
        sim = sims.get(entry.sim_id)
        data["sim_number"] = sim.sim_number if sim is not None else "Unknown"
        data["agent_name"] = agents.get(entry.agent_id, "Unknown") if entry.agent_id else None
        out.append(data)
    return out


def audit_entries(sim_id=None, limit=100):
    query = SimAuditLog.query
    if sim_id:
        query = query.filter_by(sim_id=sim_id)
    return query.order_by(SimAuditLog.created_at.desc()).limit(limit).all()


# ─── SIM actions ─────────────────────────────────────────────────

def add_sim(actor_id, sim_number, operator=None, agent_id=None, project_name=None,
            status="Inactive"):
    """Add a SIM to the pool. Commits.

    Raises:
        ValidationError: blank number, unknown operator or status.
        ConflictError: the cleaned number is already in the pool.
        NotFoundError: ``agent_id`` does not exist.
    """
    if not (sim_number or "").strip():
        raise ValidationError("SIM number is required")
    cleaned = clean_sim_number(sim_number)
    operator = operator or detect_operator(cleaned)
    if operator not in SimCard.OPERATORS:
        raise ValidationError("Operator is required (Airtel or Jio)")
    if status not in ("Active", "Inactive"):
        raise ValidationError("New SIMs must be Active or Inactive")
    if SimCard.query.filter_by(sim_number=cleaned).first():
        raise ConflictError("SIM number already exists")
    if agent_id:
        _get_agent(agent_id)

    sim = SimCard(
        sim_number=cleaned,
        operator=operator,
        current_status=status,
        assigned_agent_id=agent_id or None,
        project_name=(project_name or "").strip() or None,
    )
    db.session.add(sim)
    db.session.flush()
    _log(actor_id, "SIM_ADDED", sim.id, sim_number=cleaned, operator=operator)
    db.session.commit()
    logger.info(f"SIM {cleaned} ({operator}) added")
    return sim


def assign_agent(actor_id, sim_id, agent_id, project_name=None):
    sim = _get_sim(sim_id)
    if sim.current_status == "Deactivated":
        raise ValidationError("Cannot assign a deactivated SIM")
    agent = _get_agent(agent_id)
    sim.assigned_agent_id = agent.id
    if project_name:
        sim.project_name = project_name.strip()
    _log(actor_id, "AGENT_ASSIGNED", sim.id, agent_id=agent.id)
    db.session.commit()
    return sim


def mark_spam(actor_id, sim_id, remarks=None):
    """Record a spam strike against the SIM and its current agent."""
    sim = _get_sim(sim_id)
    remarks = (remarks or "").strip() or None
    db.session.add(SimSpamHistory(
        sim_id=sim.id,
        agent_id=sim.assigned_agent_id,
        remarks=remarks,
        marked_by=actor_id,
    ))
    sim.spam_count = (sim.spam_count or 0) + 1
    sim.current_status = "Spam"
    sim.last_spam_date = _now()
    sim.risk_level = calculate_risk_level(sim.spam_count)
    _log(
        actor_id, "MARKED_SPAM", sim.id,
        spam_count=sim.spam_count, risk_level=sim.risk_level, remarks=remarks,
    )
    db.session.commit()
    logger.info(f"SIM {sim.sim_number} marked spam ({sim.spam_count}, {sim.risk_level})")
    return sim


def deactivate(actor_id, sim_id, reason=None):
    sim = _get_sim(sim_id)
    reason = (reason or "").strip() or None
    sim.current_status = "Deactivated"
    db.session.add(SimDeactivation(sim_id=sim.id, reason=reason, deactivated_by=actor_id))
    _log(actor_id, "DEACTIVATED", sim.id, reason=reason)
    db.session.commit()
    return sim


def reactivate(actor_id, sim_id):
    """Back to Active. The spam count is kept; open deactivations are closed."""
    sim = _get_sim(sim_id)
    sim.current_status = "Active"
    today = _now().date()
    for entry in SimDeactivation.query.filter_by(sim_id=sim.id, reactivated_date=None):
        entry.reactivated_date = today
    _log(actor_id, "REACTIVATED", sim.id)
    db.session.commit()
    return sim


def change_status(actor_id, sim_id, status):
    if status not in SimCard.STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(SimCard.STATUSES)}")
    sim = _get_sim(sim_id)
    if status == "Deactivated":
        return deactivate(actor_id, sim_id)
    if status == "Spam":
        return mark_spam(actor_id, sim_id)
    if status == "Active" and sim.current_status == "Deactivated":
        return reactivate(actor_id, sim_id)

    previous = sim.current_status
    sim.current_status = status
    _log(actor_id, "STATUS_CHANGED", sim.id, previous=previous, status=status)
    db.session.commit()
    return sim


def delete_sim(actor_id, sim_id):
    """Delete the SIM and its history. The audit trail keeps the number."""
    sim = _get_sim(sim_id)
    number = sim.sim_number
    db.session.delete(sim)
    _log(actor_id, "SIM_DELETED", sim_id, sim_number=number)
    db.session.commit()
    logger.info(f"SIM {number} deleted")


# ─── Agents ──────────────────────────────────────────────────────

def list_agents():
    return SimAgent.query.order_by(SimAgent.name).all()


def add_agent(name, project=None):
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    agent = SimAgent(name=name, project=(project or "").strip() or None)
    db.session.add(agent)
    db.session.commit()
    return agent


def toggle_agent_status(agent_id):
    agent = _get_agent(agent_id)
    agent.status = "Inactive" if agent.status == "Active" else "Active"
    db.session.commit()
    return agent
