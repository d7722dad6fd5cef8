"""Pooled Lusha API keys.

Keys are rotated least-recently-used first. A key whose daily credits run
out is marked EXHAUSTED; one the provider rejects is marked INVALID.
"""

import uuid

from altleads.extensions import db


class LushaApiKey(db.Model):
    __tablename__ = "lusha_api_keys"

    CATEGORIES = ["PHONE_ONLY", "EMAIL_ONLY"]
    STATUSES = ["ACTIVE", "EXHAUSTED", "INVALID", "SUSPENDED"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    key_value = db.Column(db.String(255), unique=True, nullable=False)
    category = db.Column(db.String(20), nullable=False)
    credits_remaining = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), default="ACTIVE", nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    @property
    def masked(self):
        return f"...{self.key_value[-4:]}" if self.key_value else ""

    def __repr__(self):
        return f"<LushaApiKey {self.masked} {self.category} ({self.status})>"
