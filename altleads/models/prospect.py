"""Prospect model.

A searchable contact record. ``canonical_linkedin`` is derived from
``prospect_linkedin`` on every assignment and is the dedup/lookup key.
"""

from sqlalchemy.orm import validates

from altleads.extensions import db
from altleads.linkedin import normalize_linkedin_url


class Prospect(db.Model):
    __tablename__ = "prospects"

    PHONE_FIELDS = [
        "prospect_number",
        "prospect_number2",
        "prospect_number3",
        "prospect_number4",
    ]

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    full_name = db.Column(db.String(255), nullable=False)
    company_name = db.Column(db.String(255), nullable=True)
    prospect_designation = db.Column(db.String(255), nullable=True)
    prospect_city = db.Column(db.String(255), nullable=True)
    prospect_number = db.Column(db.String(50), nullable=True)
    prospect_number2 = db.Column(db.String(50), nullable=True)
    prospect_number3 = db.Column(db.String(50), nullable=True)
    prospect_number4 = db.Column(db.String(50), nullable=True)
    prospect_email = db.Column(db.String(255), nullable=True)
    prospect_linkedin = db.Column(db.String(500), nullable=True)  # as entered
    canonical_linkedin = db.Column(db.String(500), nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @validates("prospect_linkedin")
    def _derive_canonical(self, key, value):
        self.canonical_linkedin = normalize_linkedin_url(value) or None
        return value

    @property
    def phone_numbers(self):
        """Non-empty phone numbers in slot order."""
        return [getattr(self, f) for f in self.PHONE_FIELDS if getattr(self, f)]

    def __repr__(self):
        return f"<Prospect {self.id} {self.full_name}>"
